"""
Error kinds raised by the provisioning core.

Every error derives from PgManagerError and carries two class-level hints
for transports:
  • status_code — HTTP status the REST layer answers with.
  • public      — whether the message may be shown to the client as-is.

Non-public errors (store/engine outages, compensation failures) may carry
operational detail such as host names or orphaned database names. Their
messages are for server-side logs only; clients get a generic 500.
"""

from __future__ import annotations


class PgManagerError(Exception):
    """Base class for all pgmanager errors."""

    status_code: int = 500
    public: bool = False


# ── Validation (raised before any I/O) ──────────────────────
class ValidationError(PgManagerError):
    status_code = 400
    public = True


class InvalidName(ValidationError):
    """Project name fails the naming rules."""


class InvalidEnv(ValidationError):
    """Environment is not one of prod, dev, staging, pr."""


class InvalidFormat(ValidationError):
    """A token or duration string could not be parsed."""


class InvalidPRNumber(ValidationError):
    """PR number is out of range or not allowed for the environment."""


class MissingPRNumber(ValidationError):
    """A pr-environment request without a PR number."""


# ── Lookup / conflict ───────────────────────────────────────
class AlreadyExists(PgManagerError):
    status_code = 409
    public = True


class NotFound(PgManagerError):
    status_code = 404
    public = True


class ProjectNotFound(NotFound):
    pass


class DatabaseNotFound(NotFound):
    pass


# ── Workflow failures ───────────────────────────────────────
class ProvisionFailed(PgManagerError):
    """Live create failed. Nothing was recorded."""


class MetadataWriteFailed(PgManagerError):
    """
    Live create succeeded but the metadata write did not.

    `orphan` names the live database when the compensating drop also
    failed and the database is likely still present on the cluster.
    """

    def __init__(self, message: str, orphan: str | None = None) -> None:
        super().__init__(message)
        self.orphan = orphan


class DeleteFailed(PgManagerError):
    """Live drop failed. Metadata was left intact so the delete can be retried."""


class SecretGenerationFailed(PgManagerError):
    """The OS randomness source could not produce a password."""


# ── Metadata store ──────────────────────────────────────────
class StoreError(PgManagerError):
    pass


class StoreUnavailable(StoreError):
    """Metadata backend is unreachable."""


class DuplicateRecord(StoreError):
    """An insert hit a uniqueness constraint."""

    status_code = 409


# ── Database engine ─────────────────────────────────────────
class EngineError(PgManagerError):
    pass


class EngineUnavailable(EngineError):
    """The PostgreSQL cluster is unreachable."""


class LiveDatabaseExists(EngineError):
    """CREATE DATABASE found a database of that name already on the cluster."""
