"""
Password generation and connection-string formatting.

Security notes:
  • Passwords are 16 random bytes from the OS CSPRNG (`secrets`),
    hex-encoded to 32 lowercase characters — safe inside SQL literals
    and URLs without escaping.
  • If the randomness source fails we raise SecretGenerationFailed.
    There is no weaker fallback.
  • generate_password() output is shown to the caller exactly once, at
    database creation. It is stored in metadata but never logged.
"""

from __future__ import annotations

import logging
import secrets

from pgmanager.errors import SecretGenerationFailed

logger = logging.getLogger(__name__)

PASSWORD_BYTES = 16  # 32 hex chars = 128 bits


def generate_password() -> str:
    """Return a fresh random hex password or raise SecretGenerationFailed."""
    try:
        return secrets.token_hex(PASSWORD_BYTES)
    except (OSError, NotImplementedError) as exc:
        logger.error("Secure random source unavailable: %s", exc)
        raise SecretGenerationFailed(
            "could not generate a secure password"
        ) from exc


def connection_string(
    *,
    host: str,
    port: int,
    dbname: str,
    user: str,
    password: str,
    sslmode: str,
) -> str:
    """
    Build a libpq URI for a managed database.

    The password is embedded verbatim — callers must treat the result
    as a secret.
    """
    return f"postgresql://{user}:{password}@{host}:{port}/{dbname}?sslmode={sslmode}"
