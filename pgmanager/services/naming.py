"""
Naming and validation rules for projects and their databases.

Pure functions — no I/O. Everything the orchestrator derives from user
input (database name, login role, env/PR pair, durations) goes through
here, so the rules live in exactly one place.

Naming scheme:
  • non-PR database:  {project}_{env}          e.g. myapp_prod
  • PR database:      {project}_pr_{number}    e.g. myapp_pr_123
  • login role:       {database}_user          e.g. myapp_pr_123_user
"""

from __future__ import annotations

import datetime
import re

from pgmanager.errors import (
    InvalidEnv,
    InvalidFormat,
    InvalidName,
    InvalidPRNumber,
)

# ── Rules ───────────────────────────────────────────────────
PROJECT_NAME_MIN = 2
PROJECT_NAME_MAX = 32
MAX_PR_NUMBER = 1_000_000

ENV_PROD = "prod"
ENV_DEV = "dev"
ENV_STAGING = "staging"
ENV_PR = "pr"
VALID_ENVS = (ENV_PROD, ENV_DEV, ENV_STAGING, ENV_PR)

RESERVED_NAMES = frozenset(
    {"postgres", "template0", "template1", "admin", "root", "system"}
)

_PROJECT_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")
_PR_TOKEN_RE = re.compile(r"^pr_([0-9]+)$")
_DURATION_RE = re.compile(r"^([0-9]+)([smhdw])$")

_DURATION_UNITS = {
    "s": datetime.timedelta(seconds=1),
    "m": datetime.timedelta(minutes=1),
    "h": datetime.timedelta(hours=1),
    "d": datetime.timedelta(days=1),
    "w": datetime.timedelta(weeks=1),
}


# ── Validation ──────────────────────────────────────────────
def validate_project_name(name: str) -> None:
    """Raise InvalidName unless `name` is a usable project name."""
    if len(name) < PROJECT_NAME_MIN:
        raise InvalidName(
            f"project name must be at least {PROJECT_NAME_MIN} characters"
        )
    if len(name) > PROJECT_NAME_MAX:
        raise InvalidName(
            f"project name must be at most {PROJECT_NAME_MAX} characters"
        )
    if not _PROJECT_NAME_RE.match(name):
        raise InvalidName(
            "project name must start with a lowercase letter and contain only "
            "lowercase letters, numbers, and underscores"
        )
    if name in RESERVED_NAMES:
        raise InvalidName(f"'{name}' is a reserved name")


def validate_env(env: str) -> None:
    if env not in VALID_ENVS:
        raise InvalidEnv(
            f"invalid environment '{env}', must be one of: {', '.join(VALID_ENVS)}"
        )


def validate_pr_number(pr_number: int) -> None:
    if pr_number <= 0 or pr_number > MAX_PR_NUMBER:
        raise InvalidPRNumber(
            f"PR number must be between 1 and {MAX_PR_NUMBER}"
        )


# ── Derivation ──────────────────────────────────────────────
def database_name(project: str, env: str, pr_number: int | None = None) -> str:
    """Canonical database name. Inputs are assumed already validated."""
    if env == ENV_PR and pr_number is not None:
        return f"{project}_pr_{pr_number}"
    return f"{project}_{env}"


def user_name(db_name: str) -> str:
    return f"{db_name}_user"


def env_token(env: str, pr_number: int | None) -> str:
    """Inverse of parse_env_token — `pr_42` for PR databases, else the env."""
    if pr_number is not None:
        return f"pr_{pr_number}"
    return env


# ── Parsing ─────────────────────────────────────────────────
def parse_env_token(token: str) -> tuple[str, int | None]:
    """
    Split a combined env token into (env, pr_number).

        parse_env_token("pr_123")  -> ("pr", 123)
        parse_env_token("staging") -> ("staging", None)

    Raises InvalidFormat when a `pr_` token does not end in a positive
    integer, and InvalidEnv for anything else that is not an environment.
    """
    if token.startswith("pr_"):
        match = _PR_TOKEN_RE.match(token)
        if match is None:
            raise InvalidFormat(
                "invalid PR environment format, expected pr_<number>"
            )
        number = int(match.group(1))
        if number <= 0:
            raise InvalidFormat("PR number in environment token must be positive")
        return ENV_PR, number

    validate_env(token)
    return token, None


def parse_duration(text: str) -> datetime.timedelta:
    """
    Parse durations like `30m`, `24h`, `7d`, `2w`.

    Raises InvalidFormat for anything else (including bare numbers).
    """
    match = _DURATION_RE.match(text.strip())
    if match is None:
        raise InvalidFormat(
            f"invalid duration '{text}', expected <number><s|m|h|d|w>"
        )
    value, unit = match.groups()
    return int(value) * _DURATION_UNITS[unit]
