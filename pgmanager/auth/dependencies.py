"""
FastAPI dependency for bearer-token authentication.

Flow:
  1. Auth disabled (no API_TOKEN and REQUIRE_TOKEN=false) → allow
  2. Extract Bearer token from Authorization header
  3. Constant-time compare against API_TOKEN

Security:
  • Generic 401 for ALL failure modes (missing, malformed, wrong)
  • Tokens are NEVER logged
  • REQUIRE_TOKEN=true with an empty API_TOKEN rejects every request
    (fail closed); the app logs a warning about it at startup
"""

from __future__ import annotations

import secrets

from fastapi import Header, HTTPException, Request, status

from pgmanager.core.config import Settings

# Same message for every auth failure
_AUTH_FAILED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or missing API token.",
    headers={"WWW-Authenticate": "Bearer"},
)


def check_token(settings: Settings, authorization: str | None) -> None:
    """Raise the generic 401 unless `authorization` carries the API token."""
    if not settings.auth_enabled:
        return

    if not authorization or not settings.API_TOKEN:
        raise _AUTH_FAILED

    parts = authorization.split(" ", maxsplit=1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _AUTH_FAILED

    if not secrets.compare_digest(parts[1].encode(), settings.API_TOKEN.encode()):
        raise _AUTH_FAILED


async def require_token(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> None:
    """
    FastAPI dependency — guards every /api route except health.

    Usage in routers:
        router = APIRouter(dependencies=[Depends(require_token)])
    """
    check_token(request.app.state.settings, authorization)
