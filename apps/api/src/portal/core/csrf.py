"""Provides CSRF token verification for state-changing endpoints."""

import logging
import secrets

from fastapi import Depends, HTTPException, Request, status

from portal.core.config import settings
from portal.core.session import Session, get_session

logger = logging.getLogger(__name__)

CSRF_SESSION_KEY = "csrfToken"
CSRF_TOKEN_BYTES = 32


async def ensure_csrf_token(session: Session) -> str:
    """Return the session's CSRF token, creating one if needed."""
    if await session.has(CSRF_SESSION_KEY):
        return await session.get(CSRF_SESSION_KEY)

    token = secrets.token_urlsafe(CSRF_TOKEN_BYTES)
    await session.set(CSRF_SESSION_KEY, token)
    return token


async def verify_csrf_token(
    request: Request,
    session: Session = Depends(get_session),
) -> bool:
    """Verifies the submitted CSRF token against the one held by the session.

    Used as a FastAPI dependency on every form-submission route.

    Args:
        request: The incoming request; the token is read from the configured header.
        session: The browser session (injected).

    Returns:
        True if the token matches.

    Raises:
        HTTPException: With status code 403 if the token is missing or does not match.
    """
    submitted = request.headers.get(settings.csrf_header_name)
    expected = await session.get(CSRF_SESSION_KEY) if await session.has(CSRF_SESSION_KEY) else None

    if not submitted or not expected or not secrets.compare_digest(submitted, expected):
        logger.warning(f"CSRF token mismatch; sessionId: [{session.id}], path: [{request.url.path}]")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "INVALID_CSRF_TOKEN", "message": "Invalid CSRF token"},
        )
    return True
