"""
Browser Session Store

Key/value storage scoped to one browser session. The session id travels in
an HTTP-only cookie; values live in Redis as JSON strings inside one hash per
session, with a sliding expiry refreshed on every write.

When Redis is unavailable outside production, an in-process store is used
instead. Note: the in-process store is not shared across server instances.
"""

import json
import logging
import re
import secrets
import time
from typing import Any, Protocol

from fastapi import Depends, HTTPException, Request, Response, status
from redis.asyncio import Redis

from portal.core.config import settings
from portal.core.redis import get_redis

logger = logging.getLogger(__name__)

SESSION_ID_BYTES = 32
SESSION_KEY_PREFIX = "session"

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{32,128}$")

# In-memory fallback storage
# Format: {session_id: (expires_at, {key: json_value})}
_memory_store: dict[str, tuple[float, dict[str, str]]] = {}


class Session(Protocol):
    """Contract of a browser session used by the flow engine."""

    id: str

    async def has(self, key: str) -> bool: ...

    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def unset(self, key: str) -> bool: ...


class RedisSession:
    """Session backed by a Redis hash."""

    def __init__(self, client: Redis, session_id: str, ttl_seconds: int):
        self.id = session_id
        self._client = client
        self._ttl_seconds = ttl_seconds

    @property
    def _hash_key(self) -> str:
        return f"{SESSION_KEY_PREFIX}:{self.id}"

    async def has(self, key: str) -> bool:
        return bool(await self._client.hexists(self._hash_key, key))

    async def get(self, key: str) -> Any:
        """
        Get a value from the session.

        Raises:
            KeyError: If the key is not present.
        """
        raw = await self._client.hget(self._hash_key, key)
        if raw is None:
            raise KeyError(key)
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        pipe = self._client.pipeline()
        pipe.hset(self._hash_key, key, json.dumps(value))
        pipe.expire(self._hash_key, self._ttl_seconds)
        await pipe.execute()

    async def unset(self, key: str) -> bool:
        """Remove a key. Returns False if the key did not exist."""
        removed = await self._client.hdel(self._hash_key, key)
        return removed > 0


class MemorySession:
    """
    Session backed by process memory (development fallback).

    Like the Redis hash, a session's values expire together ttl_seconds after
    its last write. Expired sessions are evicted on the next access to the
    store. Note: This doesn't work across multiple server instances.
    """

    def __init__(
        self,
        session_id: str,
        store: dict[str, tuple[float, dict[str, str]]] | None = None,
        ttl_seconds: int | None = None,
    ):
        self.id = session_id
        self._store = _memory_store if store is None else store
        self._ttl_seconds = ttl_seconds or settings.session_ttl_seconds

    @property
    def _values(self) -> dict[str, str]:
        now = time.time()

        # Remove expired sessions
        expired = [sid for sid, (expires_at, _) in self._store.items() if expires_at <= now]
        for sid in expired:
            del self._store[sid]

        if self.id not in self._store:
            return {}
        return self._store[self.id][1]

    async def has(self, key: str) -> bool:
        return key in self._values

    async def get(self, key: str) -> Any:
        return json.loads(self._values[key])

    async def set(self, key: str, value: Any) -> None:
        values = self._values
        # Serialize so stored values never alias caller objects
        values[key] = json.dumps(value)
        self._store[self.id] = (time.time() + self._ttl_seconds, values)

    async def unset(self, key: str) -> bool:
        return self._values.pop(key, None) is not None


def new_session_id() -> str:
    """Generate a new opaque session id."""
    return secrets.token_urlsafe(SESSION_ID_BYTES)


def is_valid_session_id(session_id: str | None) -> bool:
    return bool(session_id) and _SESSION_ID_PATTERN.match(session_id) is not None


async def get_session(
    request: Request,
    response: Response,
    redis: Redis | None = Depends(get_redis),
) -> Session:
    """
    FastAPI dependency returning the current browser session.

    A new session id is issued when the cookie is missing or malformed.
    The cookie is refreshed on every request so its lifetime slides.

    Raises:
        HTTPException 503: If Redis is unavailable in production.
    """
    session_id = request.cookies.get(settings.session_cookie_name)
    if not is_valid_session_id(session_id):
        session_id = new_session_id()

    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_id,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )

    if redis is None:
        if settings.is_production:
            logger.error("Session store unavailable: Redis is not initialized")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail={
                    "error": "SESSION_STORE_UNAVAILABLE",
                    "message": "Service temporarily unavailable. Please try again later.",
                },
            )
        return MemorySession(session_id)

    return RedisSession(redis, session_id, settings.session_ttl_seconds)
