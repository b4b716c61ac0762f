"""
Core module - Configuration, Redis, browser sessions, CSRF and logging.
"""

from portal.core.config import get_settings, settings
from portal.core.csrf import ensure_csrf_token, verify_csrf_token
from portal.core.redis import close_redis, get_redis, init_redis
from portal.core.session import MemorySession, RedisSession, Session, get_session

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
    # Session
    "Session",
    "RedisSession",
    "MemorySession",
    "get_session",
    # CSRF
    "ensure_csrf_token",
    "verify_csrf_token",
]
