"""
Core module - Configuration, database, scheduling timer and utilities.
"""

from studyhub.core.config import get_settings, settings
from studyhub.core.database import Base, async_session_maker, close_db, get_db, init_db
from studyhub.core.redis import close_redis, get_redis, init_redis

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "async_session_maker",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
]
