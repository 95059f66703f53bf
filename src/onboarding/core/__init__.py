"""
Core module - Configuration, database, security, and utilities.
"""

from onboarding.core.config import configure_logging, get_settings, settings
from onboarding.core.database import Base, close_db, get_db, init_db
from onboarding.core.redis import close_redis, get_redis, init_redis
from onboarding.core.security import create_access_token, decode_token

__all__ = [
    # Config
    "settings",
    "get_settings",
    "configure_logging",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
    # Security
    "create_access_token",
    "decode_token",
]
