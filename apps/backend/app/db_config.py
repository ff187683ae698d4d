"""
Database configuration module.

The record store connects with DATABASE_URL; without it the worker can only
run with the in-memory store (--dry-run).
"""

import os
import logging
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


class DBConfig:
    """Database configuration read from the environment"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url if database_url is not None else os.getenv("DATABASE_URL")

    @property
    def is_db_enabled(self) -> bool:
        return bool(self.database_url)

    def masked_url(self) -> Optional[str]:
        """DATABASE_URL with the password hidden, for logging."""
        if not self.database_url:
            return None
        try:
            parsed = urlparse(self.database_url)
        except ValueError:
            return "<unparseable DATABASE_URL>"
        user = f"{parsed.username}:***@" if parsed.username else ""
        return f"{parsed.scheme}://{user}{parsed.hostname}:{parsed.port or 5432}{parsed.path}"

    def log_status(self):
        if self.is_db_enabled:
            logger.info(f"[db_config] DATABASE_URL configured: {self.masked_url()}")
        else:
            logger.warning("[db_config] DATABASE_URL not set - database connections will fail")
