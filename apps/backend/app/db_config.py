"""
Database configuration module.
Uses SUPABASE_DB_URL when present, falling back to DATABASE_URL.
"""

import os
import logging
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


class DBConfig:
    """Database configuration read from the environment"""

    def __init__(self):
        self.supabase_db_url = os.getenv("SUPABASE_DB_URL")  # Direct PostgreSQL connection string
        self.database_url = os.getenv("DATABASE_URL")
        self.jobs_table = os.getenv("JOBS_TABLE", "jobs")
        self.employers_table = os.getenv("EMPLOYERS_TABLE", "employers")
        self.connect_timeout = int(os.getenv("DB_CONNECT_TIMEOUT", "5"))

        if self.supabase_db_url and self.database_url:
            logger.info("[db_config] Both SUPABASE_DB_URL and DATABASE_URL set; using SUPABASE_DB_URL")

        db_url = self.db_url
        if db_url:
            logger.debug(f"[db_config] Database configured: {self.masked_url(db_url)}")
        else:
            logger.warning("[db_config] No SUPABASE_DB_URL or DATABASE_URL set - persistence unavailable")

    @property
    def db_url(self) -> Optional[str]:
        return self.supabase_db_url or self.database_url

    @property
    def is_db_enabled(self) -> bool:
        """Check if a database connection string is configured"""
        return bool(self.db_url)

    @staticmethod
    def masked_url(db_url: str) -> str:
        """Return the connection string with the password masked, for logging."""
        try:
            parsed = urlparse(db_url.replace('[', '').replace(']', ''))
            return f"{parsed.scheme}://{parsed.username}:***@{parsed.hostname}:{parsed.port or 5432}{parsed.path}"
        except ValueError:
            return "<unparseable database url>"
