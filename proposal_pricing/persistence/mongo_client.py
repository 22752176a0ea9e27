"""
Mongo Client — lazy connection to the database holding the pricing rule tables.

Nothing connects in mock mode; callers get ``None`` from get_database()
and fall back to built-in defaults.
"""

from __future__ import annotations

import logging
from typing import Any

from pymongo import MongoClient as PyMongoClient

from proposal_pricing.config import Settings, get_settings

logger = logging.getLogger(__name__)


class MongoClient:
    """Owns one pymongo client, opened on first use."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._client: PyMongoClient | None = None
        self._db: Any = None

    def get_database(self) -> Any:
        """Database handle, or None in mock mode."""
        if self.settings.mock_mode:
            return None
        if self._db is None:
            self._client = PyMongoClient(
                self.settings.mongodb_uri,
                serverSelectionTimeoutMS=self.settings.mongodb_timeout_ms,
            )
            self._db = self._client[self.settings.mongodb_database]
            logger.info(f"Opened rules database '{self.settings.mongodb_database}'")
        return self._db

    def close(self) -> None:
        if self._client is None:
            return
        self._client.close()
        self._client = None
        self._db = None
        logger.info("Closed rules database connection")
