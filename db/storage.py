"""Process-wide storage selection."""

import logging
from typing import Optional, Union

from db.memory import InMemoryStorage
from db.pool import DatabasePool
from db.repository import PostgresStorage
from settings import load_settings

logger = logging.getLogger(__name__)

Storage = Union[PostgresStorage, InMemoryStorage]

_storage: Optional[Storage] = None


def get_storage() -> Storage:
    """Build the configured storage on first use and reuse it afterwards."""
    global _storage
    if _storage is None:
        settings = load_settings()
        if settings.storage_backend == "memory":
            _storage = InMemoryStorage()
        else:
            _storage = PostgresStorage(DatabasePool(
                settings.database_url,
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size
            ))
        logger.info(f"Storage backend: {settings.storage_backend}")
    return _storage


async def initialize_database():
    """Initialize the configured storage."""
    await get_storage().initialize()


async def close_database():
    """Close the configured storage."""
    global _storage
    if _storage is not None:
        await _storage.close()
        _storage = None
