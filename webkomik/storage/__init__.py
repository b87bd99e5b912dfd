"""
Storage abstractions.

- CatalogStorage         -> the capability contract services depend on
- InMemoryCatalogStorage -> development and tests (optionally seeded from YAML)
- SqlCatalogStorage      -> SQLite / PostgreSQL through SQLAlchemy
"""

from __future__ import annotations

from webkomik.config import Settings
from webkomik.storage.base import CatalogStorage, StorageError
from webkomik.storage.memory import InMemoryCatalogStorage
from webkomik.storage.seed import load_seed
from webkomik.storage.sql import SqlCatalogStorage


async def create_storage(settings: Settings) -> CatalogStorage:
    """Create the storage backend the settings ask for."""
    if settings.use_database:
        storage = SqlCatalogStorage.from_settings(settings)
        if settings.database_create_schema:
            await storage.create_schema()
        return storage

    storage = InMemoryCatalogStorage()
    if settings.seed_file:
        load_seed(settings.seed_file, storage)
    return storage


__all__ = [
    "CatalogStorage",
    "StorageError",
    "InMemoryCatalogStorage",
    "SqlCatalogStorage",
    "create_storage",
    "load_seed",
]
