"""
Storage abstraction layer.

All catalog persistence goes through this interface. This allows
swapping implementations (in-memory -> SQLite -> PostgreSQL) without
changing the services that read and write works.

Contract:
- "not found" is a None result, never an exception
- driver / connection failures surface as StorageError
- sequences come back already ordered
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from webkomik.core.models import Chapter, Page, Work, WorkCreate


class StorageError(Exception):
    """The storage backend failed to execute an operation."""


class CatalogStorage(ABC):
    """
    Storage for works, chapters and pages.

    Implementations: InMemoryCatalogStorage (development, tests) and
    SqlCatalogStorage (SQLite / PostgreSQL).
    """

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_work_by_id(self, work_id: int) -> Work | None:
        """Get a work (with its genre name resolved), or None."""
        pass

    @abstractmethod
    async def list_works(self) -> list[Work]:
        """All works, newest first."""
        pass

    @abstractmethod
    async def list_chapters_by_work(self, work_id: int) -> list[Chapter]:
        """Chapters of a work ordered by chapter_number, then id."""
        pass

    @abstractmethod
    async def list_pages_by_chapter(self, chapter_id: int) -> list[Page]:
        """Pages of a chapter ordered by page_number, then id."""
        pass

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_work(self, fields: WorkCreate, owner_id: str) -> Work:
        """Store a new work owned by ``owner_id`` and return it."""
        pass

    @abstractmethod
    async def update_work(self, work_id: int, changes: dict[str, Any], acting_id: str) -> Work | None:
        """Apply a partial update attributed to ``acting_id``. None if the work is gone."""
        pass

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @abstractmethod
    async def ping(self) -> datetime:
        """Round-trip to the backend; returns the backend's clock."""
        pass

    async def close(self) -> None:
        """Release connections. No-op by default."""
        return None


# Columns a partial update may touch
UPDATABLE_WORK_FIELDS = frozenset({
    "title",
    "description",
    "author_name",
    "genre_id",
    "cover_image_url",
})
