"""
In-memory catalog storage for development and tests.

Works without any external services. Every read returns copies so a
caller can never mutate stored state by accident.
"""

from __future__ import annotations

from datetime import datetime
from itertools import count
from typing import Any, Iterator

from webkomik.core.models import Chapter, Genre, Page, Work, WorkCreate
from webkomik.core.utils import utc_now
from webkomik.storage.base import UPDATABLE_WORK_FIELDS, CatalogStorage


class InMemoryCatalogStorage(CatalogStorage):
    """Dict-backed catalog with auto-incrementing ids."""

    def __init__(self):
        self._genres: dict[int, Genre] = {}
        self._works: dict[int, Work] = {}
        self._chapters: dict[int, Chapter] = {}
        self._pages: dict[int, Page] = {}

        self._genre_ids = count(1)
        self._work_ids = count(1)
        self._chapter_ids = count(1)
        self._page_ids = count(1)

    # =========================================================================
    # Reads
    # =========================================================================

    async def find_work_by_id(self, work_id: int) -> Work | None:
        work = self._works.get(work_id)
        return self._with_genre(work) if work else None

    async def list_works(self) -> list[Work]:
        works = sorted(self._works.values(), key=lambda w: (w.created_at, w.id), reverse=True)
        return [self._with_genre(w) for w in works]

    async def list_chapters_by_work(self, work_id: int) -> list[Chapter]:
        chapters = [c for c in self._chapters.values() if c.work_id == work_id]
        chapters.sort(key=lambda c: c.sort_key)
        return [c.model_copy() for c in chapters]

    async def list_pages_by_chapter(self, chapter_id: int) -> list[Page]:
        pages = [p for p in self._pages.values() if p.chapter_id == chapter_id]
        pages.sort(key=lambda p: (p.page_number, p.id))
        return [p.model_copy() for p in pages]

    # =========================================================================
    # Writes
    # =========================================================================

    async def insert_work(self, fields: WorkCreate, owner_id: str | None) -> Work:
        now = utc_now()
        work = Work(
            id=self._allocate(self._work_ids, self._works),
            **fields.model_dump(),
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        self._works[work.id] = work
        return self._with_genre(work)

    async def update_work(self, work_id: int, changes: dict[str, Any], acting_id: str) -> Work | None:
        work = self._works.get(work_id)
        if work is None:
            return None

        unknown = set(changes) - UPDATABLE_WORK_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        updated = work.model_copy(update={
            **changes,
            "updated_by": acting_id,
            "updated_at": utc_now(),
        })
        self._works[work_id] = updated
        return self._with_genre(updated)

    async def ping(self) -> datetime:
        return utc_now()

    # =========================================================================
    # Seeding (no counterpart in the storage contract)
    # =========================================================================

    def add_genre(self, name: str, genre_id: int | None = None) -> Genre:
        genre = Genre(id=genre_id or self._allocate(self._genre_ids, self._genres), name=name)
        self._genres[genre.id] = genre
        return genre

    def add_work(self, work: Work) -> Work:
        """Store a fully-formed work (e.g. a legacy row without owner)."""
        self._works[work.id] = work.model_copy()
        return work

    def add_chapter(
        self,
        work_id: int,
        chapter_number: float,
        title: str | None = None,
        chapter_id: int | None = None,
    ) -> Chapter:
        chapter = Chapter(
            id=chapter_id or self._allocate(self._chapter_ids, self._chapters),
            work_id=work_id,
            chapter_number=chapter_number,
            title=title,
        )
        self._chapters[chapter.id] = chapter
        return chapter

    def add_page(
        self,
        chapter_id: int,
        image_url: str,
        page_number: int,
        page_id: int | None = None,
    ) -> Page:
        page = Page(
            id=page_id or self._allocate(self._page_ids, self._pages),
            chapter_id=chapter_id,
            image_url=image_url,
            page_number=page_number,
        )
        self._pages[page.id] = page
        return page

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _allocate(ids: Iterator[int], taken: dict[int, Any]) -> int:
        """Next counter value not already used by an explicitly seeded row."""
        new_id = next(ids)
        while new_id in taken:
            new_id = next(ids)
        return new_id

    def _with_genre(self, work: Work) -> Work:
        genre = self._genres.get(work.genre_id) if work.genre_id is not None else None
        return work.model_copy(update={"genre_name": genre.name if genre else None})
