"""
Catalog Service - reads work trees and writes works.

Read path (CatalogReader):
- Assembles work -> chapters -> pages from three storage queries
- Only the top-level lookup can fail the request (not found / error)
- Chapter and page sub-fetches degrade to empty sequences instead,
  each chapter independently of its siblings

Write path (WorkService):
- Create: admin or creator; the caller becomes the owner
- Update: admin, or the creator who owns the work; partial fields only
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Generic, TypeVar, Union

from webkomik.auth.context import RequestContext
from webkomik.auth.gate import require_any_role, require_owner_or_role
from webkomik.auth.roles import ADMIN_ONLY, CONTENT_MANAGERS
from webkomik.core.errors import InternalError, NotFoundError
from webkomik.core.models import (
    Chapter,
    ChapterDetail,
    Page,
    Work,
    WorkCreate,
    WorkDetail,
    WorkUpdate,
)
from webkomik.integrations import sentry
from webkomik.storage.base import CatalogStorage, StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Branch results
# =============================================================================


@dataclass(frozen=True)
class Loaded(Generic[T]):
    """A sub-fetch that succeeded."""

    items: list[T]

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class Degraded:
    """A sub-fetch that failed; the branch is served empty."""

    reason: str
    items: list = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return True


Branch = Union[Loaded[T], Degraded]


@dataclass(frozen=True)
class ChapterBranch:
    chapter: Chapter
    pages: Branch[Page]

    def to_detail(self) -> ChapterDetail:
        return ChapterDetail(**dict(self.chapter), pages=list(self.pages.items))


@dataclass(frozen=True)
class WorkTree:
    """
    A work with its chapter/page tree, before flattening for the wire.

    Keeps the outcome of every sub-fetch so the degrade-don't-fail policy
    can be inspected (and tested) rather than hidden in a loop.
    """

    work: Work
    chapters: Branch[ChapterBranch]

    @property
    def is_complete(self) -> bool:
        if self.chapters.degraded:
            return False
        return not any(branch.pages.degraded for branch in self.chapters.items)

    def degraded_reasons(self) -> dict[str, str]:
        reasons: dict[str, str] = {}
        if isinstance(self.chapters, Degraded):
            reasons["chapters"] = self.chapters.reason
        for branch in self.chapters.items:
            if isinstance(branch.pages, Degraded):
                reasons[f"chapter:{branch.chapter.id}"] = branch.pages.reason
        return reasons

    def to_detail(self) -> WorkDetail:
        return WorkDetail(
            **dict(self.work),
            chapters=[branch.to_detail() for branch in self.chapters.items],
        )


# =============================================================================
# Read path
# =============================================================================


class CatalogReader:
    """
    Assembles works for the public catalog.

    Page fetches for the chapters of one work run concurrently, at most
    ``page_fetch_concurrency`` at a time. Each fetch captures its own
    failure, so one bad chapter never blanks out or cancels its siblings.
    Cancelling the calling task cancels every outstanding fetch.
    """

    def __init__(self, storage: CatalogStorage, page_fetch_concurrency: int = 8):
        self.storage = storage
        self.page_fetch_concurrency = page_fetch_concurrency

    async def list_works(self) -> list[Work]:
        """All works, newest first, without their chapters."""
        try:
            return await self.storage.list_works()
        except StorageError as e:
            logger.exception("Failed to list works")
            sentry.capture_exception(e)
            raise InternalError("Failed to load works") from e

    async def get_work_detail(self, work_id: int) -> WorkDetail:
        """
        Get a work with its full chapter/page tree.

        Raises:
            NotFoundError: no work with this id
            InternalError: the work itself could not be loaded
        """
        tree = await self.get_work_tree(work_id)
        return tree.to_detail()

    async def get_work_tree(self, work_id: int) -> WorkTree:
        try:
            work = await self.storage.find_work_by_id(work_id)
        except StorageError as e:
            logger.exception("Failed to load work %s", work_id)
            sentry.capture_exception(e, work_id=work_id)
            raise InternalError("Failed to load work") from e

        if work is None:
            raise NotFoundError("Work not found")

        tree = WorkTree(work=work, chapters=await self._load_chapters(work_id))
        if not tree.is_complete:
            logger.warning("Serving work %s degraded: %s", work_id, tree.degraded_reasons())
        return tree

    async def _load_chapters(self, work_id: int) -> Branch[ChapterBranch]:
        try:
            chapters = await self.storage.list_chapters_by_work(work_id)
        except Exception as e:
            logger.warning("Failed to load chapters for work %s: %s", work_id, e)
            return Degraded(reason=str(e) or type(e).__name__)

        chapters = sorted(chapters, key=lambda c: c.sort_key)
        limit = asyncio.Semaphore(self.page_fetch_concurrency)
        branches = await asyncio.gather(*(self._load_pages(chapter, limit) for chapter in chapters))
        return Loaded(items=list(branches))

    async def _load_pages(self, chapter: Chapter, limit: asyncio.Semaphore) -> ChapterBranch:
        async with limit:
            try:
                pages = await self.storage.list_pages_by_chapter(chapter.id)
            except Exception as e:
                logger.warning("Failed to load pages for chapter %s: %s", chapter.id, e)
                return ChapterBranch(chapter=chapter, pages=Degraded(reason=str(e) or type(e).__name__))

        return ChapterBranch(chapter=chapter, pages=Loaded(items=pages))


# =============================================================================
# Write path
# =============================================================================


@dataclass(frozen=True)
class WorkUpdateResult:
    work: Work
    changed: bool


class WorkService:
    """Creates and updates works on behalf of an authenticated caller."""

    def __init__(self, storage: CatalogStorage):
        self.storage = storage

    async def create_work(self, ctx: RequestContext, fields: WorkCreate) -> Work:
        """Create a work owned by the caller (admin or creator)."""
        identity = require_any_role(ctx, CONTENT_MANAGERS)

        try:
            work = await self.storage.insert_work(fields, identity.subject_id)
        except StorageError as e:
            logger.exception("Failed to create work for %s", identity.subject_id)
            sentry.capture_exception(e, subject_id=identity.subject_id)
            raise InternalError("Failed to save the new work") from e

        logger.info("Work %s created by %s", work.id, identity.subject_id)
        return work

    async def update_work(self, ctx: RequestContext, work_id: int, update: WorkUpdate) -> WorkUpdateResult:
        """
        Apply a partial update.

        The work is loaded first (ownership is unknown until then); admins
        may update anything, creators only the works they own. An update
        with no fields is a no-op that returns the stored work.
        """
        existing = await self._get_existing(work_id)
        identity = require_owner_or_role(ctx, existing.owner_id, ADMIN_ONLY)

        if update.is_empty:
            return WorkUpdateResult(work=existing, changed=False)

        try:
            work = await self.storage.update_work(work_id, update.changes(), identity.subject_id)
        except StorageError as e:
            logger.exception("Failed to update work %s", work_id)
            sentry.capture_exception(e, work_id=work_id, subject_id=identity.subject_id)
            raise InternalError("Failed to update the work") from e

        if work is None:
            raise NotFoundError("Work not found")

        logger.info("Work %s updated by %s: %s", work_id, identity.subject_id, sorted(update.changes()))
        return WorkUpdateResult(work=work, changed=True)

    async def _get_existing(self, work_id: int) -> Work:
        try:
            work = await self.storage.find_work_by_id(work_id)
        except StorageError as e:
            logger.exception("Failed to load work %s", work_id)
            sentry.capture_exception(e, work_id=work_id)
            raise InternalError("Failed to load work") from e

        if work is None:
            raise NotFoundError("Work not found")
        return work
