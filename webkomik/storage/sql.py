"""
SQL catalog storage (SQLAlchemy async Core).

PostgreSQL in production via asyncpg, SQLite via aiosqlite for local
runs. The engine owns the connection pool; it is created once at
startup and disposed on shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from webkomik.config import Settings
from webkomik.core.models import Chapter, Page, Work, WorkCreate
from webkomik.core.utils import utc_now
from webkomik.storage.base import UPDATABLE_WORK_FIELDS, CatalogStorage, StorageError

logger = logging.getLogger(__name__)


# =============================================================================
# Schema
# =============================================================================

metadata = MetaData()

genres = Table(
    "genres",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100), nullable=False, unique=True),
)

works = Table(
    "works",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("author_name", String(255)),
    Column("genre_id", Integer, ForeignKey("genres.id", ondelete="SET NULL")),
    Column("cover_image_url", Text),
    Column("owner_id", String(64)),  # identity provider subject id
    Column("updated_by", String(64)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

chapters = Table(
    "chapters",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("work_id", Integer, ForeignKey("works.id", ondelete="CASCADE"), nullable=False),
    Column("chapter_number", Float, nullable=False),
    Column("title", String(255)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("ix_chapters_work_number", "work_id", "chapter_number"),
)

pages = Table(
    "pages",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("chapter_id", Integer, ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False),
    Column("image_url", Text, nullable=False),
    Column("page_number", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("ix_pages_chapter_number", "chapter_id", "page_number"),
)

_work_columns = [
    works.c.id,
    works.c.title,
    works.c.description,
    works.c.author_name,
    works.c.genre_id,
    genres.c.name.label("genre_name"),
    works.c.cover_image_url,
    works.c.owner_id,
    works.c.updated_by,
    works.c.created_at,
    works.c.updated_at,
]


def _work_query():
    return select(*_work_columns).select_from(works.outerjoin(genres, works.c.genre_id == genres.c.id))


# =============================================================================
# Engine
# =============================================================================


def build_engine_kwargs(settings: Settings) -> dict[str, Any]:
    """Return engine kwargs appropriate for the configured dialect."""
    if settings.is_sqlite:
        return {
            "echo": settings.debug,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "echo": settings.debug,
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
    }


# =============================================================================
# Storage
# =============================================================================


class SqlCatalogStorage(CatalogStorage):
    """Catalog storage on a SQLAlchemy async engine."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    @classmethod
    def from_settings(cls, settings: Settings) -> SqlCatalogStorage:
        engine = create_async_engine(settings.database_url, **build_engine_kwargs(settings))
        return cls(engine)

    async def create_schema(self) -> None:
        """Create missing tables. Existing tables are left alone."""
        async with self._connect() as conn:
            await conn.run_sync(metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("Database connections closed")

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[AsyncConnection]:
        """A transactional connection; driver errors surface as StorageError."""
        try:
            async with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e

    # =========================================================================
    # Reads
    # =========================================================================

    async def find_work_by_id(self, work_id: int) -> Work | None:
        async with self._connect() as conn:
            return await self._fetch_work(conn, work_id)

    async def list_works(self) -> list[Work]:
        stmt = _work_query().order_by(works.c.created_at.desc(), works.c.id.desc())
        async with self._connect() as conn:
            result = await conn.execute(stmt)
            return [Work(**row) for row in result.mappings()]

    async def list_chapters_by_work(self, work_id: int) -> list[Chapter]:
        stmt = (
            select(chapters)
            .where(chapters.c.work_id == work_id)
            .order_by(chapters.c.chapter_number.asc(), chapters.c.id.asc())
        )
        async with self._connect() as conn:
            result = await conn.execute(stmt)
            return [Chapter(**row) for row in result.mappings()]

    async def list_pages_by_chapter(self, chapter_id: int) -> list[Page]:
        stmt = (
            select(pages)
            .where(pages.c.chapter_id == chapter_id)
            .order_by(pages.c.page_number.asc(), pages.c.id.asc())
        )
        async with self._connect() as conn:
            result = await conn.execute(stmt)
            return [Page(**row) for row in result.mappings()]

    # =========================================================================
    # Writes
    # =========================================================================

    async def insert_work(self, fields: WorkCreate, owner_id: str | None) -> Work:
        now = utc_now()
        stmt = insert(works).values(
            **fields.model_dump(),
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        async with self._connect() as conn:
            result = await conn.execute(stmt)
            work = await self._fetch_work(conn, result.inserted_primary_key[0])

        if work is None:
            raise StorageError("Inserted work could not be read back")
        return work

    async def update_work(self, work_id: int, changes: dict[str, Any], acting_id: str) -> Work | None:
        unknown = set(changes) - UPDATABLE_WORK_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        stmt = (
            update(works)
            .where(works.c.id == work_id)
            .values(**changes, updated_by=acting_id, updated_at=utc_now())
        )
        async with self._connect() as conn:
            result = await conn.execute(stmt)
            if result.rowcount == 0:
                return None
            return await self._fetch_work(conn, work_id)

    async def ping(self) -> datetime:
        async with self._connect() as conn:
            value = await conn.scalar(select(func.current_timestamp()))
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        return value

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    async def _fetch_work(conn: AsyncConnection, work_id: int) -> Work | None:
        result = await conn.execute(_work_query().where(works.c.id == work_id))
        row = result.mappings().first()
        return Work(**row) if row else None
