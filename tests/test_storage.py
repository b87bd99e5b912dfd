"""
Tests for catalog storage backends and the YAML seed loader.
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import create_async_engine

from webkomik.core.models import Work, WorkCreate
from webkomik.core.utils import utc_now
from webkomik.storage import create_storage, sql
from webkomik.storage.base import StorageError
from webkomik.storage.memory import InMemoryCatalogStorage
from webkomik.storage.seed import SeedError, load_seed
from webkomik.storage.sql import SqlCatalogStorage


SEED_FILE = Path(__file__).parent.parent / "config" / "catalog_seed.yaml"


@pytest.fixture
async def sql_storage(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    storage = SqlCatalogStorage(engine)
    await storage.create_schema()
    yield storage
    await storage.close()


async def insert_row(storage, table, **values) -> int:
    async with storage.engine.begin() as conn:
        result = await conn.execute(insert(table).values(**values))
        return result.inserted_primary_key[0]


async def add_chapter(storage, work_id, chapter_number) -> int:
    now = utc_now()
    return await insert_row(
        storage, sql.chapters,
        work_id=work_id, chapter_number=chapter_number, created_at=now, updated_at=now,
    )


async def add_page(storage, chapter_id, image_url, page_number) -> int:
    return await insert_row(
        storage, sql.pages,
        chapter_id=chapter_id, image_url=image_url, page_number=page_number, created_at=utc_now(),
    )


# =============================================================================
# In-memory storage
# =============================================================================


class TestInMemoryStorage:
    @pytest.mark.asyncio
    async def test_find_resolves_genre_name(self, storage):
        work = await storage.find_work_by_id(1)
        assert work.genre_name == "Action"

    @pytest.mark.asyncio
    async def test_unknown_genre_has_no_name(self):
        storage = InMemoryCatalogStorage()
        storage.add_work(Work(id=1, title="W", genre_id=99))
        assert (await storage.find_work_by_id(1)).genre_name is None

    @pytest.mark.asyncio
    async def test_missing_work_is_none(self, storage):
        assert await storage.find_work_by_id(404) is None

    @pytest.mark.asyncio
    async def test_list_newest_first_with_id_tiebreak(self):
        storage = InMemoryCatalogStorage()
        old = datetime(2024, 1, 1, tzinfo=timezone.utc)
        new = datetime(2024, 6, 1, tzinfo=timezone.utc)
        storage.add_work(Work(id=1, title="Old", created_at=old))
        storage.add_work(Work(id=2, title="New A", created_at=new))
        storage.add_work(Work(id=3, title="New B", created_at=new))

        works = await storage.list_works()

        assert [w.id for w in works] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_pages_ordered_by_number(self, storage):
        pages = await storage.list_pages_by_chapter(10)
        assert [p.page_number for p in pages] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_reads_return_copies(self, storage):
        work = await storage.find_work_by_id(1)
        work.title = "Changed"
        assert (await storage.find_work_by_id(1)).title == "Night Market"

    @pytest.mark.asyncio
    async def test_insert_skips_seeded_ids(self, storage, new_work):
        work = await storage.insert_work(new_work, "creator-1")
        assert work.id == 3
        assert work.owner_id == "creator-1"

    @pytest.mark.asyncio
    async def test_update_records_who_and_when(self, storage):
        before = await storage.find_work_by_id(1)
        work = await storage.update_work(1, {"title": "Night Market 2"}, "admin-1")

        assert work.title == "Night Market 2"
        assert work.updated_by == "admin-1"
        assert work.updated_at >= before.updated_at
        assert work.created_at == before.created_at

    @pytest.mark.asyncio
    async def test_update_missing_work(self, storage):
        assert await storage.update_work(404, {"title": "X"}, "admin-1") is None

    @pytest.mark.asyncio
    async def test_update_rejects_protected_fields(self, storage):
        with pytest.raises(ValueError):
            await storage.update_work(1, {"owner_id": "someone-else"}, "admin-1")


# =============================================================================
# SQL storage
# =============================================================================


class TestSqlStorage:
    @pytest.mark.asyncio
    async def test_insert_and_find(self, sql_storage):
        genre_id = await insert_row(sql_storage, sql.genres, name="Drama")
        work = await sql_storage.insert_work(WorkCreate(title="T", genre_id=genre_id), "creator-1")

        found = await sql_storage.find_work_by_id(work.id)

        assert found.title == "T"
        assert found.genre_name == "Drama"
        assert found.owner_id == "creator-1"

    @pytest.mark.asyncio
    async def test_missing_work_is_none(self, sql_storage):
        assert await sql_storage.find_work_by_id(404) is None

    @pytest.mark.asyncio
    async def test_list_newest_first(self, sql_storage):
        first = await sql_storage.insert_work(WorkCreate(title="First"), "c1")
        second = await sql_storage.insert_work(WorkCreate(title="Second"), "c1")

        works = await sql_storage.list_works()

        assert [w.id for w in works] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_chapters_and_pages_ordered(self, sql_storage):
        work = await sql_storage.insert_work(WorkCreate(title="W"), "c1")
        ch2 = await add_chapter(sql_storage, work.id, 2)
        ch15 = await add_chapter(sql_storage, work.id, 1.5)
        ch1 = await add_chapter(sql_storage, work.id, 1)
        for n in (2, 3, 1):
            await add_page(sql_storage, ch1, f"https://cdn.test/{n}.jpg", n)

        chapters = await sql_storage.list_chapters_by_work(work.id)
        pages = await sql_storage.list_pages_by_chapter(ch1)

        assert [c.id for c in chapters] == [ch1, ch15, ch2]
        assert [p.page_number for p in pages] == [1, 2, 3]
        assert await sql_storage.list_pages_by_chapter(ch2) == []

    @pytest.mark.asyncio
    async def test_partial_update(self, sql_storage):
        work = await sql_storage.insert_work(
            WorkCreate(title="W", description="Old", author_name="Rani"), "c1"
        )

        updated = await sql_storage.update_work(work.id, {"description": None}, "admin-1")

        assert updated.description is None
        assert updated.author_name == "Rani"
        assert updated.updated_by == "admin-1"
        assert updated.owner_id == "c1"

    @pytest.mark.asyncio
    async def test_update_missing_work(self, sql_storage):
        assert await sql_storage.update_work(404, {"title": "X"}, "admin-1") is None

    @pytest.mark.asyncio
    async def test_ping(self, sql_storage):
        assert isinstance(await sql_storage.ping(), datetime)

    @pytest.mark.asyncio
    async def test_driver_errors_become_storage_errors(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        storage = SqlCatalogStorage(engine)
        try:
            with pytest.raises(StorageError):
                await storage.list_works()
        finally:
            await storage.close()


# =============================================================================
# Seeding
# =============================================================================


class TestSeed:
    @pytest.mark.asyncio
    async def test_bundled_seed_file(self):
        storage = InMemoryCatalogStorage()
        counts = load_seed(SEED_FILE, storage)

        assert counts == {"genres": 2, "works": 2, "chapters": 4, "pages": 7}
        work = await storage.find_work_by_id(1)
        assert work.genre_name == "Action"
        assert work.owner_id == "5b1f7c1e-creator"
        assert (await storage.find_work_by_id(2)).owner_id is None

    @pytest.mark.asyncio
    async def test_plain_urls_are_numbered_in_order(self, tmp_path):
        path = tmp_path / "seed.yaml"
        path.write_text(
            "works:\n"
            "  - title: W\n"
            "    chapters:\n"
            "      - chapter_number: 1\n"
            "        pages:\n"
            "          - https://cdn.test/a.jpg\n"
            "          - https://cdn.test/b.jpg\n"
        )
        storage = InMemoryCatalogStorage()
        load_seed(path, storage)

        chapters = await storage.list_chapters_by_work(1)
        pages = await storage.list_pages_by_chapter(chapters[0].id)
        assert [(p.page_number, p.image_url) for p in pages] == [
            (1, "https://cdn.test/a.jpg"),
            (2, "https://cdn.test/b.jpg"),
        ]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "seed.yaml"
        path.write_text("")
        assert load_seed(path, InMemoryCatalogStorage())["works"] == 0

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "seed.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(SeedError):
            load_seed(path, InMemoryCatalogStorage())

    def test_invalid_work(self, tmp_path):
        path = tmp_path / "seed.yaml"
        path.write_text("works:\n  - description: no title\n")
        with pytest.raises(SeedError):
            load_seed(path, InMemoryCatalogStorage())


# =============================================================================
# Factory
# =============================================================================


class TestCreateStorage:
    @pytest.mark.asyncio
    async def test_defaults_to_memory(self, settings):
        storage = await create_storage(settings)
        assert isinstance(storage, InMemoryCatalogStorage)
        assert await storage.list_works() == []

    @pytest.mark.asyncio
    async def test_memory_with_seed(self, settings):
        storage = await create_storage(settings.model_copy(update={"seed_file": str(SEED_FILE)}))
        assert len(await storage.list_works()) == 2

    @pytest.mark.asyncio
    async def test_database_url_selects_sql(self, settings, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'app.db'}"
        storage = await create_storage(settings.model_copy(update={"database_url": url}))
        try:
            assert isinstance(storage, SqlCatalogStorage)
            assert await storage.list_works() == []
        finally:
            await storage.close()
