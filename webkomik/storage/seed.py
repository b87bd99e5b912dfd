"""
Catalog seed loader.

Loads genres, works, chapters and pages from a YAML file into the
in-memory storage, so a development server has something to serve.

Format:

    genres:
      - {id: 1, name: Action}
    works:
      - id: 1
        title: Night Market
        genre_id: 1
        owner_id: creator-uid      # optional, omitted for legacy works
        chapters:
          - chapter_number: 1
            title: Opening
            pages:                 # plain URLs are numbered in order
              - https://cdn.example.com/nm/1/1.jpg
              - {image_url: https://cdn.example.com/nm/1/2.jpg, page_number: 2}
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from webkomik.core.models import Work
from webkomik.storage.memory import InMemoryCatalogStorage

logger = logging.getLogger(__name__)


class SeedError(ValueError):
    """The seed file is not a valid catalog description."""


class CatalogSeeder:
    """Registers a YAML catalog description with an in-memory storage."""

    def __init__(self, storage: InMemoryCatalogStorage):
        self.storage = storage

    def load_file(self, path: Path | str) -> dict[str, int]:
        """
        Load a seed file.

        Returns:
            Dict with counts of each entity type loaded
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise SeedError(f"{path}: expected a mapping at the top level")

        counts = self.load_dict(data)
        logger.info(
            "Seeded catalog from %s: %d genres, %d works, %d chapters, %d pages",
            path,
            counts["genres"],
            counts["works"],
            counts["chapters"],
            counts["pages"],
        )
        return counts

    def load_dict(self, data: dict[str, Any]) -> dict[str, int]:
        counts = {"genres": 0, "works": 0, "chapters": 0, "pages": 0}

        for genre in data.get("genres") or []:
            self.storage.add_genre(genre["name"], genre_id=genre.get("id"))
            counts["genres"] += 1

        for index, entry in enumerate(data.get("works") or [], start=1):
            entry = dict(entry)
            chapters = entry.pop("chapters", None) or []
            try:
                work = Work(id=entry.pop("id", index), **entry)
            except ValueError as e:
                raise SeedError(f"Invalid work #{index}: {e}") from e
            self.storage.add_work(work)
            counts["works"] += 1

            for chapter_entry in chapters:
                chapter = self.storage.add_chapter(
                    work.id,
                    chapter_number=chapter_entry["chapter_number"],
                    title=chapter_entry.get("title"),
                    chapter_id=chapter_entry.get("id"),
                )
                counts["chapters"] += 1

                for number, page_entry in enumerate(chapter_entry.get("pages") or [], start=1):
                    if isinstance(page_entry, str):
                        page_entry = {"image_url": page_entry}
                    self.storage.add_page(
                        chapter.id,
                        image_url=page_entry["image_url"],
                        page_number=page_entry.get("page_number", number),
                        page_id=page_entry.get("id"),
                    )
                    counts["pages"] += 1

        return counts


def load_seed(path: Path | str, storage: InMemoryCatalogStorage) -> dict[str, int]:
    """Convenience function to seed a storage from a file."""
    return CatalogSeeder(storage).load_file(path)
