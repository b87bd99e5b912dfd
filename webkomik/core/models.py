"""
Core data models for the catalog.

A Work is the catalog root. It owns an ordered sequence of Chapters,
and each Chapter owns an ordered sequence of Pages. Entities are
assembled fresh for every request; nothing here is cached.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator, model_validator

from webkomik.core.utils import utc_now


TITLE_MAX_LENGTH = 255

# Ids are signed 64-bit integers in every backend
ID_MAX = 2**63 - 1

GenreRef = Annotated[int, Field(ge=1, le=ID_MAX)]


# =============================================================================
# Entities
# =============================================================================


class Genre(BaseModel):
    """A genre a work can be filed under."""

    id: int
    name: str


class Page(BaseModel):
    """A single page image inside a chapter."""

    id: int
    chapter_id: int = Field(exclude=True)  # implied by the parent chapter
    image_url: str
    page_number: int
    created_at: datetime = Field(default_factory=utc_now)


class Chapter(BaseModel):
    """
    A chapter of a work.

    chapter_number is fractional so chapters can be slotted in between
    existing ones (e.g. 10.5). Uniqueness is not enforced.
    """

    id: int
    work_id: int = Field(exclude=True)
    chapter_number: float
    title: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def sort_key(self) -> tuple[float, int]:
        return (self.chapter_number, self.id)


class Work(BaseModel):
    """
    The catalog root entity.

    owner_id is the subject id of the creator who uploaded the work. It is
    None for legacy rows and never leaves the server.
    """

    id: int
    title: str
    description: str | None = None
    author_name: str | None = None
    genre_id: int | None = None
    genre_name: str | None = None  # resolved by storage, read-only
    cover_image_url: str | None = None

    # Ownership and attribution
    owner_id: str | None = Field(default=None, exclude=True)
    updated_by: str | None = Field(default=None, exclude=True)

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Assembled tree (read path)
# =============================================================================


class ChapterDetail(Chapter):
    """A chapter together with its pages."""

    pages: list[Page] = Field(default_factory=list)


class WorkDetail(Work):
    """A work together with its full chapter/page tree."""

    chapters: list[ChapterDetail] = Field(default_factory=list)


# =============================================================================
# Input records (write path)
# =============================================================================


class WorkCreate(BaseModel):
    """Fields accepted when creating a work."""

    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str | None = None
    author_name: str | None = None
    genre_id: GenreRef | None = None
    cover_image_url: str | None = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class WorkUpdate(BaseModel):
    """
    Fields accepted when updating a work.

    Partial semantics: a field left out of the request leaves the stored
    value untouched, while a field that is present overwrites it, even
    with null or an empty string. Only title refuses null.
    """

    title: str | None = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str | None = None
    author_name: str | None = None
    genre_id: GenreRef | None = None
    cover_image_url: str | None = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def title_not_null(self) -> WorkUpdate:
        if "title" in self.model_fields_set and self.title is None:
            raise ValueError("title cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        """The explicitly supplied fields, ready for storage."""
        return self.model_dump(include=self.model_fields_set)

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set
