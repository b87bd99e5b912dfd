"""
Core catalog types: entities, input records and the error taxonomy.
"""

from webkomik.core.errors import (
    CatalogError,
    Forbidden,
    InternalError,
    NotFoundError,
    Unauthenticated,
    ValidationError,
)
from webkomik.core.models import (
    Chapter,
    ChapterDetail,
    Genre,
    Page,
    Work,
    WorkCreate,
    WorkDetail,
    WorkUpdate,
)

__all__ = [
    # Entities
    "Work",
    "Chapter",
    "Page",
    "Genre",
    "WorkDetail",
    "ChapterDetail",
    # Input records
    "WorkCreate",
    "WorkUpdate",
    # Errors
    "CatalogError",
    "ValidationError",
    "Unauthenticated",
    "Forbidden",
    "NotFoundError",
    "InternalError",
]
