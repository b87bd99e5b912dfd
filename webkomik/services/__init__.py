"""
Catalog services.

Services hold the catalog's read and write rules. They receive their
storage at construction and know nothing about HTTP.
"""

from webkomik.services.catalog import (
    Branch,
    CatalogReader,
    ChapterBranch,
    Degraded,
    Loaded,
    WorkService,
    WorkTree,
    WorkUpdateResult,
)

__all__ = [
    "CatalogReader",
    "WorkService",
    "WorkTree",
    "ChapterBranch",
    "Branch",
    "Loaded",
    "Degraded",
    "WorkUpdateResult",
]
