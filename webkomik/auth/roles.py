"""
Roles.

A role is read from the token exactly once, through Role.parse(), at the
trust boundary. Everything downstream compares enum members.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class Role(str, Enum):
    """Coarse-grained permission class of a verified identity."""

    ADMIN = "admin"      # Manages the whole catalog
    CREATOR = "creator"  # Uploads works and edits their own
    USER = "user"        # Reads only

    @classmethod
    def parse(cls, value: object, default: Role | None = None) -> Role:
        """
        Case-insensitive parse of a role claim.

        Anything that is not a known role name falls back to ``default``
        (USER unless given), so an unexpected claim never widens access.
        """
        fallback = default or cls.USER
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return fallback
        try:
            return cls(value.strip().lower())
        except ValueError:
            return fallback


def role_set(roles: Iterable[Role | str]) -> frozenset[Role]:
    """Normalise a collection of roles (names are matched case-insensitively)."""
    result = set()
    for role in roles:
        if isinstance(role, Role):
            result.add(role)
            continue
        try:
            result.add(Role(role.strip().lower()))
        except ValueError:
            raise ValueError(f"Unknown role: {role!r}") from None
    return frozenset(result)


ADMIN_ONLY = frozenset({Role.ADMIN})
CONTENT_MANAGERS = frozenset({Role.ADMIN, Role.CREATOR})
