"""
Request context - the verified "who" for each request.

This is the single typed value handed from the access gate to route
handlers and services. It replaces any ad hoc key/value bag.
"""

from __future__ import annotations

from dataclasses import dataclass

from webkomik.auth.roles import Role


@dataclass(frozen=True)
class Identity:
    """A verified (subject_id, role) pair. Immutable for the request's lifetime."""

    subject_id: str
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def has_any_role(self, allowed: frozenset[Role]) -> bool:
        return self.role in allowed

    def owns(self, owner_id: str | None) -> bool:
        """Does this identity own an entity whose owner is ``owner_id``?"""
        return owner_id is not None and owner_id == self.subject_id


@dataclass(frozen=True)
class RequestContext:
    """
    Per-request carrier of the verified identity.

    Public routes receive an anonymous context; protected routes only
    ever see a context whose identity is set.

    Usage in routes:
        async def my_route(ctx: RequestContext = Depends(require_roles(Role.ADMIN))):
            print(f"User {ctx.subject_id} acting as {ctx.role.value}")
    """

    identity: Identity | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def subject_id(self) -> str | None:
        return self.identity.subject_id if self.identity else None

    @property
    def role(self) -> Role | None:
        return self.identity.role if self.identity else None

    @classmethod
    def anonymous(cls) -> RequestContext:
        """Create an anonymous context (no identity)."""
        return cls()

    @classmethod
    def for_identity(cls, identity: Identity) -> RequestContext:
        return cls(identity=identity)
