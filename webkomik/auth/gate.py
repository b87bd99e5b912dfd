"""
Access gate - role and ownership checks for route authorization.

Two layers:
- Plain check functions (require_authenticated, require_any_role,
  require_owner_or_role) that take a RequestContext and either return
  the Identity or raise. Services call these directly.
- FastAPI dependencies (require_auth, require_roles) that verify the
  bearer token and run a Policy before the handler is invoked.

Ownership is only known once the target entity has been loaded, so
require_owner_or_role is a handler/service-level call, never route
middleware.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from fastapi import Request

from webkomik.auth.context import Identity, RequestContext
from webkomik.auth.roles import CONTENT_MANAGERS, Role, role_set
from webkomik.auth.tokens import AuthError, TokenVerifier
from webkomik.core.errors import Forbidden, Unauthenticated
from webkomik.integrations import sentry

logger = logging.getLogger(__name__)


# =============================================================================
# Checks
# =============================================================================


def require_authenticated(ctx: RequestContext) -> Identity:
    """Return the attached identity, or raise if there is none."""
    if ctx.identity is None:
        raise Unauthenticated("Authentication required")
    return ctx.identity


def require_any_role(ctx: RequestContext, allowed: Iterable[Role | str]) -> Identity:
    """Allow the request if the caller's role is one of ``allowed``."""
    identity = require_authenticated(ctx)
    allowed_roles = role_set(allowed)
    if not identity.has_any_role(allowed_roles):
        logger.warning(
            "Access denied - subject %s (role=%s) needs one of %s",
            identity.subject_id,
            identity.role.value,
            sorted(r.value for r in allowed_roles),
        )
        raise Forbidden("Access denied: insufficient role")
    return identity


def require_owner_or_role(
    ctx: RequestContext,
    owner_id: str | None,
    allowed: Iterable[Role | str],
) -> Identity:
    """
    Allow the request if the caller holds one of ``allowed`` roles or owns
    the entity. Entities without an owner can only pass on role.
    """
    identity = require_authenticated(ctx)
    if identity.has_any_role(role_set(allowed)) or identity.owns(owner_id):
        return identity
    logger.warning(
        "Access denied - subject %s (role=%s) is not the owner",
        identity.subject_id,
        identity.role.value,
    )
    raise Forbidden("You do not have permission to modify this resource")


# =============================================================================
# Policy
# =============================================================================


class Policy:
    """
    A route-level policy.

        Policy()                                # any authenticated caller
        Policy(roles={Role.ADMIN})              # admin only
        Policy(roles={Role.ADMIN, Role.CREATOR})
    """

    def __init__(self, roles: Iterable[Role | str] | None = None):
        self.roles = role_set(roles) if roles else None

    def check(self, ctx: RequestContext) -> Identity:
        if self.roles is None:
            return require_authenticated(ctx)
        return require_any_role(ctx, self.roles)


# =============================================================================
# FastAPI dependencies
# =============================================================================


def get_verifier(request: Request) -> TokenVerifier:
    return request.app.state.verifier


def authenticate(request: Request) -> RequestContext:
    """
    Verify the request's bearer token and build its context.

    Every authentication failure is logged with its specific cause and
    re-raised; the HTTP layer answers all of them the same way.
    """
    verifier = get_verifier(request)
    try:
        identity = verifier.verify(request.headers.get("Authorization"))
    except AuthError as e:
        logger.info(
            "Authentication failed (%s) for %s %s: %s",
            e.reason,
            request.method,
            request.url.path,
            e.detail,
        )
        raise

    sentry.set_user(identity.subject_id, role=identity.role.value)
    return RequestContext.for_identity(identity)


def _create_dependency(policy: Policy) -> Callable:
    """Create a FastAPI dependency from a policy."""

    async def dependency(request: Request) -> RequestContext:
        ctx = authenticate(request)
        policy.check(ctx)
        return ctx

    return dependency


def require_auth() -> Callable:
    """Just require a verified identity, no specific role."""
    return _create_dependency(Policy())


def require_roles(*roles: Role | str) -> Callable:
    """
    Require one of the given roles (matched case-insensitively).

    Usage:
        @app.post("/api/works")
        async def create(ctx: RequestContext = Depends(require_roles(Role.ADMIN, Role.CREATOR))):
            ...
    """
    return _create_dependency(Policy(roles=roles))


def require_content_manager() -> Callable:
    """Admins and creators: the roles that may upload and edit works."""
    return require_roles(*CONTENT_MANAGERS)
