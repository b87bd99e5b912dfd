"""
Authentication and authorization gateway.

Design principles:
1. Tokens come from the identity provider; we verify, never mint
2. Role is parsed once, at the trust boundary, into a closed enum
3. One typed RequestContext per request, no key/value bag
4. Role checks run before the handler, ownership checks inside it
"""

from webkomik.auth.context import Identity, RequestContext
from webkomik.auth.gate import (
    Policy,
    authenticate,
    require_any_role,
    require_auth,
    require_authenticated,
    require_content_manager,
    require_owner_or_role,
    require_roles,
)
from webkomik.auth.roles import ADMIN_ONLY, CONTENT_MANAGERS, Role
from webkomik.auth.tokens import (
    AuthError,
    InvalidOrExpiredToken,
    MissingOrMalformedHeader,
    TokenVerifier,
    UnexpectedSigningMethod,
)

__all__ = [
    # Identity
    "Identity",
    "RequestContext",
    "Role",
    "ADMIN_ONLY",
    "CONTENT_MANAGERS",
    # Token verification
    "TokenVerifier",
    "AuthError",
    "MissingOrMalformedHeader",
    "UnexpectedSigningMethod",
    "InvalidOrExpiredToken",
    # Access gate
    "Policy",
    "authenticate",
    "require_authenticated",
    "require_any_role",
    "require_owner_or_role",
    "require_auth",
    "require_roles",
    "require_content_manager",
]
