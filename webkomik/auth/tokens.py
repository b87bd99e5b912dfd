# =============================================================================
# Bearer Token Verification
# =============================================================================
#
# Tokens are minted by the external identity provider and signed with a
# shared HMAC secret. This module only verifies them:
#   - Authorization header parsing ("Bearer <token>")
#   - Signing algorithm check (HMAC family only)
#   - Signature / expiry validation
#   - Identity extraction (subject + namespaced role)
#
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Iterable

import jwt

from webkomik.auth.context import Identity
from webkomik.auth.roles import Role
from webkomik.core.errors import Unauthenticated

logger = logging.getLogger(__name__)


HMAC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})
DEFAULT_ALGORITHMS = ("HS256", "HS384", "HS512")


# =============================================================================
# Errors
# =============================================================================


class AuthError(Unauthenticated):
    """
    Base exception for token errors.

    ``reason`` is for logs only. Callers get the same generic denial for
    every subclass so a client can't tell which check failed.
    """

    reason: str = "unknown"

    def __init__(self, detail: str | None = None, *, reason: str | None = None):
        super().__init__(detail)
        if reason is not None:
            self.reason = reason


class MissingOrMalformedHeader(AuthError):
    """Authorization header absent or not of the form "Bearer <token>"."""

    reason = "header"


class UnexpectedSigningMethod(AuthError):
    """Token declares an algorithm outside the expected HMAC family."""

    reason = "algorithm"


class InvalidOrExpiredToken(AuthError):
    """Bad signature, expired, not yet valid, or otherwise malformed."""

    reason = "invalid"


# =============================================================================
# Verifier
# =============================================================================


class TokenVerifier:
    """
    Verifies bearer tokens and turns them into an Identity.

    Pure with respect to its inputs: the secret and the accepted
    algorithms are fixed at construction, nothing is looked up from
    global state and nothing is mutated on verify().
    """

    def __init__(
        self,
        secret: str,
        algorithms: Iterable[str] = DEFAULT_ALGORITHMS,
        *,
        metadata_claim: str = "app_metadata",
        audience: str | None = None,
        leeway: int = 0,
    ):
        if not secret:
            raise ValueError("A signing secret is required")

        self.algorithms = [a.upper() for a in algorithms]
        unsupported = set(self.algorithms) - HMAC_ALGORITHMS
        if not self.algorithms or unsupported:
            raise ValueError(f"Only HMAC algorithms are supported, got {sorted(unsupported)}")

        self._secret = secret
        self.metadata_claim = metadata_claim
        self.audience = audience or None
        self.leeway = leeway

    @classmethod
    def from_settings(cls, settings) -> TokenVerifier:
        return cls(
            settings.jwt_secret,
            settings.jwt_algorithms_list,
            metadata_claim=settings.jwt_metadata_claim,
            audience=settings.jwt_audience or None,
            leeway=settings.jwt_leeway_seconds,
        )

    def verify(self, authorization: str | None) -> Identity:
        """
        Verify a raw Authorization header value.

        Returns:
            Identity with subject id and role

        Raises:
            MissingOrMalformedHeader: header absent or not "Bearer <token>"
            UnexpectedSigningMethod: token not signed with an accepted HMAC algorithm
            InvalidOrExpiredToken: bad signature, expired, not yet valid, malformed
        """
        token = self.extract_bearer(authorization)
        claims = self.decode(token)
        return self.identity_from_claims(claims)

    @staticmethod
    def extract_bearer(authorization: str | None) -> str:
        """Pull the token out of "Bearer <token>"."""
        if not authorization:
            raise MissingOrMalformedHeader("Authorization header required")

        parts = authorization.split(" ")
        if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
            raise MissingOrMalformedHeader("Authorization header must be: Bearer <token>")
        return parts[1]

    def decode(self, token: str) -> dict[str, Any]:
        """Check the algorithm, then the signature and time claims."""
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            raise InvalidOrExpiredToken(f"Malformed token: {e}", reason="malformed")

        algorithm = str(header.get("alg", "")).upper()
        if algorithm not in self.algorithms:
            # Rejects "none" and asymmetric algorithms before any key is used
            raise UnexpectedSigningMethod(f"Unexpected signing method: {header.get('alg')!r}")

        options: dict[str, Any] = {"require": ["exp", "sub"]}
        if self.audience is None:
            options["verify_aud"] = False

        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=self.algorithms,
                audience=self.audience,
                leeway=self.leeway,
                options=options,
            )
        except jwt.ExpiredSignatureError:
            raise InvalidOrExpiredToken("Token has expired", reason="expired")
        except jwt.ImmatureSignatureError:
            raise InvalidOrExpiredToken("Token is not yet valid", reason="immature")
        except jwt.InvalidSignatureError:
            raise InvalidOrExpiredToken("Token signature is invalid", reason="signature")
        except (jwt.MissingRequiredClaimError, jwt.InvalidAudienceError) as e:
            raise InvalidOrExpiredToken(f"Invalid claims: {e}", reason="claims")
        except jwt.InvalidTokenError as e:
            raise InvalidOrExpiredToken(f"Invalid token: {e}", reason="malformed")

    def identity_from_claims(self, claims: dict[str, Any]) -> Identity:
        """
        Build the Identity.

        The role is read only from the provider-managed metadata claim.
        A bare top-level "role" claim is ignored.
        """
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidOrExpiredToken("Token has no subject", reason="claims")

        role = Role.USER
        metadata = claims.get(self.metadata_claim)
        if isinstance(metadata, dict) and metadata.get("role") is not None:
            raw_role = metadata["role"]
            role = Role.parse(raw_role)
            if str(raw_role).strip().lower() != role.value:
                logger.warning("Unknown role %r for subject %s, using %s", raw_role, subject, role.value)

        return Identity(subject_id=subject, role=role)
