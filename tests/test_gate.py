"""
Tests for the access gate: role checks, ownership checks and policies.
"""

import pytest

from webkomik.auth.context import Identity, RequestContext
from webkomik.auth.gate import (
    Policy,
    require_any_role,
    require_authenticated,
    require_owner_or_role,
)
from webkomik.auth.roles import ADMIN_ONLY, CONTENT_MANAGERS, Role, role_set
from webkomik.core.errors import Forbidden, Unauthenticated


def ctx_for(subject_id: str, role: Role = Role.USER) -> RequestContext:
    return RequestContext.for_identity(Identity(subject_id=subject_id, role=role))


# =============================================================================
# Roles
# =============================================================================


class TestRoleParsing:
    @pytest.mark.parametrize("value, expected", [
        ("admin", Role.ADMIN),
        ("ADMIN", Role.ADMIN),
        ("Creator", Role.CREATOR),
        ("user", Role.USER),
        (Role.CREATOR, Role.CREATOR),
    ])
    def test_known_roles(self, value, expected):
        assert Role.parse(value) is expected

    @pytest.mark.parametrize("value", ["", "root", None, 42, ["admin"]])
    def test_unknown_values_fall_back_to_user(self, value):
        assert Role.parse(value) is Role.USER

    def test_explicit_fallback(self):
        assert Role.parse("root", default=Role.CREATOR) is Role.CREATOR

    def test_role_set_is_case_insensitive(self):
        assert role_set(["Admin", "CREATOR", Role.USER]) == frozenset(Role)

    def test_role_set_rejects_unknown_names(self):
        with pytest.raises(ValueError):
            role_set(["admin", "moderator"])


# =============================================================================
# Context
# =============================================================================


class TestRequestContext:
    def test_anonymous(self):
        ctx = RequestContext.anonymous()
        assert not ctx.is_authenticated
        assert ctx.subject_id is None
        assert ctx.role is None

    def test_for_identity(self):
        ctx = ctx_for("u1", Role.CREATOR)
        assert ctx.is_authenticated
        assert ctx.subject_id == "u1"
        assert ctx.role is Role.CREATOR

    def test_identity_is_immutable(self):
        identity = Identity(subject_id="u1")
        with pytest.raises(AttributeError):
            identity.role = Role.ADMIN

    def test_no_owner_is_never_owned(self):
        assert not Identity(subject_id="u1").owns(None)
        assert not Identity(subject_id="").owns(None)


# =============================================================================
# Role gate
# =============================================================================


class TestRequireAnyRole:
    def test_anonymous_is_unauthenticated(self):
        with pytest.raises(Unauthenticated):
            require_authenticated(RequestContext.anonymous())
        with pytest.raises(Unauthenticated):
            require_any_role(RequestContext.anonymous(), ADMIN_ONLY)

    def test_admin_allowed(self):
        identity = require_any_role(ctx_for("a1", Role.ADMIN), {Role.ADMIN})
        assert identity.subject_id == "a1"

    @pytest.mark.parametrize("role", [Role.CREATOR, Role.USER])
    def test_others_denied_admin_only(self, role):
        with pytest.raises(Forbidden):
            require_any_role(ctx_for("u1", role), {Role.ADMIN})

    @pytest.mark.parametrize("role", [Role.ADMIN, Role.CREATOR])
    def test_content_managers_allowed(self, role):
        assert require_any_role(ctx_for("u1", role), CONTENT_MANAGERS).role is role

    def test_user_denied_content_managers(self):
        with pytest.raises(Forbidden) as exc_info:
            require_any_role(ctx_for("u1", Role.USER), CONTENT_MANAGERS)
        assert exc_info.value.status_code == 403

    def test_allowed_names_matched_case_insensitively(self):
        assert require_any_role(ctx_for("a1", Role.ADMIN), ["ADMIN"]).is_admin

    def test_empty_allowed_set_denies_everyone(self):
        with pytest.raises(Forbidden):
            require_any_role(ctx_for("a1", Role.ADMIN), [])


# =============================================================================
# Ownership gate
# =============================================================================


class TestRequireOwnerOrRole:
    def test_owner_allowed(self):
        identity = require_owner_or_role(ctx_for("u1", Role.CREATOR), "u1", ADMIN_ONLY)
        assert identity.subject_id == "u1"

    def test_non_owner_denied(self):
        with pytest.raises(Forbidden):
            require_owner_or_role(ctx_for("u2", Role.CREATOR), "u1", ADMIN_ONLY)

    def test_admin_allowed_on_any_owner(self):
        assert require_owner_or_role(ctx_for("a1", Role.ADMIN), "u1", ADMIN_ONLY).is_admin

    def test_unowned_entity_only_passes_on_role(self):
        with pytest.raises(Forbidden):
            require_owner_or_role(ctx_for("u1", Role.CREATOR), None, ADMIN_ONLY)
        assert require_owner_or_role(ctx_for("a1", Role.ADMIN), None, ADMIN_ONLY).is_admin

    def test_ownership_ignores_role(self):
        """A plain user who somehow owns the entity still passes the ownership check."""
        assert require_owner_or_role(ctx_for("u1", Role.USER), "u1", ADMIN_ONLY).subject_id == "u1"

    def test_anonymous_is_unauthenticated(self):
        with pytest.raises(Unauthenticated):
            require_owner_or_role(RequestContext.anonymous(), "u1", ADMIN_ONLY)


# =============================================================================
# Policy
# =============================================================================


class TestPolicy:
    def test_default_policy_requires_identity_only(self):
        policy = Policy()
        assert policy.check(ctx_for("u1")).subject_id == "u1"
        with pytest.raises(Unauthenticated):
            policy.check(RequestContext.anonymous())

    def test_role_policy(self):
        policy = Policy(roles=["admin", "creator"])
        assert policy.roles == CONTENT_MANAGERS
        assert policy.check(ctx_for("c1", Role.CREATOR)).role is Role.CREATOR
        with pytest.raises(Forbidden):
            policy.check(ctx_for("u1", Role.USER))

    def test_unknown_role_name_fails_at_definition(self):
        with pytest.raises(ValueError):
            Policy(roles=["editor"])
