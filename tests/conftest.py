"""
Shared fixtures: settings, token minting, seeded storage, HTTP client.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import jwt
import pytest
from httpx import ASGITransport, AsyncClient

from webkomik.api.app import create_app
from webkomik.auth.tokens import TokenVerifier
from webkomik.config import Settings
from webkomik.core.models import Work, WorkCreate
from webkomik.core.utils import utc_now
from webkomik.storage.memory import InMemoryCatalogStorage


SECRET = "test-secret-for-webkomik-0123456789abcdef"

CREATOR_ID = "creator-1"


def make_token(
    sub: str | None = "user-1",
    role: str | None = None,
    *,
    secret: str | None = SECRET,
    algorithm: str = "HS256",
    expires_in: int = 300,
    extra: dict[str, Any] | None = None,
) -> str:
    """Mint a token the way the identity provider would."""
    now = utc_now()
    payload: dict[str, Any] = {
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    if sub is not None:
        payload["sub"] = sub
    if role is not None:
        payload["app_metadata"] = {"provider": "email", "role": role}
    payload.update(extra or {})
    return jwt.encode(payload, secret, algorithm=algorithm)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        jwt_secret=SECRET,
        database_url="",
        seed_file="",
        sentry_dsn="",
    )


@pytest.fixture
def verifier(settings) -> TokenVerifier:
    return TokenVerifier.from_settings(settings)


@pytest.fixture
def storage() -> InMemoryCatalogStorage:
    """
    Catalog with:
      work 1 "Night Market" owned by creator-1, genre Action, 2 chapters
      work 2 "Legacy Strip" with no owner, no chapters
    """
    storage = InMemoryCatalogStorage()
    storage.add_genre("Action", genre_id=1)

    storage.add_work(Work(id=1, title="Night Market", genre_id=1, owner_id=CREATOR_ID))
    ch1 = storage.add_chapter(1, chapter_number=1, title="First Run", chapter_id=10)
    ch2 = storage.add_chapter(1, chapter_number=2, title="Rain Check", chapter_id=20)
    for n in (3, 1, 2):
        storage.add_page(ch1.id, f"https://cdn.test/1/{n}.jpg", page_number=n)
    storage.add_page(ch2.id, "https://cdn.test/2/1.jpg", page_number=1)

    storage.add_work(Work(id=2, title="Legacy Strip"))
    return storage


@pytest.fixture
def new_work() -> WorkCreate:
    return WorkCreate(title="Kopi Tubruk", description="Four friends and a coffee stall.")


@pytest.fixture
async def client(settings, storage):
    """Async test client for an app backed by the seeded storage."""
    app = create_app(settings, storage=storage)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def token():
    """Token factory: token(sub, role, secret=..., algorithm=..., expires_in=..., extra=...)."""
    return make_token


@pytest.fixture
def auth_header():
    """Authorization header factory: auth_header(sub, role, **token_kwargs)."""

    def _header(sub: str | None = "user-1", role: str | None = None, **kwargs: Any) -> dict[str, str]:
        return bearer(make_token(sub, role, **kwargs))

    return _header
