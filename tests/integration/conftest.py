"""Integration-test fixtures.

Requires PostgreSQL with migrations applied (alembic upgrade head) and
RUN_INTEGRATION=1; otherwise every test under tests/integration is skipped.
All integration tests share one event loop so the module-level SQLAlchemy
engine pool stays valid for the whole session.
"""

import os
import uuid
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.mk_gateway.auth.jwt_handler import create_access_token


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if os.environ.get("RUN_INTEGRATION"):
        return
    skip = pytest.mark.skip(reason="set RUN_INTEGRATION=1 against a migrated PostgreSQL")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncIterator[AsyncClient]:
    """Session-scoped client; the container is built here since ASGITransport skips lifespan."""
    from src.container import build_container
    from src.main import app

    app.state.container = build_container()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_headers(role: str = "buyer") -> tuple[str, dict[str, str]]:
    """A fresh user id and its Bearer header."""
    user_id = f"{role}-{uuid.uuid4().hex[:10]}"
    return user_id, {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


@pytest.fixture
def seller() -> tuple[str, dict[str, str]]:
    return auth_headers("seller")


@pytest.fixture
def buyer() -> tuple[str, dict[str, str]]:
    return auth_headers("buyer")


@pytest.fixture
def make_user():
    return auth_headers
