"""Pytest configuration and fixtures for engine and API tests."""
import os
import tempfile

# Set test env BEFORE any imports that use config
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{tempfile.gettempdir()}/hq-test-{os.getpid()}.db"
os.environ["INITIAL_ADMIN_PASSWORD"] = "testpass123"
os.environ["INITIAL_ADMIN_USERNAME"] = "admin"
os.environ["EVENT_WEBHOOK_URL"] = ""

import pytest
from httpx import ASGITransport, AsyncClient

from hq.models import Player, Team, User
from hq.models.base import async_session_factory, drop_db, init_db
from hq.permissions import resolve_actor
from hq.repository import list_all
from hq.services.competitions import create_dvhl
from web.api.main import app


@pytest.fixture(autouse=True)
async def _init_db():
    """Fresh tables for every test (ASGI lifespan doesn't run with httpx)."""
    await drop_db()
    await init_db()


@pytest.fixture
async def session():
    async with async_session_factory() as s:
        yield s


@pytest.fixture
def make_user(session):
    """Factory: insert a site user (password hash is not checked by engine tests)."""

    async def _make(username: str, role: str = "player", status: str = "approved") -> User:
        user = User(username=username, password_hash="x", role=role, status=status)
        session.add(user)
        await session.flush()
        return user

    return _make


@pytest.fixture
def make_player(session, make_user):
    """Factory: a user with a roster record."""

    async def _make(
        name: str,
        roster_id: str = "main",
        sub_roster: str = "gold",
        jersey_number=None,
        overlap: bool = False,
        activity_status: str = "active",
    ) -> Player:
        user = await make_user(name.lower().replace(" ", "_"))
        player = Player(
            user_id=user.id,
            full_name=name,
            roster_id=roster_id,
            primary_sub_roster=sub_roster,
            jersey_number=jersey_number,
            allow_cross_color_jersey_overlap=overlap,
            activity_status=activity_status,
        )
        session.add(player)
        await session.flush()
        return player

    return _make


@pytest.fixture
def make_league(session):
    """Factory: a DVHL competition and its teams in creation order."""

    async def _make(team_names=("Red", "Blue"), title: str = "DVHL Fall"):
        competition = await create_dvhl(session, title, list(team_names))
        teams = await list_all(session, Team, Team.competition_id == competition.id, order_by=Team.id)
        return competition, teams

    return _make


@pytest.fixture
def actor_for(session):
    """Resolve the capability set for a user, as the API does per request."""

    async def _resolve(user: User):
        return await resolve_actor(session, user)

    return _resolve


@pytest.fixture
async def client():
    """Async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def auth_headers(client):
    """Login as admin and return Authorization headers for protected endpoints."""
    r = await client.post(
        "/api/auth/login",
        json={"username": "admin", "password": "testpass123"},
    )
    assert r.status_code == 200, f"Login failed: {r.text}"
    token = r.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}
