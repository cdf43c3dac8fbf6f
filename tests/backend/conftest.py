import os
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from tortoise import Tortoise

from loveslices.core import db as db_module
from loveslices.core.security import hash_password
from loveslices.main import app
from loveslices.models import ConversationStarter, Question, User


TEST_DB_URL = "sqlite://:memory:?cache=shared"
os.environ["DATABASE_URL"] = TEST_DB_URL
db_module.DB_URL = TEST_DB_URL
db_module.TORTOISE_ORM["connections"]["default"] = TEST_DB_URL


async def _init_test_db() -> None:
    """
    Initialize a clean in-memory SQLite database for every test.
    Ensures tables are recreated from scratch.
    """
    if Tortoise._inited:
        await Tortoise.close_connections()
    await Tortoise.init(config=db_module.TORTOISE_ORM)
    await Tortoise.generate_schemas()


@pytest_asyncio.fixture
async def db():
    """Fresh schema without an HTTP client, for service-level tests."""
    await _init_test_db()
    yield
    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def client():
    """
    Provide an HTTPX AsyncClient bound to the FastAPI app with a fresh DB.
    """
    await _init_test_db()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client
    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def create_user():
    """
    Factory fixture to create regular users directly.
    """

    async def _create_user(password: str = "UserPass!23", name: str | None = None) -> tuple[User, str]:
        username = f"user_{uuid.uuid4().hex[:6]}"
        user = await User.create(
            username=username,
            email=f"{username}@example.com",
            display_name=name,
            password_hash=hash_password(password),
        )
        return user, password

    return _create_user


@pytest_asyncio.fixture
async def auth_header_factory(client):
    """
    Helper fixture to obtain Authorization headers via the login endpoint.
    """

    async def _get_headers(username: str, password: str) -> dict[str, str]:
        resp = await client.post(
            "/api/v1/auth/login",
            json={"username": username, "password": password},
        )
        assert resp.status_code == 200, resp.text
        token = resp.json()["data"]["accessToken"]
        return {"Authorization": f"Bearer {token}"}

    return _get_headers


class Member:
    """A logged-in user plus the headers to act as them."""

    def __init__(self, user: User, headers: dict[str, str]):
        self.user = user
        self.headers = headers
        self.id = str(user.id)
        self.token = headers["Authorization"].split(" ", 1)[1]


@pytest_asyncio.fixture
async def couple(create_user, auth_header_factory):
    """
    Two partnered users, Alice and Bob, linked in both directions.
    """
    alice, pw_a = await create_user(name="Alice")
    bob, pw_b = await create_user(name="Bob")
    await User.filter(id=alice.id).update(partner_id=bob.id)
    await User.filter(id=bob.id).update(partner_id=alice.id)
    await alice.refresh_from_db()
    await bob.refresh_from_db()
    return (
        Member(alice, await auth_header_factory(alice.username, pw_a)),
        Member(bob, await auth_header_factory(bob.username, pw_b)),
    )


@pytest_asyncio.fixture
async def solo(create_user, auth_header_factory):
    """A logged-in user with no partner."""
    carol, pw = await create_user(name="Carol")
    return Member(carol, await auth_header_factory(carol.username, pw))


@pytest_asyncio.fixture
async def question():
    return await Question.create(content="What made you feel most loved this week?", theme="Intimacy")


@pytest_asyncio.fixture
async def starter():
    return await ConversationStarter.create(content="Tell me about a small win today.", theme="Growth")
