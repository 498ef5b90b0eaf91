"""Shared test constants, fixtures, and factory functions."""

import random
from collections.abc import AsyncIterator
from typing import Any

import fakeredis.aioredis
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from blog_api.config import Settings
from blog_api.main import create_app
from blog_api.models import Author, PostCreate
from blog_api.store import MemoryPostStore, PostStore, RedisPostStore

# -- Constants --

SEED = 20240501
SEED_COUNT = 10
KEY_PREFIX = "blog-test:"
REDIS_URL = "redis://localhost:6379/0"

TITLES = ["My first database", "Second Database", "Third Database", "Final approach"]
CONTENTS = ["What should go here?", "just chunks of text", "Now they are just questions"]
AUTHORS = [("Bill", "Kingsley"), ("Jenny", "Block"), ("Arthur", "Pendragon")]
LOREM = (
    "lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod tempor "
    "incididunt ut labore et dolore magna aliqua"
).split()
FIRST_NAMES = ["Ada", "Grace", "Alan", "Edsger", "Barbara", "Donald", "Margaret"]
LAST_NAMES = ["Lovelace", "Hopper", "Turing", "Dijkstra", "Liskov", "Knuth", "Hamilton"]


# -- Factories --


def make_settings(**overrides: Any) -> Settings:
    """Create a Settings instance with test defaults. Override any field."""
    defaults: dict[str, Any] = {"store_backend": "memory", "redis_key_prefix": KEY_PREFIX}
    return Settings(**(defaults | overrides))


def make_author(first: str = "Ada", last: str = "Lovelace") -> Author:
    return Author(firstName=first, lastName=last)


def make_record(rng: random.Random) -> PostCreate:
    """A random record in the stored shape."""
    return PostCreate(
        title=" ".join(rng.choices(LOREM, k=5)).capitalize(),
        content=" ".join(rng.choices(LOREM, k=30)),
        author=make_author(rng.choice(FIRST_NAMES), rng.choice(LAST_NAMES)),
    )


def generate_post_body(rng: random.Random) -> dict[str, Any]:
    """A random ``POST /posts`` body from fixed pickers."""
    first, last = rng.choice(AUTHORS)
    return {
        "title": rng.choice(TITLES),
        "content": rng.choice(CONTENTS),
        "author": {"firstName": first, "lastName": last},
    }


# -- Fixtures --


@pytest.fixture
def rng() -> random.Random:
    return random.Random(SEED)


@pytest.fixture
async def redis_client() -> AsyncIterator[fakeredis.aioredis.FakeRedis]:
    """Provide a fake Redis client for testing, flushed afterwards."""
    client = fakeredis.aioredis.FakeRedis()
    yield client
    await client.flushall()


@pytest.fixture(params=["memory", "redis"])
async def store(
    request: pytest.FixtureRequest, redis_client: fakeredis.aioredis.FakeRedis, rng: random.Random
) -> AsyncIterator[PostStore]:
    """Each backend seeded with SEED_COUNT posts; dropped after the test."""
    s: PostStore
    if request.param == "redis":
        s = RedisPostStore(redis_client, key_prefix=KEY_PREFIX)
    else:
        s = MemoryPostStore()
    await s.insert_many(make_record(rng) for _ in range(SEED_COUNT))
    yield s
    await s.drop()
    await s.aclose()


@pytest.fixture
def app(store: PostStore) -> FastAPI:
    """Application with the seeded store injected in place of the lifespan's."""
    application = create_app(make_settings())
    application.state.store = store
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """AsyncClient wired to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
