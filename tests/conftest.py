"""
Pytest configuration and shared fixtures for queryspec tests.
"""

import pytest

from queryspec.adapters.memory_store import InMemoryRecordStore, Relation
from queryspec.core.config import QuerySettings
from queryspec.domain.query.orchestrator import QueryOrchestrator
from queryspec.infrastructure.cache.manager import CacheLayer
from queryspec.infrastructure.cache.providers import MemoryCacheProvider


class CountingStore(InMemoryRecordStore):
    """In-memory store that records every delegated call."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []

    async def find_all(self, plan):
        self.calls.append(("find_all", plan))
        return await super().find_all(plan)

    async def count(self, plan):
        self.calls.append(("count", plan))
        return await super().count(plan)

    async def find_and_count(self, plan):
        self.calls.append(("find_and_count", plan))
        rows = await super().find_all(plan)
        total = await super().count(plan.for_count())
        return rows, total


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def settings():
    """Settings with defaults, isolated from the environment."""
    return QuerySettings(_env_file=None)


@pytest.fixture
def caching_settings():
    """Settings with the in-memory cache enabled."""
    return QuerySettings(_env_file=None, enable_caching=True)


@pytest.fixture
def user_rows():
    """Return sample user rows."""
    return [
        {"id": 1, "name": "alice", "email": "alice@example.com", "age": 34, "status": "active", "created_at": "2024-01-05"},
        {"id": 2, "name": "Bob", "email": "bob@example.org", "age": 17, "status": "pending", "created_at": "2024-02-11"},
        {"id": 3, "name": "carol", "email": "carol@example.com", "age": 65, "status": "active", "created_at": "2024-03-20"},
        {"id": 4, "name": "Dave", "email": None, "age": 42, "status": "banned", "created_at": "2024-03-20"},
        {"id": 5, "name": "erin", "email": "erin@example.net", "age": None, "status": "active", "created_at": "2024-04-01"},
    ]


@pytest.fixture
def post_rows():
    """Return sample post rows owned by users."""
    return [
        {"id": 10, "user_id": 1, "title": "Hello", "published": True},
        {"id": 11, "user_id": 1, "title": "Draft", "published": False},
        {"id": 12, "user_id": 3, "title": "Notes", "published": True},
    ]


@pytest.fixture
def comment_rows():
    """Return sample comment rows on posts."""
    return [
        {"id": 100, "post_id": 10, "body": "nice"},
        {"id": 101, "post_id": 12, "body": "thanks"},
    ]


@pytest.fixture
def users_store(user_rows, post_rows, comment_rows):
    """Counting user store with posts and comments relations."""
    comments = InMemoryRecordStore("comments", comment_rows)
    posts = InMemoryRecordStore("posts", post_rows, relations={
        "comments": Relation(comments, foreign_key="post_id"),
    })
    return CountingStore("users", user_rows, relations={
        "posts": Relation(posts, foreign_key="user_id"),
    })


@pytest.fixture
def memory_cache():
    """Enabled cache layer over a fresh in-memory provider."""
    return CacheLayer(provider=MemoryCacheProvider(), enabled=True, default_ttl=60)


@pytest.fixture
def orchestrator(users_store, settings):
    """Orchestrator over the user store with caching disabled."""
    return QueryOrchestrator(users_store, settings=settings, request_id="req_test")


@pytest.fixture
def caching_orchestrator(users_store, caching_settings, memory_cache):
    """Orchestrator over the user store with an in-memory cache."""
    return QueryOrchestrator(users_store, settings=caching_settings, cache=memory_cache, request_id="req_test")
