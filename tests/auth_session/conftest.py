from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
from flask import Flask

import auth_session as m


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.config["TESTING"] = True
    return app


@pytest.fixture(scope="session")
def key_pair() -> m.KeyPair:
    return m.generate_key_pair(2048, key_id="kid123")


@pytest.fixture(scope="session")
def other_key_pair() -> m.KeyPair:
    return m.generate_key_pair(2048, key_id="other")


class FrozenClock:
    """
    Callable clock for the refresh store.
    Only moves when advance() is called.
    """

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def fake_redis() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(params=["memory", "redis"])
def repository(request: pytest.FixtureRequest, fake_redis: fakeredis.FakeRedis):
    """Every store test runs against both repository implementations."""
    if request.param == "memory":
        return m.InMemoryRefreshTokenRepository()
    return m.RedisRefreshTokenRepository(fake_redis, prefix="test:")


@pytest.fixture
def no_retry() -> m.RetryPolicy:
    return m.RetryPolicy(max_attempts=1)


@pytest.fixture
def make_store(repository, clock: FrozenClock, no_retry: m.RetryPolicy):
    """
    Factory fixture that returns a function.

    Usage in tests:
        store = make_store(ttl_seconds=60, rotation_grace_seconds=5)
    """

    def _make(**kwargs) -> m.RefreshTokenStore:
        kwargs.setdefault("ttl_seconds", 3600)
        kwargs.setdefault("retry", no_retry)
        kwargs.setdefault("clock", clock)
        return m.RefreshTokenStore(repository, **kwargs)

    return _make


@pytest.fixture
def store(make_store) -> m.RefreshTokenStore:
    return make_store()
