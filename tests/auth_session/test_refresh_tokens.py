import dataclasses
import hashlib
import threading
from datetime import datetime

import fakeredis
import pytest

import auth_session as m
from auth_session.records import hash_secret


def stored(repository, secret: str) -> m.RefreshTokenRecord | None:
    return repository.get_by_hash(hash_secret(secret))


def test_issue_returns_secret_and_persists_only_its_hash(store, repository, clock):
    secret, record = store.issue("user-1", user_agent="pytest", ip_address="10.0.0.1")

    assert len(secret) >= 43
    assert record.token_hash == hashlib.sha256(secret.encode()).hexdigest()
    assert record.token_hash != secret
    assert record.user_id == "user-1"
    assert record.issued_at == clock.now
    assert (record.expires_at - record.issued_at).total_seconds() == 3600
    assert not record.revoked
    assert record.user_agent == "pytest"
    assert record.ip_address == "10.0.0.1"
    assert stored(repository, secret) == record


def test_issued_secrets_are_unique(store):
    secrets = {store.issue("user-1").secret for _ in range(50)}
    assert len(secrets) == 50


def test_issued_token_repr_hides_secret(store):
    issued = store.issue("user-1")
    assert issued.secret not in repr(issued)


def test_validate_returns_live_record(store):
    secret, record = store.issue("user-1")
    assert store.validate(secret) == record


@pytest.mark.parametrize("secret", ["", "never-issued"])
def test_validate_unknown_secret(store, secret):
    with pytest.raises(m.NotFoundError):
        store.validate(secret)


def test_validate_expires_exactly_at_expiration(store, clock):
    secret, _ = store.issue("user-1")

    clock.advance(3599)
    store.validate(secret)

    clock.advance(1)
    with pytest.raises(m.ExpiredTokenError):
        store.validate(secret)


def test_validate_revoked(store):
    secret, _ = store.issue("user-1")
    store.revoke(secret)

    with pytest.raises(m.RevokedTokenError):
        store.validate(secret)


def test_revoked_takes_precedence_over_expired(store, clock):
    secret, _ = store.issue("user-1")
    store.revoke(secret)
    clock.advance(7200)

    with pytest.raises(m.RevokedTokenError):
        store.validate(secret)


def test_rotate_revokes_old_and_links_successor(store, repository, clock):
    old_secret, old_record = store.issue("user-1", user_agent="ua-1")
    clock.advance(10)

    new_secret, new_record = store.rotate(old_secret)

    assert new_secret != old_secret
    assert new_record.user_id == "user-1"
    assert new_record.issued_at == clock.now
    assert new_record.user_agent == "ua-1"

    old_now = stored(repository, old_secret)
    assert old_now is not None
    assert old_now.revoked
    assert old_now.revoked_at == clock.now
    assert old_now.replaced_by == new_record.id
    assert old_now.id == old_record.id

    assert store.validate(new_secret) == new_record
    with pytest.raises(m.RevokedTokenError):
        store.validate(old_secret)


def test_rotate_twice_fails(store):
    secret, _ = store.issue("user-1")
    store.rotate(secret)

    with pytest.raises(m.RevokedTokenError):
        store.rotate(secret)


def test_rotate_expired_writes_nothing(store, repository, clock):
    secret, record = store.issue("user-1")
    clock.advance(3600)

    with pytest.raises(m.ExpiredTokenError):
        store.rotate(secret)

    assert stored(repository, secret) == record


def test_rotate_unknown(store):
    with pytest.raises(m.NotFoundError):
        store.rotate("nope")


def test_revoke_is_idempotent(store, repository):
    secret, _ = store.issue("user-1")
    store.revoke(secret)
    first = stored(repository, secret)

    store.revoke(secret)

    assert stored(repository, secret) == first


def test_revoke_unknown(store):
    with pytest.raises(m.NotFoundError):
        store.revoke("nope")


def test_revoke_all_for_user(store):
    a, _ = store.issue("user-1")
    b, _ = store.issue("user-1")
    c, _ = store.issue("user-2")
    store.revoke(b)

    assert store.revoke_all_for_user("user-1") == 1
    assert store.revoke_all_for_user("user-1") == 0

    with pytest.raises(m.RevokedTokenError):
        store.validate(a)
    store.validate(c)


def test_sweep_removes_expired_and_revoked_only(make_store, repository, clock):
    store = make_store(ttl_seconds=60)
    expired = [store.issue("user-1").secret for _ in range(2)]
    clock.advance(30)
    live, revoked = store.issue("user-2").secret, store.issue("user-2").secret
    store.revoke(revoked)
    clock.advance(31)

    assert store.delete_expired_and_revoked() == 3

    for secret in [*expired, revoked]:
        assert stored(repository, secret) is None
        with pytest.raises(m.NotFoundError):
            store.validate(secret)
    store.validate(live)

    assert store.delete_expired_and_revoked() == 0


def test_sweep_uses_given_time(store, clock):
    secret, record = store.issue("user-1")

    assert store.delete_expired_and_revoked(clock.now) == 0
    assert store.delete_expired_and_revoked(record.expires_at) == 1

    with pytest.raises(m.NotFoundError):
        store.validate(secret)


def test_rotation_grace_window(make_store, repository, clock):
    store = make_store(rotation_grace_seconds=5)
    old_secret, _ = store.issue("user-1")
    store.rotate(old_secret)

    clock.advance(4)
    assert store.validate(old_secret).revoked
    with pytest.raises(m.RevokedTokenError):
        store.rotate(old_secret)
    assert store.delete_expired_and_revoked() == 0

    clock.advance(1)
    with pytest.raises(m.RevokedTokenError):
        store.validate(old_secret)
    assert store.delete_expired_and_revoked() == 1
    assert stored(repository, old_secret) is None


def test_explicit_revoke_has_no_grace(make_store):
    store = make_store(rotation_grace_seconds=60)
    secret, _ = store.issue("user-1")
    store.revoke(secret)

    with pytest.raises(m.RevokedTokenError):
        store.validate(secret)
    assert store.delete_expired_and_revoked() == 1


def test_errors_never_carry_the_secret(store):
    secret, record = store.issue("user-1")
    store.revoke(secret)

    with pytest.raises(m.RevokedTokenError) as exc:
        store.validate(secret)

    assert secret not in str(exc.value)
    assert secret not in exc.value.to_dict().values()
    assert exc.value.context == {"record_id": record.id, "user_id": "user-1"}


@pytest.mark.parametrize(
    "kwargs", [{"ttl_seconds": 0}, {"ttl_seconds": -1}, {"rotation_grace_seconds": -1}]
)
def test_store_rejects_bad_settings(kwargs):
    with pytest.raises(ValueError):
        m.RefreshTokenStore(m.InMemoryRefreshTokenRepository(), **kwargs)


# ---------------------------------------------------------------- concurrency


def run_concurrently(*targets) -> list[BaseException | object]:
    """Run callables at the same instant; return results or raised errors."""
    barrier = threading.Barrier(len(targets))
    results: list[BaseException | object] = [None] * len(targets)

    def runner(i, fn):
        barrier.wait()
        try:
            results[i] = fn()
        except BaseException as e:
            results[i] = e

    threads = [threading.Thread(target=runner, args=(i, fn)) for i, fn in enumerate(targets)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)
    return results


class SharedBackend:
    """One refresh token backend, reached through a separate store per thread."""

    def __init__(self, kind: str, clock, retry: m.RetryPolicy):
        self._clock = clock
        self._retry = retry
        self._memory = m.InMemoryRefreshTokenRepository() if kind == "memory" else None
        self._server = fakeredis.FakeServer()

    def _repository(self):
        if self._memory is not None:
            return self._memory
        client = fakeredis.FakeRedis(server=self._server, decode_responses=True)
        return m.RedisRefreshTokenRepository(client, prefix="race:")

    def store(self) -> m.RefreshTokenStore:
        return m.RefreshTokenStore(
            self._repository(), ttl_seconds=3600, retry=self._retry, clock=self._clock
        )

    def record(self, secret: str) -> m.RefreshTokenRecord | None:
        return self._repository().get_by_hash(hash_secret(secret))

    def record_count(self) -> int:
        if self._memory is not None:
            return len(self._memory)
        return fakeredis.FakeRedis(server=self._server, decode_responses=True).scard("race:ids")


@pytest.fixture(params=["memory", "redis"])
def backend(request: pytest.FixtureRequest, clock, no_retry) -> SharedBackend:
    return SharedBackend(request.param, clock, no_retry)


def test_concurrent_rotations_have_one_winner(backend: SharedBackend):
    secret, _ = backend.store().issue("user-1")
    stores = [backend.store() for _ in range(8)]

    results = run_concurrently(*[lambda s=s: s.rotate(secret) for s in stores])

    winners = [r for r in results if isinstance(r, m.IssuedRefreshToken)]
    losers = [r for r in results if isinstance(r, m.RevokedTokenError)]
    assert len(winners) == 1
    assert len(losers) == 7
    assert backend.record_count() == 2
    with pytest.raises(m.RevokedTokenError):
        backend.store().validate(secret)


def test_rotate_racing_revoke(backend: SharedBackend):
    expected_records = 0
    for i in range(20):
        secret, _ = backend.store().issue(f"user-{i}")
        expected_records += 1
        rotating, revoking = backend.store(), backend.store()

        rotated, revoked = run_concurrently(
            lambda: rotating.rotate(secret), lambda: revoking.revoke(secret)
        )

        assert revoked is None
        old = backend.record(secret)
        assert old is not None and old.revoked
        if isinstance(rotated, m.IssuedRefreshToken):
            expected_records += 1
            assert old.replaced_by == rotated.record.id
            assert backend.store().validate(rotated.secret) == rotated.record
        else:
            assert isinstance(rotated, m.RevokedTokenError)
            assert old.replaced_by is None
        assert backend.record_count() == expected_records
        with pytest.raises(m.RevokedTokenError):
            backend.store().validate(secret)


# --------------------------------------------------------------------- retry


class FlakyRepository:
    """Wraps a repository and fails the first ``failures`` lookups."""

    def __init__(self, inner, failures: int):
        self._inner = inner
        self.failures = failures
        self.lookups = 0

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def get_by_hash(self, token_hash):
        self.lookups += 1
        if self.failures:
            self.failures -= 1
            raise m.StoreUnavailableError("connection reset", operation="get_by_hash")
        return self._inner.get_by_hash(token_hash)


def test_transient_failures_are_retried(clock):
    repo = FlakyRepository(m.InMemoryRefreshTokenRepository(), failures=2)
    store = m.RefreshTokenStore(
        repo,
        ttl_seconds=3600,
        retry=m.RetryPolicy(max_attempts=3, base_delay=0, jitter=False),
        clock=clock,
    )
    secret, record = store.issue("user-1")

    assert store.validate(secret) == record
    assert repo.lookups == 3


def test_persistent_failure_surfaces_store_unavailable(clock):
    repo = FlakyRepository(m.InMemoryRefreshTokenRepository(), failures=10)
    store = m.RefreshTokenStore(
        repo,
        ttl_seconds=3600,
        retry=m.RetryPolicy(max_attempts=2, base_delay=0, jitter=False),
        clock=clock,
    )
    secret, _ = store.issue("user-1")

    with pytest.raises(m.StoreUnavailableError):
        store.validate(secret)
    assert repo.lookups == 2


def test_sweep_rejects_naive_time(store):
    store.issue("user-1")

    with pytest.raises(ValueError, match="timezone-aware"):
        store.delete_expired_and_revoked(datetime(2030, 1, 1))


def test_repeated_writes_are_idempotent(repository, clock):
    store = m.RefreshTokenStore(repository, ttl_seconds=3600, clock=clock)
    secret, record = store.issue("user-1")
    successor = dataclasses.replace(
        record, id="successor", token_hash=hash_secret("successor-secret")
    )

    repository.add(record)
    assert repository.replace(record.id, clock.now, successor)
    assert repository.replace(record.id, clock.now, successor)

    assert repository.get_by_hash(successor.token_hash) == successor
    assert repository.get_by_hash(record.token_hash).replaced_by == "successor"
    other = dataclasses.replace(successor, id="third", token_hash=hash_secret("third"))
    assert not repository.replace(record.id, clock.now, other)
