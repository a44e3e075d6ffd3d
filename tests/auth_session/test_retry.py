import pytest

import auth_session as m
from auth_session.retry import call_with_retry


class Failing:
    def __init__(self, failures: int, error: Exception):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


def test_retries_store_unavailable_with_backoff():
    sleeps: list[float] = []
    fn = Failing(2, m.StoreUnavailableError("down"))
    policy = m.RetryPolicy(max_attempts=3, base_delay=0.1, jitter=False)

    assert call_with_retry(fn, policy, operation="test", sleep=sleeps.append) == "ok"
    assert fn.calls == 3
    assert sleeps == [0.1, 0.2]


def test_gives_up_after_max_attempts():
    sleeps: list[float] = []
    fn = Failing(5, m.StoreUnavailableError("down"))

    with pytest.raises(m.StoreUnavailableError):
        call_with_retry(fn, m.RetryPolicy(max_attempts=2), operation="test", sleep=sleeps.append)
    assert fn.calls == 2
    assert len(sleeps) == 1


@pytest.mark.parametrize(
    "error", [m.RevokedTokenError("revoked"), m.NotFoundError("missing"), ValueError("bad")]
)
def test_other_errors_are_not_retried(error):
    fn = Failing(1, error)

    with pytest.raises(type(error)):
        call_with_retry(fn, m.RetryPolicy(max_attempts=5), operation="test", sleep=lambda _: None)
    assert fn.calls == 1


def test_delay_is_capped_and_jittered():
    policy = m.RetryPolicy(base_delay=1.0, max_delay=3.0, jitter=False)
    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 3.0, 3.0]

    jittered = m.RetryPolicy(base_delay=1.0, jitter=True)
    for _ in range(20):
        assert 0.5 <= jittered.delay_for(1) <= 1.0


@pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"base_delay": -1}])
def test_invalid_policy(kwargs):
    with pytest.raises(ValueError):
        m.RetryPolicy(**kwargs)
