"""Refresh token lifecycle: issue, validate, rotate, revoke, sweep.

RefreshTokenStore holds the policy (TTL, rotation grace, retry) and leaves
durable state and atomicity to a RefreshTokenRepository. Raw secrets only
exist in memory for the duration of a call; records store their SHA-256
hash.

State machine per record::

    Active --revoke / rotate--> Revoked --sweep--> Deleted
    Active --(time passes)----> Expired --sweep--> Deleted

Expired is derived from ``expires_at`` at read time; no transition goes
back to Active.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Final

from .errors import ExpiredTokenError, NotFoundError, RevokedTokenError
from .logging import get_logger
from .records import RefreshTokenRecord, hash_secret, new_record_id, new_secret, utcnow
from .retry import RetryPolicy, call_with_retry

if TYPE_CHECKING:
    from .protocols import Clock, RefreshTokenRepository

logger = get_logger(__name__)

DEFAULT_REFRESH_TTL: Final[int] = 7 * 24 * 3600
"""Default refresh token lifetime in seconds (7 days)."""


@dataclass(frozen=True, slots=True)
class IssuedRefreshToken:
    """A freshly issued refresh token.

    ``secret`` is the only copy of the raw value that will ever exist; hand
    it to the client and drop it.
    """

    secret: str
    record: RefreshTokenRecord

    def __iter__(self) -> Iterator[str | RefreshTokenRecord]:
        # Allows ``secret, record = store.issue(user_id)``
        yield self.secret
        yield self.record

    def __repr__(self) -> str:
        return f"IssuedRefreshToken(secret='***', record={self.record!r})"


class RefreshTokenStore:
    """Refresh token policy on top of a repository.

    Concurrency:
        rotate() and revoke() on the same record are serialized by the
        repository's conditional updates. The loser of a race observes
        RevokedTokenError. The store itself holds no locks.

    Rotation grace:
        With ``rotation_grace_seconds > 0``, validate() keeps accepting a
        secret that was rotated out less than that many seconds ago, so a
        client retrying an in-flight renewal is not logged out. rotate() on
        such a secret still fails: only one successor can ever exist.
        Explicit revocation has no grace.

    Example:
        ```python
        store = RefreshTokenStore(InMemoryRefreshTokenRepository(), ttl_seconds=604800)

        secret, record = store.issue("user-1")
        new_secret, new_record = store.rotate(secret)
        store.revoke(new_secret)
        ```
    """

    def __init__(
        self,
        repository: RefreshTokenRepository,
        *,
        ttl_seconds: int = DEFAULT_REFRESH_TTL,
        rotation_grace_seconds: float = 0,
        retry: RetryPolicy | None = None,
        clock: Clock = utcnow,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        if rotation_grace_seconds < 0:
            raise ValueError(
                f"rotation_grace_seconds must not be negative, got {rotation_grace_seconds}"
            )
        self._repo = repository
        self._ttl = timedelta(seconds=ttl_seconds)
        self._grace = rotation_grace_seconds
        self._retry = retry or RetryPolicy()
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return int(self._ttl.total_seconds())

    def issue(
        self,
        user_id: str,
        *,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> IssuedRefreshToken:
        """Create and persist a new refresh token for ``user_id``."""
        secret, record = self._new_record(
            user_id, self._clock(), user_agent=user_agent, ip_address=ip_address
        )
        call_with_retry(lambda: self._repo.add(record), self._retry, operation="issue")
        logger.info("refresh_token_issued", record_id=record.id, user_id=user_id)
        return IssuedRefreshToken(secret, record)

    def validate(self, secret: str) -> RefreshTokenRecord:
        """Return the live record for ``secret``.

        Raises:
            NotFoundError: No record matches.
            RevokedTokenError: The record was revoked (and is not within
                its rotation grace window).
            ExpiredTokenError: The record is past its expiration.
        """
        record = self._lookup(secret)
        self._check(record, self._clock(), allow_grace=True)
        return record

    def rotate(
        self,
        secret: str,
        *,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> IssuedRefreshToken:
        """Revoke ``secret`` and issue its successor in one atomic step.

        Raises:
            NotFoundError, RevokedTokenError, ExpiredTokenError: As validate(),
                except that the rotation grace window never applies. Nothing
                is written when any of them is raised.
        """
        old = self._lookup(secret)
        now = self._clock()
        self._check(old, now, allow_grace=False)

        new_secret_value, new = self._new_record(
            old.user_id,
            now,
            user_agent=user_agent if user_agent is not None else old.user_agent,
            ip_address=ip_address if ip_address is not None else old.ip_address,
        )
        replaced = call_with_retry(
            lambda: self._repo.replace(old.id, now, new), self._retry, operation="rotate"
        )
        if not replaced:
            # Lost a race: report what the record looks like now
            current = call_with_retry(
                lambda: self._repo.get_by_hash(old.token_hash), self._retry, operation="rotate"
            )
            if current is None:
                raise NotFoundError("Refresh token not found", record_id=old.id)
            self._check(current, now, allow_grace=False)
            raise RevokedTokenError(
                "Refresh token was revoked concurrently", record_id=old.id, user_id=old.user_id
            )

        logger.info(
            "refresh_token_rotated",
            record_id=old.id,
            new_record_id=new.id,
            user_id=old.user_id,
        )
        return IssuedRefreshToken(new_secret_value, new)

    def revoke(self, secret: str) -> None:
        """Revoke the record for ``secret``.

        Revoking an already revoked record is a no-op.

        Raises:
            NotFoundError: No record matches.
        """
        record = self._lookup(secret)
        if record.revoked:
            return
        now = self._clock()
        changed = call_with_retry(
            lambda: self._repo.revoke(record.id, now), self._retry, operation="revoke"
        )
        if changed:
            logger.info("refresh_token_revoked", record_id=record.id, user_id=record.user_id)

    def revoke_all_for_user(self, user_id: str) -> int:
        """Revoke every unrevoked record of ``user_id``; return the count."""
        now = self._clock()
        count = call_with_retry(
            lambda: self._repo.revoke_all_for_user(user_id, now),
            self._retry,
            operation="revoke_all_for_user",
        )
        logger.info("refresh_tokens_revoked_for_user", user_id=user_id, count=count)
        return count

    def delete_expired_and_revoked(self, now: datetime | None = None) -> int:
        """Delete every record expired or revoked at ``now``; return the count.

        Revoked records are deleted right away, without waiting for their
        natural expiry, except rotated-out records still inside the rotation
        grace window.

        Raises:
            ValueError: If ``now`` is a naive datetime.
        """
        if now is not None and now.utcoffset() is None:
            raise ValueError("now must be a timezone-aware datetime")
        at = now or self._clock()
        return call_with_retry(
            lambda: self._repo.delete_expired_and_revoked(at, self._grace),
            self._retry,
            operation="delete_expired_and_revoked",
        )

    # --------------------------------------------------------------- helpers

    def _new_record(
        self,
        user_id: str,
        now: datetime,
        *,
        user_agent: str | None,
        ip_address: str | None,
    ) -> tuple[str, RefreshTokenRecord]:
        secret = new_secret()
        record = RefreshTokenRecord(
            id=new_record_id(),
            user_id=user_id,
            token_hash=hash_secret(secret),
            issued_at=now,
            expires_at=now + self._ttl,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        return secret, record

    def _lookup(self, secret: str) -> RefreshTokenRecord:
        if not secret:
            raise NotFoundError("Refresh token not found")
        token_hash = hash_secret(secret)
        record = call_with_retry(
            lambda: self._repo.get_by_hash(token_hash), self._retry, operation="lookup"
        )
        if record is None:
            raise NotFoundError("Refresh token not found")
        return record

    def _check(self, record: RefreshTokenRecord, now: datetime, *, allow_grace: bool) -> None:
        if record.revoked:
            if allow_grace and record.in_rotation_grace(now, self._grace):
                logger.info("refresh_token_in_rotation_grace", record_id=record.id)
            else:
                raise RevokedTokenError(
                    "Refresh token has been revoked",
                    record_id=record.id,
                    user_id=record.user_id,
                )
        if record.is_expired(now):
            raise ExpiredTokenError(
                "Refresh token has expired", record_id=record.id, user_id=record.user_id
            )
