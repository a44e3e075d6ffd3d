"""Refresh token repository implementations.

This module provides implementations of the RefreshTokenRepository protocol:
- InMemoryRefreshTokenRepository: in-process dict guarded by one lock
  (dev, tests, single-instance deployments)
- RedisRefreshTokenRepository: records in Redis, shared by every instance

Both implementations make the conditional updates atomic:
- revoke() is a compare-and-set on the revoked flag
- replace() revokes the old record and inserts its successor together, and
  only if the old record is still live
- delete_expired_and_revoked() only removes records that are already
  unusable, re-checked under the same lock / transaction as the delete

so a rotate racing a revoke on the same record has exactly one winner, and
the sweep never removes a record another operation could still act on.

add() and replace() are idempotent for a given new record: repeating a write
whose reply was lost reports success instead of a conflict.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime
from typing import Any, Final

import redis

from .errors import StoreUnavailableError
from .logging import get_logger
from .records import RefreshTokenRecord

logger = get_logger(__name__)

_DEFAULT_PREFIX: Final[str] = "refresh:"


class InMemoryRefreshTokenRepository:
    """In-process refresh token repository.

    Storage Behavior:
        - Records indexed by id, with a secondary index from token hash to id
        - Every public method runs under a single lock, so each one is atomic
          with respect to all the others

    Example:
        ```python
        repo = InMemoryRefreshTokenRepository()
        store = RefreshTokenStore(repo, ttl_seconds=604800)
        ```
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, RefreshTokenRecord] = {}
        self._by_hash: dict[str, str] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def all(self) -> list[RefreshTokenRecord]:
        with self._lock:
            return list(self._records.values())

    def add(self, record: RefreshTokenRecord) -> None:
        with self._lock:
            if self._by_hash.get(record.token_hash) == record.id:
                return
            self._insert(record)

    def get_by_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        with self._lock:
            record_id = self._by_hash.get(token_hash)
            return self._records.get(record_id) if record_id else None

    def revoke(self, record_id: str, revoked_at: datetime) -> bool:
        with self._lock:
            record = self._records.get(record_id)
            if record is None or record.revoked:
                return False
            self._records[record_id] = record.revoke(revoked_at)
            return True

    def replace(
        self, old_id: str, revoked_at: datetime, new_record: RefreshTokenRecord
    ) -> bool:
        with self._lock:
            old = self._records.get(old_id)
            if old is not None and old.replaced_by == new_record.id:
                return True
            if old is None or not old.is_active(revoked_at):
                return False
            self._records[old_id] = old.revoke(revoked_at, replaced_by=new_record.id)
            self._insert(new_record)
            return True

    def revoke_all_for_user(self, user_id: str, revoked_at: datetime) -> int:
        with self._lock:
            count = 0
            for record_id, record in self._records.items():
                if record.user_id == user_id and not record.revoked:
                    self._records[record_id] = record.revoke(revoked_at)
                    count += 1
            return count

    def delete_expired_and_revoked(self, now: datetime, grace_seconds: float = 0) -> int:
        with self._lock:
            doomed = [r for r in self._records.values() if r.is_sweepable(now, grace_seconds)]
            for record in doomed:
                del self._records[record.id]
                self._by_hash.pop(record.token_hash, None)
            return len(doomed)

    def _insert(self, record: RefreshTokenRecord) -> None:
        if record.id in self._records or record.token_hash in self._by_hash:
            raise ValueError(f"Duplicate refresh token record {record.id}")
        self._records[record.id] = record
        self._by_hash[record.token_hash] = record.id


class RedisRefreshTokenRepository:
    """Redis-backed refresh token repository.

    Storage Format:
        - ``{prefix}record:{id}``: JSON serialization of the record
        - ``{prefix}hash:{token_hash}``: record id
        - ``{prefix}user:{user_id}``: set of the user's record ids
        - ``{prefix}ids``: set of every record id (walked by the sweep)

    Atomicity:
        Conditional updates use optimistic transactions (WATCH/MULTI/EXEC via
        ``redis.Redis.transaction``). If a watched key changes before EXEC the
        transaction is re-run against the new state, so the condition is
        always evaluated on what actually gets written.

        The sweep runs one small transaction per record. Each one re-reads the
        record under WATCH and skips it if it is gone or no longer
        sweepable, so an interrupted sweep can simply be run again.

    Failures:
        Connection and timeout errors are raised as StoreUnavailableError.

    Example:
        ```python
        client = redis.Redis.from_url("redis://localhost:6379/0", decode_responses=True)
        repo = RedisRefreshTokenRepository(client)
        ```

    Attributes:
        _client: Redis client created with ``decode_responses=True``.
    """

    def __init__(self, redis_client: Any, prefix: str = _DEFAULT_PREFIX) -> None:
        self._client = redis_client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = _DEFAULT_PREFIX) -> RedisRefreshTokenRepository:
        return cls(redis.Redis.from_url(url, decode_responses=True), prefix=prefix)

    # ------------------------------------------------------------------ keys

    def _record_key(self, record_id: str) -> str:
        return f"{self._prefix}record:{record_id}"

    def _hash_key(self, token_hash: str) -> str:
        return f"{self._prefix}hash:{token_hash}"

    def _user_key(self, user_id: str) -> str:
        return f"{self._prefix}user:{user_id}"

    @property
    def _ids_key(self) -> str:
        return f"{self._prefix}ids"

    # --------------------------------------------------------------- helpers

    @staticmethod
    def _decode(data: str | None) -> RefreshTokenRecord | None:
        if data is None:
            return None
        try:
            return RefreshTokenRecord.from_dict(json.loads(data))
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            raise RuntimeError("Failed to deserialize refresh token record") from e

    @staticmethod
    def _encode(record: RefreshTokenRecord) -> str:
        return json.dumps(record.to_dict())

    def _write_new(self, pipe: Any, record: RefreshTokenRecord) -> None:
        pipe.set(self._record_key(record.id), self._encode(record))
        pipe.set(self._hash_key(record.token_hash), record.id)
        pipe.sadd(self._user_key(record.user_id), record.id)
        pipe.sadd(self._ids_key, record.id)

    def _call(self, operation: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except (redis.ConnectionError, redis.TimeoutError) as e:
            raise StoreUnavailableError(
                f"Redis unavailable during {operation}", operation=operation
            ) from e

    # ------------------------------------------------------------ repository

    def add(self, record: RefreshTokenRecord) -> None:
        def _txn(pipe: Any) -> None:
            existing = pipe.get(self._hash_key(record.token_hash))
            if existing == record.id:
                # Written by an attempt whose reply was lost
                return
            if existing is not None:
                raise ValueError(f"Duplicate refresh token record {record.id}")
            pipe.multi()
            self._write_new(pipe, record)

        self._call("add", self._client.transaction, _txn, self._hash_key(record.token_hash))

    def get_by_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        def _get() -> RefreshTokenRecord | None:
            record_id = self._client.get(self._hash_key(token_hash))
            if record_id is None:
                return None
            return self._decode(self._client.get(self._record_key(record_id)))

        return self._call("get_by_hash", _get)

    def revoke(self, record_id: str, revoked_at: datetime) -> bool:
        key = self._record_key(record_id)

        def _txn(pipe: Any) -> bool:
            record = self._decode(pipe.get(key))
            if record is None or record.revoked:
                return False
            pipe.multi()
            pipe.set(key, self._encode(record.revoke(revoked_at)))
            return True

        return self._call("revoke", self._client.transaction, _txn, key, value_from_callable=True)

    def replace(
        self, old_id: str, revoked_at: datetime, new_record: RefreshTokenRecord
    ) -> bool:
        key = self._record_key(old_id)

        def _txn(pipe: Any) -> bool:
            old = self._decode(pipe.get(key))
            if old is not None and old.replaced_by == new_record.id:
                # Written by an attempt whose reply was lost
                return True
            if old is None or not old.is_active(revoked_at):
                return False
            pipe.multi()
            pipe.set(key, self._encode(old.revoke(revoked_at, replaced_by=new_record.id)))
            self._write_new(pipe, new_record)
            return True

        return self._call("replace", self._client.transaction, _txn, key, value_from_callable=True)

    def revoke_all_for_user(self, user_id: str, revoked_at: datetime) -> int:
        record_ids = self._call(
            "revoke_all_for_user", self._client.smembers, self._user_key(user_id)
        )
        return sum(1 for record_id in record_ids if self.revoke(record_id, revoked_at))

    def delete_expired_and_revoked(self, now: datetime, grace_seconds: float = 0) -> int:
        record_ids = self._call("delete_expired_and_revoked", self._client.smembers, self._ids_key)
        deleted = 0
        for record_id in record_ids:
            if self._delete_if_sweepable(record_id, now, grace_seconds):
                deleted += 1
        return deleted

    def _delete_if_sweepable(self, record_id: str, now: datetime, grace_seconds: float) -> bool:
        key = self._record_key(record_id)

        def _txn(pipe: Any) -> bool:
            record = self._decode(pipe.get(key))
            pipe.multi()
            if record is None:
                # Index entry left behind by an earlier interrupted sweep
                pipe.srem(self._ids_key, record_id)
                return False
            if not record.is_sweepable(now, grace_seconds):
                return False
            pipe.delete(key)
            pipe.delete(self._hash_key(record.token_hash))
            pipe.srem(self._user_key(record.user_id), record_id)
            pipe.srem(self._ids_key, record_id)
            return True

        return self._call(
            "delete_expired_and_revoked",
            self._client.transaction,
            _txn,
            key,
            value_from_callable=True,
        )
