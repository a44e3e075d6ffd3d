"""Refresh token records and secret helpers."""

from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Final

_SECRET_BYTES: Final[int] = 32


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_secret() -> str:
    """Return a URL-safe random refresh secret."""
    return secrets.token_urlsafe(_SECRET_BYTES)


def hash_secret(secret: str) -> str:
    """Return the SHA-256 hex digest stored in place of the raw secret."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def new_record_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class RefreshTokenRecord:
    """Stored refresh token metadata.

    The raw secret is never part of a record; only its hash is kept.

    Attributes:
        id: Opaque record identifier.
        user_id: Owning user.
        token_hash: SHA-256 hex digest of the raw secret.
        issued_at: Creation time (UTC).
        expires_at: Expiration time (UTC).
        revoked: Whether the record has been revoked.
        revoked_at: When it was revoked, if it was.
        replaced_by: Id of the successor record when revoked by rotation.
        user_agent: Client user agent at issuance, if known.
        ip_address: Client address at issuance, if known.
    """

    id: str
    user_id: str
    token_hash: str
    issued_at: datetime
    expires_at: datetime
    revoked: bool = False
    revoked_at: datetime | None = None
    replaced_by: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def is_active(self, now: datetime) -> bool:
        return not self.revoked and not self.is_expired(now)

    def in_rotation_grace(self, now: datetime, grace_seconds: float) -> bool:
        """True while a rotated-out record is still tolerated for in-flight use."""
        if not self.revoked or self.replaced_by is None or self.revoked_at is None:
            return False
        return now < self.revoked_at + timedelta(seconds=grace_seconds)

    def is_sweepable(self, now: datetime, grace_seconds: float = 0) -> bool:
        """True if the cleanup sweep may delete this record at ``now``."""
        if self.is_expired(now):
            return True
        if not self.revoked:
            return False
        return not self.in_rotation_grace(now, grace_seconds)

    def revoke(self, revoked_at: datetime, replaced_by: str | None = None) -> RefreshTokenRecord:
        return replace(self, revoked=True, revoked_at=revoked_at, replaced_by=replaced_by)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for name in ("issued_at", "expires_at", "revoked_at"):
            if data[name] is not None:
                data[name] = data[name].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RefreshTokenRecord:
        values = dict(data)
        for name in ("issued_at", "expires_at", "revoked_at"):
            if values.get(name) is not None:
                values[name] = datetime.fromisoformat(values[name])
        return cls(**values)
