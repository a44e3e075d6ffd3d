"""Verified claim sets and the claims mapper.

A ClaimSet is what JWTCodec.verify() returns: an immutable, ordered view of
the token payload with typed accessors for the registered claims. The
claims mapper turns it back into a plain dict for callers that do not know
the claim schema.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator, Mapping
from datetime import datetime, timezone
from typing import Any, Final

ISSUER: Final[str] = "iss"
SUBJECT: Final[str] = "sub"
ISSUED_AT: Final[str] = "iat"
EXPIRATION: Final[str] = "exp"
JWT_ID: Final[str] = "jti"
KEY_ID: Final[str] = "kid"

RESERVED_CLAIMS: Final[frozenset[str]] = frozenset(
    {ISSUER, SUBJECT, ISSUED_AT, EXPIRATION, JWT_ID}
)


def _as_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class ClaimSet(Mapping[str, Any]):
    """Immutable ordered mapping of claim name to value.

    Claim order is the order in which the payload presented them. The
    ``key_id`` comes from the token header, not from the payload.

    Example:
        ```python
        claims = codec.verify(token, key_pair.public_key)
        claims.subject       # "user123"
        claims["custom"]     # "xyz"
        claims.expiration    # datetime or None
        ```
    """

    __slots__ = ("_data", "_key_id")

    def __init__(self, data: Mapping[str, Any], key_id: str | None = None) -> None:
        self._data: dict[str, Any] = dict(data)
        self._key_id = key_id

    def __getitem__(self, name: str) -> Any:
        return self._data[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ClaimSet({self._data!r}, key_id={self._key_id!r})"

    @property
    def issuer(self) -> str | None:
        return self._data.get(ISSUER)

    @property
    def subject(self) -> str | None:
        return self._data.get(SUBJECT)

    @property
    def issued_at(self) -> datetime | None:
        return _as_datetime(self._data.get(ISSUED_AT))

    @property
    def expiration(self) -> datetime | None:
        return _as_datetime(self._data.get(EXPIRATION))

    @property
    def token_id(self) -> str | None:
        return self._data.get(JWT_ID)

    @property
    def key_id(self) -> str | None:
        return self._key_id

    def custom_claims(self) -> dict[str, Any]:
        """Return only the non-registered claims."""
        return {k: v for k, v in self._data.items() if k not in RESERVED_CLAIMS}

    def to_map(self) -> dict[str, Any]:
        return claims_to_map(self)


def claims_to_map(claims: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a claim set into a plain ordered dict.

    Every claim is kept, custom ones included, in payload order. Nested
    structures are deep-copied so the result can be mutated freely without
    touching the ClaimSet. Strings and numbers keep their exact type.
    """
    return {name: copy.deepcopy(value) for name, value in claims.items()}
