"""
In-process key provider.

Resolves verification keys from a fixed set of public keys loaded at startup,
typically the current signing key plus the keys being rotated out.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

from ..errors import InvalidSignatureError
from ..keys import KeyPair
from ..protocols import KeyProvider


class StaticKeyProvider(KeyProvider):
    """
    Resolves verification keys by ``kid`` from an in-memory key map.

    Resolution Strategy
    -------------------
    - Token header carries a ``kid``: return the key registered under it,
      or fail with InvalidSignatureError if none is.
    - Token header has no ``kid``: return the default key. The default is
      the explicitly configured one, or the sole key if exactly one key is
      registered. With several keys and no default, fail.

    Key rotation
    ------------
    Keep the retiring key registered under its old ``kid`` until every token
    it signed has expired, and make the new key the default.

    Example
    -------
    provider = StaticKeyProvider.from_key_pairs([current, previous], default_kid=current.key_id)
    key = provider.get_key_for_token(kid)
    """

    def __init__(
        self,
        keys: Mapping[str, RSAPublicKey],
        default_kid: str | None = None,
    ) -> None:
        if not keys:
            raise ValueError("StaticKeyProvider needs at least one key")
        if default_kid is not None and default_kid not in keys:
            raise ValueError(f"default_kid {default_kid!r} is not a registered key")

        self._keys = dict(keys)
        if default_kid is None and len(self._keys) == 1:
            default_kid = next(iter(self._keys))
        self._default_kid = default_kid

    @classmethod
    def from_key_pairs(
        cls, pairs: Iterable[KeyPair], default_kid: str | None = None
    ) -> StaticKeyProvider:
        keys: dict[str, RSAPublicKey] = {}
        for pair in pairs:
            if not pair.key_id:
                raise ValueError("Every KeyPair registered with a provider needs a key_id")
            keys[pair.key_id] = pair.public_key
        return cls(keys, default_kid=default_kid)

    @property
    def key_ids(self) -> frozenset[str]:
        return frozenset(self._keys)

    def get_key_for_token(self, kid: str | None) -> RSAPublicKey:
        if kid is None:
            if self._default_kid is None:
                raise InvalidSignatureError("Token has no kid and no default key is configured")
            return self._keys[self._default_kid]

        key = self._keys.get(kid)
        if key is None:
            raise InvalidSignatureError("Unknown kid", key_id=kid)
        return key
