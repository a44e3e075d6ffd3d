"""Signed token creation and verification using PyJWT.

This module provides JWTCodec, which:
- Stamps ``iat`` (and ``exp`` when a TTL is given) onto a claim set
- Signs it with an RSA private key into a compact JWS string
- Parses, verifies and expiry-checks such strings back into a ClaimSet
- Maps PyJWT exceptions to domain-specific error types

The codec holds no mutable state, so one instance can be shared by any
number of threads.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from .claims import EXPIRATION, ISSUED_AT, JWT_ID, KEY_ID, ClaimSet
from .errors import (
    ExpiredTokenError,
    InvalidSignatureError,
    MalformedTokenError,
    SigningError,
)
from .protocols import Clock
from .records import utcnow

RSA_ALGORITHMS: Final[frozenset[str]] = frozenset(
    {"RS256", "RS384", "RS512", "PS256", "PS384", "PS512"}
)
"""Signing algorithms the codec accepts. All of them need RSA keys."""


@dataclass(frozen=True, slots=True)
class JWTCodecOptions:
    """Configuration for token signing and validation.

    Attributes:
        algorithm: Signing algorithm. Verification only accepts this one,
            which rules out algorithm confusion (``none``, HS256 with a
            public key, ...). Default: "RS256".

        issuer: Expected ``iss`` claim. If None, issuer is not validated.

        audience: Expected ``aud`` claim. If None, audience is not validated
            even when the token carries one.

        leeway: Clock skew tolerance in seconds for exp/iat validation.
            Keep it small. Default: 0.
    """

    algorithm: str = "RS256"
    issuer: str | None = None
    audience: str | None = None
    leeway: int = 0

    def __post_init__(self) -> None:
        if self.algorithm not in RSA_ALGORITHMS:
            raise ValueError(f"Unsupported signing algorithm: {self.algorithm}")
        if self.leeway < 0:
            raise ValueError(f"leeway must not be negative, got {self.leeway}")


class JWTCodec:
    """Encodes claim sets into signed tokens and verifies them back.

    Verification checks happen in a fixed order so callers can tell a token
    that could never have been valid from one that merely expired:

        1. structure  -> MalformedTokenError
        2. signature  -> InvalidSignatureError
        3. expiration -> ExpiredTokenError

    ``iat`` is stamped but not checked on verify, so an issuer whose clock
    runs slightly ahead does not get its tokens rejected. ``nbf`` and
    ``exp`` are checked with ``options.leeway``.

    The injected ``clock`` only stamps ``iat``/``exp`` in create(); verify()
    compares ``exp`` against the wall clock.

    Example:
        ```python
        codec = JWTCodec()
        pair = generate_key_pair(2048, key_id="auth-key")

        token = codec.create({"sub": "user123"}, pair.private_key, 3600, pair.key_id)
        claims = codec.verify(token, pair.public_key)
        ```
    """

    def __init__(self, options: JWTCodecOptions | None = None, clock: Clock = utcnow) -> None:
        self._opt = options or JWTCodecOptions()
        self._clock = clock

    @property
    def options(self) -> JWTCodecOptions:
        return self._opt

    def create(
        self,
        claims: Mapping[str, Any],
        signing_key: rsa.RSAPrivateKey,
        ttl_seconds: int,
        key_id: str | None = None,
    ) -> str:
        """Sign a claim set into a compact token string.

        Args:
            claims: Claims to embed. ``iat`` and ``exp`` are overwritten. A
                random ``jti`` is added unless one is given.
            signing_key: RSA private key.
            ttl_seconds: Lifetime in seconds. Zero or less omits ``exp`` and
                the token stays valid until its key is retired.
            key_id: Optional ``kid`` written into the token header.

        Raises:
            SigningError: If the key is not an RSA private key or the claims
                cannot be serialized.
        """
        if not isinstance(signing_key, rsa.RSAPrivateKey):
            raise SigningError(
                "Signing key is not an RSA private key",
                key_id=key_id,
                algorithm=self._opt.algorithm,
            )

        issued_at = int(self._clock().timestamp())
        payload = dict(claims)
        payload[ISSUED_AT] = issued_at
        payload.setdefault(JWT_ID, uuid.uuid4().hex)
        payload.pop(EXPIRATION, None)
        if ttl_seconds > 0:
            payload[EXPIRATION] = issued_at + ttl_seconds

        headers = {KEY_ID: key_id} if key_id else None
        try:
            return jwt.encode(payload, signing_key, algorithm=self._opt.algorithm, headers=headers)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            raise SigningError(
                f"Token signing failed: {e}", key_id=key_id, algorithm=self._opt.algorithm
            ) from e

    def verify(self, token: str, verification_key: rsa.RSAPublicKey) -> ClaimSet:
        """Verify a token and return its claims.

        Args:
            token: Untrusted compact token string.
            verification_key: RSA public key matching the signing key.

        Returns:
            ClaimSet with the payload claims and the header ``kid``.

        Raises:
            MalformedTokenError: Structure or claim types are invalid.
            InvalidSignatureError: Signature mismatch, wrong algorithm, or a
                key that does not fit the algorithm.
            ExpiredTokenError: ``exp`` is in the past.
        """
        header = read_header(token)
        key_id = header.get(KEY_ID)

        if not isinstance(verification_key, rsa.RSAPublicKey):
            raise InvalidSignatureError(
                "Verification key is not an RSA public key", key_id=key_id
            )

        try:
            payload = jwt.decode(
                token,
                verification_key,
                algorithms=[self._opt.algorithm],
                issuer=self._opt.issuer,
                audience=self._opt.audience,
                leeway=self._opt.leeway,
                options={
                    "verify_aud": self._opt.audience is not None,
                    "verify_iat": False,
                },
            )
        except jwt.ExpiredSignatureError as e:
            raise ExpiredTokenError("Token has expired", key_id=key_id) from e
        except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError) as e:
            # InvalidSignatureError subclasses DecodeError, so it goes first
            raise InvalidSignatureError(
                f"Signature verification failed: {e}", key_id=key_id
            ) from e
        except jwt.InvalidTokenError as e:
            raise MalformedTokenError(f"Token validation failed: {e}", key_id=key_id) from e
        except (jwt.InvalidKeyError, TypeError, ValueError) as e:
            raise InvalidSignatureError(
                f"Key incompatible with token: {e}", key_id=key_id
            ) from e

        return ClaimSet(payload, key_id=key_id)


def read_header(token: str) -> dict[str, Any]:
    """Return the unverified JWS header of a token.

    Only the structure is checked here. Nothing in the header is trusted
    until the signature has been verified.

    Raises:
        MalformedTokenError: If the token is not a well-formed JWS string.
    """
    if not isinstance(token, str) or not token:
        raise MalformedTokenError("Token must be a non-empty string")
    try:
        return jwt.get_unverified_header(token)
    except jwt.InvalidTokenError as e:
        raise MalformedTokenError(f"Malformed token: {e}") from e
