"""Asymmetric key material for signing and verifying access tokens.

This module generates and loads RSA key pairs using the ``cryptography``
package. It does not persist keys: storing and rotating them is the job of
whatever secret store the deployment uses. The private half never leaves the
KeyPair object except when handed to JWTCodec.create().
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from .errors import KeyGenerationError

MIN_RSA_BITS: Final[int] = 2048
"""Smallest RSA modulus accepted for signing keys."""

_PUBLIC_EXPONENT: Final[int] = 65537


@dataclass(frozen=True, slots=True)
class KeyPair:
    """An RSA private signing key and its public verification key.

    Attributes:
        private_key: Private key used by JWTCodec.create(). Excluded from repr.
        public_key: Public key, safe to distribute to verifiers.
        key_id: Identifier embedded as ``kid`` in tokens signed with this pair.
    """

    private_key: rsa.RSAPrivateKey = field(repr=False)
    public_key: rsa.RSAPublicKey
    key_id: str | None = None

    @property
    def bit_strength(self) -> int:
        return self.public_key.key_size

    def public_pem(self) -> str:
        """Return the public key as a SubjectPublicKeyInfo PEM string."""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")

    def public_jwk(self, algorithm: str = "RS256") -> dict[str, Any]:
        """Return the public key as a JWK dict suitable for a JWKS document."""
        jwk: dict[str, Any] = json.loads(RSAAlgorithm.to_jwk(self.public_key))
        jwk["use"] = "sig"
        jwk["alg"] = algorithm
        if self.key_id:
            jwk["kid"] = self.key_id
        return jwk


def generate_key_pair(bit_strength: int = MIN_RSA_BITS, key_id: str | None = None) -> KeyPair:
    """Generate a fresh RSA key pair.

    Args:
        bit_strength: RSA modulus size in bits. Must be at least 2048 and a
            multiple of 256.
        key_id: Optional ``kid`` to attach to the pair.

    Raises:
        KeyGenerationError: If the requested strength is unsupported.
    """
    if bit_strength < MIN_RSA_BITS or bit_strength % 256:
        raise KeyGenerationError(
            f"Unsupported RSA key size: {bit_strength}",
            bit_strength=bit_strength,
            key_id=key_id,
        )
    try:
        private_key = rsa.generate_private_key(
            public_exponent=_PUBLIC_EXPONENT, key_size=bit_strength
        )
    except (ValueError, UnsupportedAlgorithm) as e:
        raise KeyGenerationError(
            "RSA key generation failed", bit_strength=bit_strength, key_id=key_id
        ) from e
    return KeyPair(private_key=private_key, public_key=private_key.public_key(), key_id=key_id)


def load_key_pair(
    pem: str | bytes, key_id: str | None = None, password: bytes | None = None
) -> KeyPair:
    """Load a key pair from a PEM-encoded RSA private key.

    Raises:
        KeyGenerationError: If the PEM cannot be parsed, is not RSA, or is
            weaker than MIN_RSA_BITS.
    """
    data = pem.encode("ascii") if isinstance(pem, str) else pem
    try:
        private_key = serialization.load_pem_private_key(data, password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyGenerationError("Unable to load private key", key_id=key_id) from e

    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise KeyGenerationError("Private key is not an RSA key", key_id=key_id)
    if private_key.key_size < MIN_RSA_BITS:
        raise KeyGenerationError(
            f"RSA key too weak: {private_key.key_size} bits",
            bit_strength=private_key.key_size,
            key_id=key_id,
        )
    return KeyPair(private_key=private_key, public_key=private_key.public_key(), key_id=key_id)


def load_key_pair_file(
    path: str | os.PathLike[str], key_id: str | None = None, password: bytes | None = None
) -> KeyPair:
    """Load a key pair from a PEM file holding an RSA private key."""
    return load_key_pair(_read_pem(path, key_id), key_id=key_id, password=password)


def load_public_key(pem: str | bytes, key_id: str | None = None) -> rsa.RSAPublicKey:
    """Load a PEM-encoded RSA public key, as handed out to verifiers.

    The result can be registered with a StaticKeyProvider.

    Raises:
        KeyGenerationError: If the PEM cannot be parsed, is not RSA, or is
            weaker than MIN_RSA_BITS.
    """
    data = pem.encode("ascii") if isinstance(pem, str) else pem
    try:
        public_key = serialization.load_pem_public_key(data)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyGenerationError("Unable to load public key", key_id=key_id) from e

    if not isinstance(public_key, rsa.RSAPublicKey):
        raise KeyGenerationError("Public key is not an RSA key", key_id=key_id)
    if public_key.key_size < MIN_RSA_BITS:
        raise KeyGenerationError(
            f"RSA key too weak: {public_key.key_size} bits",
            bit_strength=public_key.key_size,
            key_id=key_id,
        )
    return public_key


def load_public_key_file(
    path: str | os.PathLike[str], key_id: str | None = None
) -> rsa.RSAPublicKey:
    """Load an RSA public key from a PEM file."""
    return load_public_key(_read_pem(path, key_id), key_id=key_id)


def _read_pem(path: str | os.PathLike[str], key_id: str | None) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise KeyGenerationError(
            f"Unable to read key file: {e.strerror}", path=os.fspath(path), key_id=key_id
        ) from e
