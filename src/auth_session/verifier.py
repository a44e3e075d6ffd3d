"""Access token verification with key resolution.

JWTVerifier bridges a KeyProvider and the JWTCodec: it reads the ``kid``
from the (unverified) token header, asks the provider for the matching
public key and hands both to JWTCodec.verify().
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .claims import KEY_ID, ClaimSet
from .codec import JWTCodec, read_header
from .errors import AuthError, InvalidSignatureError

if TYPE_CHECKING:
    from .protocols import KeyProvider


class JWTVerifier:
    """Provider-agnostic access token verification.

    This class implements the TokenVerifier protocol and delegates key
    resolution to an injected KeyProvider, so a verifier can follow key
    rotation without knowing where keys come from.

    Architecture:
        1. Parse the header and read ``kid`` (structure check only)
        2. Resolve the public key via KeyProvider (sole key if no ``kid``)
        3. Verify signature and expiration via JWTCodec

    Thread Safety:
        Thread-safe as long as the KeyProvider is.

    Example:
        ```python
        verifier = JWTVerifier(
            key_provider=StaticKeyProvider.from_key_pairs([pair]),
            codec=JWTCodec(JWTCodecOptions(issuer="auth-service")),
        )

        try:
            claims = verifier.verify(raw_token)
        except ExpiredTokenError:
            # Token was valid once, ask the client to renew
        except AuthError:
            # Token could never have been valid, reject
        ```
    """

    def __init__(self, key_provider: KeyProvider, codec: JWTCodec | None = None) -> None:
        self._keys = key_provider
        self._codec = codec or JWTCodec()

    def verify(self, token: str) -> ClaimSet:
        """Verify a token against the key named by its header.

        Raises:
            MalformedTokenError: Token structure is invalid.
            InvalidSignatureError: Unknown ``kid`` or signature mismatch.
            ExpiredTokenError: Token's exp claim has passed.
        """
        header = read_header(token)
        kid = header.get(KEY_ID)

        try:
            key = self._keys.get_key_for_token(kid)
        except AuthError:
            raise
        except Exception as e:
            # Normalize provider failures to a signature failure
            raise InvalidSignatureError("Key resolution failed", key_id=kid) from e

        return self._codec.verify(token, key)
