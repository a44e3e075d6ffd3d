"""Authentication and session errors.

This module defines the closed set of failures raised by the token codec,
the key material provider and the refresh token store. All errors inherit
from AuthError so callers can catch a single type.

Every error carries a stable machine-readable ``kind`` and a ``context``
mapping of identifiers (record id, user id, key id, reason). Boundary layers
map ``kind`` to a transport status; they should never parse the message.

Security Note:
    Context fields must never contain raw refresh secrets or private key
    material. Only opaque identifiers go in there.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, ClassVar


class ErrorKind(StrEnum):
    """Stable identifiers for every failure the core can report."""

    MALFORMED_TOKEN = "malformed_token"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED_TOKEN = "expired_token"
    KEY_GENERATION = "key_generation"
    SIGNING = "signing"
    NOT_FOUND = "not_found"
    REVOKED_TOKEN = "revoked_token"
    STORE_UNAVAILABLE = "store_unavailable"
    MISSING_TOKEN = "missing_token"


class AuthError(Exception):
    """Base exception for all authentication and session failures.

    Attributes:
        kind: Machine-readable error kind.
        context: Non-secret identifiers describing the failure.
    """

    kind: ClassVar[ErrorKind]

    def __init__(self, message: str = "", **context: Any) -> None:
        super().__init__(message or self.kind.value)
        self.context: dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation for boundary layers."""
        return {"kind": self.kind.value, "message": str(self), **self.context}


class MalformedTokenError(AuthError):
    """Raised when a token string is not a well-formed signed token.

    This occurs when:
    - The compact serialization does not have three base64url segments
    - The header or payload is not valid JSON
    - A registered claim has the wrong type (e.g. non-integer ``exp``)
    - Configured issuer/audience checks fail

    Such a token could never have been valid.
    """

    kind = ErrorKind.MALFORMED_TOKEN


class InvalidSignatureError(AuthError):
    """Raised when the signature does not verify against the supplied key.

    Also raised when the key is incompatible with the token's algorithm or
    when the token names a ``kid`` no key provider knows about.
    """

    kind = ErrorKind.INVALID_SIGNATURE


class ExpiredTokenError(AuthError):
    """Raised when a token or refresh record is past its expiration.

    Unlike MalformedTokenError and InvalidSignatureError, this token *was*
    valid at some point. Clients should renew rather than re-authenticate.
    """

    kind = ErrorKind.EXPIRED_TOKEN


class KeyGenerationError(AuthError):
    """Raised when key material cannot be generated or loaded."""

    kind = ErrorKind.KEY_GENERATION


class SigningError(AuthError):
    """Raised when a claim set cannot be signed with the given key."""

    kind = ErrorKind.SIGNING


class NotFoundError(AuthError):
    """Raised when no refresh token record matches a secret."""

    kind = ErrorKind.NOT_FOUND


class RevokedTokenError(AuthError):
    """Raised when a refresh token record has been revoked.

    This is also what the loser of a rotate/revoke race observes.
    """

    kind = ErrorKind.REVOKED_TOKEN


class StoreUnavailableError(AuthError):
    """Raised on a transient persistence failure.

    This is the only error eligible for local retry.
    """

    kind = ErrorKind.STORE_UNAVAILABLE


class MissingTokenError(AuthError):
    """Raised by extractors when a request carries no usable token.

    Only the HTTP boundary raises this; the core never does.
    """

    kind = ErrorKind.MISSING_TOKEN
