"""Protocol definitions for the session core.

This module defines structural interfaces using Protocol (PEP 544) for:
- Token verification
- Verification key resolution
- Refresh token persistence
- Token extraction at the HTTP boundary

Any class that implements the required methods satisfies the protocol, which
keeps the store and the verifier testable with small duck-typed fakes.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

    from .records import RefreshTokenRecord

# ============================================================================
# Type Aliases
# ============================================================================

type Claims = Mapping[str, Any]
"""Represents a verified token payload as an immutable mapping."""

type ViewFunc = Callable[..., Any]
"""Type alias for Flask view functions (callable that takes any args and returns any)."""

type Clock = Callable[[], datetime]
"""Returns the current time as a timezone-aware UTC datetime."""


# ============================================================================
# Core Protocols
# ============================================================================


class TokenVerifier(Protocol):
    """Protocol for access token verification.

    Implementers validate the token's structure, signature and expiration and
    return the verified claims.
    """

    def verify(self, token: str) -> Claims:
        """Verify a token and return its claims.

        Raises:
            MalformedTokenError: Token structure is not valid.
            InvalidSignatureError: Signature does not verify or key unknown.
            ExpiredTokenError: Token's exp claim has passed.
        """
        ...


class KeyProvider(Protocol):
    """Protocol for resolving verification keys.

    Common implementations:
    - Static in-process key map (StaticKeyProvider)
    - Keys loaded from a secret store at startup
    """

    def get_key_for_token(self, kid: str | None) -> RSAPublicKey:
        """Resolve a verification key by its ID.

        Args:
            kid: Key ID from the token header, or None if the header has none.

        Raises:
            InvalidSignatureError: If kid cannot be resolved.
        """
        ...


class RefreshTokenRepository(Protocol):
    """Persistence collaborator for refresh token records.

    Every mutating method must be atomic with respect to the others. The
    conditional methods return False instead of raising when their
    precondition no longer holds, so the store can report the exact reason.

    Implementations raise StoreUnavailableError on transient failures.
    """

    def add(self, record: RefreshTokenRecord) -> None:
        """Persist a new record.

        Adding the same record again is a no-op, so a retried write succeeds.
        """
        ...

    def get_by_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        """Return the record for a secret hash, or None."""
        ...

    def revoke(self, record_id: str, revoked_at: datetime) -> bool:
        """Set the revoked flag if it is not already set (compare-and-set).

        Returns:
            True if this call revoked the record, False if it was already
            revoked or no longer exists.
        """
        ...

    def replace(
        self, old_id: str, revoked_at: datetime, new_record: RefreshTokenRecord
    ) -> bool:
        """Revoke ``old_id`` and insert ``new_record`` in one atomic step.

        The step only happens if the old record exists, is not revoked and is
        not expired at ``revoked_at``. Otherwise nothing is written.

        Returns True if the old record is already replaced by ``new_record``
        (a retried write whose first reply was lost).
        """
        ...

    def revoke_all_for_user(self, user_id: str, revoked_at: datetime) -> int:
        """Revoke every unrevoked record of a user; return how many changed."""
        ...

    def delete_expired_and_revoked(self, now: datetime, grace_seconds: float = 0) -> int:
        """Delete records that are expired or revoked at ``now``.

        Records revoked by rotation are kept until ``grace_seconds`` after
        their revocation. Returns the number of records deleted.
        """
        ...


class Extractor(Protocol):
    """Protocol for extracting access tokens from HTTP requests.

    Common implementations:
    - Authorization: Bearer <token> header
    - Cookie-based storage
    """

    def extract(self) -> str:
        """Extract the raw token string from the current Flask request.

        Raises:
            MissingTokenError: Token not found or improperly formatted.
        """
        ...
