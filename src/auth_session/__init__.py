"""
Access token signing and refresh token lifecycle.

High-level flow
---------------
1. On login the application calls `SessionService.login(user_id)`:
   - `JWTCodec.create(...)` signs a short-lived access token with the
     private half of a `KeyPair` (RS256, `kid` in the header)
   - `RefreshTokenStore.issue(user_id)` persists a long-lived refresh record
     (only the SHA-256 of its secret) and returns the raw secret once
2. Protected routes verify access tokens with `JWTVerifier.verify(token)`:
   - Reads the unverified header to get `kid`
   - Asks a KeyProvider for the matching public key
   - Checks structure, then signature, then expiration
3. On renewal `SessionService.renew(secret)` calls
   `RefreshTokenStore.rotate(secret)`, which revokes the old record and
   creates its successor atomically, then mints a new access token.
4. `CleanupScheduler` periodically calls
   `RefreshTokenStore.delete_expired_and_revoked(now)`.

Security notes
--------------
- Never trust claims until signature verification succeeds.
- Only the configured RSA algorithm is accepted (no algorithm confusion).
- Raw refresh secrets and private keys never appear in logs or errors.

Example usage
-------------

.. code-block:: python

    from auth_session import AuthSessionSettings, build_session, AuthExtension

    core = build_session(AuthSessionSettings.from_env())
    core.scheduler.start()

    pair = core.service.login("user-1", claims={"roles": ["player"]})

    auth = AuthExtension(core.verifier)
    auth.init_app(app)

    @app.route("/protected")
    @auth.require()
    def protected_route():
        return {"sub": current_claims()["sub"]}
"""

# Flask boundary
from .blueprint import create_auth_blueprint

# Claims
from .claims import ClaimSet, claims_to_map

# Codec
from .codec import JWTCodec, JWTCodecOptions

# Configuration
from .config import AuthSessionSettings

# Errors
from .errors import (
    AuthError,
    ErrorKind,
    ExpiredTokenError,
    InvalidSignatureError,
    KeyGenerationError,
    MalformedTokenError,
    MissingTokenError,
    NotFoundError,
    RevokedTokenError,
    SigningError,
    StoreUnavailableError,
)
from .extractors import BearerExtractor, CookieExtractor
from .flask_extension import AuthExtension, current_claims, status_for

# Key material
from .key_providers import StaticKeyProvider
from .keys import (
    KeyPair,
    generate_key_pair,
    load_key_pair,
    load_key_pair_file,
    load_public_key,
    load_public_key_file,
)

# Logging
from .logging import configure_logging, get_logger

# Protocols
from .protocols import (
    Claims,
    Extractor,
    KeyProvider,
    RefreshTokenRepository,
    TokenVerifier,
    ViewFunc,
)

# Refresh tokens
from .records import RefreshTokenRecord
from .refresh_tokens import IssuedRefreshToken, RefreshTokenStore
from .repositories import InMemoryRefreshTokenRepository, RedisRefreshTokenRepository

# Retry
from .retry import RetryPolicy

# Scheduler
from .scheduler import CleanupScheduler

# Session
from .session import SessionCore, SessionService, TokenPair, build_session

# Verifier
from .verifier import JWTVerifier

__all__ = [
    # Errors
    "AuthError",
    "ErrorKind",
    "ExpiredTokenError",
    "InvalidSignatureError",
    "KeyGenerationError",
    "MalformedTokenError",
    "MissingTokenError",
    "NotFoundError",
    "RevokedTokenError",
    "SigningError",
    "StoreUnavailableError",
    # Protocols
    "Claims",
    "Extractor",
    "KeyProvider",
    "RefreshTokenRepository",
    "TokenVerifier",
    "ViewFunc",
    # Key material
    "KeyPair",
    "generate_key_pair",
    "load_key_pair",
    "load_key_pair_file",
    "load_public_key",
    "load_public_key_file",
    "StaticKeyProvider",
    # Claims
    "ClaimSet",
    "claims_to_map",
    # Codec / verifier
    "JWTCodec",
    "JWTCodecOptions",
    "JWTVerifier",
    # Refresh tokens
    "RefreshTokenRecord",
    "IssuedRefreshToken",
    "RefreshTokenStore",
    "InMemoryRefreshTokenRepository",
    "RedisRefreshTokenRepository",
    "RetryPolicy",
    # Scheduler
    "CleanupScheduler",
    # Session
    "SessionCore",
    "SessionService",
    "TokenPair",
    "build_session",
    # Configuration / logging
    "AuthSessionSettings",
    "configure_logging",
    "get_logger",
    # Flask boundary
    "AuthExtension",
    "BearerExtractor",
    "CookieExtractor",
    "create_auth_blueprint",
    "current_claims",
    "status_for",
]
