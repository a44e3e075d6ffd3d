"""Login, renewal and logout on top of the codec and the refresh store.

SessionService is what an auth endpoint talks to. It mints short-lived
access tokens with the JWTCodec and long-lived refresh tokens with the
RefreshTokenStore, and renews the former by rotating the latter.

build_session() wires every component from AuthSessionSettings with plain
constructor calls; the caller owns the returned scheduler's lifecycle.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from .claims import ISSUER, SUBJECT
from .codec import JWTCodec, JWTCodecOptions
from .config import AuthSessionSettings
from .errors import NotFoundError
from .key_providers import StaticKeyProvider
from .keys import KeyPair, generate_key_pair
from .logging import get_logger
from .refresh_tokens import RefreshTokenStore
from .repositories import InMemoryRefreshTokenRepository, RedisRefreshTokenRepository
from .scheduler import CleanupScheduler
from .verifier import JWTVerifier

logger = get_logger(__name__)

type ClaimsLoader = Callable[[str], Mapping[str, Any]]
"""Returns the extra access token claims for a user id (roles, email, ...)."""


@dataclass(frozen=True, slots=True)
class TokenPair:
    """Access and refresh token handed back to a client."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
        }

    def __repr__(self) -> str:
        return f"TokenPair(token_type={self.token_type!r}, expires_in={self.expires_in})"


class SessionService:
    """Issues and renews token pairs.

    Example:
        ```python
        service = SessionService(JWTCodec(), key_pair, store, access_token_ttl=3600)

        pair = service.login("user-1", claims={"roles": ["player"]})
        pair = service.renew(pair.refresh_token)
        service.logout(pair.refresh_token)
        ```
    """

    def __init__(
        self,
        codec: JWTCodec,
        key_pair: KeyPair,
        store: RefreshTokenStore,
        *,
        access_token_ttl: int = 3600,
        claims_for: ClaimsLoader | None = None,
    ) -> None:
        self._codec = codec
        self._keys = key_pair
        self._store = store
        self._ttl = access_token_ttl
        self._claims_for = claims_for

    def login(
        self,
        user_id: str,
        claims: Mapping[str, Any] | None = None,
        *,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> TokenPair:
        """Issue a token pair for an already authenticated user."""
        access_token = self._access_token(user_id, claims)
        issued = self._store.issue(user_id, user_agent=user_agent, ip_address=ip_address)
        logger.info("session_started", user_id=user_id, record_id=issued.record.id)
        return TokenPair(access_token, issued.secret, self._ttl)

    def renew(
        self,
        refresh_token: str,
        *,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> TokenPair:
        """Rotate a refresh token and mint a new access token.

        Raises:
            NotFoundError, RevokedTokenError, ExpiredTokenError: From
                RefreshTokenStore.rotate().
        """
        issued = self._store.rotate(refresh_token, user_agent=user_agent, ip_address=ip_address)
        user_id = issued.record.user_id
        access_token = self._access_token(user_id, None)
        return TokenPair(access_token, issued.secret, self._ttl)

    def logout(self, refresh_token: str) -> None:
        """Revoke a refresh token. Unknown tokens are ignored."""
        try:
            self._store.revoke(refresh_token)
        except NotFoundError:
            logger.info("logout_unknown_refresh_token")

    def logout_all(self, user_id: str) -> int:
        """Revoke every refresh token of a user."""
        return self._store.revoke_all_for_user(user_id)

    def public_key_pem(self) -> str:
        return self._keys.public_pem()

    def public_jwks(self) -> dict[str, Any]:
        return {"keys": [self._keys.public_jwk(self._codec.options.algorithm)]}

    def _access_token(self, user_id: str, claims: Mapping[str, Any] | None) -> str:
        payload: dict[str, Any] = {}
        if self._claims_for is not None:
            payload.update(self._claims_for(user_id))
        if claims:
            payload.update(claims)
        payload[SUBJECT] = user_id
        if self._codec.options.issuer:
            payload[ISSUER] = self._codec.options.issuer
        return self._codec.create(payload, self._keys.private_key, self._ttl, self._keys.key_id)


@dataclass(frozen=True, slots=True)
class SessionCore:
    """Every component built by build_session()."""

    service: SessionService
    verifier: JWTVerifier
    store: RefreshTokenStore
    scheduler: CleanupScheduler
    key_pair: KeyPair


def build_session(
    settings: AuthSessionSettings,
    *,
    key_pair: KeyPair | None = None,
    claims_for: ClaimsLoader | None = None,
) -> SessionCore:
    """Construct the session core from settings.

    A fresh key pair is generated when none is supplied; production setups
    should pass one loaded from their secret store. The scheduler is built
    but not started.
    """
    if key_pair is None:
        key_pair = generate_key_pair(settings.key_bits, key_id=settings.key_id)

    if settings.redis_url:
        repository: Any = RedisRefreshTokenRepository.from_url(settings.redis_url)
    else:
        repository = InMemoryRefreshTokenRepository()

    store = RefreshTokenStore(
        repository,
        ttl_seconds=settings.refresh_token_ttl,
        rotation_grace_seconds=settings.rotation_grace,
        retry=settings.retry_policy(),
    )
    codec = JWTCodec(JWTCodecOptions(issuer=settings.issuer))
    service = SessionService(
        codec,
        key_pair,
        store,
        access_token_ttl=settings.access_token_ttl,
        claims_for=claims_for,
    )
    key_provider = StaticKeyProvider({key_pair.key_id or settings.key_id: key_pair.public_key})
    verifier = JWTVerifier(key_provider, codec)
    scheduler = CleanupScheduler(store, interval_seconds=settings.cleanup_interval)
    return SessionCore(service, verifier, store, scheduler, key_pair)
