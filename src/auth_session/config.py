"""Environment-driven configuration.

Settings are read from ``AUTH_*`` environment variables, optionally loaded
from a ``.env`` file first. Unset variables fall back to the defaults below.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from dotenv import load_dotenv

from .retry import RetryPolicy

_PREFIX = "AUTH_"


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{_PREFIX}{name} must be an integer, got {raw!r}") from None


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{_PREFIX}{name} must be a number, got {raw!r}") from None


def _get_str(env: Mapping[str, str], name: str, default: str | None) -> str | None:
    raw = env.get(_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


@dataclass(frozen=True, slots=True)
class AuthSessionSettings:
    """Runtime settings for the session core.

    Attributes:
        access_token_ttl: Access token lifetime in seconds. 0 disables ``exp``.
        refresh_token_ttl: Refresh token lifetime in seconds.
        key_id: ``kid`` of the signing key.
        key_bits: RSA modulus size for generated keys.
        issuer: ``iss`` stamped on and expected in access tokens.
        cleanup_interval: Seconds between refresh token sweeps.
        rotation_grace: Seconds a rotated-out refresh token stays usable for
            in-flight requests.
        redis_url: Redis URL for the refresh token repository. None selects
            the in-memory repository.
        store_retry_attempts: Attempts per store call on transient failures.
        store_retry_base_delay: First backoff delay in seconds.
        log_level: Logging level name.
    """

    access_token_ttl: int = 3600
    refresh_token_ttl: int = 7 * 24 * 3600
    key_id: str = "auth-key"
    key_bits: int = 2048
    issuer: str | None = None
    cleanup_interval: float = 3600.0
    rotation_grace: float = 0.0
    redis_url: str | None = None
    store_retry_attempts: int = 3
    store_retry_base_delay: float = 0.05
    log_level: str = "info"

    def __post_init__(self) -> None:
        if self.access_token_ttl < 0:
            raise ValueError("AUTH_ACCESS_TOKEN_TTL must not be negative")
        if self.refresh_token_ttl <= 0:
            raise ValueError("AUTH_REFRESH_TOKEN_TTL must be positive")
        if self.cleanup_interval <= 0:
            raise ValueError("AUTH_CLEANUP_INTERVAL must be positive")
        if self.rotation_grace < 0:
            raise ValueError("AUTH_ROTATION_GRACE must not be negative")
        if self.store_retry_attempts < 1:
            raise ValueError("AUTH_STORE_RETRY_ATTEMPTS must be at least 1")

    @classmethod
    def from_env(
        cls, env: Mapping[str, str] | None = None, *, dotenv: bool = True
    ) -> AuthSessionSettings:
        """Build settings from environment variables.

        Args:
            env: Mapping to read instead of ``os.environ``.
            dotenv: Load a ``.env`` file into ``os.environ`` first. Ignored
                when ``env`` is given.
        """
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        defaults = cls()
        return cls(
            access_token_ttl=_get_int(env, "ACCESS_TOKEN_TTL", defaults.access_token_ttl),
            refresh_token_ttl=_get_int(env, "REFRESH_TOKEN_TTL", defaults.refresh_token_ttl),
            key_id=_get_str(env, "KEY_ID", defaults.key_id) or defaults.key_id,
            key_bits=_get_int(env, "KEY_BITS", defaults.key_bits),
            issuer=_get_str(env, "ISSUER", defaults.issuer),
            cleanup_interval=_get_float(env, "CLEANUP_INTERVAL", defaults.cleanup_interval),
            rotation_grace=_get_float(env, "ROTATION_GRACE", defaults.rotation_grace),
            redis_url=_get_str(env, "REDIS_URL", defaults.redis_url),
            store_retry_attempts=_get_int(
                env, "STORE_RETRY_ATTEMPTS", defaults.store_retry_attempts
            ),
            store_retry_base_delay=_get_float(
                env, "STORE_RETRY_BASE_DELAY", defaults.store_retry_base_delay
            ),
            log_level=_get_str(env, "LOG_LEVEL", defaults.log_level) or defaults.log_level,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.store_retry_attempts, base_delay=self.store_retry_base_delay
        )
