"""
Key provider implementations for resolving verification keys.

This package contains implementations of the KeyProvider protocol,
allowing verifiers to pick the right public key for a token's ``kid``.
"""

from .static import StaticKeyProvider

__all__ = ["StaticKeyProvider"]
