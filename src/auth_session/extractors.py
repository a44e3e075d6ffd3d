"""Access token extraction from HTTP requests.

Implementations of the Extractor protocol:
- BearerExtractor: ``Authorization: Bearer <token>`` header
- CookieExtractor: a named cookie, for browser clients
"""

from __future__ import annotations

from flask import request

from .errors import MissingTokenError


class BearerExtractor:
    """Extracts the access token from the ``Authorization`` header."""

    def extract(self) -> str:
        """Return the token after ``Bearer``.

        Raises:
            MissingTokenError: Header missing, wrong scheme, or empty token.
        """
        auth_header = request.headers.get("Authorization", "").strip()
        if not auth_header:
            raise MissingTokenError("Missing Authorization header")

        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer":
            raise MissingTokenError("Invalid authorization scheme (expected 'Bearer')")

        token = token.strip()
        if not token:
            raise MissingTokenError("Bearer token is empty")
        return token


class CookieExtractor:
    """Extracts the access token from a cookie.

    Cookies carrying tokens should be HttpOnly, Secure and SameSite.
    """

    def __init__(self, cookie_name: str = "access_token") -> None:
        if not cookie_name or not cookie_name.strip():
            raise ValueError("cookie_name cannot be empty")
        self._name = cookie_name

    def extract(self) -> str:
        token = request.cookies.get(self._name)
        if not token:
            raise MissingTokenError(f"Missing cookie '{self._name}'", cookie=self._name)
        return token
