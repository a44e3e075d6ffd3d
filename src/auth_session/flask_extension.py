"""Flask integration for access token checks.

This is the transport boundary of the session core: it is the only place
where error kinds turn into HTTP status codes.

Key Components:
- AuthExtension: route decorator verifying the access token
- status_for: error kind -> HTTP status mapping
- current_claims: verified claims of the current request

Request flow:
1. Extract token from request (header or cookie)
2. Verify structure, signature and expiration
3. Store verified claims in ``flask.g.jwt`` for the view
4. Convert AuthError to a JSON error response
"""

from __future__ import annotations

from collections.abc import Mapping
from functools import wraps
from typing import TYPE_CHECKING, Any, Final

from flask import Flask, g, jsonify

from .errors import AuthError, ErrorKind
from .extractors import BearerExtractor

if TYPE_CHECKING:
    from flask import Response

    from .protocols import Claims, Extractor, TokenVerifier, ViewFunc

_EXT_KEY: Final[str] = "auth_session"
"""Flask extensions registry key for AuthExtension."""

_STATUS_BY_KIND: Final[Mapping[ErrorKind, int]] = {
    ErrorKind.MISSING_TOKEN: 401,
    ErrorKind.MALFORMED_TOKEN: 401,
    ErrorKind.INVALID_SIGNATURE: 401,
    ErrorKind.EXPIRED_TOKEN: 401,
    ErrorKind.NOT_FOUND: 401,
    ErrorKind.REVOKED_TOKEN: 401,
    ErrorKind.STORE_UNAVAILABLE: 503,
    ErrorKind.KEY_GENERATION: 500,
    ErrorKind.SIGNING: 500,
}

_PUBLIC_MESSAGES: Final[Mapping[ErrorKind, str]] = {
    ErrorKind.MISSING_TOKEN: "Missing token",
    ErrorKind.MALFORMED_TOKEN: "Invalid token",
    ErrorKind.INVALID_SIGNATURE: "Invalid token",
    ErrorKind.EXPIRED_TOKEN: "Token has expired",
    ErrorKind.NOT_FOUND: "Invalid token",
    ErrorKind.REVOKED_TOKEN: "Token has been revoked",
    ErrorKind.STORE_UNAVAILABLE: "Service temporarily unavailable",
}


def status_for(error: AuthError) -> int:
    """Return the HTTP status for an auth error."""
    return _STATUS_BY_KIND.get(error.kind, 500)


def error_response(error: AuthError) -> tuple[Response, int]:
    """JSON body with the error kind and a generic message.

    Details such as the failing check stay in server logs.
    """
    message = _PUBLIC_MESSAGES.get(error.kind, "Internal error")
    return jsonify(error=error.kind.value, message=message), status_for(error)


class AuthExtension:
    """
    Flask decorator glue for access token authentication.

    Responsibilities:
    - Extract token from request
    - Verify token (TokenVerifier)
    - Store verified claims in ``flask.g.jwt``
    - Convert AuthError to HTTP responses

    Usage:
        auth = AuthExtension(verifier)
        auth.init_app(app)

        @app.get("/profile")
        @auth.require()
        def profile(): ...
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        extractor: Extractor | None = None,
    ) -> None:
        self._verifier: TokenVerifier = verifier
        self._extractor: Extractor = extractor or BearerExtractor()

    def init_app(
        self,
        app: Flask,
        *,
        verifier: TokenVerifier | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        """Register the extension and a JSON error handler for AuthError."""
        if verifier is not None:
            self._verifier = verifier
        if extractor is not None:
            self._extractor = extractor

        app.extensions[_EXT_KEY] = self
        app.register_error_handler(AuthError, error_response)

    def require(self):
        """Decorator protecting a view with access token verification.

        Error mapping (see status_for):
        - missing, malformed, bad signature, expired -> 401
        - store unavailable -> 503

        Side Effects:
            Writes verified claims to ``flask.g.jwt`` before calling the view.
        """

        def decorator(view: ViewFunc) -> ViewFunc:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    token = self._extractor.extract()
                    g.jwt = self._verifier.verify(token)
                except AuthError as e:
                    return error_response(e)
                return view(*args, **kwargs)

            return wrapper

        return decorator


def current_claims() -> Claims:
    """Return the claims verified for the current request.

    Raises:
        RuntimeError: If the view is not protected by AuthExtension.require().
    """
    claims = g.get("jwt")
    if claims is None:
        raise RuntimeError("No verified claims on this request; use AuthExtension.require()")
    return claims
