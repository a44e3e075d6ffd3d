"""Token renewal endpoints as a Flask blueprint.

Routes (relative to the blueprint's url_prefix):
- POST /refresh          {"refresh_token": ...} -> new token pair
- POST /logout           {"refresh_token": ...} -> 204
- GET  /public-key       PEM public key
- GET  /.well-known/jwks.json

Login itself (credential checks) is the application's business: it calls
SessionService.login() once the user is authenticated.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import Blueprint, jsonify, request

from .errors import AuthError, MissingTokenError
from .flask_extension import error_response

if TYPE_CHECKING:
    from .session import SessionService


def _refresh_token_from_body() -> str:
    body = request.get_json(silent=True) or {}
    token = body.get("refresh_token")
    if not isinstance(token, str) or not token:
        raise MissingTokenError("Request body has no refresh_token")
    return token


def create_auth_blueprint(service: SessionService, name: str = "auth_session") -> Blueprint:
    """Build the renewal/logout/key endpoints for a SessionService."""
    bp = Blueprint(name, __name__)
    bp.register_error_handler(AuthError, error_response)

    @bp.post("/refresh")
    def refresh():  # type: ignore[no-untyped-def]
        pair = service.renew(
            _refresh_token_from_body(),
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify(pair.to_dict())

    @bp.post("/logout")
    def logout():  # type: ignore[no-untyped-def]
        service.logout(_refresh_token_from_body())
        return "", 204

    @bp.get("/public-key")
    def public_key():  # type: ignore[no-untyped-def]
        return jsonify(public_key=service.public_key_pem())

    @bp.get("/.well-known/jwks.json")
    def jwks():  # type: ignore[no-untyped-def]
        return jsonify(service.public_jwks())

    return bp
