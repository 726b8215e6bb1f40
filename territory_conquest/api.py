"""HTTP surface for territory claims."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from flask import Flask, jsonify, request
from flask.typing import ResponseReturnValue

from .config import DEV_AUTH_TOKENS
from .errors import AuthFailure, ClaimError, InvalidPath
from .models import ClaimRequest
from .services import ClaimService

LOGGER = logging.getLogger(__name__)

Authenticator = Callable[[str], Optional[str]]


class StaticTokenAuthenticator:
    """Resolve bearer tokens from a fixed ``token -> user id`` table."""

    def __init__(self, tokens: Dict[str, str]) -> None:
        self._tokens = dict(tokens)

    @classmethod
    def from_config(cls, raw: str = DEV_AUTH_TOKENS) -> "StaticTokenAuthenticator":
        tokens: Dict[str, str] = {}
        for pair in raw.split(","):
            token, _, user_id = pair.strip().partition(":")
            if token and user_id:
                tokens[token] = user_id
        return cls(tokens)

    def __call__(self, token: str) -> Optional[str]:
        return self._tokens.get(token)


def _bearer_token(header: str | None) -> str:
    if not header:
        return ""
    return header.replace("Bearer ", "").strip()


def create_app(service: ClaimService, authenticator: Authenticator) -> Flask:
    app = Flask(__name__)

    @app.errorhandler(ClaimError)
    def handle_claim_error(exc: ClaimError) -> ResponseReturnValue:
        if exc.status >= 500:
            LOGGER.error("Claim failed: %s", exc, exc_info=True)
        return jsonify(exc.to_payload()), exc.status

    @app.get("/health")
    def health() -> ResponseReturnValue:
        return jsonify({"status": "ok"})

    @app.post("/claims")
    def create_claim() -> ResponseReturnValue:
        token = _bearer_token(request.headers.get("Authorization"))
        if not token:
            raise AuthFailure("Missing authentication token")
        user_id = authenticator(token)
        if not user_id:
            raise AuthFailure("Unable to authenticate the user")

        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            raise InvalidPath("Request body must be a JSON object")
        try:
            claim_request = ClaimRequest.from_payload(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidPath(f"Invalid path: {exc}") from exc

        try:
            result = service.process(user_id, claim_request)
        except ClaimError:
            raise
        except Exception as exc:
            LOGGER.error("Unexpected claim failure for user=%s", user_id, exc_info=True)
            return jsonify({"error": str(exc) or "Unexpected error"}), 500
        return jsonify({"success": True, "data": result.to_dict()})

    return app
