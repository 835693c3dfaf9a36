"""
Custom route decorators for access control.

- token_required: verifies the Bearer JWT and sets g.principal.
"""

import logging
from functools import wraps

from flask import g, jsonify, request

from productdb.services.auth_service import InvalidToken, decode_token

logger = logging.getLogger(__name__)


def token_required(f):
    """Require a valid Authorization: Bearer <token> header."""

    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return jsonify(
                {"message": "Authentication required: No token provided."}
            ), 401

        token = auth_header[7:].strip()
        try:
            g.principal = decode_token(token)
        except InvalidToken as e:
            logger.warning(f"JWT verification failed: {e}")
            return jsonify({"message": "Invalid or expired token."}), 401

        return f(*args, **kwargs)

    return decorated
