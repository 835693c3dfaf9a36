"""Auth blueprint — /api/auth/*

Route Map:
  POST /api/auth/signup  — Create account, returns {token, user}
  POST /api/auth/login   — Check credentials, returns {token, user}
  POST /api/auth/logout  — Record the logout (token required)

Tokens are stateless; logout only writes the audit entry and the client
drops its token.
"""

from flask import Blueprint, g, jsonify, request

from productdb.decorators import token_required
from productdb.extensions import limiter
from productdb.services import auth_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _body():
    """JSON body, falling back to form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


@auth_bp.route("/signup", methods=["POST"])
@limiter.limit("10 per minute")
def signup():
    data = _body()
    token, user = auth_service.signup(
        data.get("email"), data.get("password"), data.get("displayName")
    )
    return jsonify({"token": token, "user": auth_service.user_payload(user)}), 201


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    data = _body()
    try:
        token, user = auth_service.login(data.get("email"), data.get("password"))
    except auth_service.InvalidCredentials:
        return jsonify({"message": "Invalid credentials."}), 401
    return jsonify({"token": token, "user": auth_service.user_payload(user)}), 200


@auth_bp.route("/logout", methods=["POST"])
@token_required
def logout():
    auth_service.logout(g.principal)
    return jsonify({"message": "Logout successfully logged."}), 200
