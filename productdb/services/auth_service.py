"""Auth service — signup, login, JWT issue/verify.

Tokens are HS256 JWTs signed with JWT_SECRET and carry the user's id,
email, display name and role. The API never keeps server-side sessions;
the decoded token becomes the Principal used for attribution.
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app
from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from productdb.errors import Conflict, ValidationFailed
from productdb.extensions import db
from productdb.models.user import User
from productdb.services import audit_service

logger = logging.getLogger(__name__)


class InvalidToken(Exception):
    pass


class InvalidCredentials(Exception):
    pass


class Principal:
    """The authenticated caller, as attributed in created_by/updated_by and audit."""

    def __init__(self, id, display_name, email=None, role="user"):
        self.id = id
        self.display_name = display_name
        self.email = email
        self.role = role

    def __repr__(self):
        return f"<Principal {self.id} {self.display_name}>"


def generate_token(user):
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "displayName": user.display_name,
        "userRole": user.user_role,
        "iat": now,
        "exp": now + timedelta(minutes=current_app.config["JWT_EXPIRES_MINUTES"]),
    }
    return jwt.encode(
        claims,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config["JWT_ALGORITHM"],
    )


def decode_token(token):
    """Verify a token and return its Principal. Raises InvalidToken."""
    try:
        claims = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except JWTError as e:
        raise InvalidToken(str(e)) from e

    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise InvalidToken("Token has no valid subject.")

    return Principal(
        id=user_id,
        display_name=claims.get("displayName"),
        email=claims.get("email"),
        role=claims.get("userRole", "user"),
    )


def user_payload(user):
    return {
        "id": user.id,
        "email": user.email,
        "displayName": user.display_name,
        "user_role": user.user_role,
    }


def signup(email, password, display_name):
    """Create a user. Returns (token, user).

    Raises:
        ValidationFailed: missing fields.
        Conflict: email already registered.
    """
    email = (email or "").lower().strip()
    display_name = (display_name or "").strip()
    if not email or not password or not display_name:
        raise ValidationFailed("All fields are required.")

    if User.query.filter_by(email=email).first():
        raise Conflict("User already exists.")

    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        display_name=display_name,
        user_role="user",
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent signup for the same email
        db.session.rollback()
        raise Conflict("User already exists.")

    audit_service.record(
        "SIGNUP", "users", user.id, user.id, user.display_name,
        {"email": user.email, "role": user.user_role},
    )
    return generate_token(user), user


def login(email, password):
    """Check credentials. Returns (token, user).

    Raises:
        ValidationFailed: missing fields.
        InvalidCredentials: unknown email or wrong password.
    """
    email = (email or "").lower().strip()
    if not email or not password:
        raise ValidationFailed("Email and password are required.")

    user = User.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        logger.info(f"Failed login for {email}")
        raise InvalidCredentials()

    audit_service.record(
        "LOGIN", "users", user.id, user.id, user.display_name,
        {"email": user.email, "role": user.user_role},
    )
    return generate_token(user), user


def logout(principal):
    audit_service.record(
        "LOGOUT", "users", principal.id, principal.id, principal.display_name,
        {"message": "User logged out."},
    )
