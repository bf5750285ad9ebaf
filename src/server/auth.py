"""Authentication endpoints: register, login, logout, verify, profile."""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

MIN_PASSWORD_LENGTH = 6
TOKEN_SALT = "bp-buddy-auth"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def generate_token(user_id: str, email: str) -> str:
    return _serializer().dumps({"userId": user_id, "email": email})


def decode_token(token: str) -> dict | None:
    """Return the token payload, or None if it is invalid or expired."""
    max_age = current_app.config["TOKEN_MAX_AGE_DAYS"] * 24 * 60 * 60
    try:
        return _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        logger.info("Rejected expired token")
        return None
    except BadSignature:
        return None


def _bearer_payload() -> tuple[dict | None, tuple[dict, int] | None]:
    """Decode the Authorization header, returning (payload, error_response)."""
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None, ({"success": False, "error": "No token provided"}, 401)

    payload = decode_token(header[len("Bearer "):])
    if payload is None:
        return None, ({"success": False, "error": "Invalid token"}, 401)
    return payload, None


def _public(user: dict) -> dict:
    return {key: value for key, value in user.items() if key != "password"}


@bp.post("/register")
def register():
    db = current_app.extensions["bp_buddy_db"]
    body = request.get_json(silent=True) or {}
    email, password, name = body.get("email"), body.get("password"), body.get("name")

    if not email or not password or not name:
        return {"success": False, "error": "Email, password, and name are required"}, 400

    if len(password) < MIN_PASSWORD_LENGTH:
        return {
            "success": False,
            "error": f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
        }, 400

    if db.get_user_by_email(email):
        return {"success": False, "error": "User with this email already exists"}, 409

    user = db.create_user(
        email=email,
        name=name,
        password_hash=generate_password_hash(password),
        profile=body.get("profile"),
    )
    token = generate_token(user["userId"], user["email"])
    return {"success": True, "data": {"user": _public(user), "token": token}}, 201


@bp.post("/login")
def login():
    db = current_app.extensions["bp_buddy_db"]
    body = request.get_json(silent=True) or {}
    email, password = body.get("email"), body.get("password")

    if not email or not password:
        return {"success": False, "error": "Email and password are required"}, 400

    user = db.get_user_by_email(email)
    if user is None or not check_password_hash(user["password"], password):
        logger.info(f"Failed login for {email}")
        return {"success": False, "error": "Invalid email or password"}, 401

    db.touch_last_login(user["userId"])
    token = generate_token(user["userId"], user["email"])
    return {"success": True, "data": {"user": _public(user), "token": token}}


@bp.post("/logout")
def logout():
    # Tokens are stateless; nothing to invalidate server-side
    return {"success": True, "message": "Logged out successfully"}


@bp.get("/verify")
def verify():
    db = current_app.extensions["bp_buddy_db"]
    payload, error = _bearer_payload()
    if error:
        return error

    if db.get_user(payload["userId"]) is None:
        return {"success": False, "error": "User not found"}, 401

    return {"success": True, "data": {"userId": payload["userId"], "email": payload["email"]}}


@bp.put("/profile")
def update_profile():
    db = current_app.extensions["bp_buddy_db"]
    payload, error = _bearer_payload()
    if error:
        return error

    profile = (request.get_json(silent=True) or {}).get("profile")
    if not profile:
        return {"success": False, "error": "Profile data is required"}, 400

    user = db.update_profile(payload["userId"], profile)
    if user is None:
        return {"success": False, "error": "User not found"}, 404

    return {"success": True, "data": _public(user)}
