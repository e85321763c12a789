import logging

from flask import Blueprint, current_app, g, jsonify
from sqlalchemy import select

from ..database import get_db, next_identifier
from ..errors import NotFoundError, StateConflictError
from ..models import Role, User
from ..security import hash_password, issue_token, require_auth, verify_password
from ..validators import json_body, require_fields, require_text

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _token_response(user, status=200):
    return (
        jsonify({"token": issue_token(user.user_id, user.role), "user": user.to_dict()}),
        status,
    )


@bp.post("/register")
def register():
    """
    Request JSON:
      {
        "email": "asha@example.com",
        "password": "...",
        "name": "Asha Patil",
        "phone": "9800000000",  # optional
        "role": "STUDENT"        # ADMIN only when admin registration is enabled
      }
    """
    data = json_body()
    require_fields(data, "email", "password", "name")
    require_text(data, "email", "password", "name", "phone", "role")

    role = Role.STUDENT
    if data.get("role") == Role.ADMIN.value and current_app.config["ALLOW_ADMIN_REGISTRATION"]:
        role = Role.ADMIN

    with get_db().session_scope() as session:
        existing = session.execute(
            select(User).where(User.email == data["email"])
        ).scalar_one_or_none()
        if existing:
            raise StateConflictError("User already exists", code="email_taken", details={"email": data["email"]})

        user = User(
            user_id=next_identifier(session, User.user_id, "U"),
            email=data["email"],
            password_hash=hash_password(data["password"]),
            name=data["name"],
            phone=data.get("phone"),
            role=role,
        )
        session.add(user)

    logger.info("Registered %s user %s", user.role.value, user.user_id)
    return _token_response(user, 201)


@bp.post("/login")
def login():
    data = json_body()
    require_fields(data, "email", "password")
    require_text(data, "email", "password")

    session = get_db().SessionLocal()
    try:
        user = session.execute(
            select(User).where(User.email == data["email"])
        ).scalar_one_or_none()
    finally:
        session.close()

    if not user or not verify_password(user.password_hash, data["password"]):
        logger.warning("Failed login for %s", data["email"])
        return jsonify({"error": "Invalid credentials", "code": "invalid_credentials"}), 401

    return _token_response(user)


@bp.post("/logout")
@require_auth
def logout():
    # tokens are stateless; the client discards its copy
    return jsonify({"message": "Logged out successfully"})


@bp.get("/verify")
@require_auth
def verify():
    session = get_db().SessionLocal()
    try:
        user = session.get(User, g.current_user.user_id)
        if not user:
            raise NotFoundError("User not found", code="user_not_found")
        return jsonify({"message": "Token verified successfully", "user": user.to_dict()})
    finally:
        session.close()
