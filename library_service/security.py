"""Password hashing, bearer tokens and the auth decorators used by the routes.

Tokens are flask-jwt-extended access tokens: the subject is the ``user_id``
and a ``role`` claim carries the account role. Clients send them as
``Authorization: Bearer <token>``.
"""

from dataclasses import dataclass
from functools import wraps

from flask import abort, g, jsonify
from flask_jwt_extended import JWTManager, create_access_token, get_jwt, get_jwt_identity, jwt_required
from werkzeug.security import check_password_hash, generate_password_hash

from .models import Role

jwt = JWTManager()


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    role: Role

    @property
    def is_admin(self):
        return self.role is Role.ADMIN


def hash_password(password):
    return generate_password_hash(password)


def verify_password(password_hash, password):
    return check_password_hash(password_hash, password)


def issue_token(user_id, role):
    return create_access_token(identity=user_id, additional_claims={"role": role.value})


def _unauthorized(message):
    return jsonify({"error": message, "code": "unauthorized"}), 401


@jwt.unauthorized_loader
def _missing_token(reason):
    return _unauthorized("No token provided")


@jwt.invalid_token_loader
def _invalid_token(reason):
    return _unauthorized("Token is not valid")


@jwt.expired_token_loader
def _expired_token(jwt_header, jwt_payload):
    return _unauthorized("Token expired")


def require_auth(func):
    @wraps(func)
    @jwt_required()
    def wrapper(*args, **kwargs):
        try:
            g.current_user = CurrentUser(user_id=get_jwt_identity(), role=Role(get_jwt()["role"]))
        except (KeyError, ValueError):
            abort(401, description="Token is not valid")
        return func(*args, **kwargs)

    return wrapper


def require_role(role):
    def decorator(func):
        @wraps(func)
        @require_auth
        def wrapper(*args, **kwargs):
            if g.current_user.role is not role:
                abort(403, description=f"Not authorized. Requires {role.value} privileges")
            return func(*args, **kwargs)

        return wrapper

    return decorator


def require_self_or_admin(user_id):
    """Abort 403 unless the caller is ``user_id`` or an administrator."""
    current = g.current_user
    if not current.is_admin and current.user_id != user_id:
        abort(403, description="Access denied: only the owner or an admin may do this")
