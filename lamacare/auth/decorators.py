from functools import wraps

from flask import g, jsonify, request
from flask_login import current_user

from ..errors import Forbidden, Unauthorized
from ..extensions import db, login_manager
from ..models.user import User
from .tokens import ACCESS, bearer_token, decode_token


@login_manager.request_loader
def load_user_from_request(req):
    """Resolve ``Authorization: Bearer <jwt>`` into the requesting user."""
    raw = bearer_token(req)
    if raw is None:
        return None
    try:
        details = decode_token(raw, purpose=ACCESS)
    except Unauthorized:
        return None
    user = db.session.get(User, details.user_id)
    if user is None or user.role != details.role:
        return None
    g.token = details
    return user


@login_manager.unauthorized_handler
def _unauthorized():
    return jsonify({"message": "Unauthorization Token."}), 401


def roles_required(*roles):
    """Must sit below ``login_required``; rejects users whose role is not listed."""

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if current_user.role not in roles:
                raise Forbidden()
            return view(*args, **kwargs)

        return wrapped

    return decorator


def require_self_or_admin(user_id: str) -> None:
    if current_user.role != "admin" and current_user.id != user_id:
        raise Forbidden("you can only act on your own records")


def reset_token_from_request() -> str:
    token = bearer_token(request) or request.args.get("token")
    if not token:
        raise Unauthorized()
    return token
