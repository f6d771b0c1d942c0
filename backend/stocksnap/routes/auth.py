# Overview: Flask API routes for authentication.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import StockSnapError
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_SELLER
from ..services import auth_service, session_service
from ..decorators import require_auth, bearer_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _caller_is_admin() -> bool:
    token = bearer_token()
    if not token:
        return False
    context = session_service.validate_session(token)
    return bool(context and context.user.is_admin)


@auth_bp.post("/register")
def register_route():
    """
    Register a user.

    The very first account may be an admin; after that only an admin
    (bearer token) can create further admins.
    """
    data = request.get_json(silent=True) or {}
    role = data.get("role", ROLE_SELLER)

    if role == ROLE_ADMIN and db.session.query(User).count() > 0 and not _caller_is_admin():
        return jsonify({"error": "Only an admin can create admin accounts"}), 403

    try:
        user = auth_service.create_user(
            email=data.get("email"),
            password=data.get("password"),
            display_name=data.get("display_name"),
            role=role,
            bcrypt_rounds=current_app.config.get("BCRYPT_ROUNDS", 12),
        )
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict()}), 201


@auth_bp.post("/login")
def login_route():
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.authenticate(data.get("email"), data.get("password"))
        _, token = session_service.create_session(
            user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except StockSnapError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"token": token, "user": user.to_dict()}), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(bearer_token())
    return jsonify({"ok": True}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
