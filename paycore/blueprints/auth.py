"""Auth blueprint - /api/auth/*

Minimal JSON login/logout so the payment endpoints can identify the
user through a Flask-Login session cookie.
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from paycore.extensions import limiter
from paycore.models.user import User

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    """Expects: { email, password }. Sets the session cookie on success."""
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        logger.info(f"Failed login attempt for {email}")
        return jsonify({"success": False, "error": "Invalid email or password"}), 401

    if not user.is_active:
        return jsonify({"success": False, "error": "Account is disabled"}), 403

    login_user(user)
    return jsonify({"success": True, "user": {"id": user.id, "email": user.email}})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})
