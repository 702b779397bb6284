from flask import Blueprint, current_app, request, jsonify, session
from loguru import logger
from flask_login import login_user, logout_user, login_required, current_user
from .client import ApiError, error_message
from .models import User
from .services import AuthService
from .state import api_client, USER_SESSION_KEY, clear_booking_context, flow_key

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _form():
    return request.get_json(silent=True) or request.form or {}


# login view: validate credentials against the API, keep its tokens, log user in
@auth_bp.route("/login", methods=["POST"])
def login():
    data = _form()
    identifier = (data.get("identifier") or data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not identifier or not password:
        return jsonify({"ok": False, "error": "Please enter your email or phone and password."}), 400

    auth = AuthService(api_client())
    try:
        result = auth.login(identifier, password)
        user_data = result.get("user") or auth.current_user()
    except ApiError as exc:
        return jsonify({"ok": False, "error": error_message(exc, "Invalid email or password.")}), exc.status_code or 502

    user = User.from_payload(user_data or {})
    session[USER_SESSION_KEY] = user.to_payload()
    login_user(user)
    return jsonify({"ok": True, "user": user.to_payload()})


# registration view: basic signup, the API enforces uniqueness
@auth_bp.route("/register", methods=["POST"])
def register():
    data = _form()
    email = (data.get("email") or "").strip().lower()
    phone = (data.get("phone") or "").strip()
    full_name = (data.get("fullName") or "").strip()
    pwd = data.get("password") or ""
    confirm = data.get("confirm")

    if not email or not pwd or not full_name:
        return jsonify({"ok": False, "error": "Please fill in name, email and password."}), 400
    if confirm is not None and pwd != confirm:
        return jsonify({"ok": False, "error": "Passwords do not match."}), 400

    try:
        AuthService(api_client()).register(email, phone, pwd, full_name)
    except ApiError as exc:
        return jsonify({"ok": False, "error": error_message(exc, "Registration failed.")}), exc.status_code or 502
    return jsonify({"ok": True, "message": "Account created. Please log in."}), 201


@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    email = (_form().get("email") or "").strip().lower()
    if not email:
        return jsonify({"ok": False, "error": "Please enter your email."}), 400
    try:
        result = AuthService(api_client()).forgot_password(email) or {}
    except ApiError as exc:
        return jsonify({"ok": False, "error": error_message(exc)}), exc.status_code or 502
    return jsonify({"ok": True, "message": result.get("message") if isinstance(result, dict) else None})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"ok": True, "user": current_user.to_payload()})


# logout view: end the API session and forget the booking flow
@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    try:
        AuthService(api_client()).logout()
    except ApiError as exc:
        logger.warning(f"logout call failed, tokens dropped locally: {error_message(exc)}")
    logout_user()
    clear_booking_context()
    current_app.extensions["passenger_screens"].unmount(flow_key())
    return jsonify({"ok": True})
