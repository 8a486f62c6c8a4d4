import logging
from urllib.parse import urlencode

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from errors import ValidationFailed
from routes import current_actor, json_body, ok, patch_body
from services import users

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.post("/register")
def register():
    data = json_body()
    user = users.register(data.get("email"), data.get("password"), name=data.get("name"))
    login_user(user)
    return ok(user=user.to_dict()), 201


@auth_bp.post("/login")
def login():
    data = json_body()
    user = users.authenticate(data.get("email"), data.get("password"))
    if user is None:
        return jsonify({"ok": False, "error": "Invalid email or password."}), 401
    login_user(user, remember=bool(data.get("remember")))
    return ok(user=user.to_dict())


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return ok()


@auth_bp.get("/me")
def me():
    if not current_user.is_authenticated:
        return ok(user=None)
    return ok(user=current_user.to_dict())


@auth_bp.patch("/me")
def update_me():
    actor = current_actor()
    users.update_profile(actor, patch_body())
    return ok(user=users.current_user_record(actor).to_dict())


@auth_bp.get("/subscription")
def subscription():
    user = current_user if current_user.is_authenticated else None
    return ok(subscription=users.subscription_state(user))


@auth_bp.post("/forgot-password")
def forgot_password():
    token = users.request_password_reset(json_body().get("email"))
    if token is not None:
        # Mail delivery happens outside the app
        link = f"{request.url_root}reset-password?{urlencode({'token': token})}"
        logger.info("Password reset link: %s", link)
    # Same answer whether or not the account exists
    return ok()


@auth_bp.post("/reset-password")
def reset_password():
    data = json_body()
    password = data.get("password")
    if "password2" in data and data.get("password2") != password:
        raise ValidationFailed("Passwords do not match.")
    user = users.reset_password(data.get("token"), password)
    login_user(user)
    return ok(user=user.to_dict())
