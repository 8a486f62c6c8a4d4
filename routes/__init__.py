"""Blueprint helpers: who is calling, JSON in and out, file responses."""
import re

from flask import Response, current_app, jsonify, request
from flask_login import current_user
from itsdangerous import BadSignature, URLSafeTimedSerializer

from authz import Owner
from errors import ValidationFailed
from services import member_access as member_access_service

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


def current_actor():
    """Signed-in owner, else the band member behind the cookies, else None."""
    if current_user.is_authenticated:
        return Owner(user_id=current_user.id)
    session = current_member_session()
    return session.actor if session else None


def _member_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.secret_key, salt="member-auth")


def sign_member_token(token: str) -> str:
    return _member_serializer().dumps(token)


def member_token_from_request() -> str | None:
    """Token from the cookie pair; the httpOnly half must vouch for the readable half."""
    token = request.cookies.get(current_app.config["MEMBER_TOKEN_COOKIE"])
    signed = request.cookies.get(current_app.config["MEMBER_AUTH_COOKIE"])
    if not token or not signed:
        return None
    try:
        vouched = _member_serializer().loads(signed, max_age=current_app.config["MEMBER_COOKIE_MAX_AGE"])
    except BadSignature:
        return None
    return token if vouched == token else None


def current_member_session():
    return member_access_service.resolve_session(member_token_from_request())


def set_member_cookies(resp: Response, token: str) -> Response:
    cfg = current_app.config
    secure = not (current_app.debug or current_app.testing)
    resp.set_cookie(cfg["MEMBER_AUTH_COOKIE"], sign_member_token(token), max_age=cfg["MEMBER_COOKIE_MAX_AGE"],
                    httponly=True, samesite="Lax", secure=secure)
    resp.set_cookie(cfg["MEMBER_TOKEN_COOKIE"], token, max_age=cfg["MEMBER_COOKIE_MAX_AGE"],
                    httponly=False, samesite="Lax", secure=secure)
    return resp


def clear_member_cookies(resp: Response) -> Response:
    resp.delete_cookie(current_app.config["MEMBER_AUTH_COOKIE"])
    resp.delete_cookie(current_app.config["MEMBER_TOKEN_COOKIE"])
    return resp


def snake_case(name: str) -> str:
    return _CAMEL.sub("_", name).lower()


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailed("Expected a JSON object.")
    return data


def patch_body(key: str = "patch") -> dict:
    """The body's ``patch`` object (or the body itself) with snake_case keys."""
    data = json_body()
    patch = data.get(key, data)
    if not isinstance(patch, dict):
        raise ValidationFailed("patch must be an object.")
    return {snake_case(k): v for k, v in patch.items()}


def arg_bool(name: str, default: bool = False) -> bool:
    value = request.args.get(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes")


def ok(**data):
    return jsonify({"ok": True, **data})


def pdf_response(filename: str, data: bytes) -> Response:
    resp = Response(data, mimetype="application/pdf")
    resp.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return resp


def int_field(data: dict, name: str, default: int = 0) -> int:
    try:
        return int(data.get(name, default))
    except (TypeError, ValueError, OverflowError):
        raise ValidationFailed(f"{name} must be an integer.") from None
