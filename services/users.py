"""Accounts, trials and the subscription lifecycle."""
import logging
import math
from datetime import datetime, timedelta

from flask import current_app
from itsdangerous import BadSignature, URLSafeTimedSerializer

from authz import Actor, require_owner
from errors import NotFound, ValidationFailed
from models import User, db, utcnow
from services.patches import EMAIL_RE, PatchSchema, apply_patch, choice, optional_text, timestamp

logger = logging.getLogger(__name__)

PROFILE_PATCH = PatchSchema(name=optional_text)
SUBSCRIPTION_PATCH = PatchSchema(
    billing_customer_id=optional_text,
    billing_subscription_id=optional_text,
    subscription_status=choice("none", "trialing", "active", "expired"),
    current_period_end=timestamp,
)

# Payment provider statuses folded onto ours
PROVIDER_STATUS = {
    "trialing": "trialing",
    "active": "active",
    "incomplete": "none",
    "past_due": "expired",
    "unpaid": "expired",
    "canceled": "expired",
    "incomplete_expired": "expired",
    "paused": "expired",
}


def _check_password(password) -> str:
    min_length = current_app.config["PASSWORD_MIN_LENGTH"]
    if not isinstance(password, str) or len(password) < min_length:
        raise ValidationFailed(f"Password must be at least {min_length} characters")
    return password


def register(email: str, password: str, name: str | None = None) -> User:
    email = email.strip().lower() if isinstance(email, str) else ""
    if not EMAIL_RE.match(email):
        raise ValidationFailed("Invalid email address")
    _check_password(password)
    if User.query.filter_by(email=email).first():
        raise ValidationFailed("Email already registered.")

    now = utcnow()
    user = User(
        email=email,
        name=optional_text(name),
        subscription_status="trialing",
        trial_ends_at=now + timedelta(days=current_app.config["TRIAL_DAYS"]),
        created_at=now,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    logger.info("Registered user %s", user.id)
    return user


def authenticate(email: str, password: str) -> User | None:
    if not isinstance(email, str) or not isinstance(password, str):
        return None
    user = User.query.filter_by(email=email.strip().lower()).first()
    if user and user.check_password(password):
        return user
    return None


# --- Password reset ---
# A reset token carries the tail of the current password hash, so it stops
# working once the password changes.

def _reset_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.secret_key, salt="password-reset")


def _hash_tail(user: User) -> str:
    return user.password_hash[-16:]


def request_password_reset(email: str) -> str | None:
    """Signed reset token for the account behind ``email``, None if there is none."""
    if not isinstance(email, str):
        return None
    user = User.query.filter_by(email=email.strip().lower()).first()
    if user is None:
        logger.info("Password reset requested for an unknown address")
        return None
    logger.info("Password reset requested for user %s", user.id)
    return _reset_serializer().dumps({"uid": user.id, "pw": _hash_tail(user)})


def reset_password(token: str, password: str) -> User:
    if not isinstance(token, str) or not token:
        raise ValidationFailed("Invalid or expired reset link.")
    try:
        data = _reset_serializer().loads(token, max_age=current_app.config["PASSWORD_RESET_MAX_AGE"])
    except BadSignature as exc:
        raise ValidationFailed("Invalid or expired reset link.") from exc
    user = db.session.get(User, data.get("uid")) if isinstance(data, dict) else None
    if user is None or data.get("pw") != _hash_tail(user):
        raise ValidationFailed("Invalid or expired reset link.")
    user.set_password(_check_password(password))
    db.session.commit()
    logger.info("Password reset for user %s", user.id)
    return user


def current_user_record(actor: Actor) -> User:
    user = db.session.get(User, require_owner(actor))
    if user is None:
        raise NotFound("User not found.")
    return user


def update_profile(actor: Actor, patch: dict) -> None:
    user = current_user_record(actor)
    if apply_patch(user, PROFILE_PATCH.clean(patch)):
        db.session.commit()


def update_subscription(user_id: int, patch: dict) -> None:
    """Partial update from the billing side; an unknown user is ignored."""
    user = db.session.get(User, user_id)
    if user is None:
        logger.warning("Subscription update for unknown user %s", user_id)
        return
    if not apply_patch(user, SUBSCRIPTION_PATCH.clean(patch)):
        return
    db.session.commit()
    logger.info("Subscription for user %s now %s", user.id, user.subscription_status)


def subscription_state(user: User | None, now: datetime | None = None) -> dict:
    if user is None:
        return {"isActive": False, "isTrial": False, "isExpired": True, "daysLeft": 0, "status": "none"}
    now = now or utcnow()
    status = user.subscription_status or "none"
    is_trial = status == "trialing" and user.trial_ends_at is not None and user.trial_ends_at > now
    is_active = status == "active" or is_trial

    days_left = 0
    if is_trial:
        days_left = _days_until(user.trial_ends_at, now)
    elif status == "active" and user.current_period_end and user.current_period_end > now:
        days_left = _days_until(user.current_period_end, now)

    return {
        "isActive": is_active,
        "isTrial": is_trial,
        "isExpired": not is_active,
        "daysLeft": days_left,
        "status": status,
    }


def _days_until(moment: datetime, now: datetime) -> int:
    return max(0, math.ceil((moment - now).total_seconds() / 86400))


def _period_end(obj: dict):
    end = obj.get("current_period_end")
    if end is None:
        items = (obj.get("items") or {}).get("data") or []
        end = items[0].get("current_period_end") if items else None
    return end * 1000 if end else None


def _ref_id(value):
    if isinstance(value, dict):
        return value.get("id")
    return value


def _user_for(obj: dict) -> User | None:
    user_id = (obj.get("metadata") or {}).get("userId") or (obj.get("metadata") or {}).get("user_id")
    if user_id is not None:
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None
    customer_id = _ref_id(obj.get("customer"))
    if customer_id:
        return User.query.filter_by(billing_customer_id=customer_id).first()
    return None


def apply_billing_event(event: dict) -> bool:
    """Apply a verified payment-provider event; False when it was ignored."""
    kind = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    user = _user_for(obj)
    if user is None:
        logger.info("Billing event %s matched no user", kind)
        return False

    if kind == "checkout.session.completed":
        subscription = obj.get("subscription")
        patch = {
            "billing_customer_id": _ref_id(obj.get("customer")),
            "billing_subscription_id": _ref_id(subscription),
            "subscription_status": "active",
        }
        if isinstance(subscription, dict):
            patch["subscription_status"] = PROVIDER_STATUS.get(subscription.get("status"), "active")
            if _period_end(subscription):
                patch["current_period_end"] = _period_end(subscription)
        update_subscription(user.id, {k: v for k, v in patch.items() if v is not None})
    elif kind == "customer.subscription.updated":
        patch = {"subscription_status": PROVIDER_STATUS.get(obj.get("status"), "expired")}
        if _period_end(obj):
            patch["current_period_end"] = _period_end(obj)
        update_subscription(user.id, patch)
    elif kind in ("customer.subscription.deleted", "invoice.payment_failed"):
        update_subscription(user.id, {"subscription_status": "expired"})
    else:
        return False
    return True
