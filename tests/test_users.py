from datetime import datetime, timedelta

import pytest

from authz import BandMember
from errors import NotAuthorized, ValidationFailed
from models import User, db
from services import users

NOW = datetime(2026, 10, 1, 12, 0)


def test_register_starts_trial(ctx):
    user = users.register("  New@Example.com ", "longenough", name=" Nia ")
    assert user.email == "new@example.com"
    assert user.name == "Nia"
    assert user.subscription_status == "trialing"
    assert (user.trial_ends_at - user.created_at).days == ctx.config["TRIAL_DAYS"]
    assert user.check_password("longenough")


@pytest.mark.parametrize("email,password,message", [
    ("nope", "longenough", "Invalid email"),
    ("ok@example.com", "short", "at least 8"),
])
def test_register_validation(ctx, email, password, message):
    with pytest.raises(ValidationFailed, match=message):
        users.register(email, password)


def test_register_rejects_duplicate_email(owner):
    with pytest.raises(ValidationFailed, match="already registered"):
        users.register("OWNER@example.com", "password123")


def test_authenticate(owner):
    assert users.authenticate("owner@example.com", "password123").id == owner.user_id
    assert users.authenticate("owner@example.com", "wrong") is None
    assert users.authenticate("ghost@example.com", "password123") is None
    assert users.authenticate(12345, ["password123"]) is None


def test_password_reset_token_works_once(owner):
    token = users.request_password_reset(" OWNER@example.com ")
    user = users.reset_password(token, "brand-new-pass")
    assert user.id == owner.user_id
    assert users.authenticate("owner@example.com", "brand-new-pass") is not None
    assert users.authenticate("owner@example.com", "password123") is None
    with pytest.raises(ValidationFailed, match="Invalid or expired"):
        users.reset_password(token, "another-pass")


def test_password_reset_rejects_bad_tokens(ctx, owner):
    assert users.request_password_reset("ghost@example.com") is None
    assert users.request_password_reset(None) is None
    token = users.request_password_reset("owner@example.com")
    with pytest.raises(ValidationFailed, match="at least 8"):
        users.reset_password(token, "short")
    for bad in (token + "x", "", 12345):
        with pytest.raises(ValidationFailed, match="Invalid or expired"):
            users.reset_password(bad, "brand-new-pass")

    ctx.config["PASSWORD_RESET_MAX_AGE"] = -1
    with pytest.raises(ValidationFailed, match="Invalid or expired"):
        users.reset_password(token, "brand-new-pass")


def test_profile_requires_owner(owner):
    users.update_profile(owner, {"name": "  Renamed "})
    assert users.current_user_record(owner).name == "Renamed"
    with pytest.raises(ValidationFailed):
        users.update_profile(owner, {"email": "x@example.com"})
    with pytest.raises(NotAuthorized):
        users.current_user_record(BandMember(member_id=1, band_id=1))


def test_subscription_state_trial_and_expiry(owner):
    user = db.session.get(User, owner.user_id)
    user.trial_ends_at = NOW + timedelta(days=3, hours=1)
    state = users.subscription_state(user, now=NOW)
    assert state == {"isActive": True, "isTrial": True, "isExpired": False, "daysLeft": 4, "status": "trialing"}

    state = users.subscription_state(user, now=NOW + timedelta(days=5))
    assert (state["isActive"], state["isExpired"], state["daysLeft"]) == (False, True, 0)
    assert users.subscription_state(None)["status"] == "none"


def test_subscription_state_active(owner):
    users.update_subscription(owner.user_id, {
        "subscription_status": "active", "current_period_end": NOW + timedelta(days=10),
    })
    state = users.subscription_state(db.session.get(User, owner.user_id), now=NOW)
    assert (state["isActive"], state["isTrial"], state["daysLeft"]) == (True, False, 10)


def test_update_subscription_unknown_user_is_ignored(ctx):
    users.update_subscription(4242, {"subscription_status": "active"})
    assert User.query.count() == 0


def test_checkout_completed_links_customer(owner):
    applied = users.apply_billing_event({
        "type": "checkout.session.completed",
        "data": {"object": {
            "metadata": {"userId": str(owner.user_id)},
            "customer": "cus_123",
            "subscription": {"id": "sub_9", "status": "active", "current_period_end": 1800000000},
        }},
    })
    user = db.session.get(User, owner.user_id)
    assert applied
    assert (user.billing_customer_id, user.billing_subscription_id) == ("cus_123", "sub_9")
    assert user.subscription_status == "active"
    assert user.current_period_end == datetime(2027, 1, 15, 8, 0)


def test_subscription_events_found_by_customer(owner):
    users.update_subscription(owner.user_id, {"billing_customer_id": "cus_abc"})

    assert users.apply_billing_event({
        "type": "customer.subscription.updated",
        "data": {"object": {"customer": "cus_abc", "status": "past_due"}},
    })
    assert db.session.get(User, owner.user_id).subscription_status == "expired"

    assert users.apply_billing_event({
        "type": "customer.subscription.updated",
        "data": {"object": {"customer": {"id": "cus_abc"}, "status": "active"}},
    })
    assert db.session.get(User, owner.user_id).subscription_status == "active"

    assert users.apply_billing_event({
        "type": "invoice.payment_failed",
        "data": {"object": {"customer": "cus_abc"}},
    })
    assert db.session.get(User, owner.user_id).subscription_status == "expired"


def test_unmatched_or_unknown_events_are_ignored(owner):
    assert not users.apply_billing_event({
        "type": "customer.subscription.deleted",
        "data": {"object": {"customer": "cus_nobody"}},
    })
    assert not users.apply_billing_event({
        "type": "charge.refunded",
        "data": {"object": {"metadata": {"user_id": owner.user_id}}},
    })
    assert not users.apply_billing_event({})
