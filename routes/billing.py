import hmac
import logging

from flask import Blueprint, current_app, jsonify, request

from routes import json_body, ok
from services import users

logger = logging.getLogger(__name__)

billing_bp = Blueprint("billing", __name__, url_prefix="/billing")


def _webhook_ok(req) -> bool:
    """Allow if no BILLING_WEBHOOK_TOKEN is set, or if it matches."""
    token = current_app.config.get("BILLING_WEBHOOK_TOKEN")
    if not token:
        # No token configured → allow (dev default)
        return True
    return hmac.compare_digest(req.headers.get("X-Webhook-Token", ""), token)


@billing_bp.post("/webhook")
def webhook():
    if not _webhook_ok(request):
        logger.warning("Rejected billing webhook with a bad token")
        return jsonify({"ok": False, "error": "Invalid webhook token"}), 401
    event = json_body()
    handled = users.apply_billing_event(event)
    logger.info("Billing event %s %s", event.get("type"), "applied" if handled else "ignored")
    return ok(received=True, handled=handled)
