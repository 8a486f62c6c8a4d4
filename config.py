import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

# Database config
BASE_DIR = os.path.abspath(os.path.dirname(__file__))
DEFAULT_SQLITE = "sqlite:///" + os.path.join(BASE_DIR, "setlists.db")
SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", DEFAULT_SQLITE)
SQLALCHEMY_TRACK_MODIFICATIONS = False

SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret")

# --- File uploads (charts) ---
# None means "<instance>/uploads", resolved in create_app
UPLOAD_DIR = os.environ.get("UPLOAD_DIR")
ALLOWED_MIME = {"application/pdf", "image/png", "image/jpeg", "image/webp"}
# Max upload: 16 MB (Flask will 413 if exceeded)
MAX_CONTENT_LENGTH = 16 * 1024 * 1024

# --- Accounts ---
TRIAL_DAYS = int(os.environ.get("TRIAL_DAYS", 14))
PASSWORD_MIN_LENGTH = 8
# Password reset links stop working after an hour
PASSWORD_RESET_MAX_AGE = 60 * 60

# --- Band member access (token login, read-only) ---
MEMBER_AUTH_COOKIE = "member_auth"      # httpOnly, signed
MEMBER_TOKEN_COOKIE = "member_token"    # readable by the browser
MEMBER_COOKIE_MAX_AGE = int(timedelta(days=90).total_seconds())

# Shared secret the payments relay must send in X-Webhook-Token
BILLING_WEBHOOK_TOKEN = os.getenv("BILLING_WEBHOOK_TOKEN")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
