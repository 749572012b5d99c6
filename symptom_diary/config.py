"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Database ─────────────────────────────────────────────────────────
DEFAULT_DB_URI = "sqlite:///symptom_diary.db"

# ── Roles and enumerations ───────────────────────────────────────────
ROLE_PATIENT = "patient"
ROLE_DOCTOR = "doctor"
ROLES = {ROLE_PATIENT, ROLE_DOCTOR}

SEVERITIES = ("mild", "moderate", "severe")
PROGRESS_STATUSES = ("improving", "stable", "worsening")

# ── Sign-up validation ───────────────────────────────────────────────
MIN_PASSWORD_LENGTH = 6
MIN_NAME_LENGTH = 2

# ── Object storage ───────────────────────────────────────────────────
STORAGE_BUCKET = "symptom-photos"
STORAGE_DIR = os.getenv("STORAGE_DIR", os.path.join(os.getcwd(), "storage"))
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_PHOTO_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "heic"}

# ── API server ───────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
TOKEN_EXPIRY_HOURS = 24
MAX_RESULTS_RETURN = 1000
STREAM_POLL_SECONDS = 15


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value


def get_db_uri() -> str:
    """Database URI from DB_URI, falling back to a local SQLite file."""
    return os.getenv("DB_URI") or DEFAULT_DB_URI
