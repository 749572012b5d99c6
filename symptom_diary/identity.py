"""
Identity provider – sign-up and sign-in against the identities table.
"""

import re
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from symptom_diary.config import MIN_NAME_LENGTH, MIN_PASSWORD_LENGTH, ROLES
from symptom_diary.database import identities, new_id
from symptom_diary.models import AccessContext
from symptom_diary.rbac import grant_role

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationError(ValueError):
    """Input rejected before it reaches the database."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class AuthError(ValueError):
    """Sign-up or sign-in refused by the identity store."""


def _text(field: str, value) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(field, f"{field} must be a string")
    return value


def validate_credentials(email: str, password: str, full_name: Optional[str] = None) -> str:
    """Check input shape and return the normalised email."""
    email = _text("email", email).strip().lower()
    password = _text("password", password)
    if not EMAIL_RE.match(email):
        raise ValidationError("email", "Invalid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if full_name is not None and len(_text("full_name", full_name).strip()) < MIN_NAME_LENGTH:
        raise ValidationError("full_name", f"Name must be at least {MIN_NAME_LENGTH} characters")
    return email


def sign_up(store, email: str, password: str, full_name: str, role: str) -> AccessContext:
    """Create an identity with its profile and role grant in one transaction."""
    if full_name is None:
        raise ValidationError("full_name", f"Name must be at least {MIN_NAME_LENGTH} characters")
    email = validate_credentials(email, password, full_name)
    role = _text("role", role).strip().lower()
    if role not in ROLES:
        raise ValidationError("role", f"Role must be one of: {', '.join(sorted(ROLES))}")

    user_id = new_id()
    full_name = full_name.strip()
    try:
        with store.engine.begin() as conn:
            conn.execute(identities.insert().values(
                id=user_id, email=email, password_hash=generate_password_hash(password),
            ))
            store.insert(user_id, "profiles", {"id": user_id, "full_name": full_name, "role": role}, conn=conn)
            grant_role(conn, user_id, role)
    except IntegrityError as e:
        if "email" in str(e.orig).lower():
            raise AuthError("User already registered") from e
        raise

    print(f"[auth] Signed up {email} as {role}")
    return AccessContext(user_id=user_id, email=email, display_name=full_name, role=role)


def sign_in(store, email: str, password: str) -> str:
    """Verify credentials and return the identity id."""
    email = validate_credentials(email, password)
    with store.engine.connect() as conn:
        row = conn.execute(
            select(identities.c.id, identities.c.password_hash).where(identities.c.email == email)
        ).mappings().first()

    if not row or not check_password_hash(row["password_hash"], password):
        raise AuthError("Invalid login credentials")
    return row["id"]
