"""
Role-Based Access Control – role grants, access context and row-level policies.

Every (table, operation) pair has at most one guard registered in POLICIES.
A guard receives the open connection, the requesting identity and the
candidate row, and answers allow/deny. A pair with no guard is denied.
"""

from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from sqlalchemy import and_, exists, select, text

from symptom_diary.config import ROLE_DOCTOR, ROLES
from symptom_diary.database import assignments, symptoms, user_roles
from symptom_diary.models import AccessContext

SELECT, INSERT, UPDATE, DELETE = "select", "insert", "update", "delete"

Guard = Callable[[Any, str, Mapping[str, Any]], bool]
POLICIES: Dict[Tuple[str, str], Guard] = {}


class PolicyViolation(ValueError):
    """Raised when a write is rejected by a row-level policy."""

    def __init__(self, table: str, operation: str, detail: str = None):
        message = detail or f"new row violates row-level security policy for table \"{table}\""
        super().__init__(f"{message} ({operation})")
        self.table = table
        self.operation = operation


def policy(table: str, *operations: str):
    """Register the decorated function as the guard for *table*/*operations*."""
    def register(fn: Guard) -> Guard:
        for op in operations:
            POLICIES[(table, op)] = fn
        return fn
    return register


def check(conn, table: str, operation: str, requester: Optional[str], row: Mapping[str, Any]) -> bool:
    """Evaluate the guard for (table, operation) against *row*."""
    if requester is None:
        return False
    guard = POLICIES.get((table, operation))
    if guard is None:
        return False
    return bool(guard(conn, requester, row))


# ── Role grants ──────────────────────────────────────────────────────

def has_role(conn, user_id: str, role: str) -> bool:
    """True iff a user_roles row exists for exactly (user_id, role).

    Reads user_roles directly on *conn*, outside the policy layer, so that
    guards can call it without needing select permission on user_roles.
    """
    stmt = select(
        exists().where(and_(user_roles.c.user_id == user_id, user_roles.c.role == role))
    )
    return bool(conn.execute(stmt).scalar())


def grant_role(conn, user_id: str, role: str) -> None:
    """Insert a role grant; only sign-up calls this, no policy permits it."""
    conn.execute(user_roles.insert().values(user_id=user_id, role=role))


def is_assigned(conn, patient_id: str, doctor_id: str) -> bool:
    stmt = select(
        exists().where(and_(assignments.c.patient_id == patient_id,
                            assignments.c.doctor_id == doctor_id))
    )
    return bool(conn.execute(stmt).scalar())


def symptom_owner(conn, symptom_id: str) -> Optional[str]:
    return conn.execute(
        select(symptoms.c.patient_id).where(symptoms.c.id == symptom_id)
    ).scalar()


def load_access_context(engine, user_id: str) -> AccessContext:
    """Look up an identity's profile and return its AccessContext."""
    sql = text("""
        SELECT i.id, i.email, p.full_name, p.role
        FROM identities i
        JOIN profiles p ON p.id = i.id
        WHERE i.id = :uid
    """)
    with engine.connect() as conn:
        row = conn.execute(sql, {"uid": user_id}).mappings().first()

    if not row:
        raise ValueError("Unknown identity or missing profile.")

    role = str(row["role"]).strip().lower()
    if role not in ROLES:
        raise ValueError(f"Unsupported role '{row['role']}' in profiles.")

    return AccessContext(
        user_id=str(row["id"]),
        email=str(row["email"]),
        display_name=str(row["full_name"]),
        role=role,
    )


# ── Row-level policies ───────────────────────────────────────────────

@policy("profiles", SELECT, INSERT, UPDATE)
def _own_profile(conn, requester, row):
    return row.get("id") == requester


@policy("user_roles", SELECT)
def _own_role_grants(conn, requester, row):
    return row.get("user_id") == requester


@policy("symptoms", INSERT, UPDATE, DELETE)
def _symptom_owner(conn, requester, row):
    return row.get("patient_id") == requester


@policy("symptoms", SELECT)
def _symptom_visible(conn, requester, row):
    if row.get("patient_id") == requester:
        return True
    return has_role(conn, requester, ROLE_DOCTOR) and is_assigned(conn, row.get("patient_id"), requester)


@policy("doctor_notes", SELECT)
def _note_visible(conn, requester, row):
    if row.get("doctor_id") == requester:
        return True
    return symptom_owner(conn, row.get("symptom_id")) == requester


@policy("doctor_notes", INSERT)
def _note_author(conn, requester, row):
    if row.get("doctor_id") != requester or not has_role(conn, requester, ROLE_DOCTOR):
        return False
    owner = symptom_owner(conn, row.get("symptom_id"))
    return owner is not None and is_assigned(conn, owner, requester)


@policy("messages", SELECT)
def _message_party(conn, requester, row):
    return requester in (row.get("sender_id"), row.get("receiver_id"))


@policy("messages", INSERT)
def _message_sender(conn, requester, row):
    return row.get("sender_id") == requester


@policy("messages", UPDATE)
def _message_receiver(conn, requester, row):
    return row.get("receiver_id") == requester


@policy("patient_doctor_assignments", SELECT)
def _assignment_party(conn, requester, row):
    return requester in (row.get("patient_id"), row.get("doctor_id"))


@policy("patient_doctor_assignments", INSERT)
def _assignment_patient(conn, requester, row):
    return row.get("patient_id") == requester
