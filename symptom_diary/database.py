"""
Database engine initialisation and schema definition.
"""

import sqlite3
import sys
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, MetaData,
    String, Table, Text, UniqueConstraint, create_engine, event, text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from symptom_diary.config import get_db_uri, PROGRESS_STATUSES, SEVERITIES

metadata = MetaData()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _in_check(column: str, values) -> str:
    allowed = ", ".join(f"'{v}'" for v in values)
    return f"{column} IS NULL OR {column} IN ({allowed})"


# ── Tables ───────────────────────────────────────────────────────────

identities = Table(
    "identities", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
)

profiles = Table(
    "profiles", metadata,
    Column("id", String(36), ForeignKey("identities.id", ondelete="CASCADE"), primary_key=True),
    Column("full_name", Text, nullable=False),
    Column("role", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint("role IN ('patient', 'doctor')", name="ck_profiles_role"),
)

user_roles = Table(
    "user_roles", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("user_id", String(36), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False),
    Column("role", String(16), nullable=False),
    UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    CheckConstraint("role IN ('patient', 'doctor')", name="ck_user_roles_role"),
)

symptoms = Table(
    "symptoms", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("patient_id", String(36), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False),
    Column("title", Text, nullable=False),
    Column("description", Text),
    Column("photo_url", Text),
    Column("severity", String(16)),
    Column("affected_area", Text),
    Column("duration", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint(_in_check("severity", SEVERITIES), name="ck_symptoms_severity"),
)

doctor_notes = Table(
    "doctor_notes", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("symptom_id", String(36), ForeignKey("symptoms.id", ondelete="CASCADE"), nullable=False),
    Column("doctor_id", String(36), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False),
    Column("note", Text, nullable=False),
    Column("progress_status", String(16)),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    CheckConstraint(_in_check("progress_status", PROGRESS_STATUSES), name="ck_doctor_notes_progress"),
)

messages = Table(
    "messages", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("sender_id", String(36), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False),
    Column("receiver_id", String(36), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False),
    Column("content", Text, nullable=False),
    Column("attachment_url", Text),
    Column("symptom_reference", String(36), ForeignKey("symptoms.id", ondelete="SET NULL")),
    Column("read", Boolean, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
)

assignments = Table(
    "patient_doctor_assignments", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("patient_id", String(36), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False),
    Column("doctor_id", String(36), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False),
    Column("assigned_at", DateTime(timezone=True), nullable=False, default=utcnow),
    UniqueConstraint("patient_id", "doctor_id", name="uq_assignments_pair"),
)

TABLES = {
    "profiles": profiles,
    "user_roles": user_roles,
    "symptoms": symptoms,
    "doctor_notes": doctor_notes,
    "messages": messages,
    "patient_doctor_assignments": assignments,
}


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_conn, _record):
    # SQLite ignores ON DELETE rules unless foreign keys are switched on
    if isinstance(dbapi_conn, sqlite3.Connection):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# ── Engine ───────────────────────────────────────────────────────────

def init_engine(db_uri: str = None):
    """Create a SQLAlchemy engine, create the schema and verify the connection."""
    db_uri = db_uri or get_db_uri()
    kwargs = {}
    if db_uri in ("sqlite://", "sqlite:///:memory:"):
        # a single shared connection keeps the in-memory database alive
        kwargs = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    engine = create_engine(db_uri, echo=False, future=True, **kwargs)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        metadata.create_all(engine)
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine
