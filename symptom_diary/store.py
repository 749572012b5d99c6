"""
Policy-guarded data access.

DataStore is the only read/write path to the domain tables. Each call runs
in its own transaction and evaluates the row-level guard from rbac.py on the
same connection, so a guard always sees the latest committed grants and
assignments.
"""

from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError

from symptom_diary.config import MAX_RESULTS_RETURN
from symptom_diary.database import TABLES, messages, new_id
from symptom_diary.rbac import DELETE, INSERT, SELECT, UPDATE, PolicyViolation, check

# Client-writable columns per table and operation.
WRITABLE = {
    "profiles": {
        INSERT: {"id", "full_name", "role"},
        UPDATE: {"full_name"},
    },
    "symptoms": {
        INSERT: {"patient_id", "title", "description", "photo_url", "severity",
                 "affected_area", "duration"},
        UPDATE: {"patient_id", "title", "description", "photo_url", "severity",
                 "affected_area", "duration"},
    },
    "doctor_notes": {
        INSERT: {"symptom_id", "doctor_id", "note", "progress_status"},
    },
    "messages": {
        INSERT: {"sender_id", "receiver_id", "content", "attachment_url", "symptom_reference"},
        UPDATE: {"read"},
    },
    "patient_doctor_assignments": {
        INSERT: {"patient_id", "doctor_id"},
    },
}

# Tables whose committed changes are published on the event bus.
REALTIME_TABLES = {"messages"}


class ConstraintViolation(ValueError):
    """Raised when the database rejects a write (unique, check, FK, not-null)."""


def _table(name: str):
    try:
        return TABLES[name]
    except KeyError:
        raise ValueError(f"Unknown table: {name}") from None


def _reject_columns(table: str, operation: str, values: Mapping[str, Any]) -> None:
    allowed = WRITABLE.get(table, {}).get(operation, set())
    extra = sorted(set(values) - allowed)
    if extra:
        raise PolicyViolation(table, operation, f"column(s) not writable on \"{table}\": {', '.join(extra)}")


class DataStore:
    """Row-level-security front for the domain tables."""

    def __init__(self, engine, bus=None):
        self.engine = engine
        self.bus = bus

    # ── Reads ────────────────────────────────────────────────────────

    def select(
        self,
        requester: str,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        where=None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = -1,
    ) -> List[Dict[str, Any]]:
        """Return the rows of *table* matching *filters* that *requester* may see.

        A filter value that is a list/tuple/set becomes an IN clause. Rows
        hidden by the select policy are dropped silently. *limit* defaults to
        MAX_RESULTS_RETURN; None returns every visible row.
        """
        tbl = _table(table)
        stmt = select(tbl)
        for col, value in (filters or {}).items():
            column = tbl.c[col]
            if isinstance(value, (list, tuple, set)):
                stmt = stmt.where(column.in_(list(value)))
            else:
                stmt = stmt.where(column == value)
        if where is not None:
            stmt = stmt.where(where)
        if order_by:
            column = tbl.c[order_by]
            stmt = stmt.order_by(column.desc() if descending else column.asc())

        if limit == -1:
            limit = MAX_RESULTS_RETURN

        rows = []
        with self.engine.connect() as conn:
            for row in conn.execute(stmt).mappings().all():
                if check(conn, table, SELECT, requester, row):
                    rows.append(dict(row))
                    if limit is not None and len(rows) >= limit:
                        break
        return rows

    def get(self, requester: str, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        found = self.select(requester, table, {"id": row_id}, limit=1)
        return found[0] if found else None

    def conversation(self, requester: str, other: str) -> List[Dict[str, Any]]:
        """Messages exchanged between *requester* and *other*, oldest first."""
        pair = or_(
            and_(messages.c.sender_id == requester, messages.c.receiver_id == other),
            and_(messages.c.sender_id == other, messages.c.receiver_id == requester),
        )
        return self.select(requester, "messages", where=pair, order_by="created_at", limit=None)

    # ── Writes ───────────────────────────────────────────────────────

    def insert(self, requester: str, table: str, values: Mapping[str, Any], conn=None) -> Dict[str, Any]:
        """Insert one row; raises PolicyViolation if the insert guard denies it.

        When *conn* is given the insert joins that transaction and no change
        event is published.
        """
        tbl = _table(table)
        _reject_columns(table, INSERT, values)
        row = dict(values)
        row.setdefault("id", new_id())

        if conn is not None:
            return self._insert(conn, requester, table, tbl, row)

        with self.engine.begin() as own_conn:
            created = self._insert(own_conn, requester, table, tbl, row)
        self._publish(table, "INSERT", created)
        return created

    def _insert(self, conn, requester, table, tbl, row):
        if not check(conn, table, INSERT, requester, row):
            raise PolicyViolation(table, INSERT)
        try:
            conn.execute(tbl.insert().values(**row))
        except IntegrityError as e:
            raise ConstraintViolation(str(e.orig)) from e
        return dict(conn.execute(select(tbl).where(tbl.c.id == row["id"])).mappings().one())

    def update(self, requester: str, table: str, row_id: str, values: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Update one row by id.

        Returns the updated row, or None when the row does not exist or the
        update guard does not cover it. Raises PolicyViolation when the
        updated row would no longer pass the guard.
        """
        tbl = _table(table)
        _reject_columns(table, UPDATE, values)
        with self.engine.begin() as conn:
            current = conn.execute(select(tbl).where(tbl.c.id == row_id)).mappings().first()
            if current is None or not check(conn, table, UPDATE, requester, current):
                return None
            proposed = {**current, **values}
            if not check(conn, table, UPDATE, requester, proposed):
                raise PolicyViolation(table, UPDATE)
            if values:
                try:
                    conn.execute(tbl.update().where(tbl.c.id == row_id).values(**values))
                except IntegrityError as e:
                    raise ConstraintViolation(str(e.orig)) from e
            updated = dict(conn.execute(select(tbl).where(tbl.c.id == row_id)).mappings().one())
        self._publish(table, "UPDATE", updated)
        return updated

    def delete(self, requester: str, table: str, row_id: str) -> bool:
        """Delete one row by id; False when nothing the requester may delete matched."""
        tbl = _table(table)
        with self.engine.begin() as conn:
            current = conn.execute(select(tbl).where(tbl.c.id == row_id)).mappings().first()
            if current is None or not check(conn, table, DELETE, requester, current):
                return False
            conn.execute(tbl.delete().where(tbl.c.id == row_id))
        self._publish(table, "DELETE", dict(current))
        return True

    def _publish(self, table: str, kind: str, record: Dict[str, Any]) -> None:
        if self.bus is not None and table in REALTIME_TABLES:
            self.bus.publish(table, kind, record)
