"""
Interactive CLI for the Symptom Diary.
Sign in, browse the symptom timeline and search the symptom reference list.
"""

from symptom_diary.config import ROLE_DOCTOR
from symptom_diary.database import init_engine
from symptom_diary.identity import sign_in
from symptom_diary.rbac import load_access_context
from symptom_diary.store import DataStore
from symptom_diary.symptom_lookup import find_symptoms

HELP = """Commands:
  timeline [patient_id]   list symptoms (doctors: pass an assigned patient id)
  notes <symptom_id>      list doctor notes on a symptom
  patients                list assigned patients (doctors)
  lookup <term>           search the symptom reference list
  quit                    exit"""


def format_symptom(row) -> str:
    when = row["created_at"].strftime("%Y-%m-%d %H:%M") if row.get("created_at") else "?"
    parts = [f"{when}  {row['title']}"]
    if row.get("severity"):
        parts.append(f"[{row['severity']}]")
    if row.get("affected_area"):
        parts.append(f"@ {row['affected_area']}")
    return "  ".join(parts) + f"  ({row['id']})"


def run_command(store, ctx, line: str) -> str:
    """Execute one REPL command and return the text to print."""
    cmd, _, arg = line.strip().partition(" ")
    cmd, arg = cmd.lower(), arg.strip()
    me = ctx.user_id

    if cmd == "help":
        return HELP

    if cmd == "lookup":
        hits = find_symptoms(arg)
        if not hits:
            return "No symptoms found matching your search."
        return "\n".join(f"- {s.name}: {s.description}" for s in hits)

    if cmd == "timeline":
        rows = store.select(me, "symptoms", {"patient_id": arg or me},
                            order_by="created_at", descending=True)
        if not rows:
            return "(no symptoms visible)"
        return "\n".join(format_symptom(r) for r in rows)

    if cmd == "notes":
        if not arg:
            return "Usage: notes <symptom_id>"
        rows = store.select(me, "doctor_notes", {"symptom_id": arg},
                            order_by="created_at", descending=True)
        if not rows:
            return "(no notes)"
        return "\n".join(f"- [{r.get('progress_status') or '-'}] {r['note']}" for r in rows)

    if cmd == "patients":
        if ctx.role != ROLE_DOCTOR:
            return "Only doctors have assigned patients."
        rows = store.select(me, "patient_doctor_assignments", {"doctor_id": me})
        if not rows:
            return "(no patients assigned)"
        return "\n".join(f"- {r['patient_id']}" for r in rows)

    return f"Unknown command: {cmd}\n{HELP}"


def main():
    print("=== Symptom Diary: terminal client ===\n")

    engine = init_engine()
    store = DataStore(engine)

    # ── Login ────────────────────────────────────────────────────────
    try:
        email = input("Email (or 'quit'): ").strip()
        if not email or email.lower() in {"quit", "exit"}:
            print("Goodbye.")
            return
        password = input("Password: ")
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    try:
        ctx = load_access_context(engine, sign_in(store, email, password))
    except ValueError as e:
        print("\n[ERROR] Login failed.")
        print("Details:", e)
        return

    print(f"\n[auth] Logged in as: {ctx.display_name} (role={ctx.role})")
    print(HELP)

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            line = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if not line:
            continue
        if line.lower() in {"quit", "exit"}:
            print("Goodbye.")
            break

        try:
            print(run_command(store, ctx, line))
        except ValueError as e:
            print("\n[ERROR] Request rejected.")
            print("Details:", e)


if __name__ == "__main__":
    main()
