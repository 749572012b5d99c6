"""
Flask route handlers for the REST API.
"""

import json
import mimetypes
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Iterable, List

from flask import Response, jsonify, request
from sqlalchemy import or_, text

from symptom_diary.config import (
    MIN_NAME_LENGTH, ROLE_DOCTOR, STREAM_POLL_SECONDS, TOKEN_EXPIRY_HOURS,
)
from symptom_diary.database import assignments
from symptom_diary.events import ConversationView, iter_conversation
from symptom_diary.identity import AuthError, ValidationError, sign_in, sign_up
from symptom_diary.rbac import PolicyViolation, load_access_context
from symptom_diary.storage import StorageError, build_object_path
from symptom_diary.store import ConstraintViolation
from symptom_diary.symptom_lookup import find_symptoms
from symptom_diary.api.auth import (
    cleanup_expired_sessions,
    close_session,
    open_session,
    sessions,
    token_required,
)

SYMPTOM_FIELDS = ("title", "description", "photo_url", "severity", "affected_area", "duration", "patient_id")
MESSAGE_FIELDS = ("receiver_id", "content", "attachment_url", "symptom_reference")


def serialize(row: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in row.items()}


def serialize_all(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize(r) for r in rows]


def json_body() -> Dict[str, Any]:
    if not request.is_json:
        raise ValidationError("body", "Content-Type must be application/json")
    data = request.get_json()
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("body", "Request body must be a JSON object")
    return data


def required_text(data: Dict[str, Any], field: str) -> str:
    value = data.get(field)
    if value is not None and not isinstance(value, str):
        raise ValidationError(field, f"{field} must be a string")
    value = (value or "").strip()
    if not value:
        raise ValidationError(field, f"{field} is required")
    return value


def user_payload(ctx) -> Dict[str, Any]:
    return {
        "id": ctx.user_id,
        "email": ctx.email,
        "display_name": ctx.display_name,
        "role": ctx.role,
    }


def register_routes(app, store, storage, bus):
    """Register all API routes on the Flask *app*."""

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Symptom Diary API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "signup": "/api/auth/signup",
                "login": "/api/auth/login",
                "logout": "/api/auth/logout",
                "profile": "/api/profile",
                "symptoms": "/api/symptoms",
                "assignments": "/api/assignments",
                "messages": "/api/messages",
                "upload": "/api/storage/upload",
                "symptom_lookup": "/api/symptom-lookup",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"database": False, "storage": False}
        try:
            with store.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            checks["database"] = True
        except Exception as e:
            print(f"[WARN] Health check database error: {e}", file=sys.stderr)

        checks["storage"] = storage is not None
        all_healthy = all(checks.values())

        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
            "active_sessions": len(sessions),
            "realtime_subscribers": bus.subscriber_count,
        }), 200 if all_healthy else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/signup", methods=["POST"])
    def signup():
        data = json_body()
        ctx = sign_up(
            store,
            email=data.get("email", ""),
            password=data.get("password", ""),
            full_name=data.get("full_name"),
            role=data.get("role", ""),
        )
        token = open_session(ctx)
        return jsonify({"success": True, "token": token, "user": user_payload(ctx)}), 201

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        data = json_body()
        try:
            user_id = sign_in(store, data.get("email", ""), data.get("password", ""))
            ctx = load_access_context(store.engine, user_id)
        except (AuthError, ValidationError):
            raise
        except ValueError as e:
            return jsonify({"error": f"Authentication failed: {str(e)}"}), 401

        cleanup_expired_sessions()
        token = open_session(ctx)
        return jsonify({
            "success": True,
            "token": token,
            "user": user_payload(ctx),
            "dashboard": "/doctor" if ctx.role == ROLE_DOCTOR else "/dashboard",
            "expires_in_hours": TOKEN_EXPIRY_HOURS,
        }), 200

    @app.route("/api/auth/logout", methods=["POST"])
    @token_required
    def logout():
        close_session(request.token)
        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    # ── Profile ──────────────────────────────────────────────────────

    @app.route("/api/profile", methods=["GET"])
    @token_required
    def get_profile():
        me = request.ctx.user_id
        profile = store.get(me, "profiles", me)
        if profile is None:
            return jsonify({"error": "Profile not found"}), 404
        return jsonify({
            "success": True,
            "profile": serialize(profile),
            "session": {
                "created_at": request.session_data["created_at"].isoformat(),
                "last_activity": request.session_data["last_activity"].isoformat(),
            },
        }), 200

    @app.route("/api/profile", methods=["PATCH"])
    @token_required
    def update_profile():
        me = request.ctx.user_id
        data = json_body()
        if "full_name" in data:
            name = data.get("full_name")
            if not isinstance(name, str):
                raise ValidationError("full_name", "full_name must be a string")
            name = name.strip()
            if len(name) < MIN_NAME_LENGTH:
                raise ValidationError("full_name", f"Name must be at least {MIN_NAME_LENGTH} characters")
            data = {**data, "full_name": name}
        profile = store.update(me, "profiles", me, data)
        if profile is None:
            return jsonify({"error": "Profile not found"}), 404
        request.ctx.display_name = profile["full_name"]
        return jsonify({"success": True, "profile": serialize(profile)}), 200

    # ── Symptoms (timeline) ──────────────────────────────────────────

    @app.route("/api/symptoms", methods=["GET"])
    @token_required
    def list_symptoms():
        me = request.ctx.user_id
        patient_id = request.args.get("patient_id", me)
        rows = store.select(me, "symptoms", {"patient_id": patient_id},
                            order_by="created_at", descending=True)
        result = serialize_all(rows)

        if request.args.get("include_notes", "").lower() in ("1", "true", "yes") and rows:
            notes = store.select(me, "doctor_notes", {"symptom_id": [r["id"] for r in rows]},
                                 order_by="created_at", descending=True)
            grouped: Dict[str, List[Dict[str, Any]]] = {}
            for note in notes:
                grouped.setdefault(note["symptom_id"], []).append(serialize(note))
            for item in result:
                item["notes"] = grouped.get(item["id"], [])

        return jsonify({"success": True, "count": len(result), "symptoms": result}), 200

    @app.route("/api/symptoms", methods=["POST"])
    @token_required
    def create_symptom():
        me = request.ctx.user_id
        data = json_body()
        values = {f: data[f] for f in SYMPTOM_FIELDS if f in data}
        values["title"] = required_text(data, "title")
        values.setdefault("patient_id", me)
        row = store.insert(me, "symptoms", values)
        return jsonify({"success": True, "symptom": serialize(row)}), 201

    @app.route("/api/symptoms/<symptom_id>", methods=["GET"])
    @token_required
    def get_symptom(symptom_id):
        row = store.get(request.ctx.user_id, "symptoms", symptom_id)
        if row is None:
            return jsonify({"error": "Symptom not found"}), 404
        return jsonify({"success": True, "symptom": serialize(row)}), 200

    @app.route("/api/symptoms/<symptom_id>", methods=["PATCH"])
    @token_required
    def update_symptom(symptom_id):
        data = json_body()
        if "title" in data:
            data = {**data, "title": required_text(data, "title")}
        row = store.update(request.ctx.user_id, "symptoms", symptom_id, data)
        if row is None:
            return jsonify({"error": "Symptom not found"}), 404
        return jsonify({"success": True, "symptom": serialize(row)}), 200

    @app.route("/api/symptoms/<symptom_id>", methods=["DELETE"])
    @token_required
    def delete_symptom(symptom_id):
        if not store.delete(request.ctx.user_id, "symptoms", symptom_id):
            return jsonify({"error": "Symptom not found"}), 404
        return jsonify({"success": True}), 200

    # ── Doctor notes ─────────────────────────────────────────────────

    @app.route("/api/symptoms/<symptom_id>/notes", methods=["GET"])
    @token_required
    def list_notes(symptom_id):
        rows = store.select(request.ctx.user_id, "doctor_notes", {"symptom_id": symptom_id},
                            order_by="created_at", descending=True)
        return jsonify({"success": True, "notes": serialize_all(rows)}), 200

    @app.route("/api/symptoms/<symptom_id>/notes", methods=["POST"])
    @token_required
    def create_note(symptom_id):
        me = request.ctx.user_id
        data = json_body()
        values = {
            "symptom_id": symptom_id,
            "doctor_id": me,
            "note": required_text(data, "note"),
        }
        if data.get("progress_status") is not None:
            values["progress_status"] = data["progress_status"]
        row = store.insert(me, "doctor_notes", values)
        return jsonify({"success": True, "note": serialize(row)}), 201

    # ── Assignments ──────────────────────────────────────────────────

    def _own_assignments(me, column=None):
        filters = {column: me} if column else None
        where = None if column else or_(assignments.c.patient_id == me, assignments.c.doctor_id == me)
        return store.select(me, "patient_doctor_assignments", filters, where=where,
                            order_by="assigned_at")

    @app.route("/api/assignments", methods=["GET"])
    @token_required
    def list_assignments():
        rows = _own_assignments(request.ctx.user_id)
        return jsonify({"success": True, "assignments": serialize_all(rows)}), 200

    @app.route("/api/assignments", methods=["POST"])
    @token_required
    def create_assignment():
        me = request.ctx.user_id
        data = json_body()
        values = {
            "patient_id": data.get("patient_id", me),
            "doctor_id": required_text(data, "doctor_id"),
        }
        row = store.insert(me, "patient_doctor_assignments", values)
        return jsonify({"success": True, "assignment": serialize(row)}), 201

    @app.route("/api/patients", methods=["GET"])
    @token_required
    def list_patients():
        rows = _own_assignments(request.ctx.user_id, column="doctor_id")
        patients = [{"id": r["patient_id"], "assigned_at": serialize(r)["assigned_at"]} for r in rows]
        return jsonify({"success": True, "patients": patients}), 200

    @app.route("/api/doctors", methods=["GET"])
    @token_required
    def list_doctors():
        rows = _own_assignments(request.ctx.user_id, column="patient_id")
        doctors = [{"id": r["doctor_id"], "assigned_at": serialize(r)["assigned_at"]} for r in rows]
        return jsonify({"success": True, "doctors": doctors}), 200

    # ── Messages (chat) ──────────────────────────────────────────────

    @app.route("/api/messages", methods=["GET"])
    @token_required
    def list_messages():
        other = request.args.get("with", "").strip()
        if not other:
            raise ValidationError("with", "with is required")
        rows = store.conversation(request.ctx.user_id, other)
        return jsonify({"success": True, "messages": serialize_all(rows)}), 200

    @app.route("/api/messages", methods=["POST"])
    @token_required
    def send_message():
        me = request.ctx.user_id
        data = json_body()
        values = {f: data[f] for f in MESSAGE_FIELDS if data.get(f) is not None}
        values["receiver_id"] = required_text(data, "receiver_id")
        values["content"] = required_text(data, "content")
        values["sender_id"] = data.get("sender_id", me)
        row = store.insert(me, "messages", values)
        return jsonify({"success": True, "message": serialize(row)}), 201

    @app.route("/api/messages/<message_id>/read", methods=["PATCH"])
    @token_required
    def mark_read(message_id):
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("body", "Request body must be a JSON object")
        read = data.get("read", True)
        if not isinstance(read, bool):
            raise ValidationError("read", "read must be true or false")
        row = store.update(request.ctx.user_id, "messages", message_id, {"read": read})
        if row is None:
            return jsonify({"error": "Message not found"}), 404
        return jsonify({"success": True, "message": serialize(row)}), 200

    @app.route("/api/messages/stream", methods=["GET"])
    @token_required
    def stream_messages():
        me = request.ctx.user_id
        other = request.args.get("with", "").strip()
        if not other:
            raise ValidationError("with", "with is required")

        sub = bus.subscribe("messages", "INSERT")
        view = ConversationView(me, other, history=store.conversation(me, other))

        def frames():
            for record in iter_conversation(sub, view, STREAM_POLL_SECONDS):
                if record is None:
                    yield ": keep-alive\n\n"
                else:
                    yield f"event: message\ndata: {json.dumps(serialize(record))}\n\n"

        return Response(frames(), mimetype="text/event-stream",
                        headers={"Cache-Control": "no-cache"})

    # ── Object storage ───────────────────────────────────────────────

    @app.route("/api/storage/upload", methods=["POST"])
    @token_required
    def upload_photo():
        me = request.ctx.user_id
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            raise ValidationError("file", "file is required")
        path = build_object_path(me, upload.filename)
        url = storage.upload(me, path, upload.read())
        return jsonify({"success": True, "path": path, "url": url}), 201

    @app.route("/api/storage/<path:object_path>", methods=["DELETE"])
    @token_required
    def delete_photo(object_path):
        storage.remove(request.ctx.user_id, object_path)
        return jsonify({"success": True}), 200

    @app.route("/storage/<bucket>/<path:object_path>", methods=["GET"])
    def read_object(bucket, object_path):
        if bucket != storage.bucket:
            return jsonify({"error": "Bucket not found"}), 404
        data = storage.read(object_path)
        mimetype = mimetypes.guess_type(object_path)[0] or "application/octet-stream"
        return Response(data, mimetype=mimetype)

    # ── Symptom lookup ───────────────────────────────────────────────

    @app.route("/api/symptom-lookup", methods=["GET"])
    def symptom_lookup():
        results = find_symptoms(request.args.get("q", ""))
        return jsonify({
            "success": True,
            "count": len(results),
            "symptoms": [
                {"name": s.name, "description": s.description, "keywords": list(s.keywords)}
                for s in results
            ],
        }), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(ValidationError)
    def validation_failed(e):
        return jsonify({"error": str(e), "field": e.field}), 400

    @app.errorhandler(AuthError)
    def auth_failed(e):
        return jsonify({"error": str(e)}), 401

    @app.errorhandler(PolicyViolation)
    def policy_denied(e):
        return jsonify({"error": str(e), "table": e.table, "operation": e.operation}), 403

    @app.errorhandler(ConstraintViolation)
    def constraint_failed(e):
        return jsonify({"error": str(e)}), 409

    @app.errorhandler(StorageError)
    def storage_failed(e):
        return jsonify({"error": str(e)}), e.status

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({"error": "Bad request", "message": str(e)}), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        print(f"[ERROR] Unhandled error: {e}", file=sys.stderr)
        traceback.print_exc()
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
