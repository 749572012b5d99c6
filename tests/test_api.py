"""
Flask API tests, driven through the test client.
"""

import io
from datetime import datetime, timedelta, timezone

import pytest

from symptom_diary.api.app import create_app
from symptom_diary.api.auth import cleanup_expired_sessions, sessions
from symptom_diary.config import TOKEN_EXPIRY_HOURS
from symptom_diary.database import init_engine


@pytest.fixture
def app(tmp_path):
    app = create_app(engine=init_engine("sqlite://"), storage_dir=str(tmp_path), base_url="http://localhost")
    app.config["TESTING"] = True
    yield app
    sessions.clear()


@pytest.fixture
def client(app):
    return app.test_client()


def signup(client, name, role):
    resp = client.post("/api/auth/signup", json={
        "email": f"{name}@example.com", "password": "secret123",
        "full_name": name.title(), "role": role,
    })
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    return body["user"]["id"], {"Authorization": f"Bearer {body['token']}"}


# ── Health / info ────────────────────────────────────────────────────

def test_index_and_health(client):
    assert client.get("/").get_json()["status"] == "running"
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["checks"]["database"] is True


def test_unknown_endpoint_is_json_404(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert "error" in resp.get_json()


# ── Auth ─────────────────────────────────────────────────────────────

def test_signup_validation_error(client):
    resp = client.post("/api/auth/signup", json={
        "email": "a@example.com", "password": "123", "full_name": "Al", "role": "patient",
    })
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "password"


def test_signup_requires_json(client):
    resp = client.post("/api/auth/signup", data="email=a")
    assert resp.status_code == 400


def test_signup_rejects_non_object_body(client):
    resp = client.post("/api/auth/signup", json=["x"])
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "body"


@pytest.mark.parametrize("field,value", [
    ("full_name", 123),
    ("email", ["a@b.com"]),
    ("password", 1234567),
    ("role", {"name": "patient"}),
])
def test_signup_rejects_non_string_fields(client, field, value):
    body = {"email": "a@b.com", "password": "secret1", "full_name": "Al", "role": "patient"}
    body[field] = value
    resp = client.post("/api/auth/signup", json=body)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == field


def test_malformed_json_is_json_400(client):
    resp = client.post("/api/auth/login", data="{not json", content_type="application/json")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Bad request"


def test_login_routes_doctor_to_doctor_dashboard(client):
    signup(client, "doc", "doctor")
    resp = client.post("/api/auth/login", json={"email": "doc@example.com", "password": "secret123"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["dashboard"] == "/doctor"
    assert body["user"]["role"] == "doctor"


def test_login_wrong_password(client):
    signup(client, "pat", "patient")
    resp = client.post("/api/auth/login", json={"email": "pat@example.com", "password": "not-it-at-all"})
    assert resp.status_code == 401


def test_token_required(client):
    assert client.get("/api/symptoms").status_code == 401
    resp = client.get("/api/symptoms", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401


def test_logout_ends_session(client):
    _, headers = signup(client, "pat", "patient")
    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/profile", headers=headers).status_code == 401


def test_cleanup_tolerates_sessions_opened_mid_sweep():
    class Touch:
        def __rsub__(self, other):
            sessions["late"] = {"last_activity": other}
            return timedelta(0)

    stale = datetime.now(timezone.utc) - timedelta(hours=TOKEN_EXPIRY_HOURS + 1)
    sessions.clear()
    sessions["stale"] = {"last_activity": stale}
    sessions["busy"] = {"last_activity": Touch()}

    assert cleanup_expired_sessions() == 1
    assert "stale" not in sessions
    assert {"busy", "late"} <= set(sessions)
    sessions.clear()


# ── Profile ──────────────────────────────────────────────────────────

def test_profile_read_and_rename(client):
    pid, headers = signup(client, "pat", "patient")
    profile = client.get("/api/profile", headers=headers).get_json()["profile"]
    assert profile["id"] == pid

    resp = client.patch("/api/profile", json={"full_name": "Patricia"}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["profile"]["full_name"] == "Patricia"

    resp = client.patch("/api/profile", json={"role": "doctor"}, headers=headers)
    assert resp.status_code == 403


# ── End-to-end: symptom → assignment → doctor note ───────────────────

def test_patient_doctor_scenario(client):
    pid, p_headers = signup(client, "pat", "patient")
    did, d_headers = signup(client, "doc", "doctor")

    resp = client.post("/api/symptoms", json={"title": "Rash", "affected_area": "arm"}, headers=p_headers)
    assert resp.status_code == 201
    sid = resp.get_json()["symptom"]["id"]

    # no assignment yet
    resp = client.get(f"/api/symptoms?patient_id={pid}", headers=d_headers)
    assert resp.get_json()["symptoms"] == []
    assert client.get(f"/api/symptoms/{sid}", headers=d_headers).status_code == 404
    resp = client.post(f"/api/symptoms/{sid}/notes", json={"note": "Hmm"}, headers=d_headers)
    assert resp.status_code == 403

    resp = client.post("/api/assignments", json={"doctor_id": did}, headers=p_headers)
    assert resp.status_code == 201

    resp = client.get(f"/api/symptoms?patient_id={pid}", headers=d_headers)
    symptoms = resp.get_json()["symptoms"]
    assert [s["id"] for s in symptoms] == [sid]
    assert symptoms[0]["affected_area"] == "arm"

    patients = client.get("/api/patients", headers=d_headers).get_json()["patients"]
    assert [p["id"] for p in patients] == [pid]

    resp = client.post(f"/api/symptoms/{sid}/notes",
                       json={"note": "Keep it moisturised", "progress_status": "stable"},
                       headers=d_headers)
    assert resp.status_code == 201

    notes = client.get(f"/api/symptoms/{sid}/notes", headers=p_headers).get_json()["notes"]
    assert len(notes) == 1
    assert notes[0]["progress_status"] == "stable"
    assert notes[0]["doctor_id"] == did

    timeline = client.get("/api/symptoms?include_notes=1", headers=p_headers).get_json()["symptoms"]
    assert timeline[0]["notes"][0]["note"] == "Keep it moisturised"


def test_symptom_update_and_delete(client):
    _, p_headers = signup(client, "pat", "patient")
    _, o_headers = signup(client, "olive", "patient")
    sid = client.post("/api/symptoms", json={"title": "Cough"}, headers=p_headers).get_json()["symptom"]["id"]

    assert client.patch(f"/api/symptoms/{sid}", json={"severity": "moderate"}, headers=o_headers).status_code == 404
    resp = client.patch(f"/api/symptoms/{sid}", json={"severity": "moderate"}, headers=p_headers)
    assert resp.get_json()["symptom"]["severity"] == "moderate"

    resp = client.patch(f"/api/symptoms/{sid}", json={"severity": "unbearable"}, headers=p_headers)
    assert resp.status_code == 409

    assert client.delete(f"/api/symptoms/{sid}", headers=o_headers).status_code == 404
    assert client.delete(f"/api/symptoms/{sid}", headers=p_headers).status_code == 200
    assert client.get(f"/api/symptoms/{sid}", headers=p_headers).status_code == 404


def test_symptom_title_required(client):
    _, headers = signup(client, "pat", "patient")
    resp = client.post("/api/symptoms", json={"title": "   "}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "title"


def test_doctor_cannot_create_symptom_for_patient(client):
    pid, _ = signup(client, "pat", "patient")
    _, d_headers = signup(client, "doc", "doctor")
    resp = client.post("/api/symptoms", json={"title": "Rash", "patient_id": pid}, headers=d_headers)
    assert resp.status_code == 403


# ── Messages ─────────────────────────────────────────────────────────

def test_chat_flow(client):
    pid, p_headers = signup(client, "pat", "patient")
    did, d_headers = signup(client, "doc", "doctor")
    _, o_headers = signup(client, "olive", "patient")

    resp = client.post("/api/messages", json={"receiver_id": did, "content": " Hello doctor "}, headers=p_headers)
    assert resp.status_code == 201
    message = resp.get_json()["message"]
    assert message["content"] == "Hello doctor"
    assert message["read"] is False

    convo = client.get(f"/api/messages?with={pid}", headers=d_headers).get_json()["messages"]
    assert [m["id"] for m in convo] == [message["id"]]
    assert client.get(f"/api/messages?with={pid}", headers=o_headers).get_json()["messages"] == []
    assert client.get(f"/api/messages?with={did}", headers=o_headers).get_json()["messages"] == []

    assert client.patch(f"/api/messages/{message['id']}/read", headers=p_headers).status_code == 404
    resp = client.patch(f"/api/messages/{message['id']}/read", headers=d_headers)
    assert resp.status_code == 200
    assert resp.get_json()["message"]["read"] is True


def test_mark_read_requires_boolean(client):
    pid, p_headers = signup(client, "pat", "patient")
    did, d_headers = signup(client, "doc", "doctor")
    message = client.post("/api/messages", json={"receiver_id": did, "content": "hi"},
                          headers=p_headers).get_json()["message"]

    resp = client.patch(f"/api/messages/{message['id']}/read", json={"read": "false"}, headers=d_headers)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "read"

    client.patch(f"/api/messages/{message['id']}/read", json={"read": True}, headers=d_headers)
    resp = client.patch(f"/api/messages/{message['id']}/read", json={"read": False}, headers=d_headers)
    assert resp.get_json()["message"]["read"] is False


@pytest.mark.parametrize("path,body,field", [
    ("/api/symptoms", {"title": 42}, "title"),
    ("/api/messages", {"receiver_id": "someone", "content": ["hi"]}, "content"),
    ("/api/messages", {"receiver_id": 7, "content": "hi"}, "receiver_id"),
    ("/api/assignments", {"doctor_id": {"id": "x"}}, "doctor_id"),
])
def test_text_fields_must_be_strings(client, path, body, field):
    _, headers = signup(client, "pat", "patient")
    resp = client.post(path, json=body, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == field


def test_profile_rename_requires_string(client):
    _, headers = signup(client, "pat", "patient")
    resp = client.patch("/api/profile", json={"full_name": 99}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "full_name"


def test_message_requires_counterpart(client):
    _, headers = signup(client, "pat", "patient")
    assert client.get("/api/messages", headers=headers).status_code == 400
    resp = client.post("/api/messages", json={"content": "hi"}, headers=headers)
    assert resp.status_code == 400


def test_message_publishes_to_bus(app, client):
    pid, p_headers = signup(client, "pat", "patient")
    did, _ = signup(client, "doc", "doctor")
    bus = app.extensions["symptom_diary"]["bus"]
    sub = bus.subscribe("messages", "INSERT")

    client.post("/api/messages", json={"receiver_id": did, "content": "ping"}, headers=p_headers)
    event = sub.get(timeout=1)
    assert event.record["sender_id"] == pid
    assert event.record["content"] == "ping"


# ── Storage ──────────────────────────────────────────────────────────

def test_photo_upload_and_public_read(client):
    pid, headers = signup(client, "pat", "patient")
    _, o_headers = signup(client, "olive", "patient")

    resp = client.post("/api/storage/upload", headers=headers,
                       data={"file": (io.BytesIO(b"fake-png"), "rash.png")},
                       content_type="multipart/form-data")
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["path"].startswith(f"{pid}/")

    public = client.get(body["url"].replace("http://localhost", ""))
    assert public.status_code == 200
    assert public.data == b"fake-png"
    assert public.mimetype == "image/png"

    assert client.delete(f"/api/storage/{body['path']}", headers=o_headers).status_code == 403
    assert client.delete(f"/api/storage/{body['path']}", headers=headers).status_code == 200

    resp = client.post("/api/symptoms", json={"title": "Rash", "photo_url": body["url"]}, headers=headers)
    assert resp.get_json()["symptom"]["photo_url"] == body["url"]


def test_upload_rejects_unsupported_type(client):
    _, headers = signup(client, "pat", "patient")
    resp = client.post("/api/storage/upload", headers=headers,
                       data={"file": (io.BytesIO(b"x"), "script.sh")},
                       content_type="multipart/form-data")
    assert resp.status_code == 400


# ── Symptom lookup ───────────────────────────────────────────────────

def test_symptom_lookup_endpoint(client):
    body = client.get("/api/symptom-lookup").get_json()
    assert body["count"] == 8
    body = client.get("/api/symptom-lookup?q=ITCHY").get_json()
    assert [s["name"] for s in body["symptoms"]] == ["Rash"]
