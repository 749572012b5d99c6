"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from symptom_diary.config import MAX_UPLOAD_BYTES, PUBLIC_BASE_URL, STORAGE_DIR, TOKEN_EXPIRY_HOURS
from symptom_diary.database import init_engine
from symptom_diary.events import EventBus
from symptom_diary.storage import ObjectStorage
from symptom_diary.store import DataStore
from symptom_diary.api.routes import register_routes


def create_app(engine=None, storage_dir=None, base_url=None):
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_BYTES
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    try:
        if engine is None:
            print("[init] Initializing database connection...")
            engine = init_engine()

        print("[init] Initializing realtime feed and object storage...")
        bus = EventBus()
        store = DataStore(engine, bus)
        storage = ObjectStorage(storage_dir or STORAGE_DIR, base_url or PUBLIC_BASE_URL)

        print("[init] ✓ API server ready")
    except Exception as e:
        print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)

    app.extensions["symptom_diary"] = {"store": store, "storage": storage, "bus": bus}

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, store, storage, bus)

    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("Symptom Diary – REST API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] CORS enabled: True")
    print(f"[server] Session expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{host}:{port}/api/auth/signup")
    print(f"  - POST http://{host}:{port}/api/auth/login")
    print(f"  - GET  http://{host}:{port}/api/symptoms")
    print(f"  - GET  http://{host}:{port}/api/messages?with=<id>")
    print(f"  - GET  http://{host}:{port}/api/messages/stream?with=<id>")
    print(f"  - GET  http://{host}:{port}/api/symptom-lookup?q=<term>")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
