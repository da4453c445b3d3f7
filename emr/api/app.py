"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from emr.config import COOKIE_SECURE, SESSION_MAX_AGE, SESSION_SECRET
from emr.database import init_engine
from emr.llm import init_llm
from emr.logsink import init_log_sink
from emr.store import EmrStore
from emr.api.middleware import install_access_middleware
from emr.api.pages import register_pages
from emr.api.routes import register_routes

_FROM_ENV = object()


def create_app(engine=None, llm=_FROM_ENV, sink=None, **overrides):
    """
    Build and return a fully configured Flask application.

    Shared resources (DB engine, LLM, log sink) are created once here and
    handed to the route layer. Pass them in to reuse existing ones.
    """
    app = Flask(__name__, template_folder="../templates", static_folder="../static")
    app.config.update(
        SESSION_SECRET=SESSION_SECRET,
        COOKIE_SECURE=COOKIE_SECURE,
    )
    app.config.update(overrides)
    CORS(app, supports_credentials=True)

    # ── Initialise shared resources ──────────────────────────────────
    try:
        if sink is None:
            sink = init_log_sink()

        if engine is None:
            print("[init] Initializing database connection...")
            engine = init_engine()

        if llm is _FROM_ENV:
            print("[init] Initializing LLM...")
            llm = init_llm()

        print("[init] ✓ EMR server ready")
    except Exception as e:
        print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)

    app.extensions["log_sink"] = sink
    store = EmrStore(engine)

    # ── Access control, routes and pages ─────────────────────────────
    install_access_middleware(app)
    register_routes(app, store, llm)
    register_pages(app, store)

    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("Nurse EMR – web server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] Signed session cookies: {bool(app.config['SESSION_SECRET'])}")
    print(f"[server] Session max-age: {SESSION_MAX_AGE // 3600} hours")
    print("\nAPI Endpoints:")
    print(f"  - POST   http://{host}:{port}/api/auth/login")
    print(f"  - POST   http://{host}:{port}/api/auth/logout")
    print(f"  - GET    http://{host}:{port}/api/auth/session")
    print(f"  - *      http://{host}:{port}/api/patients")
    print(f"  - *      http://{host}:{port}/api/entries")
    print(f"  - *      http://{host}:{port}/api/admin/users")
    print(f"  - POST   http://{host}:{port}/api/extract")
    print(f"  - POST   http://{host}:{port}/api/logtail")
    print(f"  - GET    http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
