"""
Session cookie helpers and the API guard decorator for the Flask API.
"""

from functools import wraps
from typing import Optional

from flask import current_app, g, jsonify, redirect, request

from emr import session_codec
from emr.access_policy import evaluate
from emr.config import COOKIE_SECURE, SESSION_COOKIE_NAME, SESSION_MAX_AGE
from emr.models import AccessMode, Session

# /api/admin/* serves the same resources as the /admin/* pages.
API_ADMIN_PREFIX = "/api/admin"


def log_sink():
    """The LogSink registered on the running app."""
    return current_app.extensions["log_sink"]


def current_session() -> Optional[Session]:
    """Decode the auth-session cookie of the current request."""
    raw = request.cookies.get(SESSION_COOKIE_NAME)
    return session_codec.decode(
        raw,
        secret=current_app.config.get("SESSION_SECRET"),
        log=log_sink().log,
    )


def set_session_cookie(response, session: Session):
    value = session_codec.encode(session, secret=current_app.config.get("SESSION_SECRET"))
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value,
        max_age=SESSION_MAX_AGE,
        path="/",
        httponly=True,
        samesite="Strict",
        secure=current_app.config.get("COOKIE_SECURE", COOKIE_SECURE),
    )
    return response


def clear_session_cookie(response):
    response.set_cookie(SESSION_COOKIE_NAME, "", max_age=0, path="/")
    return response


def policy_path(path: str) -> str:
    """Map an API path onto the resource path the access policy knows about."""
    if path.startswith(API_ADMIN_PREFIX):
        return path[len("/api"):]
    return path


def api_guard(f):
    """Decorator that runs the access policy in API mode before the handler."""
    @wraps(f)
    def decorated(*args, **kwargs):
        session = current_session()
        decision = evaluate(policy_path(request.path), session, AccessMode.API)

        if decision.kind == "deny":
            return jsonify({"message": decision.message}), decision.status_code
        if decision.kind == "redirect":
            return redirect(decision.location)

        g.session = session
        return f(*args, **kwargs)

    return decorated
