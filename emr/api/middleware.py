"""
Page-level access middleware.
"""

from flask import g, redirect, request

from emr.access_policy import evaluate
from emr.api.auth import current_session
from emr.config import PUBLIC_ASSET_PATHS
from emr.models import AccessMode

# API routes run their own guard; static files and health are not pages.
SKIPPED_PREFIXES = ("/api/", "/static/")
SKIPPED_PATHS = frozenset({"/health"})


def _skipped(path: str) -> bool:
    return path in SKIPPED_PATHS or path.startswith(SKIPPED_PREFIXES)


def install_access_middleware(app):
    """Run the access policy in page mode before every page request."""

    @app.before_request
    def enforce_page_access():
        path = request.path
        if _skipped(path):
            return None
        if path in PUBLIC_ASSET_PATHS:
            # Assets bypass cookie decoding altogether.
            return None

        session = current_session()
        decision = evaluate(path, session, AccessMode.PAGE)
        if decision.kind == "redirect":
            return redirect(decision.location)

        g.session = session
        return None

    return app
