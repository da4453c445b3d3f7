"""
Role-Based Access Control – who may see which path.

One decision table serves both the page middleware and the API guard; the
mode only changes how a refusal is presented (redirect vs. status code).
"""

from typing import Optional

from emr.config import (
    ADMIN_HOME,
    ADMIN_PREFIX,
    LOGIN_PATH,
    LOGTAIL_PATH,
    NURSE_HOME,
    PUBLIC_ASSET_PATHS,
)
from emr.models import AccessDecision, AccessMode, Role, Session

UNAUTHENTICATED_MESSAGE = "Authentication required"
FORBIDDEN_MESSAGE = "Forbidden"

# Internal verdicts, projected into an AccessDecision per mode.
_ALLOW = "allow"
_UNAUTHENTICATED = "unauthenticated"
_FORBIDDEN = "forbidden"
_GO_HOME = "go_home"


def home_for(role: Role) -> str:
    """Landing page for a role."""
    return ADMIN_HOME if role is Role.ADMIN else NURSE_HOME


def _is_admin_path(path: str) -> bool:
    return path.startswith(ADMIN_PREFIX)


def _verdict(path: str, session: Optional[Session]) -> str:
    if path in PUBLIC_ASSET_PATHS:
        return _ALLOW

    if session is None:
        return _ALLOW if path == LOGIN_PATH else _UNAUTHENTICATED

    if path == LOGIN_PATH:
        return _GO_HOME

    if session.role is Role.ADMIN:
        if _is_admin_path(path) or path == LOGTAIL_PATH:
            return _ALLOW
        return _FORBIDDEN

    if _is_admin_path(path):
        return _FORBIDDEN
    return _ALLOW


def evaluate(path: str, session: Optional[Session],
             mode: AccessMode = AccessMode.PAGE) -> AccessDecision:
    """Decide whether *session* may reach *path*."""
    verdict = _verdict(path, session)

    if verdict == _ALLOW:
        return AccessDecision.allow()

    if verdict == _UNAUTHENTICATED:
        if mode is AccessMode.API:
            return AccessDecision.deny(401, UNAUTHENTICATED_MESSAGE)
        return AccessDecision.redirect(LOGIN_PATH)

    if verdict == _FORBIDDEN and mode is AccessMode.API:
        return AccessDecision.deny(403, FORBIDDEN_MESSAGE)

    # _FORBIDDEN in page mode and _GO_HOME both send the user to their home.
    return AccessDecision.redirect(home_for(session.role))
