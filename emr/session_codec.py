"""
Session cookie codec – Session <-> cookie value.

The value is plain JSON ``{"username": ..., "role": ...}``. When a secret is
supplied the same claims travel as an HS256-signed JWT instead.
"""

import json
from typing import Callable, Optional

import jwt

from emr.models import Role, Session

LogFn = Callable[[str, str], object]


def encode(session: Session, secret: Optional[str] = None) -> str:
    """Serialize a session for the auth-session cookie."""
    claims = session.to_dict()
    if secret:
        return jwt.encode(claims, secret, algorithm="HS256")
    return json.dumps(claims)


def _session_from_claims(claims) -> Session:
    if not isinstance(claims, dict):
        raise ValueError("session payload is not an object")

    username = claims.get("username")
    if not isinstance(username, str) or not username.strip():
        raise ValueError("session payload has no username")

    try:
        role = Role(claims.get("role"))
    except ValueError:
        raise ValueError(f"session payload has unsupported role {claims.get('role')!r}")

    return Session(username=username, role=role)


def decode(raw: Optional[str], secret: Optional[str] = None,
           log: Optional[LogFn] = None) -> Optional[Session]:
    """
    Parse a cookie value back into a Session.

    Returns None for a missing cookie and for anything that does not parse
    into a valid session. Never raises.
    """
    if not raw:
        return None

    try:
        if secret:
            claims = jwt.decode(raw, secret, algorithms=["HS256"])
        else:
            claims = json.loads(raw)
        return _session_from_claims(claims)
    except (ValueError, TypeError, RecursionError, jwt.InvalidTokenError) as e:
        if log is not None:
            log(f"Failed to parse auth-session cookie: {e}", "error")
        return None
