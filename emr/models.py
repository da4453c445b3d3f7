"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    """The two account roles; anything else is not a valid session."""
    ADMIN = "admin"
    NURSE = "nurse"


@dataclass(frozen=True)
class Session:
    """Identity and role claim carried by the auth-session cookie."""
    username: str
    role: Role

    def to_dict(self):
        return {"username": self.username, "role": self.role.value}


class AccessMode(str, Enum):
    PAGE = "page"  # browser navigation, outcomes are redirects
    API = "api"    # programmatic clients, outcomes are status codes


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of an access check: allow, redirect or deny."""
    kind: str                          # "allow", "redirect" or "deny"
    location: Optional[str] = None     # for redirects
    status_code: Optional[int] = None  # for denials
    message: Optional[str] = None      # for denials

    @classmethod
    def allow(cls) -> "AccessDecision":
        return cls(kind="allow")

    @classmethod
    def redirect(cls, location: str) -> "AccessDecision":
        return cls(kind="redirect", location=location)

    @classmethod
    def deny(cls, status_code: int, message: str) -> "AccessDecision":
        return cls(kind="deny", status_code=status_code, message=message)

    @property
    def allowed(self) -> bool:
        return self.kind == "allow"
