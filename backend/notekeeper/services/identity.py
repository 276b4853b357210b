"""
Notekeeper Backend - Caller Identity
=====================================

What:  Reads the authenticated caller from the signed session cookie.
How:   The OAuth sign-in component (external) stores the provider profile
       in the session under "profile" as {"id": ..., "displayName": ...}.
       This module only reads it; the id is trusted verbatim as the
       caller's identity and as a note's createdById.
Who:   FastAPI dependencies for the HTML routes and the owner-scoped surface.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, Request

from notekeeper.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

SESSION_PROFILE_KEY = "profile"


@dataclass(frozen=True)
class CurrentUser:
    """Identity supplied by the identity provider after authentication."""

    id: str
    display_name: str = ""

    @classmethod
    def from_profile(cls, profile: Any) -> Optional["CurrentUser"]:
        """Build from a session profile dict; None when it carries no usable id."""
        if not isinstance(profile, dict):
            return None
        user_id = profile.get("id")
        if user_id is None or str(user_id).strip() == "":
            return None
        return cls(id=str(user_id), display_name=str(profile.get("displayName") or ""))

    def to_profile(self) -> Dict[str, str]:
        return {"id": self.id, "displayName": self.display_name}


def get_current_user(request: Request) -> Optional[CurrentUser]:
    """
    FastAPI dependency: the signed-in user, or None.

    Requests that did not pass through SessionMiddleware have no session
    and are treated as anonymous.
    """
    if "session" not in request.scope:
        return None
    return CurrentUser.from_profile(request.session.get(SESSION_PROFILE_KEY))


def require_user(user: Optional[CurrentUser] = Depends(get_current_user)) -> CurrentUser:
    """
    FastAPI dependency: the signed-in user.

    Raises:
        AuthenticationError: nobody is signed in.
    """
    if user is None:
        raise AuthenticationError()
    return user


def sign_out(request: Request) -> None:
    """Forget the signed-in profile."""
    if "session" in request.scope:
        request.session.pop(SESSION_PROFILE_KEY, None)
