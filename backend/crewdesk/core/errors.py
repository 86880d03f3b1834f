# backend/crewdesk/core/errors.py
"""
Error taxonomy for identity, team-context and authorization decisions.

Unauthenticated and Forbidden are terminal for the request.
MembershipInactive and AssignmentDenied are explanatory: they carry a message
the UI can show together with a remediation path.
"""

from __future__ import annotations

from typing import Any, Optional


class AuthzError(Exception):
    status_code: int = 400
    code: str = "authz_error"
    message: str = "Request could not be authorized."

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class Unauthenticated(AuthzError):
    """No, invalid or expired credentials, or the identity is gone/deactivated."""

    status_code = 401
    code = "unauthenticated"
    message = "Authentication required."

    def __init__(self, message: Optional[str] = None, *, clear_session: bool = False) -> None:
        super().__init__(message)
        # True when the session behind the credentials has been invalidated and
        # the client should drop its cookie.
        self.clear_session = clear_session


class Forbidden(AuthzError):
    # Deliberately says nothing about which capabilities or tenants exist.
    status_code = 403
    code = "forbidden"
    message = "Missing capability."


class MembershipInactive(AuthzError):
    status_code = 403
    code = "membership_inactive"

    def __init__(self, *, invite_status: str, is_active: bool) -> None:
        self.invite_status = invite_status
        self.is_active = is_active
        if invite_status == "pending":
            message = "Your invitation has not been accepted yet."
        else:
            message = "Your team account is deactivated. Ask your owner to reactivate your account."
        super().__init__(message)

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["invite_status"] = self.invite_status
        detail["is_active"] = self.is_active
        return detail


class NotFound(AuthzError):
    status_code = 404
    code = "not_found"
    message = "Not found."


class AssignmentDenied(AuthzError):
    status_code = 409
    code = "assignment_denied"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["reason"] = self.reason
        return detail


class Conflict(AuthzError):
    status_code = 409
    code = "conflict"
    message = "Conflicts with the current state."
