"""Policy error taxonomy.

Every error is a decision outcome, terminal for the current invocation. Each
class carries the HTTP status and machine-readable code it is surfaced with.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from helpdesk.policy.types import TicketStatus


class PolicyError(Exception):
    status_code = 400
    code = "policy_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class Unauthenticated(PolicyError):
    status_code = 401
    code = "authentication_required"


class Denied(PolicyError):
    status_code = 403
    code = "forbidden"

    def __init__(self, action: str, reason: str) -> None:
        super().__init__(reason, {"action": action})
        self.action = action
        self.reason = reason


class InvalidTransition(PolicyError):
    status_code = 400
    code = "invalid_transition"

    def __init__(self, from_status: TicketStatus, to_status: TicketStatus) -> None:
        super().__init__(
            f"Transition {from_status.value} -> {to_status.value} is not allowed",
            {"from": from_status.value, "to": to_status.value},
        )
        self.from_status = from_status
        self.to_status = to_status


class NotAContractor(PolicyError):
    status_code = 400
    code = "not_a_contractor"


class CrossOrgAssignmentDenied(PolicyError):
    status_code = 403
    code = "cross_org_assignment_denied"


class TicketNotAssignable(PolicyError):
    status_code = 400
    code = "ticket_not_assignable"


class NotFound(PolicyError):
    status_code = 404
    code = "not_found"


class ConflictError(PolicyError):
    status_code = 409
    code = "conflict"


__all__ = [
    "PolicyError",
    "Unauthenticated",
    "Denied",
    "InvalidTransition",
    "NotAContractor",
    "CrossOrgAssignmentDenied",
    "TicketNotAssignable",
    "NotFound",
    "ConflictError",
]
