"""Value types shared by the ticket policy engine.

The engine works on immutable snapshots: callers build an `Actor` and a
`TicketState` from whatever they fetched, hand them to the engine, and get an
`Outcome` back describing the new ticket state plus the audit record to
append. Nothing in here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    ORG_ADMIN = "org_admin"
    CONTRACTOR = "contractor"
    USER = "user"


ADMIN_ROLES = frozenset({Role.SUPER_ADMIN, Role.ORG_ADMIN})


class TicketStatus(str, Enum):
    OPEN = "open"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({TicketStatus.CLOSED, TicketStatus.CANCELLED})


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketCategory(str, Enum):
    IT = "IT"
    MAINTENANCE = "maintenance"
    PROJECTS = "projects"
    SALES = "sales"
    STORES = "stores"
    GENERAL = "general"


class UpdateType(str, Enum):
    CREATED = "created"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    COMMENT = "comment"
    BREAK_GLASS = "break_glass"


class Action(str, Enum):
    CREATE_TICKET = "create_ticket"
    VIEW_TICKET = "view_ticket"
    UPDATE_STATUS = "update_status"
    ASSIGN_CONTRACTOR = "assign_contractor"
    UNASSIGN_CONTRACTOR = "unassign_contractor"
    POST_COMMENT = "post_comment"
    MANAGE_USERS = "manage_users"
    MANAGE_ORGANIZATIONS = "manage_organizations"
    BREAK_GLASS = "break_glass"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller. `organization_id` is None only for super admins."""

    id: str
    role: Role
    organization_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


@dataclass(frozen=True)
class ProfileTarget:
    """The profile a `manage_users` decision is about (existing or about to be created)."""

    organization_id: Optional[str]
    role: Role


@dataclass(frozen=True)
class Candidate:
    """A profile proposed as the contractor of a ticket."""

    id: str
    role: Role
    organization_id: Optional[str]
    full_name: Optional[str] = None


@dataclass(frozen=True)
class TicketState:
    id: str
    organization_id: str
    title: str
    status: TicketStatus
    priority: TicketPriority
    category: TicketCategory
    requester_id: Optional[str]
    created_at: datetime
    updated_at: datetime
    description: str = ""
    site_location: Optional[str] = None
    admin_id: Optional[str] = None
    contractor_id: Optional[str] = None
    contractor_name: Optional[str] = None
    estimated_duration: Optional[int] = None
    scheduled_arrival: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    completion_date: Optional[datetime] = None

    def evolve(self, **changes: Any) -> "TicketState":
        return replace(self, **changes)


@dataclass(frozen=True)
class UpdateRecord:
    """Draft of one append-only ticket_updates row."""

    ticket_id: str
    update_type: UpdateType
    actor_id: str
    created_at: datetime
    old_status: Optional[TicketStatus] = None
    new_status: Optional[TicketStatus] = None
    description: Optional[str] = None
    note: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationIntent:
    user_id: str
    ticket_id: str
    organization_id: Optional[str]
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Outcome:
    """Result of an accepted engine operation: what to persist, in one write."""

    ticket: TicketState
    update: UpdateRecord
    notifications: Tuple[NotificationIntent, ...] = ()


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def deny(reason: str) -> Decision:
    return Decision(False, reason)


__all__ = [
    "Role",
    "ADMIN_ROLES",
    "TicketStatus",
    "TERMINAL_STATUSES",
    "TicketPriority",
    "TicketCategory",
    "UpdateType",
    "Action",
    "Actor",
    "ProfileTarget",
    "Candidate",
    "TicketState",
    "UpdateRecord",
    "NotificationIntent",
    "Outcome",
    "Decision",
    "ALLOW",
    "deny",
]
