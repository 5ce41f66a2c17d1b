"""Ticket status transition graph.

The graph is an explicit edge table. Any (from, to) pair missing from
`TRANSITIONS` is rejected with `InvalidTransition`; pairs that exist but that
the caller may not trigger are rejected with `Denied`, so clients can tell
"this never happens" from "you cannot do this".

    open -> assigned -> accepted -> in_progress -> completed -> closed
    open / assigned / accepted -> cancelled
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from helpdesk.policy import capabilities
from helpdesk.policy.errors import Denied, InvalidTransition, PolicyError, TicketNotAssignable
from helpdesk.policy.types import (
    Action,
    Actor,
    Outcome,
    TicketState,
    TicketStatus,
    UpdateRecord,
    UpdateType,
)


class Party(str, Enum):
    """Who may trigger an edge, relative to the ticket."""

    ASSIGNEE = "assigned contractor"
    ADMIN = "admin"
    REQUESTER = "requester"
    # only reachable through the assignment checker
    ASSIGNMENT = "assignment"


S = TicketStatus

TRANSITIONS: Dict[Tuple[TicketStatus, TicketStatus], FrozenSet[Party]] = {
    (S.OPEN, S.ASSIGNED): frozenset({Party.ASSIGNMENT}),
    (S.ASSIGNED, S.ACCEPTED): frozenset({Party.ASSIGNEE}),
    (S.ASSIGNED, S.CANCELLED): frozenset({Party.ASSIGNEE, Party.ADMIN}),
    (S.ACCEPTED, S.IN_PROGRESS): frozenset({Party.ASSIGNEE}),
    (S.ACCEPTED, S.CANCELLED): frozenset({Party.ASSIGNEE, Party.ADMIN}),
    (S.IN_PROGRESS, S.COMPLETED): frozenset({Party.ASSIGNEE}),
    (S.COMPLETED, S.CLOSED): frozenset({Party.ADMIN}),
    (S.OPEN, S.CANCELLED): frozenset({Party.ADMIN, Party.REQUESTER}),
}

# Statuses that only make sense with a contractor on the ticket
CONTRACTOR_STATUSES = frozenset({S.ASSIGNED, S.ACCEPTED, S.IN_PROGRESS})

_UPDATE_TYPES: Dict[TicketStatus, UpdateType] = {
    S.ASSIGNED: UpdateType.ASSIGNED,
    S.ACCEPTED: UpdateType.ACCEPTED,
    S.IN_PROGRESS: UpdateType.IN_PROGRESS,
    S.COMPLETED: UpdateType.COMPLETED,
    S.CLOSED: UpdateType.CLOSED,
    S.CANCELLED: UpdateType.CANCELLED,
}


def is_edge(from_status: TicketStatus, to_status: TicketStatus) -> bool:
    return (from_status, to_status) in TRANSITIONS


def parties_of(actor: Actor, ticket: TicketState) -> Set[Party]:
    """Relationships `actor` holds to `ticket` for the purpose of edge triggers."""
    parties: Set[Party] = set()
    if ticket.contractor_id is not None and ticket.contractor_id == actor.id:
        parties.add(Party.ASSIGNEE)
    if actor.is_admin:
        parties.add(Party.ADMIN)
    if ticket.requester_id is not None and ticket.requester_id == actor.id:
        parties.add(Party.REQUESTER)
    return parties


def _describe(parties: FrozenSet[Party]) -> str:
    return " or ".join(sorted(p.value for p in parties))


def change_status(
    actor: Actor,
    ticket: TicketState,
    to_status: TicketStatus,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
    scheduled_arrival: Optional[datetime] = None,
    estimated_duration: Optional[int] = None,
) -> Outcome:
    """Validate and apply a status change requested through the status endpoint.

    `to_status == ticket.status` together with a note is a comment-only
    update: the note is recorded, the status stays. Without a note the same
    request is an invalid transition. `scheduled_arrival` and
    `estimated_duration` are only taken into account when accepting.
    """
    to_status = TicketStatus(to_status)
    from_status = ticket.status
    now = now or datetime.now(timezone.utc)
    note = note.strip() if note else None

    if to_status == from_status:
        if not note:
            raise InvalidTransition(from_status, to_status)
        capabilities.require(actor, Action.UPDATE_STATUS, ticket)
        record = UpdateRecord(
            ticket_id=ticket.id,
            update_type=UpdateType.COMMENT,
            actor_id=actor.id,
            created_at=now,
            old_status=from_status,
            new_status=from_status,
            description="Progress note",
            note=note,
        )
        return Outcome(ticket=ticket.evolve(updated_at=now), update=record)

    triggers = TRANSITIONS.get((from_status, to_status))
    if triggers is None:
        raise InvalidTransition(from_status, to_status)

    capabilities.require(actor, Action.UPDATE_STATUS, ticket)

    if triggers == {Party.ASSIGNMENT}:
        raise Denied(Action.UPDATE_STATUS.value, "open -> assigned requires assigning a contractor")

    held = parties_of(actor, ticket)
    if not triggers & held:
        raise Denied(
            Action.UPDATE_STATUS.value,
            f"only the {_describe(triggers)} can move a ticket from {from_status.value} to {to_status.value}",
        )

    changes: dict = {"status": to_status, "updated_at": now}
    if to_status == S.ACCEPTED:
        if scheduled_arrival is not None:
            changes["scheduled_arrival"] = scheduled_arrival
        if estimated_duration is not None:
            changes["estimated_duration"] = estimated_duration
    elif to_status == S.IN_PROGRESS:
        changes["actual_arrival"] = now
    elif to_status == S.COMPLETED:
        changes["completion_date"] = now

    update_type = _UPDATE_TYPES[to_status]
    if from_status == S.ASSIGNED and to_status == S.CANCELLED and Party.ASSIGNEE in held:
        update_type = UpdateType.REJECTED

    record = UpdateRecord(
        ticket_id=ticket.id,
        update_type=update_type,
        actor_id=actor.id,
        created_at=now,
        old_status=from_status,
        new_status=to_status,
        description=f"Status changed from {from_status.value} to {to_status.value}",
        note=note,
    )
    return Outcome(ticket=ticket.evolve(**changes), update=record)


def force_status(actor: Actor, ticket: TicketState, to_status: TicketStatus, reason: str, now: Optional[datetime] = None) -> Outcome:
    """Break-glass override: set any status, bypassing the graph but not the capability table.

    The override still keeps the assignment fields coherent: statuses that
    need a contractor are refused on an unassigned ticket, and forcing a
    ticket back to `open` releases its contractor like an unassignment does.
    """
    to_status = TicketStatus(to_status)
    capabilities.require(actor, Action.BREAK_GLASS, ticket)
    reason = (reason or "").strip()
    if not reason:
        raise PolicyError("A reason is required for break-glass changes")
    if to_status == ticket.status:
        raise InvalidTransition(ticket.status, to_status)
    if to_status in CONTRACTOR_STATUSES and ticket.contractor_id is None:
        raise TicketNotAssignable(
            f"Assign a contractor before moving the ticket to {to_status.value}",
            {"status": ticket.status.value, "to": to_status.value},
        )

    now = now or datetime.now(timezone.utc)
    changes: dict = {"status": to_status, "updated_at": now}
    details: dict = {"reason": reason}
    if to_status == S.OPEN:
        changes.update(
            contractor_id=None,
            contractor_name=None,
            admin_id=None,
            estimated_duration=None,
            scheduled_arrival=None,
            actual_arrival=None,
            completion_date=None,
        )
        if ticket.contractor_id is not None:
            details["previous_contractor_id"] = ticket.contractor_id

    record = UpdateRecord(
        ticket_id=ticket.id,
        update_type=UpdateType.BREAK_GLASS,
        actor_id=actor.id,
        created_at=now,
        old_status=ticket.status,
        new_status=to_status,
        description=f"Break-glass status override from {ticket.status.value} to {to_status.value}",
        note=reason,
        details=details,
    )
    return Outcome(ticket=ticket.evolve(**changes), update=record)


def allowed_targets(actor: Actor, ticket: TicketState) -> List[TicketStatus]:
    """Statuses `actor` could move `ticket` to through `change_status` right now."""
    if not capabilities.check(actor, Action.UPDATE_STATUS, ticket):
        return []
    held = parties_of(actor, ticket)
    return [
        to_status
        for to_status in TicketStatus
        if (ticket.status, to_status) in TRANSITIONS
        and TRANSITIONS[(ticket.status, to_status)] & held
    ]


__all__ = [
    "Party",
    "TRANSITIONS",
    "CONTRACTOR_STATUSES",
    "is_edge",
    "parties_of",
    "change_status",
    "force_status",
    "allowed_targets",
]
