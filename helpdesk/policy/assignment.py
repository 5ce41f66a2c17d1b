"""Contractor assignment rules.

Preconditions for `assign`, first failure wins:

1. the actor holds `assign_contractor` for the ticket
2. the candidate is a contractor
3. org admins may only pick contractors of the ticket's organization
   (super admins may bridge organizations, e.g. shared contractor pools)
4. the ticket is `open`, `assigned` or `accepted`

Reassigning an `assigned` or `accepted` ticket puts it back to `assigned`,
which resets any prior acceptance.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from helpdesk.policy import capabilities
from helpdesk.policy.errors import CrossOrgAssignmentDenied, NotAContractor, TicketNotAssignable
from helpdesk.policy.types import (
    Action,
    Actor,
    Candidate,
    NotificationIntent,
    Outcome,
    Role,
    TicketState,
    TicketStatus,
    UpdateRecord,
    UpdateType,
)

ASSIGNABLE_STATUSES = frozenset({TicketStatus.OPEN, TicketStatus.ASSIGNED, TicketStatus.ACCEPTED})
UNASSIGNABLE_STATUSES = frozenset({TicketStatus.ASSIGNED, TicketStatus.ACCEPTED, TicketStatus.IN_PROGRESS})


def assign(
    actor: Actor,
    ticket: TicketState,
    candidate: Optional[Candidate],
    estimated_duration: Optional[int] = None,
    scheduled_arrival: Optional[datetime] = None,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Outcome:
    """Assign `candidate` as the ticket's contractor. A None candidate (unknown profile) is rejected like a non-contractor."""
    capabilities.require(actor, Action.ASSIGN_CONTRACTOR, ticket)

    if candidate is None:
        raise NotAContractor("Contractor not found or invalid")
    if candidate.role != Role.CONTRACTOR:
        raise NotAContractor("Assignee must be a contractor", {"candidate_id": candidate.id})

    if actor.role == Role.ORG_ADMIN and candidate.organization_id != ticket.organization_id:
        raise CrossOrgAssignmentDenied(
            "Contractor must be in the same organization as the ticket",
            {"candidate_id": candidate.id, "organization_id": ticket.organization_id},
        )

    if ticket.status not in ASSIGNABLE_STATUSES:
        raise TicketNotAssignable(
            f"Tickets in status {ticket.status.value} cannot be assigned",
            {"status": ticket.status.value},
        )

    now = now or datetime.now(timezone.utc)
    assigned = ticket.evolve(
        contractor_id=candidate.id,
        contractor_name=candidate.full_name,
        admin_id=actor.id,
        status=TicketStatus.ASSIGNED,
        estimated_duration=estimated_duration,
        scheduled_arrival=scheduled_arrival,
        updated_at=now,
    )
    record = UpdateRecord(
        ticket_id=ticket.id,
        update_type=UpdateType.ASSIGNED,
        actor_id=actor.id,
        created_at=now,
        old_status=ticket.status,
        new_status=TicketStatus.ASSIGNED,
        description=f"Ticket assigned to {candidate.full_name or candidate.id}",
        note=note.strip() if note else None,
        details={
            "contractor_id": candidate.id,
            "contractor_name": candidate.full_name,
            "previous_contractor_id": ticket.contractor_id,
            "estimated_duration": estimated_duration,
            "scheduled_arrival": scheduled_arrival.isoformat() if scheduled_arrival else None,
        },
    )
    notification = NotificationIntent(
        user_id=candidate.id,
        ticket_id=ticket.id,
        organization_id=ticket.organization_id,
        message=f"New {ticket.priority.value} priority ticket assigned: {ticket.title}",
        details={
            "ticket_priority": ticket.priority.value,
            "ticket_category": ticket.category.value,
            "assigned_by": actor.id,
            "estimated_duration": estimated_duration,
        },
    )
    return Outcome(ticket=assigned, update=record, notifications=(notification,))


def unassign(actor: Actor, ticket: TicketState, note: Optional[str] = None, now: Optional[datetime] = None) -> Outcome:
    """Remove the contractor and force the ticket back to `open`."""
    capabilities.require(actor, Action.UNASSIGN_CONTRACTOR, ticket)

    if ticket.contractor_id is None or ticket.status not in UNASSIGNABLE_STATUSES:
        raise TicketNotAssignable(
            "Ticket has no active contractor assignment",
            {"status": ticket.status.value},
        )

    now = now or datetime.now(timezone.utc)
    released = ticket.evolve(
        contractor_id=None,
        contractor_name=None,
        admin_id=None,
        estimated_duration=None,
        scheduled_arrival=None,
        actual_arrival=None,
        status=TicketStatus.OPEN,
        updated_at=now,
    )
    record = UpdateRecord(
        ticket_id=ticket.id,
        update_type=UpdateType.UNASSIGNED,
        actor_id=actor.id,
        created_at=now,
        old_status=ticket.status,
        new_status=TicketStatus.OPEN,
        description="Ticket unassigned and moved back to open",
        note=note.strip() if note else None,
        details={"previous_contractor_id": ticket.contractor_id},
    )
    return Outcome(ticket=released, update=record)


__all__ = ["ASSIGNABLE_STATUSES", "UNASSIGNABLE_STATUSES", "assign", "unassign"]
