"""Ticket creation.

`open_ticket` builds the initial `open` state and its `created` record. The
organization admins to alert are looked up by the caller and passed in as
`admin_ids`; each one other than the creator gets a notification intent.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional

from helpdesk.policy import capabilities
from helpdesk.policy.types import (
    Action,
    Actor,
    NotificationIntent,
    Outcome,
    TicketCategory,
    TicketPriority,
    TicketState,
    TicketStatus,
    UpdateRecord,
    UpdateType,
)


def open_ticket(
    actor: Actor,
    ticket_id: str,
    title: str,
    description: str,
    priority: TicketPriority,
    category: TicketCategory,
    site_location: Optional[str] = None,
    admin_ids: Iterable[str] = (),
    requester_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Outcome:
    """Build a new `open` ticket owned by the actor's organization."""
    capabilities.require(actor, Action.CREATE_TICKET)

    now = now or datetime.now(timezone.utc)
    priority = TicketPriority(priority)
    category = TicketCategory(category)
    ticket = TicketState(
        id=ticket_id,
        organization_id=actor.organization_id,
        title=title.strip(),
        description=description.strip(),
        status=TicketStatus.OPEN,
        priority=priority,
        category=category,
        site_location=site_location.strip() if site_location and site_location.strip() else None,
        requester_id=actor.id,
        created_at=now,
        updated_at=now,
    )
    record = UpdateRecord(
        ticket_id=ticket_id,
        update_type=UpdateType.CREATED,
        actor_id=actor.id,
        created_at=now,
        new_status=TicketStatus.OPEN,
        description="Ticket created",
        details={"initial_priority": priority.value, "initial_category": category.value},
    )
    notifications = tuple(
        NotificationIntent(
            user_id=admin_id,
            ticket_id=ticket_id,
            organization_id=ticket.organization_id,
            message=f"New {priority.value} priority ticket assigned: {ticket.title}",
            details={
                "ticket_priority": priority.value,
                "ticket_category": category.value,
                "requester_name": requester_name,
            },
        )
        for admin_id in dict.fromkeys(admin_ids)
        if admin_id != actor.id
    )
    return Outcome(ticket=ticket, update=record, notifications=notifications)


__all__ = ["open_ticket"]
