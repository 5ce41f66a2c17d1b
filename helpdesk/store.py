"""Persistence side of the policy engine.

Converts rows to engine snapshots and writes engine outcomes back:

- get_profile / get_ticket: lookups raising `NotFound`
- insert_ticket: first write of a new ticket plus its `created` record
- persist: compare-and-swap update on `tickets.version` plus one history row,
  in a single transaction; raises `ConflictError` when another write won
- apply_with_retry: fetch -> decide -> persist, re-run on conflict
- emit_notifications: best-effort outbox inserts, never rolled into the ticket write
- visible_tickets: listing query mirroring the `view_ticket` rule
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Query, Session

from helpdesk import config, models
from helpdesk.policy.errors import ConflictError, NotFound
from helpdesk.policy.types import (
    Actor,
    Candidate,
    NotificationIntent,
    Outcome,
    Role,
    TicketCategory,
    TicketPriority,
    TicketState,
    TicketStatus,
    UpdateRecord,
)

logger = logging.getLogger(__name__)

# Columns the engine may change after creation; organization_id is deliberately absent
MUTABLE_FIELDS = (
    "status",
    "admin_id",
    "contractor_id",
    "contractor_name",
    "estimated_duration",
    "scheduled_arrival",
    "actual_arrival",
    "completion_date",
    "updated_at",
)


@dataclass
class Persisted:
    """Rows written for one engine outcome."""

    ticket: models.TicketModel
    update: models.TicketUpdateModel
    outcome: Outcome


def actor_from_profile(profile: models.ProfileModel) -> Actor:
    return Actor(id=profile.id, role=Role(profile.role), organization_id=profile.organization_id)


def candidate_from_profile(profile: models.ProfileModel) -> Candidate:
    return Candidate(id=profile.id, role=Role(profile.role), organization_id=profile.organization_id, full_name=profile.full_name)


def ticket_state(ticket: models.TicketModel) -> TicketState:
    return TicketState(
        id=ticket.id,
        organization_id=ticket.organization_id,
        title=ticket.title,
        description=ticket.description,
        status=TicketStatus(ticket.status),
        priority=TicketPriority(ticket.priority),
        category=TicketCategory(ticket.category),
        site_location=ticket.site_location,
        requester_id=ticket.requester_id,
        admin_id=ticket.admin_id,
        contractor_id=ticket.contractor_id,
        contractor_name=ticket.contractor_name,
        estimated_duration=ticket.estimated_duration,
        scheduled_arrival=ticket.scheduled_arrival,
        actual_arrival=ticket.actual_arrival,
        completion_date=ticket.completion_date,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
    )


def _column_value(value):
    return value.value if isinstance(value, (TicketStatus, TicketPriority, TicketCategory)) else value


def get_profile(db: Session, profile_id: str) -> models.ProfileModel:
    profile = db.query(models.ProfileModel).filter(models.ProfileModel.id == profile_id).first()
    if not profile:
        raise NotFound("Profile not found", {"profile_id": profile_id})
    return profile


def get_ticket(db: Session, ticket_id: str) -> models.TicketModel:
    ticket = db.query(models.TicketModel).filter(models.TicketModel.id == ticket_id).first()
    if not ticket:
        raise NotFound("Ticket not found", {"ticket_id": ticket_id})
    return ticket


def _update_row(record: UpdateRecord) -> models.TicketUpdateModel:
    return models.TicketUpdateModel(
        id=str(uuid.uuid4()),
        ticket_id=record.ticket_id,
        update_type=record.update_type.value,
        old_status=record.old_status.value if record.old_status else None,
        new_status=record.new_status.value if record.new_status else None,
        created_by=record.actor_id,
        description=record.description,
        note=record.note,
        details=json.dumps(record.details) if record.details else None,
        created_at=record.created_at,
    )


def insert_ticket(db: Session, outcome: Outcome) -> Persisted:
    state = outcome.ticket
    ticket = models.TicketModel(
        id=state.id,
        organization_id=state.organization_id,
        title=state.title,
        description=state.description,
        priority=state.priority.value,
        category=state.category.value,
        site_location=state.site_location,
        requester_id=state.requester_id,
        created_at=state.created_at,
        version=0,
        **{name: _column_value(getattr(state, name)) for name in MUTABLE_FIELDS},
    )
    update = _update_row(outcome.update)
    db.add(ticket)
    db.add(update)
    db.commit()
    db.refresh(ticket)
    return Persisted(ticket, update, outcome)


def persist(db: Session, outcome: Outcome, expected_version: int) -> Persisted:
    """Write `outcome` only if the ticket row still has `expected_version`."""
    state = outcome.ticket
    values = {getattr(models.TicketModel, name): _column_value(getattr(state, name)) for name in MUTABLE_FIELDS}
    values[models.TicketModel.version] = models.TicketModel.version + 1

    updated = db.query(models.TicketModel).filter(
        models.TicketModel.id == state.id,
        models.TicketModel.version == expected_version,
    ).update(values, synchronize_session=False)

    if not updated:
        db.rollback()
        raise ConflictError(
            "Ticket was modified concurrently, please retry",
            {"ticket_id": state.id, "expected_version": expected_version},
        )

    update = _update_row(outcome.update)
    db.add(update)
    db.commit()

    ticket = get_ticket(db, state.id)
    db.refresh(ticket)
    return Persisted(ticket, update, outcome)


def apply_with_retry(
    db: Session,
    ticket_id: str,
    decide: Callable[[TicketState], Outcome],
    expected_version: Optional[int] = None,
    attempts: Optional[int] = None,
) -> Persisted:
    """Run the fetch -> decide -> persist cycle, re-deciding on a fresh read after a conflict.

    A caller-supplied `expected_version` pins the cycle to a single attempt:
    the client asked for that exact version, so a mismatch is its conflict.
    """
    limit = 1 if expected_version is not None else max(1, attempts or config.CONFLICT_RETRY_LIMIT)
    for attempt in range(1, limit + 1):
        ticket = get_ticket(db, ticket_id)
        version = ticket.version if expected_version is None else expected_version
        outcome = decide(ticket_state(ticket))
        try:
            return persist(db, outcome, version)
        except ConflictError:
            if attempt >= limit:
                raise
            logger.info("Conflict writing ticket %s (attempt %d/%d), retrying", ticket_id, attempt, limit)
    raise AssertionError("unreachable")  # pragma: no cover


def emit_notifications(db: Session, intents: Iterable[NotificationIntent]) -> int:
    """Record notification intents in the outbox. Failures are logged, never raised."""
    created = 0
    for intent in intents:
        try:
            db.add(
                models.NotificationModel(
                    id=str(uuid.uuid4()),
                    organization_id=intent.organization_id,
                    user_id=intent.user_id,
                    ticket_id=intent.ticket_id,
                    message=intent.message,
                    details=json.dumps(intent.details) if intent.details else None,
                )
            )
            db.commit()
            created += 1
        except Exception:
            db.rollback()
            logger.exception("Failed to record notification for user=%s ticket=%s", intent.user_id, intent.ticket_id)
    return created


def visible_tickets(db: Session, actor: Actor) -> Query:
    """Tickets `actor` may view; the SQL form of the `view_ticket` capability."""
    q = db.query(models.TicketModel)
    if actor.role == Role.SUPER_ADMIN:
        return q
    if actor.role == Role.ORG_ADMIN:
        return q.filter(models.TicketModel.organization_id == actor.organization_id)
    if actor.role == Role.CONTRACTOR:
        return q.filter(
            or_(
                models.TicketModel.requester_id == actor.id,
                models.TicketModel.contractor_id == actor.id,
                and_(
                    models.TicketModel.status == TicketStatus.OPEN.value,
                    models.TicketModel.organization_id == actor.organization_id,
                ),
            )
        )
    return q.filter(models.TicketModel.requester_id == actor.id)


__all__ = [
    "MUTABLE_FIELDS",
    "Persisted",
    "actor_from_profile",
    "candidate_from_profile",
    "ticket_state",
    "get_profile",
    "get_ticket",
    "insert_ticket",
    "persist",
    "apply_with_retry",
    "emit_notifications",
    "visible_tickets",
]
