"""Ticket routes: creation, listing and the policy-checked lifecycle mutations.

Every mutation runs through the policy engine (`helpdesk.policy`) and is written
with `store.apply_with_retry`, so a concurrent writer is either absorbed by a
re-decided retry or surfaced as 409 when the client pinned a version with
`If-Match` / `X-IF-VERSION`.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from helpdesk import models, schemas, store
from helpdesk.audit import audited_denials, client_ip, log_audit
from helpdesk.database import get_db
from helpdesk.dependencies import expected_version, get_current_actor
from helpdesk.policy import assignment, capabilities, lifecycle, transitions
from helpdesk.policy.types import Action, Actor, Role, TicketCategory, TicketPriority, TicketState, TicketStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tickets", tags=["Tickets"])


def _mutation_response(persisted: store.Persisted) -> schemas.TicketMutationResponse:
    return schemas.TicketMutationResponse(
        ticket=schemas.TicketResponse.model_validate(persisted.ticket),
        update=schemas.TicketUpdateResponse.model_validate(persisted.update),
    )


@router.post("/", response_model=schemas.TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(payload: schemas.TicketCreate, request: Request, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)) -> schemas.TicketResponse:
    """Open a ticket in the caller's organization."""
    ip = client_ip(request)

    admins = []
    if actor.organization_id is not None:
        admins = (
            db.query(models.ProfileModel)
            .filter(
                models.ProfileModel.organization_id == actor.organization_id,
                models.ProfileModel.role == Role.ORG_ADMIN.value,
                models.ProfileModel.is_active.is_(True),
            )
            .order_by(models.ProfileModel.created_at.asc())
            .all()
        )
    requester = db.query(models.ProfileModel).filter(models.ProfileModel.id == actor.id).first()

    with audited_denials(db, actor, "CREATE", "Ticket", None, ip):
        outcome = lifecycle.open_ticket(
            actor,
            str(uuid.uuid4()),
            payload.title,
            payload.description,
            payload.priority,
            payload.category,
            site_location=payload.site_location,
            admin_ids=[a.id for a in admins],
            requester_name=requester.full_name if requester else None,
        )

    persisted = store.insert_ticket(db, outcome)
    logger.info("Ticket %s created by %s", persisted.ticket.id, actor.id)

    log_audit(db, actor.id, "CREATE", "Ticket", persisted.ticket.id, "SUCCESS", ip)
    store.emit_notifications(db, outcome.notifications)

    return schemas.TicketResponse.model_validate(persisted.ticket)


@router.get("/")
async def list_tickets(
    status_filter: Optional[TicketStatus] = Query(None, alias="status"),
    priority: Optional[TicketPriority] = Query(None),
    category: Optional[TicketCategory] = Query(None),
    contractor_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> dict:
    """List the tickets the caller may view, newest first."""
    q = store.visible_tickets(db, actor)
    if status_filter is not None:
        q = q.filter(models.TicketModel.status == status_filter.value)
    if priority is not None:
        q = q.filter(models.TicketModel.priority == priority.value)
    if category is not None:
        q = q.filter(models.TicketModel.category == category.value)
    if contractor_id:
        q = q.filter(models.TicketModel.contractor_id == contractor_id)

    total = q.count()
    offset = (page - 1) * limit
    tickets = q.order_by(models.TicketModel.created_at.desc()).offset(offset).limit(limit).all()

    return {
        "data": [schemas.TicketResponse.model_validate(t) for t in tickets],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit,
        },
    }


@router.get("/{ticket_id}", response_model=schemas.TicketDetailResponse)
async def get_ticket(ticket_id: str, request: Request, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)) -> schemas.TicketDetailResponse:
    """Ticket detail plus the statuses the caller could move it to right now."""
    ticket = store.get_ticket(db, ticket_id)
    state = store.ticket_state(ticket)

    with audited_denials(db, actor, "READ", "Ticket", ticket_id, client_ip(request)):
        capabilities.require(actor, Action.VIEW_TICKET, state)

    detail = schemas.TicketDetailResponse.model_validate(ticket)
    detail.allowed_statuses = sorted(transitions.allowed_targets(actor, state), key=lambda s: s.value)
    return detail


@router.get("/{ticket_id}/updates", response_model=list[schemas.TicketUpdateResponse])
async def list_ticket_updates(ticket_id: str, request: Request, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)) -> list[schemas.TicketUpdateResponse]:
    """The ticket's history, oldest first."""
    ticket = store.get_ticket(db, ticket_id)

    with audited_denials(db, actor, "READ", "Ticket", ticket_id, client_ip(request)):
        capabilities.require(actor, Action.VIEW_TICKET, store.ticket_state(ticket))

    updates = (
        db.query(models.TicketUpdateModel)
        .filter(models.TicketUpdateModel.ticket_id == ticket_id)
        .order_by(models.TicketUpdateModel.created_at.asc())
        .all()
    )
    return [schemas.TicketUpdateResponse.model_validate(u) for u in updates]


@router.patch("/{ticket_id}/status", response_model=schemas.TicketMutationResponse)
async def change_ticket_status(
    ticket_id: str,
    body: schemas.StatusChangeRequest,
    request: Request,
    version: Optional[int] = Depends(expected_version),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> schemas.TicketMutationResponse:
    """Move a ticket along the lifecycle graph, or add a note when the status is unchanged."""
    ip = client_ip(request)

    def decide(state: TicketState):
        return transitions.change_status(
            actor,
            state,
            body.status,
            note=body.note,
            scheduled_arrival=body.scheduled_arrival,
            estimated_duration=body.estimated_duration,
        )

    with audited_denials(db, actor, "UPDATE_STATUS", "Ticket", ticket_id, ip):
        persisted = store.apply_with_retry(db, ticket_id, decide, expected_version=version)

    log_audit(db, actor.id, "UPDATE_STATUS", "Ticket", ticket_id, "SUCCESS", ip, details=persisted.update.update_type)

    return _mutation_response(persisted)


@router.put("/{ticket_id}/assign", response_model=schemas.TicketMutationResponse)
async def assign_ticket(
    ticket_id: str,
    body: schemas.AssignTicketRequest,
    request: Request,
    version: Optional[int] = Depends(expected_version),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> schemas.TicketMutationResponse:
    """Assign (or reassign) a contractor. The contractor gets a notification once the write commits."""
    ip = client_ip(request)

    profile = db.query(models.ProfileModel).filter(models.ProfileModel.id == body.contractor_id).first()
    candidate = store.candidate_from_profile(profile) if profile is not None and profile.is_active else None

    def decide(state: TicketState):
        return assignment.assign(
            actor,
            state,
            candidate,
            estimated_duration=body.estimated_duration,
            scheduled_arrival=body.scheduled_arrival,
            note=body.notes,
        )

    with audited_denials(db, actor, "ASSIGN", "Ticket", ticket_id, ip):
        persisted = store.apply_with_retry(db, ticket_id, decide, expected_version=version)

    log_audit(db, actor.id, "ASSIGN", "Ticket", ticket_id, "SUCCESS", ip, details=body.contractor_id)

    sent = store.emit_notifications(db, persisted.outcome.notifications)
    logger.info("Ticket %s assigned to %s (%d notification(s) queued)", ticket_id, body.contractor_id, sent)

    return _mutation_response(persisted)


@router.delete("/{ticket_id}/assign", response_model=schemas.TicketMutationResponse)
async def unassign_ticket(
    ticket_id: str,
    request: Request,
    note: Optional[str] = Query(None, max_length=2000),
    version: Optional[int] = Depends(expected_version),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> schemas.TicketMutationResponse:
    """Remove the contractor and reopen the ticket."""
    ip = client_ip(request)

    with audited_denials(db, actor, "UNASSIGN", "Ticket", ticket_id, ip):
        persisted = store.apply_with_retry(db, ticket_id, lambda state: assignment.unassign(actor, state, note=note), expected_version=version)

    log_audit(db, actor.id, "UNASSIGN", "Ticket", ticket_id, "SUCCESS", ip)

    return _mutation_response(persisted)


@router.post("/{ticket_id}/break-glass", response_model=schemas.TicketMutationResponse)
async def break_glass(
    ticket_id: str,
    body: schemas.BreakGlassRequest,
    request: Request,
    version: Optional[int] = Depends(expected_version),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> schemas.TicketMutationResponse:
    """Force a status outside the lifecycle graph (super admin only, reason required)."""
    ip = client_ip(request)

    with audited_denials(db, actor, "BREAK_GLASS", "Ticket", ticket_id, ip):
        persisted = store.apply_with_retry(
            db,
            ticket_id,
            lambda state: transitions.force_status(actor, state, body.status, body.reason),
            expected_version=version,
        )

    logger.warning("Break-glass on ticket %s by %s: %s", ticket_id, actor.id, body.reason)
    log_audit(db, actor.id, "BREAK_GLASS", "Ticket", ticket_id, "SUCCESS", ip, details=body.reason)

    return _mutation_response(persisted)
