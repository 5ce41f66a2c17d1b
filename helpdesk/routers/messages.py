"""Comment routes: the conversation thread attached to a ticket.

Implements:
- POST /api/tickets/{ticket_id}/messages  -> post a comment (anyone who can view the ticket)
- GET  /api/tickets/{ticket_id}/messages  -> list comments, oldest first

Each comment carries its author (`id`, `full_name`, `role`).

Comments never change ticket state; status notes go through PATCH /status.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session, joinedload

from helpdesk import models, schemas, store
from helpdesk.audit import audited_denials, client_ip, log_audit
from helpdesk.database import get_db
from helpdesk.dependencies import get_current_actor
from helpdesk.policy import capabilities
from helpdesk.policy.types import Action, Actor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Messages"])


@router.post("/api/tickets/{ticket_id}/messages", response_model=schemas.CommentResponse, status_code=status.HTTP_201_CREATED)
async def create_message(ticket_id: str, payload: schemas.CommentCreate, request: Request, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)) -> schemas.CommentResponse:
    ip = client_ip(request)
    ticket = store.get_ticket(db, ticket_id)

    with audited_denials(db, actor, "CREATE", "Comment", ticket_id, ip):
        capabilities.require(actor, Action.POST_COMMENT, store.ticket_state(ticket))

    comment = models.CommentModel(
        id=str(uuid.uuid4()),
        ticket_id=ticket.id,
        organization_id=ticket.organization_id,
        user_id=actor.id,
        message=payload.message,
        created_at=datetime.now(timezone.utc),
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)

    log_audit(db, actor.id, "CREATE", "Comment", comment.id, "SUCCESS", ip)

    return schemas.CommentResponse.model_validate(comment)


@router.get("/api/tickets/{ticket_id}/messages")
async def list_messages(ticket_id: str, request: Request, page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=200), db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)) -> dict:
    ticket = store.get_ticket(db, ticket_id)

    with audited_denials(db, actor, "READ", "Comment", ticket_id, client_ip(request)):
        capabilities.require(actor, Action.VIEW_TICKET, store.ticket_state(ticket))

    q = db.query(models.CommentModel).filter(models.CommentModel.ticket_id == ticket_id)
    total = q.count()
    offset = (page - 1) * limit
    comments = (
        q.options(joinedload(models.CommentModel.author))
        .order_by(models.CommentModel.created_at.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )

    return {
        "data": [schemas.CommentResponse.model_validate(c) for c in comments],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit,
        },
    }
