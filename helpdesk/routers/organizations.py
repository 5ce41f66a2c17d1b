"""Organization (tenant) routes."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from helpdesk import models, schemas
from helpdesk.audit import audited_denials, client_ip, log_audit
from helpdesk.database import get_db
from helpdesk.dependencies import get_current_actor
from helpdesk.errors import api_error
from helpdesk.policy import capabilities
from helpdesk.policy.types import Action, Actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/organizations", tags=["Organizations"])


def get_organization_or_404(organization_id: str, db: Session) -> models.OrganizationModel:
    org = db.query(models.OrganizationModel).filter(models.OrganizationModel.id == organization_id).first()
    if not org:
        raise api_error(status.HTTP_404_NOT_FOUND, "organization_not_found", "Organization not found")
    return org


@router.post("/", response_model=schemas.OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(payload: schemas.OrganizationCreate, request: Request, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)) -> schemas.OrganizationResponse:
    """Create an organization (super admin only)."""
    ip = client_ip(request)

    with audited_denials(db, actor, "CREATE", "Organization", None, ip):
        capabilities.require(actor, Action.MANAGE_ORGANIZATIONS)

    if payload.domain:
        existing = db.query(models.OrganizationModel).filter(models.OrganizationModel.domain == payload.domain).first()
        if existing:
            raise api_error(status.HTTP_400_BAD_REQUEST, "domain_in_use", "Domain already in use")

    now = datetime.now(timezone.utc)
    org = models.OrganizationModel(
        id=str(uuid.uuid4()),
        name=payload.name.strip(),
        domain=payload.domain,
        logo_url=payload.logo_url,
        created_at=now,
        updated_at=now,
    )

    db.add(org)
    db.commit()
    db.refresh(org)

    log_audit(db, actor.id, "CREATE", "Organization", org.id, "SUCCESS", ip)

    return schemas.OrganizationResponse.model_validate(org)


@router.get("/")
async def list_organizations(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100), db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)) -> dict:
    """List organizations: every one for super admins, otherwise the caller's own."""
    q = db.query(models.OrganizationModel)
    if not capabilities.check(actor, Action.MANAGE_ORGANIZATIONS):
        q = q.filter(models.OrganizationModel.id == actor.organization_id)

    total = q.count()
    offset = (page - 1) * limit
    orgs = q.order_by(models.OrganizationModel.name.asc()).offset(offset).limit(limit).all()

    return {
        "data": [schemas.OrganizationResponse.model_validate(o) for o in orgs],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit,
        },
    }


@router.get("/{organization_id}", response_model=schemas.OrganizationResponse)
async def get_organization(organization_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)) -> schemas.OrganizationResponse:
    org = get_organization_or_404(organization_id, db)
    if not capabilities.check(actor, Action.MANAGE_ORGANIZATIONS) and actor.organization_id != org.id:
        raise api_error(status.HTTP_403_FORBIDDEN, "forbidden", "Access to this organization is forbidden")
    return schemas.OrganizationResponse.model_validate(org)
