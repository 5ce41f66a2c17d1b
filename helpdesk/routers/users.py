"""Profile management routes.

Endpoints implemented:
- POST  /api/users        (manage_users for the new profile's organization and role)
- GET   /api/users        (manage_users; org admins only see their organization)
- GET   /api/users/{id}   (the profile itself, or manage_users over it)
- PATCH /api/users/{id}   (self-service fields for the profile itself, everything else needs manage_users)

Profiles are deactivated through `is_active`, never deleted: tickets keep referencing them.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from helpdesk import models, schemas
from helpdesk.audit import audited_denials, client_ip, log_audit
from helpdesk.auth import get_password_hash
from helpdesk.database import get_db
from helpdesk.dependencies import get_current_actor
from helpdesk.errors import api_error
from helpdesk.policy import capabilities
from helpdesk.policy.assignment import UNASSIGNABLE_STATUSES
from helpdesk.policy.types import Action, Actor, ProfileTarget, Role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])


def get_profile_or_404(db: Session, profile_id: str) -> models.ProfileModel:
    profile = db.query(models.ProfileModel).filter(models.ProfileModel.id == profile_id).first()
    if not profile:
        raise api_error(status.HTTP_404_NOT_FOUND, "user_not_found", "User not found")
    return profile


def _target(profile: models.ProfileModel, role: Optional[Role] = None) -> ProfileTarget:
    return ProfileTarget(organization_id=profile.organization_id, role=role or Role(profile.role))


def _active_assignments(db: Session, contractor_id: str) -> List[str]:
    """Ids of tickets the contractor still holds (`contractor_id` must keep pointing at a contractor)."""
    rows = (
        db.query(models.TicketModel.id)
        .filter(
            models.TicketModel.contractor_id == contractor_id,
            models.TicketModel.status.in_([s.value for s in UNASSIGNABLE_STATUSES]),
        )
        .order_by(models.TicketModel.created_at.asc())
        .all()
    )
    return [row[0] for row in rows]


@router.post("/", response_model=schemas.ProfileResponse, status_code=status.HTTP_201_CREATED)
async def create_user(user_in: schemas.ProfileCreate, request: Request, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)) -> schemas.ProfileResponse:
    """Create a profile. Org admins create in their own organization by default.

    Super admins belong to no organization, so `organization_id` must be left out for them.
    """
    ip = client_ip(request)

    if user_in.role == Role.SUPER_ADMIN:
        organization_id = None
    else:
        organization_id = user_in.organization_id or actor.organization_id
    target = ProfileTarget(organization_id=organization_id, role=user_in.role)
    with audited_denials(db, actor, "CREATE", "Profile", None, ip):
        capabilities.require(actor, Action.MANAGE_USERS, target=target)

    if user_in.role == Role.SUPER_ADMIN:
        if user_in.organization_id is not None:
            raise api_error(status.HTTP_400_BAD_REQUEST, "organization_not_allowed", "Super admins do not belong to an organization")
    else:
        if organization_id is None:
            raise api_error(status.HTTP_400_BAD_REQUEST, "organization_required", "organization_id is required for organization-level users")
        if not db.query(models.OrganizationModel).filter(models.OrganizationModel.id == organization_id).first():
            raise api_error(status.HTTP_404_NOT_FOUND, "organization_not_found", "Organization not found")

    existing = db.query(models.ProfileModel).filter(models.ProfileModel.email == user_in.email).first()
    if existing:
        raise api_error(status.HTTP_400_BAD_REQUEST, "email_in_use", "Email already in use")

    now = datetime.now(timezone.utc)
    profile = models.ProfileModel(
        id=str(uuid.uuid4()),
        email=user_in.email,
        full_name=user_in.full_name.strip(),
        hashed_password=get_password_hash(user_in.password),
        role=user_in.role.value,
        organization_id=organization_id,
        phone=user_in.phone,
        is_active=True,
        created_at=now,
        updated_at=now,
    )

    db.add(profile)
    db.commit()
    db.refresh(profile)

    log_audit(db, actor.id, "CREATE", "Profile", profile.id, "SUCCESS", ip)

    return schemas.ProfileResponse.model_validate(profile)


@router.get("/")
async def list_users(request: Request, role: Optional[Role] = Query(None), page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=200), db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)) -> dict:
    """List profiles, optionally filtered by role (e.g. `?role=contractor` when picking an assignee)."""
    ip = client_ip(request)

    with audited_denials(db, actor, "READ", "Profile", None, ip):
        capabilities.require(actor, Action.MANAGE_USERS)

    q = db.query(models.ProfileModel)
    if actor.role != Role.SUPER_ADMIN:
        q = q.filter(models.ProfileModel.organization_id == actor.organization_id)
    if role is not None:
        q = q.filter(models.ProfileModel.role == role.value)

    total = q.count()
    offset = (page - 1) * limit
    profiles = q.order_by(models.ProfileModel.full_name.asc()).offset(offset).limit(limit).all()

    return {
        "data": [schemas.ProfileResponse.model_validate(p) for p in profiles],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit,
        },
    }


@router.get("/{profile_id}", response_model=schemas.ProfileResponse)
async def get_user(profile_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)) -> schemas.ProfileResponse:
    profile = get_profile_or_404(db, profile_id)
    if actor.id != profile.id and not capabilities.check(actor, Action.MANAGE_USERS, target=_target(profile)):
        raise api_error(status.HTTP_403_FORBIDDEN, "forbidden", "Access to this user is forbidden")
    return schemas.ProfileResponse.model_validate(profile)


@router.patch("/{profile_id}", response_model=schemas.ProfileResponse)
async def update_user(profile_id: str, payload: schemas.ProfileUpdate, request: Request, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)) -> schemas.ProfileResponse:
    """Update a profile. Role and activation changes always require `manage_users`."""
    ip = client_ip(request)

    profile = get_profile_or_404(db, profile_id)
    changes = payload.model_dump(exclude_unset=True)

    self_service = actor.id == profile.id and set(changes) <= schemas.SELF_SERVICE_FIELDS
    if not self_service:
        with audited_denials(db, actor, "UPDATE", "Profile", profile.id, ip):
            capabilities.require(actor, Action.MANAGE_USERS, target=_target(profile))
            if changes.get("role") is not None:
                capabilities.require(actor, Action.MANAGE_USERS, target=_target(profile, role=changes["role"]))

    new_role = changes.get("role")
    if new_role is not None and new_role != Role.SUPER_ADMIN and profile.organization_id is None:
        raise api_error(status.HTTP_400_BAD_REQUEST, "organization_required", "Profiles without an organization can only hold the super_admin role")

    leaves_contractor_pool = (new_role is not None and new_role != Role.CONTRACTOR) or changes.get("is_active") is False
    if profile.role == Role.CONTRACTOR.value and leaves_contractor_pool:
        active = _active_assignments(db, profile.id)
        if active:
            raise api_error(
                status.HTTP_400_BAD_REQUEST,
                "contractor_has_active_tickets",
                "Unassign this contractor's active tickets before changing their role or deactivating them",
                {"ticket_ids": active},
            )

    for field, value in changes.items():
        if value is None:
            continue
        if field == "password":
            profile.hashed_password = get_password_hash(value)
        elif field == "role":
            profile.role = value.value
            if value == Role.SUPER_ADMIN:
                profile.organization_id = None
        else:
            setattr(profile, field, value)
    profile.updated_at = datetime.now(timezone.utc)

    db.commit()
    db.refresh(profile)

    log_audit(db, actor.id, "UPDATE", "Profile", profile.id, "SUCCESS", ip)

    return schemas.ProfileResponse.model_validate(profile)
