"""Authentication API routes: login and current-profile endpoint."""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from helpdesk import models, schemas
from helpdesk.audit import client_ip, log_audit
from helpdesk.auth import authenticate_user, create_access_token, get_current_user
from helpdesk.config import ACCESS_TOKEN_EXPIRE_MINUTES
from helpdesk.database import get_db
from helpdesk.errors import api_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/login", response_model=schemas.TokenResponse)
async def login(credentials: schemas.LoginRequest, request: Request, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    """Authenticate with email and password and return a JWT token and the profile."""
    ip = client_ip(request)

    profile = authenticate_user(db, credentials.email, credentials.password)
    if not profile:
        log_audit(db, None, "LOGIN", "Profile", credentials.email, "FAILED", ip)
        raise api_error(status.HTTP_401_UNAUTHORIZED, "invalid_credentials", "Invalid credentials")

    if not profile.is_active:
        log_audit(db, profile.id, "LOGIN", "Profile", profile.id, "FAILED_INACTIVE", ip)
        raise api_error(status.HTTP_401_UNAUTHORIZED, "user_inactive", "User inactive")

    access_token = create_access_token(data={"sub": profile.email}, expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))

    log_audit(db, profile.id, "LOGIN", "Profile", profile.id, "SUCCESS", ip)

    return schemas.TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user=schemas.ProfileResponse.model_validate(profile),
    )


@router.get("/me", response_model=schemas.ProfileResponse)
async def me(current_user: models.ProfileModel = Depends(get_current_user)) -> schemas.ProfileResponse:
    """Return the current authenticated profile."""
    return schemas.ProfileResponse.model_validate(current_user)
