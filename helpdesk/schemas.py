"""Pydantic schemas for the helpdesk API.

Request/response models and field validation. Enumerations are the policy
engine's own enums so an out-of-range status or role never reaches it.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from helpdesk.policy.types import Role, TicketCategory, TicketPriority, TicketStatus, UpdateType


# -------------------------- Organizations ----------------------------
class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    domain: Optional[str] = Field(None, max_length=255)
    logo_url: Optional[str] = Field(None, max_length=500)


class OrganizationResponse(BaseModel):
    id: str
    name: str
    domain: Optional[str]
    logo_url: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


# ----------------------------- Profiles ------------------------------
class ProfileCreate(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=8)
    role: Role
    organization_id: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)

    @field_validator("email")
    def normalize_email(cls, v):
        return str(v).lower()


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    password: Optional[str] = Field(None, min_length=8)
    role: Optional[Role] = None
    is_active: Optional[bool] = None


# Fields a profile may change on itself without `manage_users`
SELF_SERVICE_FIELDS = {"full_name", "phone", "password"}


class ProfileResponse(BaseModel):
    id: str
    email: EmailStr
    full_name: str
    role: Role
    organization_id: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# ----------------------------- Auth ----------------------------------
class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: ProfileResponse


# ----------------------------- Tickets -------------------------------
class TicketCreate(BaseModel):
    title: str = Field(..., max_length=200)
    description: str = Field(..., max_length=5000)
    priority: TicketPriority = TicketPriority.MEDIUM
    category: TicketCategory
    site_location: Optional[str] = Field(None, max_length=255)

    @field_validator("title")
    def validate_title(cls, v):
        if len(v.strip()) < 5:
            raise ValueError("title must be between 5 and 200 characters")
        return v

    @field_validator("description")
    def validate_description(cls, v):
        if len(v.strip()) < 10:
            raise ValueError("description must be at least 10 characters")
        return v


class TicketResponse(BaseModel):
    id: str
    organization_id: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    category: TicketCategory
    site_location: Optional[str]
    requester_id: Optional[str]
    admin_id: Optional[str]
    contractor_id: Optional[str]
    contractor_name: Optional[str]
    estimated_duration: Optional[int]
    scheduled_arrival: Optional[datetime]
    actual_arrival: Optional[datetime]
    completion_date: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    version: int

    model_config = {"from_attributes": True}


class TicketDetailResponse(TicketResponse):
    allowed_statuses: List[TicketStatus] = []


class StatusChangeRequest(BaseModel):
    status: TicketStatus
    note: Optional[str] = Field(None, max_length=2000)
    scheduled_arrival: Optional[datetime] = None
    estimated_duration: Optional[int] = Field(None, ge=1)


class AssignTicketRequest(BaseModel):
    contractor_id: str = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=2000)
    estimated_duration: Optional[int] = Field(None, ge=1)
    scheduled_arrival: Optional[datetime] = None


class BreakGlassRequest(BaseModel):
    status: TicketStatus
    reason: str = Field(..., min_length=5, max_length=2000)


class TicketUpdateResponse(BaseModel):
    id: str
    ticket_id: str
    update_type: UpdateType
    old_status: Optional[TicketStatus]
    new_status: Optional[TicketStatus]
    created_by: Optional[str]
    description: Optional[str]
    note: Optional[str]
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("details", mode="before")
    def decode_details(cls, v):
        # stored as JSON text
        if isinstance(v, str):
            return json.loads(v)
        return v


class TicketMutationResponse(BaseModel):
    ticket: TicketResponse
    update: TicketUpdateResponse


# ----------------------------- Comments ------------------------------
class CommentCreate(BaseModel):
    message: str = Field(..., max_length=5000)

    @field_validator("message")
    def validate_message(cls, v):
        if not v.strip():
            raise ValueError("message is required")
        return v.strip()


class CommentAuthor(BaseModel):
    id: str
    full_name: str
    role: Role

    model_config = {"from_attributes": True}


class CommentResponse(BaseModel):
    id: str
    ticket_id: str
    user_id: str
    message: str
    created_at: datetime
    author: Optional[CommentAuthor] = None

    model_config = {"from_attributes": True}


__all__ = [
    "OrganizationCreate",
    "OrganizationResponse",
    "ProfileCreate",
    "ProfileUpdate",
    "SELF_SERVICE_FIELDS",
    "ProfileResponse",
    "LoginRequest",
    "TokenResponse",
    "TicketCreate",
    "TicketResponse",
    "TicketDetailResponse",
    "StatusChangeRequest",
    "AssignTicketRequest",
    "BreakGlassRequest",
    "TicketUpdateResponse",
    "TicketMutationResponse",
    "CommentAuthor",
    "CommentCreate",
    "CommentResponse",
]
