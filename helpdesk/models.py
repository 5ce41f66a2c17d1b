"""SQLAlchemy models for the helpdesk backend.

Models implemented:
- OrganizationModel (tenant)
- ProfileModel (users of every role)
- TicketModel
- TicketUpdateModel (append-only ticket history)
- CommentModel
- NotificationModel (outbox for external delivery)
- AuditLogModel

Uses SQLAlchemy 2.0 typing (Mapped, mapped_column) and the declarative Base from `helpdesk.database`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.database import Base
from helpdesk.policy.types import Role, TicketCategory, TicketPriority, TicketStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrganizationModel(Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    logo_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    profiles: Mapped[List["ProfileModel"]] = relationship("ProfileModel", back_populates="organization")
    tickets: Mapped[List["TicketModel"]] = relationship("TicketModel", back_populates="organization")

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name}>"


class ProfileModel(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=Role.USER.value)
    organization_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("organizations.id"), index=True, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    organization = relationship("OrganizationModel", back_populates="profiles")

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return f"<Profile id={self.id} email={self.email} role={self.role}>"


class TicketModel(Base):
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    organization_id: Mapped[str] = mapped_column(String(64), ForeignKey("organizations.id"), index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), index=True, nullable=False)
    description: Mapped[str] = mapped_column(String(5000), nullable=False)
    status: Mapped[str] = mapped_column(String(32), default=TicketStatus.OPEN.value, index=True)
    priority: Mapped[str] = mapped_column(String(32), default=TicketPriority.MEDIUM.value)
    category: Mapped[str] = mapped_column(String(32), default=TicketCategory.GENERAL.value)
    site_location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    requester_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("profiles.id"), index=True, nullable=True)
    admin_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=True)
    contractor_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("profiles.id"), index=True, nullable=True)

    contractor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    estimated_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    scheduled_arrival: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_arrival: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completion_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    # Optimistic locking/version column for concurrent updates
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    organization = relationship("OrganizationModel", back_populates="tickets")
    requester = relationship("ProfileModel", foreign_keys=[requester_id])
    admin = relationship("ProfileModel", foreign_keys=[admin_id])
    contractor = relationship("ProfileModel", foreign_keys=[contractor_id])
    updates: Mapped[List["TicketUpdateModel"]] = relationship(
        "TicketUpdateModel", back_populates="ticket", order_by="TicketUpdateModel.created_at"
    )
    comments: Mapped[List["CommentModel"]] = relationship("CommentModel", back_populates="ticket")

    def __repr__(self) -> str:
        return f"<Ticket id={self.id} title={self.title} status={self.status}>"


class TicketUpdateModel(Base):
    __tablename__ = "ticket_updates"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    ticket_id: Mapped[str] = mapped_column(String(64), ForeignKey("tickets.id"), index=True, nullable=False)
    update_type: Mapped[str] = mapped_column(String(32), nullable=False)
    old_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    new_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # JSON encoded
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    ticket = relationship("TicketModel", back_populates="updates")

    def __repr__(self) -> str:
        return f"<TicketUpdate id={self.id} ticket_id={self.ticket_id} type={self.update_type}>"


class CommentModel(Base):
    __tablename__ = "ticket_comments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    ticket_id: Mapped[str] = mapped_column(String(64), ForeignKey("tickets.id"), index=True, nullable=False)
    organization_id: Mapped[str] = mapped_column(String(64), ForeignKey("organizations.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=False)
    message: Mapped[str] = mapped_column(String(5000), nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    ticket = relationship("TicketModel", back_populates="comments")
    author = relationship("ProfileModel")

    def __repr__(self) -> str:
        return f"<Comment id={self.id} ticket_id={self.ticket_id} user_id={self.user_id}>"


class NotificationModel(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    organization_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("organizations.id"), nullable=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), index=True, nullable=False)
    ticket_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("tickets.id"), nullable=True)
    message: Mapped[str] = mapped_column(String(1000), nullable=False)
    notification_type: Mapped[str] = mapped_column(String(32), default="email")
    status: Mapped[str] = mapped_column(String(32), default="pending")
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user_id={self.user_id} status={self.status}>"


class AuditLogModel(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    resource: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return f"<Audit id={self.id} action={self.action} resource={self.resource}>"


__all__ = [
    "OrganizationModel",
    "ProfileModel",
    "TicketModel",
    "TicketUpdateModel",
    "CommentModel",
    "NotificationModel",
    "AuditLogModel",
]
