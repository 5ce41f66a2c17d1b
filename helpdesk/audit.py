"""Audit log helpers shared by the routers."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from helpdesk import models
from helpdesk.policy.errors import CrossOrgAssignmentDenied, Denied
from helpdesk.policy.types import Actor

logger = logging.getLogger(__name__)


def client_ip(request: Optional[Request]) -> Optional[str]:
    return request.client.host if request is not None and request.client else None


def log_audit(db: Session, user_id: Optional[str], action: str, resource: str, resource_id: Optional[str], status_str: str, ip_address: Optional[str], details: Optional[str] = None) -> None:
    try:
        entry = models.AuditLogModel(
            user_id=user_id,
            action=action,
            resource=resource,
            resource_id=resource_id,
            details=details,
            status=status_str,
            ip_address=ip_address,
        )
        db.add(entry)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to write audit log")


@contextmanager
def audited_denials(db: Session, actor: Actor, action: str, resource: str, resource_id: Optional[str], ip_address: Optional[str]) -> Iterator[None]:
    """Record an audit row with status DENIED when the wrapped block is refused, then re-raise."""
    try:
        yield
    except (Denied, CrossOrgAssignmentDenied) as exc:
        log_audit(db, actor.id, action, resource, resource_id, "DENIED", ip_address, details=exc.message)
        raise


__all__ = ["client_ip", "log_audit", "audited_denials"]
