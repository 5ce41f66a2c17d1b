"""Common FastAPI dependency helpers.

Provides:
- get_db (re-export of helpdesk.database.get_db)
- get_current_actor: the authenticated profile as a policy `Actor`
- expected_version: optional client-supplied ticket version (If-Match / X-IF-VERSION)

Role checks do not live here: routers ask `helpdesk.policy.capabilities`.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, status

from helpdesk import models, store
from helpdesk.auth import get_current_user
from helpdesk.database import get_db
from helpdesk.errors import api_error
from helpdesk.policy.types import Actor

logger = logging.getLogger(__name__)


def get_current_actor(current_user: models.ProfileModel = Depends(get_current_user)) -> Actor:
    return store.actor_from_profile(current_user)


def expected_version(
    if_match: Optional[str] = Header(None, alias="If-Match"),
    x_if_version: Optional[str] = Header(None, alias="X-IF-VERSION"),
) -> Optional[int]:
    """Parse the optimistic-concurrency version a client expects the ticket to be at."""
    raw = if_match if if_match is not None else x_if_version
    if raw is None:
        return None
    try:
        return int(raw.strip().strip('"'))
    except ValueError:
        logger.debug("Malformed version header: %r", raw)
        raise api_error(status.HTTP_400_BAD_REQUEST, "invalid_version", "Version header must be an integer")


__all__ = ["get_db", "get_current_actor", "expected_version"]
