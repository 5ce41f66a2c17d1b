"""Role capability table.

`check(actor, action, ticket, target)` answers allow/deny for one action. It
is the only place role rules live: routers, listing queries and the other
policy modules all go through it.

Super admins have no organization, so every rule handles them on their own
branch before any organization comparison is attempted.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from helpdesk.policy.errors import Denied
from helpdesk.policy.types import (
    ALLOW,
    Action,
    Actor,
    Decision,
    ProfileTarget,
    Role,
    TicketState,
    TicketStatus,
    deny,
)

logger = logging.getLogger(__name__)

Rule = Callable[[Actor, Optional[TicketState], Optional[ProfileTarget]], Decision]


def _same_org(actor: Actor, organization_id: Optional[str]) -> bool:
    return actor.organization_id is not None and actor.organization_id == organization_id


def _create_ticket(actor: Actor, ticket: Optional[TicketState], target: Optional[ProfileTarget]) -> Decision:
    if actor.role == Role.SUPER_ADMIN:
        return deny("super admins have no organization to own a ticket")
    if actor.organization_id is None:
        return deny("actor does not belong to an organization")
    if ticket is not None and ticket.organization_id != actor.organization_id:
        return deny("tickets can only be created in your own organization")
    return ALLOW


def _view_ticket(actor: Actor, ticket: Optional[TicketState], target: Optional[ProfileTarget]) -> Decision:
    if ticket is None:
        return deny("no ticket given")
    if actor.role == Role.SUPER_ADMIN:
        return ALLOW
    if actor.role == Role.ORG_ADMIN:
        return ALLOW if _same_org(actor, ticket.organization_id) else deny("ticket belongs to another organization")
    if actor.role == Role.CONTRACTOR:
        if ticket.requester_id == actor.id or ticket.contractor_id == actor.id:
            return ALLOW
        # open tickets are visible to contractors of the same organization so they can be claimed
        if ticket.status == TicketStatus.OPEN and _same_org(actor, ticket.organization_id):
            return ALLOW
        return deny("ticket is not assigned to you")
    if ticket.requester_id == actor.id:
        return ALLOW
    return deny("you can only view your own tickets")


def _update_status(actor: Actor, ticket: Optional[TicketState], target: Optional[ProfileTarget]) -> Decision:
    if ticket is None:
        return deny("no ticket given")
    if actor.role == Role.SUPER_ADMIN:
        return ALLOW
    if actor.role == Role.ORG_ADMIN:
        return ALLOW if _same_org(actor, ticket.organization_id) else deny("ticket belongs to another organization")
    if actor.role == Role.CONTRACTOR:
        return ALLOW if ticket.contractor_id == actor.id else deny("ticket is not assigned to you")
    return deny("users cannot change ticket status")


def _admin_on_ticket(actor: Actor, ticket: Optional[TicketState], target: Optional[ProfileTarget]) -> Decision:
    if ticket is None:
        return deny("no ticket given")
    if actor.role == Role.SUPER_ADMIN:
        return ALLOW
    if actor.role == Role.ORG_ADMIN:
        return ALLOW if _same_org(actor, ticket.organization_id) else deny("ticket belongs to another organization")
    return deny("admin access required")


def _manage_users(actor: Actor, ticket: Optional[TicketState], target: Optional[ProfileTarget]) -> Decision:
    if actor.role == Role.SUPER_ADMIN:
        return ALLOW
    if actor.role == Role.ORG_ADMIN:
        if target is None:
            return ALLOW
        if target.role == Role.SUPER_ADMIN:
            return deny("organization admins cannot manage super admins")
        if not _same_org(actor, target.organization_id):
            return deny("organization admins can only manage their own organization")
        return ALLOW
    return deny("admin access required")


def _super_admin_only(actor: Actor, ticket: Optional[TicketState], target: Optional[ProfileTarget]) -> Decision:
    return ALLOW if actor.role == Role.SUPER_ADMIN else deny("super admin access required")


RULES: Dict[Action, Rule] = {
    Action.CREATE_TICKET: _create_ticket,
    Action.VIEW_TICKET: _view_ticket,
    Action.UPDATE_STATUS: _update_status,
    Action.ASSIGN_CONTRACTOR: _admin_on_ticket,
    Action.UNASSIGN_CONTRACTOR: _admin_on_ticket,
    # commenting follows visibility
    Action.POST_COMMENT: _view_ticket,
    Action.MANAGE_USERS: _manage_users,
    Action.MANAGE_ORGANIZATIONS: _super_admin_only,
    Action.BREAK_GLASS: _super_admin_only,
}


def check(actor: Actor, action: Action, ticket: Optional[TicketState] = None, target: Optional[ProfileTarget] = None) -> Decision:
    """Return the decision for `actor` performing `action` on `ticket` / `target`."""
    return RULES[action](actor, ticket, target)


def require(actor: Actor, action: Action, ticket: Optional[TicketState] = None, target: Optional[ProfileTarget] = None) -> None:
    """Raise `Denied` unless `check` allows the action."""
    decision = check(actor, action, ticket, target)
    if not decision:
        logger.warning(
            "Denied %s for actor=%s role=%s ticket=%s: %s",
            action.value,
            actor.id,
            actor.role.value,
            ticket.id if ticket is not None else None,
            decision.reason,
        )
        raise Denied(action.value, decision.reason)


__all__ = ["RULES", "check", "require"]
