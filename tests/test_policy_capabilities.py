from datetime import datetime, timezone

import pytest

from helpdesk.policy import capabilities
from helpdesk.policy.errors import Denied
from helpdesk.policy.types import (
    Action,
    Actor,
    ProfileTarget,
    Role,
    TicketCategory,
    TicketPriority,
    TicketState,
    TicketStatus,
)

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

SUPER = Actor(id="s1", role=Role.SUPER_ADMIN)
ADMIN_A = Actor(id="a1", role=Role.ORG_ADMIN, organization_id="org-a")
ADMIN_B = Actor(id="a2", role=Role.ORG_ADMIN, organization_id="org-b")
CONTRACTOR_A = Actor(id="c1", role=Role.CONTRACTOR, organization_id="org-a")
CONTRACTOR_B = Actor(id="c2", role=Role.CONTRACTOR, organization_id="org-b")
USER_A = Actor(id="u1", role=Role.USER, organization_id="org-a")
OTHER_USER_A = Actor(id="u2", role=Role.USER, organization_id="org-a")


def _ticket(**overrides):
    fields = dict(
        id="t1",
        organization_id="org-a",
        title="Printer jam",
        status=TicketStatus.OPEN,
        priority=TicketPriority.MEDIUM,
        category=TicketCategory.IT,
        requester_id=USER_A.id,
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return TicketState(**fields)


def test_super_admin_cannot_create_tickets():
    decision = capabilities.check(SUPER, Action.CREATE_TICKET)
    assert not decision
    assert "organization" in decision.reason

    with pytest.raises(Denied):
        capabilities.require(SUPER, Action.CREATE_TICKET)


@pytest.mark.parametrize("actor", [ADMIN_A, CONTRACTOR_A, USER_A])
def test_org_members_create_in_own_org_only(actor):
    assert capabilities.check(actor, Action.CREATE_TICKET)
    assert capabilities.check(actor, Action.CREATE_TICKET, _ticket())
    assert not capabilities.check(actor, Action.CREATE_TICKET, _ticket(organization_id="org-b"))


def test_actor_without_organization_cannot_create():
    orphan = Actor(id="x", role=Role.USER, organization_id=None)
    assert not capabilities.check(orphan, Action.CREATE_TICKET)


def test_view_rules():
    ticket = _ticket()
    assert capabilities.check(SUPER, Action.VIEW_TICKET, ticket)
    assert capabilities.check(ADMIN_A, Action.VIEW_TICKET, ticket)
    assert not capabilities.check(ADMIN_B, Action.VIEW_TICKET, ticket)
    assert capabilities.check(USER_A, Action.VIEW_TICKET, ticket)
    assert not capabilities.check(OTHER_USER_A, Action.VIEW_TICKET, ticket)


def test_contractor_sees_open_tickets_of_own_org_and_own_assignments():
    assert capabilities.check(CONTRACTOR_A, Action.VIEW_TICKET, _ticket())
    assert not capabilities.check(CONTRACTOR_B, Action.VIEW_TICKET, _ticket())

    assigned_to_other = _ticket(status=TicketStatus.ASSIGNED, contractor_id="someone-else")
    assert not capabilities.check(CONTRACTOR_A, Action.VIEW_TICKET, assigned_to_other)

    # assignment trumps organization
    assigned_cross_org = _ticket(status=TicketStatus.ACCEPTED, contractor_id=CONTRACTOR_B.id)
    assert capabilities.check(CONTRACTOR_B, Action.VIEW_TICKET, assigned_cross_org)

    own_request = _ticket(status=TicketStatus.CLOSED, requester_id=CONTRACTOR_A.id)
    assert capabilities.check(CONTRACTOR_A, Action.VIEW_TICKET, own_request)


def test_comment_follows_visibility():
    ticket = _ticket(status=TicketStatus.ASSIGNED, contractor_id=CONTRACTOR_A.id)
    for actor in (SUPER, ADMIN_A, ADMIN_B, CONTRACTOR_A, CONTRACTOR_B, USER_A, OTHER_USER_A):
        assert bool(capabilities.check(actor, Action.POST_COMMENT, ticket)) == bool(capabilities.check(actor, Action.VIEW_TICKET, ticket))


def test_update_status_gate():
    ticket = _ticket(status=TicketStatus.ASSIGNED, contractor_id=CONTRACTOR_A.id)
    assert capabilities.check(SUPER, Action.UPDATE_STATUS, ticket)
    assert capabilities.check(ADMIN_A, Action.UPDATE_STATUS, ticket)
    assert not capabilities.check(ADMIN_B, Action.UPDATE_STATUS, ticket)
    assert capabilities.check(CONTRACTOR_A, Action.UPDATE_STATUS, ticket)
    assert not capabilities.check(CONTRACTOR_B, Action.UPDATE_STATUS, ticket)
    assert not capabilities.check(USER_A, Action.UPDATE_STATUS, ticket)


@pytest.mark.parametrize("action", [Action.ASSIGN_CONTRACTOR, Action.UNASSIGN_CONTRACTOR])
def test_assignment_actions_are_admin_only(action):
    ticket = _ticket()
    assert capabilities.check(SUPER, action, ticket)
    assert capabilities.check(ADMIN_A, action, ticket)
    assert not capabilities.check(ADMIN_B, action, ticket)
    assert not capabilities.check(CONTRACTOR_A, action, ticket)
    assert not capabilities.check(USER_A, action, ticket)


def test_manage_users_targets():
    assert capabilities.check(SUPER, Action.MANAGE_USERS, target=ProfileTarget("org-b", Role.ORG_ADMIN))
    assert capabilities.check(SUPER, Action.MANAGE_USERS, target=ProfileTarget(None, Role.SUPER_ADMIN))

    assert capabilities.check(ADMIN_A, Action.MANAGE_USERS)
    assert capabilities.check(ADMIN_A, Action.MANAGE_USERS, target=ProfileTarget("org-a", Role.CONTRACTOR))
    assert capabilities.check(ADMIN_A, Action.MANAGE_USERS, target=ProfileTarget("org-a", Role.ORG_ADMIN))
    assert not capabilities.check(ADMIN_A, Action.MANAGE_USERS, target=ProfileTarget("org-b", Role.USER))
    assert not capabilities.check(ADMIN_A, Action.MANAGE_USERS, target=ProfileTarget("org-a", Role.SUPER_ADMIN))

    assert not capabilities.check(CONTRACTOR_A, Action.MANAGE_USERS)
    assert not capabilities.check(USER_A, Action.MANAGE_USERS, target=ProfileTarget("org-a", Role.USER))


@pytest.mark.parametrize("action", [Action.MANAGE_ORGANIZATIONS, Action.BREAK_GLASS])
def test_super_admin_only_actions(action):
    assert capabilities.check(SUPER, action)
    for actor in (ADMIN_A, CONTRACTOR_A, USER_A):
        assert not capabilities.check(actor, action)


def test_require_carries_action_and_reason():
    with pytest.raises(Denied) as excinfo:
        capabilities.require(USER_A, Action.UPDATE_STATUS, _ticket())
    assert excinfo.value.action == "update_status"
    assert excinfo.value.status_code == 403
    assert excinfo.value.reason
