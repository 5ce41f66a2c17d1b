def test_create_ticket_as_user(client, org, auth_headers):
    headers, user = auth_headers(role="user", organization_id=org.id)

    r = client.post("/api/tickets/", json={
        "title": "  Flickering lights  ",
        "description": "Lights in meeting room B flicker all day.",
        "priority": "low",
        "category": "maintenance",
        "site_location": "Room B",
    }, headers=headers)
    assert r.status_code == 201
    ticket = r.json()
    assert ticket["status"] == "open"
    assert ticket["title"] == "Flickering lights"
    assert ticket["requester_id"] == user.id
    assert ticket["organization_id"] == org.id
    assert ticket["admin_id"] is None
    assert ticket["version"] == 0

    r = client.get(f"/api/tickets/{ticket['id']}/updates", headers=headers)
    assert r.status_code == 200
    updates = r.json()
    assert len(updates) == 1
    assert updates[0]["update_type"] == "created"
    assert updates[0]["details"] == {"initial_priority": "low", "initial_category": "maintenance"}


def test_create_ticket_requires_auth(client):
    r = client.post("/api/tickets/", json={"title": "No auth here", "description": "Should not be created", "category": "IT"})
    assert r.status_code == 401


def test_super_admin_cannot_create_ticket(client, auth_headers, error_code):
    headers, _ = auth_headers(role="super_admin")
    r = client.post("/api/tickets/", json={"title": "From the top", "description": "Super admins have no org", "category": "IT"}, headers=headers)
    assert r.status_code == 403
    assert error_code(r) == "forbidden"


def test_listing_is_role_scoped(client, create_organization, auth_headers, open_ticket):
    org_a = create_organization()
    org_b = create_organization()
    user1_headers, _ = auth_headers(role="user", organization_id=org_a.id)
    user2_headers, _ = auth_headers(role="user", organization_id=org_a.id)
    user_b_headers, _ = auth_headers(role="user", organization_id=org_b.id)
    admin_headers, _ = auth_headers(role="org_admin", organization_id=org_a.id)
    contractor_headers, _ = auth_headers(role="contractor", organization_id=org_a.id)
    super_headers, _ = auth_headers(role="super_admin")

    open_ticket(user1_headers, title="First request")
    open_ticket(user2_headers, title="Second request")
    open_ticket(user_b_headers, title="Other org request")

    def titles(headers, **params):
        r = client.get("/api/tickets/", params=params, headers=headers)
        assert r.status_code == 200
        return {t["title"] for t in r.json()["data"]}

    assert titles(user1_headers) == {"First request"}
    assert titles(admin_headers) == {"First request", "Second request"}
    # open tickets of their own organization are visible to contractors
    assert titles(contractor_headers) == {"First request", "Second request"}
    assert titles(super_headers) == {"First request", "Second request", "Other org request"}
    assert titles(super_headers, status="assigned") == set()


def test_list_filters_and_pagination(client, org, auth_headers, open_ticket):
    headers, _ = auth_headers(role="user", organization_id=org.id)
    for i in range(3):
        open_ticket(headers, title=f"IT problem {i}", category="IT", priority="urgent")
    open_ticket(headers, title="Sales question", category="sales", priority="low")

    r = client.get("/api/tickets/", params={"category": "IT", "limit": 2}, headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert len(body["data"]) == 2
    assert body["pagination"]["total"] == 3
    assert body["pagination"]["totalPages"] == 2

    r = client.get("/api/tickets/", params={"priority": "low"}, headers=headers)
    assert [t["title"] for t in r.json()["data"]] == ["Sales question"]

    r = client.get("/api/tickets/", params={"status": "bogus"}, headers=headers)
    assert r.status_code == 422


def test_get_ticket_detail_and_visibility(client, create_organization, auth_headers, open_ticket, error_code):
    org = create_organization()
    headers, _ = auth_headers(role="user", organization_id=org.id)
    other_headers, _ = auth_headers(role="user", organization_id=org.id)
    admin_headers, _ = auth_headers(role="org_admin", organization_id=org.id)
    ticket = open_ticket(headers)

    r = client.get(f"/api/tickets/{ticket['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json()["allowed_statuses"] == []

    r = client.get(f"/api/tickets/{ticket['id']}", headers=admin_headers)
    assert r.json()["allowed_statuses"] == ["cancelled"]

    r = client.get(f"/api/tickets/{ticket['id']}", headers=other_headers)
    assert r.status_code == 403

    r = client.get("/api/tickets/does-not-exist", headers=headers)
    assert r.status_code == 404
    assert error_code(r) == "not_found"


def test_user_cannot_change_status(client, org, auth_headers, open_ticket, error_code):
    headers, _ = auth_headers(role="user", organization_id=org.id)
    ticket = open_ticket(headers)

    r = client.patch(f"/api/tickets/{ticket['id']}/status", json={"status": "cancelled"}, headers=headers)
    assert r.status_code == 403
    assert error_code(r) == "forbidden"


def test_invalid_transition_is_400_and_leaves_ticket_alone(client, org, auth_headers, open_ticket, error_code):
    user_headers, _ = auth_headers(role="user", organization_id=org.id)
    admin_headers, _ = auth_headers(role="org_admin", organization_id=org.id)
    ticket = open_ticket(user_headers)

    r = client.patch(f"/api/tickets/{ticket['id']}/status", json={"status": "completed"}, headers=admin_headers)
    assert r.status_code == 400
    assert error_code(r) == "invalid_transition"
    assert r.json()["error"]["details"] == {"from": "open", "to": "completed"}

    r = client.get(f"/api/tickets/{ticket['id']}", headers=admin_headers)
    assert r.json()["status"] == "open"
    assert r.json()["version"] == 0


def test_open_to_assigned_through_status_endpoint_is_denied(client, org, auth_headers, open_ticket):
    user_headers, _ = auth_headers(role="user", organization_id=org.id)
    admin_headers, _ = auth_headers(role="org_admin", organization_id=org.id)
    ticket = open_ticket(user_headers)

    r = client.patch(f"/api/tickets/{ticket['id']}/status", json={"status": "assigned"}, headers=admin_headers)
    assert r.status_code == 403


def test_admin_cancels_open_ticket(client, org, auth_headers, open_ticket):
    user_headers, _ = auth_headers(role="user", organization_id=org.id)
    admin_headers, admin = auth_headers(role="org_admin", organization_id=org.id)
    ticket = open_ticket(user_headers)

    r = client.patch(f"/api/tickets/{ticket['id']}/status", json={"status": "cancelled", "note": "Duplicate"}, headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["ticket"]["status"] == "cancelled"
    assert body["ticket"]["version"] == 1
    assert body["update"]["update_type"] == "cancelled"
    assert body["update"]["created_by"] == admin.id
    assert body["update"]["note"] == "Duplicate"


def test_comment_only_status_update(client, org, auth_headers, open_ticket):
    user_headers, _ = auth_headers(role="user", organization_id=org.id)
    admin_headers, _ = auth_headers(role="org_admin", organization_id=org.id)
    ticket = open_ticket(user_headers)

    r = client.patch(f"/api/tickets/{ticket['id']}/status", json={"status": "open"}, headers=admin_headers)
    assert r.status_code == 400

    r = client.patch(f"/api/tickets/{ticket['id']}/status", json={"status": "open", "note": "Waiting on parts"}, headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["ticket"]["status"] == "open"
    assert body["update"]["update_type"] == "comment"
    assert body["update"]["old_status"] == body["update"]["new_status"] == "open"


def test_break_glass(client, org, auth_headers, open_ticket):
    user_headers, _ = auth_headers(role="user", organization_id=org.id)
    admin_headers, _ = auth_headers(role="org_admin", organization_id=org.id)
    super_headers, _ = auth_headers(role="super_admin")
    ticket = open_ticket(user_headers)

    client.patch(f"/api/tickets/{ticket['id']}/status", json={"status": "cancelled"}, headers=admin_headers)

    r = client.post(f"/api/tickets/{ticket['id']}/break-glass", json={"status": "open", "reason": "Cancelled by mistake"}, headers=admin_headers)
    assert r.status_code == 403

    r = client.post(f"/api/tickets/{ticket['id']}/break-glass", json={"status": "open", "reason": "Cancelled by mistake"}, headers=super_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["ticket"]["status"] == "open"
    assert body["update"]["update_type"] == "break_glass"
    assert body["update"]["details"] == {"reason": "Cancelled by mistake"}


def test_denied_mutations_are_audited(client, org, auth_headers, open_ticket, db_session):
    from helpdesk.models import AuditLogModel

    headers, user = auth_headers(role="user", organization_id=org.id)
    ticket = open_ticket(headers)

    r = client.patch(f"/api/tickets/{ticket['id']}/status", json={"status": "cancelled"}, headers=headers)
    assert r.status_code == 403

    rows = db_session.query(AuditLogModel).filter(AuditLogModel.status == "DENIED").all()
    assert [(row.user_id, row.action, row.resource_id) for row in rows] == [(user.id, "UPDATE_STATUS", ticket["id"])]


def test_break_glass_keeps_assignment_fields_coherent(client, org, auth_headers, create_user, open_ticket, error_code):
    user_headers, _ = auth_headers(role="user", organization_id=org.id)
    admin_headers, _ = auth_headers(role="org_admin", organization_id=org.id)
    super_headers, _ = auth_headers(role="super_admin")
    contractor = create_user(role="contractor", organization_id=org.id)
    ticket = open_ticket(user_headers)

    r = client.post(f"/api/tickets/{ticket['id']}/break-glass", json={"status": "assigned", "reason": "Skip the queue"}, headers=super_headers)
    assert r.status_code == 400
    assert error_code(r) == "ticket_not_assignable"
    assert client.get(f"/api/tickets/{ticket['id']}", headers=admin_headers).json()["status"] == "open"

    r = client.put(f"/api/tickets/{ticket['id']}/assign", json={"contractor_id": contractor.id}, headers=admin_headers)
    assert r.status_code == 200

    r = client.post(f"/api/tickets/{ticket['id']}/break-glass", json={"status": "open", "reason": "Wrong contractor picked"}, headers=super_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["ticket"]["status"] == "open"
    assert body["ticket"]["contractor_id"] is None
    assert body["ticket"]["admin_id"] is None
    assert body["update"]["details"]["previous_contractor_id"] == contractor.id

    # the released ticket is assignable again
    r = client.put(f"/api/tickets/{ticket['id']}/assign", json={"contractor_id": contractor.id}, headers=admin_headers)
    assert r.status_code == 200
