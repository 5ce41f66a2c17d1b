import pytest
from sqlalchemy import inspect

from helpdesk import bootstrap
from helpdesk import database as app_db
from helpdesk.auth import verify_password
from helpdesk.models import OrganizationModel, ProfileModel

import conftest


def test_init_db_creates_tables():
    test_engine = conftest.engine
    app_db.Base.metadata.drop_all(bind=test_engine)

    original_engine = app_db.engine
    app_db.engine = test_engine
    try:
        app_db.init_db()

        tables = set(inspect(test_engine).get_table_names())
        assert {"organizations", "profiles", "tickets", "ticket_updates", "ticket_comments", "notifications", "audit_logs"} <= tables
    finally:
        app_db.engine = original_engine


def test_bootstrap_is_idempotent(db_session):
    first = bootstrap.ensure_profile(db_session, "Root@Example.com", bootstrap.Role.SUPER_ADMIN, "rootpassword", full_name="Root")
    again = bootstrap.ensure_profile(db_session, "root@example.com", bootstrap.Role.SUPER_ADMIN, None)

    assert first.id == again.id
    assert again.full_name == "Root"
    assert again.organization_id is None
    assert verify_password("rootpassword", again.hashed_password)
    assert db_session.query(ProfileModel).count() == 1


def test_bootstrap_organization_and_admin(db_session):
    org = bootstrap.ensure_organization(db_session, "Acme", "acme.example.com")
    assert bootstrap.ensure_organization(db_session, "Acme Renamed", "acme.example.com").id == org.id
    assert db_session.query(OrganizationModel).count() == 1

    admin = bootstrap.ensure_profile(db_session, "admin@acme.example.com", bootstrap.Role.ORG_ADMIN, "adminpassword", organization_id=org.id)
    assert admin.role == "org_admin"
    assert admin.organization_id == org.id


def test_bootstrap_requires_password_for_new_profile(db_session):
    with pytest.raises(ValueError):
        bootstrap.ensure_profile(db_session, "nopass@example.com", bootstrap.Role.SUPER_ADMIN, None)
