"""Provision the first super admin (and optionally an organization with its admin).

Only a super admin can create another one through the API, so a fresh deployment starts here.
The command is idempotent: an existing profile with the same email is updated
(role, name, activation and, when given, password) instead of duplicated.

Usage:
  python -m helpdesk.bootstrap --email root@example.com --password 's3cret-pass'
  python -m helpdesk.bootstrap --email root@example.com --password 's3cret-pass' \\
      --organization "Acme" --domain acme.example.com \\
      --org-admin-email admin@acme.example.com --org-admin-password 'another-pass'
"""

from __future__ import annotations

import argparse
import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from helpdesk import models
from helpdesk.auth import get_password_hash
from helpdesk.database import SessionLocal, init_db
from helpdesk.policy.types import Role

logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
logger = logging.getLogger("bootstrap")


def ensure_profile(
    db: Session,
    email: str,
    role: Role,
    password: Optional[str],
    full_name: Optional[str] = None,
    organization_id: Optional[str] = None,
) -> models.ProfileModel:
    """Create the profile, or bring an existing one to the requested role and state."""
    email = email.strip().lower()
    now = datetime.now(timezone.utc)
    profile = db.query(models.ProfileModel).filter(models.ProfileModel.email == email).first()

    if profile is None:
        if not password:
            raise ValueError(f"A password is required to create {email}")
        profile = models.ProfileModel(
            id=str(uuid.uuid4()),
            email=email,
            full_name=full_name or email.split("@")[0],
            hashed_password=get_password_hash(password),
            role=role.value,
            organization_id=organization_id,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        db.add(profile)
        logger.info("Created %s %s", role.value, email)
    else:
        profile.role = role.value
        profile.organization_id = organization_id
        profile.is_active = True
        if full_name:
            profile.full_name = full_name
        if password:
            profile.hashed_password = get_password_hash(password)
        profile.updated_at = now
        logger.info("Updated existing profile %s -> %s", email, role.value)

    db.commit()
    db.refresh(profile)
    return profile


def ensure_organization(db: Session, name: str, domain: Optional[str] = None) -> models.OrganizationModel:
    q = db.query(models.OrganizationModel)
    org = q.filter(models.OrganizationModel.domain == domain).first() if domain else q.filter(models.OrganizationModel.name == name).first()
    if org is not None:
        logger.info("Organization %s already exists (%s)", name, org.id)
        return org

    now = datetime.now(timezone.utc)
    org = models.OrganizationModel(id=str(uuid.uuid4()), name=name, domain=domain, created_at=now, updated_at=now)
    db.add(org)
    db.commit()
    db.refresh(org)
    logger.info("Created organization %s (%s)", name, org.id)
    return org


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Provision the helpdesk super admin")
    parser.add_argument("--email", required=True, help="Super admin email")
    parser.add_argument("--password", help="Super admin password (required when the profile does not exist)")
    parser.add_argument("--name", help="Super admin full name")
    parser.add_argument("--organization", help="Also ensure an organization with this name")
    parser.add_argument("--domain", help="Organization domain")
    parser.add_argument("--org-admin-email", help="Also ensure an org admin for --organization")
    parser.add_argument("--org-admin-password", help="Org admin password")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if args.org_admin_email and not args.organization:
        logger.error("--org-admin-email requires --organization")
        return 2

    init_db()
    db = SessionLocal()
    try:
        ensure_profile(db, args.email, Role.SUPER_ADMIN, args.password, full_name=args.name)
        if args.organization:
            org = ensure_organization(db, args.organization, args.domain)
            if args.org_admin_email:
                ensure_profile(db, args.org_admin_email, Role.ORG_ADMIN, args.org_admin_password, organization_id=org.id)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
