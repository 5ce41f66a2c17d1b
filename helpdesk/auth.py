"""Authentication helpers: JWT, password hashing and profile retrieval dependencies."""

from __future__ import annotations

import logging
import warnings
from datetime import datetime, timedelta, timezone
from typing import Optional

# Suppress specific deprecation warnings that come from third-party libs we depend on.
warnings.filterwarnings("ignore", category=DeprecationWarning, message=r".*argon2.*")
warnings.filterwarnings("ignore", category=DeprecationWarning, message=r".*datetime\.datetime\.utcnow.*")

from fastapi import Depends, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from helpdesk import models
from helpdesk.config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALGORITHM, JWT_SECRET
from helpdesk.database import get_db
from helpdesk.errors import api_error

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "iat": now})
    token = jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)
    return token


def _get_profile_by_sub(db: Session, sub: str) -> Optional[models.ProfileModel]:
    return db.query(models.ProfileModel).filter(models.ProfileModel.email == sub).first()


def authenticate_user(db: Session, email: str, password: str) -> Optional[models.ProfileModel]:
    profile = db.query(models.ProfileModel).filter(models.ProfileModel.email == email.strip().lower()).first()
    if not profile:
        return None
    if not verify_password(password, profile.hashed_password):
        return None
    return profile


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> models.ProfileModel:
    """Dependency that returns the authenticated profile or raises 401."""
    credentials_exception = api_error(
        status.HTTP_401_UNAUTHORIZED,
        "invalid_credentials",
        "Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise api_error(
            status.HTTP_401_UNAUTHORIZED,
            "authentication_required",
            "Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        sub: Optional[str] = payload.get("sub")
        if not sub:
            raise credentials_exception
    except JWTError as exc:
        logger.debug("JWT decode error: %s", exc)
        raise credentials_exception

    profile = _get_profile_by_sub(db, sub)
    if not profile:
        raise credentials_exception
    if not profile.is_active:
        raise api_error(status.HTTP_401_UNAUTHORIZED, "user_inactive", "Inactive user")
    return profile


__all__ = [
    "verify_password",
    "get_password_hash",
    "create_access_token",
    "authenticate_user",
    "get_current_user",
    "oauth2_scheme",
]
