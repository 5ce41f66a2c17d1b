"""Runtime configuration for the helpdesk service.

Every setting comes from the environment. A `.env` file in the working
directory is loaded first so local development does not need exported vars.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Project root (two levels up from this file)
PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{(PROJECT_ROOT / 'helpdesk.db').as_posix()}")

JWT_SECRET = os.getenv("JWT_SECRET", "change-this-secret-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

RATE_LIMIT = os.getenv("RATE_LIMIT", "60/minute")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Attempts for the fetch -> decide -> persist cycle when a concurrent write wins
CONFLICT_RETRY_LIMIT = int(os.getenv("CONFLICT_RETRY_LIMIT", "3"))


__all__ = [
    "PROJECT_ROOT",
    "DATABASE_URL",
    "JWT_SECRET",
    "JWT_ALGORITHM",
    "ACCESS_TOKEN_EXPIRE_MINUTES",
    "RATE_LIMIT",
    "CORS_ORIGINS",
    "LOG_LEVEL",
    "CONFLICT_RETRY_LIMIT",
]
