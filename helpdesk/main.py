"""FastAPI application for the multi-tenant helpdesk.

Creates the `app`, configures middleware (CORS, rate limiting), maps policy
errors to HTTP responses and registers the routers under `helpdesk.routers`.
The database schema is created on startup (`helpdesk.database.init_db`).
"""

from __future__ import annotations

import logging
import warnings
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from helpdesk import config
from helpdesk.database import init_db
from helpdesk.errors import make_policy_error_response, make_validation_error_response
from helpdesk.policy.errors import Denied, PolicyError
from helpdesk.routers import auth, messages, organizations, tickets, users

logger = logging.getLogger(__name__)
logging.basicConfig(level=config.LOG_LEVEL)

limiter = Limiter(key_func=get_remote_address, default_limits=[config.RATE_LIMIT])

# python-jose still calls datetime.utcnow()
warnings.filterwarnings("ignore", message=r"datetime.datetime.utcnow\(\) is deprecated")
warnings.filterwarnings("ignore", message=r"Accessing argon2.__version__ is deprecated")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Lifespan startup: initializing database")
    init_db()
    yield
    logger.info("Lifespan shutdown")


app = FastAPI(title="Helpdesk API", version="1.0.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

if config.CORS_ORIGINS == "*":
    allowed_origins: List[str] = ["*"]
else:
    allowed_origins = [o.strip() for o in config.CORS_ORIGINS.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(status_code=429, content={"error": {"code": "rate_limited", "message": "Rate limit exceeded"}})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content=make_validation_error_response(exc.errors()))


@app.exception_handler(PolicyError)
async def policy_exception_handler(request: Request, exc: PolicyError):
    if not isinstance(exc, Denied):
        logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=make_policy_error_response(exc))


@app.get("/api/health", tags=["Health"])
async def health() -> dict:
    return {"status": "ok"}


for module in (auth, users, organizations, tickets, messages):
    app.include_router(module.router)


__all__ = ["app", "limiter"]
