"""Centralized API error helpers and standard error schema.

Provides:
- api_error(...) -> HTTPException with JSON detail: {"error": {"code": str, "message": str, "details": ...}}
- make_validation_error_response(...) -> dict payload used by the validation exception handler
- make_policy_error_response(...) -> dict payload used by the policy exception handler
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import HTTPException
from fastapi.encoders import jsonable_encoder

from helpdesk.policy.errors import PolicyError


def api_error(status_code: int, code: str, message: str, details: Optional[Any] = None, headers: Optional[dict] = None) -> HTTPException:
    payload: dict = {"error": {"code": code, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return HTTPException(status_code=status_code, detail=payload, headers=headers)


def make_validation_error_response(errors: Any) -> dict:
    # jsonable_encoder converts exception objects nested in pydantic errors
    payload = {"error": {"code": "validation_error", "message": "Validation error", "details": errors}}
    return jsonable_encoder(payload)


def make_policy_error_response(exc: PolicyError) -> dict:
    payload: dict = {"error": {"code": exc.code, "message": exc.message}}
    if exc.details is not None:
        payload["error"]["details"] = exc.details
    return jsonable_encoder(payload)


__all__ = ["api_error", "make_validation_error_response", "make_policy_error_response"]
