# -*- coding: utf-8 -*-
"""Error taxonomy and the JSON error envelope."""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import settings

logger = logging.getLogger(__name__)


class DietPlannerError(Exception):
    status_code: int = 500
    default_error: str = "Internal server error"

    def __init__(self, error: Optional[str] = None, *, details: Optional[str] = None) -> None:
        self.error = error or self.default_error
        self.details = details
        super().__init__(self.error)


class InvalidWeekToken(DietPlannerError):
    status_code = 400
    default_error = "Invalid week format. Use 'this', 'next', 'YYYY-MM-DD' or 'YYYY-Www'"


class BadRequest(DietPlannerError):
    status_code = 400
    default_error = "Invalid request"


class Unauthorized(DietPlannerError):
    status_code = 401
    default_error = "Unauthorized"


class ProfileMissing(DietPlannerError):
    status_code = 400
    default_error = "Health profile not found. Please create one first."


class UserLookupFailed(DietPlannerError):
    default_error = "Failed to look up user"


class UserCreateFailed(DietPlannerError):
    default_error = "Failed to create user"


class ComposerFailure(DietPlannerError):
    default_error = "Weekly diet composition failed"


class PrimaryPersistenceFailure(DietPlannerError):
    default_error = "Failed to save weekly diet plan"


class SecondaryPersistenceFailure(DietPlannerError):
    """Failure writing a derived artifact. Logged and reported, never fatal."""

    default_error = "Failed to save weekly diet artifact"


class RecipeLookupFailure(DietPlannerError):
    """Catalog lookup failed; affected meals keep their stored values."""

    default_error = "Recipe catalog lookup failed"


def error_payload(error: str, details: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": error}
    if details and not settings.is_production:
        payload["details"] = details
    return payload


async def handle_diet_planner_error(request: Request, exc: DietPlannerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.error, exc.details)
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc.error, exc.details))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    details = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=error_payload(str(exc) or "Internal server error", details))


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed or invalid request bodies become 400 with the usual envelope."""
    problems = []
    fields = set()
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        fields.add(loc)
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    message = "Invalid week type. Use 'this' or 'next'" if "weekType" in fields else None
    return await handle_diet_planner_error(request, BadRequest(message, details="; ".join(problems)))
