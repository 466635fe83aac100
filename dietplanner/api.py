# -*- coding: utf-8 -*-
"""
Weekly diet planner API

Generates, stores and serves a week of meals, the shopping list and daily
nutrition statistics per user.
"""

from __future__ import annotations

import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .app_db import init_app_db
from .auth.security import get_identity_from_request
from .config import settings
from .errors import (
    DietPlannerError,
    error_payload,
    handle_diet_planner_error,
    handle_unexpected_error,
    handle_validation_error,
)
from .tracing import configure_logging, set_request_id
from .weekly.api import router as weekly_router

configure_logging(settings.log_level)

REQUEST_ID_HEADER = "X-Request-ID"

app = FastAPI(
    title="Weekly Diet Planner",
    description="Weekly meal plan generation, shopping lists and nutrition statistics",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Ensure the app DB exists even when lifespan events are not triggered (e.g. some test clients).
init_app_db(settings.app_db_path)


_AUTH_EXEMPT_PREFIXES = (
    "/api/docs",
    "/api/redoc",
    "/api/openapi.json",
)


@app.middleware("http")
async def _auth_gate(request: Request, call_next):
    path = request.url.path
    if path.startswith("/api") and path != "/api/health" and not any(path.startswith(p) for p in _AUTH_EXEMPT_PREFIXES):
        try:
            get_identity_from_request(request)
        except DietPlannerError as exc:
            return JSONResponse(status_code=exc.status_code, content=error_payload(exc.error, exc.details))
    return await call_next(request)


# Registered last so it runs first: the correlation id is set before the auth gate logs anything.
@app.middleware("http")
async def _request_id(request: Request, call_next):
    request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


app.add_exception_handler(DietPlannerError, handle_diet_planner_error)
app.add_exception_handler(RequestValidationError, handle_validation_error)
app.add_exception_handler(Exception, handle_unexpected_error)

app.include_router(weekly_router)


@app.get("/api/health")
def health():
    return {"status": "ok", "env": settings.env}


def run() -> None:
    """Console entry point (used by pyproject [project.scripts])."""
    import uvicorn

    host = os.environ.get("DIETPLANNER_HOST") or os.environ.get("HOST") or "127.0.0.1"
    port_raw = os.environ.get("DIETPLANNER_PORT") or os.environ.get("PORT") or "8000"
    try:
        port = int(port_raw)
    except ValueError:
        port = 8000

    uvicorn.run("dietplanner.api:app", host=host, port=port, reload=False)
