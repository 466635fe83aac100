# -*- coding: utf-8 -*-
"""Weekly diet — API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..auth.security import get_current_identity
from .models import GenerateWeekRequest, GenerateWeekResponse, WeekNotFoundResponse, WeekResponse
from .service import generate_week, read_week

router = APIRouter(prefix="/api/diet/weekly", tags=["Weekly Diet"])


@router.post("/generate", response_model=GenerateWeekResponse, summary="Generate (or regenerate) a week of meals")
async def generate(body: GenerateWeekRequest, identity: dict = Depends(get_current_identity)):
    response = await generate_week(identity, body)
    return JSONResponse(content=response.model_dump(by_alias=True))


@router.get(
    "/{week}",
    response_model=WeekResponse,
    responses={404: {"model": WeekNotFoundResponse}},
    summary="Read a stored week (this | next | YYYY-Www | YYYY-MM-DD)",
)
def get_week(week: str, identity: dict = Depends(get_current_identity)):
    result = read_week(identity, week)
    status_code = 404 if isinstance(result, WeekNotFoundResponse) else 200
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json", by_alias=True))
