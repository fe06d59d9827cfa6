"""
Baseline endpoints.
"""

import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_scoring_service
from app.schemas.baseline import BaselineSetResponse
from app.services.scoring_service import ScoringService

router = APIRouter()


@router.get(
    "",
    summary="Get the personal baselines used to score a date.",
    response_model=BaselineSetResponse,
)
async def get_baselines(
    as_of: Optional[datetime.date] = Query(None, description="Scored date (defaults to today)"),
    service: ScoringService = Depends(get_scoring_service),
):
    return await service.baselines(as_of or service.today())
