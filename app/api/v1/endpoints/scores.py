"""
Score endpoints: daily scores, history, recalculation and controller status.
"""

import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import get_scoring_service
from app.schemas.events import ControllerStatus
from app.schemas.score import ScoreKind, ScoreRecord, ScoreResponse
from app.services.scoring_service import ScoringService

router = APIRouter()


@router.get(
    "/status",
    summary="Get the recalculation controller status.",
    response_model=ControllerStatus,
)
async def get_status(service: ScoringService = Depends(get_scoring_service)):
    return service.status()


@router.get(
    "/{kind}/{date}",
    summary="Get the daily score for a date.",
    response_model=ScoreResponse,
)
async def get_score(
    kind: ScoreKind,
    date: datetime.date,
    service: ScoringService = Depends(get_scoring_service),
):
    """Returns the stored score, computing it once if absent.

    ``status`` is ``available`` (with ``partial`` set when a component
    fell back to a neutral value) or ``not_yet_available``.
    """
    return await service.get_score(date, kind)


@router.get(
    "/{kind}",
    summary="List stored scores in a date range.",
    response_model=list[ScoreRecord],
)
async def list_scores(
    kind: ScoreKind,
    start: datetime.date = Query(..., description="Range start (inclusive)"),
    end: Optional[datetime.date] = Query(None, description="Range end (inclusive, defaults to start)"),
    service: ScoringService = Depends(get_scoring_service),
):
    return await service.history(start, end or start, kind)


@router.post(
    "/{date}/recalculate",
    summary="Schedule an immediate recalculation of a date.",
    response_model=ControllerStatus,
    status_code=status.HTTP_202_ACCEPTED,
)
async def recalculate(date: datetime.date, service: ScoringService = Depends(get_scoring_service)):
    return await service.recalculate(date)
