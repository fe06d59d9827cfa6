"""
Sample ingestion endpoint.
"""

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_scoring_service
from app.schemas.samples import SampleBatchIn, SampleBatchResponse
from app.services.scoring_service import ScoringService

router = APIRouter()


@router.post(
    "",
    summary="Ingest a batch of raw samples.",
    response_model=SampleBatchResponse,
    status_code=status.HTTP_201_CREATED,
)
async def ingest_samples(batch: SampleBatchIn, service: ScoringService = Depends(get_scoring_service)):
    """Every accepted sample triggers recalculation of the dates it affects."""
    return await service.ingest([s.to_sample() for s in batch.samples])
