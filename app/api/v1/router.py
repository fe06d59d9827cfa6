"""
API v1 router.

Aggregates all v1 endpoints.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import baselines, samples, scores

api_router = APIRouter()

# Include endpoint routers
api_router.include_router(
    scores.router, prefix="/scores", tags=["Scores"]
)
api_router.include_router(
    baselines.router, prefix="/baselines", tags=["Baselines"]
)
api_router.include_router(
    samples.router, prefix="/samples", tags=["Samples"]
)
