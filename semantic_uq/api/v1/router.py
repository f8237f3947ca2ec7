from fastapi import APIRouter

from semantic_uq.api.v1.confidence import router as confidence_router

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(confidence_router)
