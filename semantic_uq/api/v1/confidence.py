"""Confidence endpoints — semantic uncertainty over a response set."""

from fastapi import APIRouter, Depends, HTTPException

from semantic_uq.analysis.engine import SemanticEntropyEngine
from semantic_uq.core.dependencies import get_engine
from semantic_uq.core.exceptions import InputError
from semantic_uq.schemas.confidence import ConfidenceRequest, ConfidenceResponse

router = APIRouter(prefix="/confidence", tags=["confidence"])


@router.post("", response_model=ConfidenceResponse)
async def calculate_confidence(
    body: ConfidenceRequest,
    engine: SemanticEntropyEngine = Depends(get_engine),
):
    """Estimate answer confidence from agreement among candidate responses."""
    try:
        result = await engine.calculate_confidence(body.query, body.responses)
    except InputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return result.to_dict()
