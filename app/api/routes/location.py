"""Location pre-scan endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.dependencies import get_inferencer
from app.api.schemas.lookup import ScanRequest
from app.location.prescan import LocationInferencer, extract_text_from_filename
from billing_schemas.location import LocationEvidence

router = APIRouter(prefix="/location")


@router.post("/scan", response_model=LocationEvidence)
async def scan(
    payload: ScanRequest,
    inferencer: LocationInferencer = Depends(get_inferencer),
) -> LocationEvidence:
    text = payload.text
    if not (text and text.strip()) and payload.filename:
        text = extract_text_from_filename(payload.filename)
    return await inferencer.scan(text or "")
