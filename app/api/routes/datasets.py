"""Reference dataset status endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.dependencies import get_importer
from app.importers.writer import ReferenceImporter
from billing_schemas.reference import DatasetStatus

router = APIRouter(prefix="/datasets")


@router.get("", response_model=list[DatasetStatus])
async def dataset_status(importer: ReferenceImporter = Depends(get_importer)) -> list[DatasetStatus]:
    """Row count per reference table. An empty table means that dataset was never imported."""
    return await importer.dataset_status()
