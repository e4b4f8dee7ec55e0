"""API schemas package.

This package contains the Pydantic schemas for the FastAPI integration layer.
"""

from app.api.schemas.lookup import (
    NormalizeRequest,
    NormalizeResponse,
    ResolveRequest,
    ScanRequest,
    SearchRequest,
    SearchResponse,
)

__all__ = [
    "NormalizeRequest",
    "NormalizeResponse",
    "SearchRequest",
    "SearchResponse",
    "ResolveRequest",
    "ScanRequest",
]
