"""Request/response schemas for the code and location endpoints."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from billing_schemas.codes import MatchCandidate


class NormalizeRequest(BaseModel):
    value: Optional[str] = Field(None, description="Raw code text, e.g. 'CPT: 99213-25'")


class NormalizeResponse(BaseModel):
    normalized: str
    is_valid_format: bool
    code: Optional[str] = None
    modifier: Optional[str] = None


class SearchRequest(BaseModel):
    query: str = ""
    max_results: int = Field(5, ge=1, le=50)


class SearchResponse(BaseModel):
    query: str
    candidates: List[MatchCandidate] = Field(default_factory=list)


class ResolveRequest(BaseModel):
    query_text: str = ""
    include_opps: Optional[bool] = None
    include_dmepos: Optional[bool] = None


class ScanRequest(BaseModel):
    text: Optional[str] = None
    filename: Optional[str] = Field(None, description="Used only when no text is supplied")
