"""Code resolution models.

These models carry reverse-search results from the lexical index and the
reference-store resolver back to callers.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Confidence = Literal["high", "medium", "low"]
SearchMethod = Literal["ilike", "token_match", "fallback_cpt_master"]


class CodeWithModifier(BaseModel):
    """A canonical code split from an optional two-character modifier."""

    code: Optional[str] = None
    modifier: Optional[str] = None

    model_config = {"frozen": True}


class ValidatedCode(BaseModel):
    """Outcome of strict validation of a raw document token."""

    code: Optional[str] = None
    modifier: Optional[str] = None
    kind: Literal["cpt", "hcpcs", "invalid"] = "invalid"
    reason: Optional[str] = None


class RejectedToken(BaseModel):
    token: str
    reason: str


class MatchCandidate(BaseModel):
    """A scored candidate code for a free-text procedure description."""

    code: str
    description: Optional[str] = None
    score: float = Field(0.0, ge=0.0, le=1.0)
    match_reason: str = ""
    confidence: Confidence = "low"

    # Populated by the lexical index only
    short_label: Optional[str] = None
    category: Optional[str] = None


class ResolutionResult(BaseModel):
    """Complete result from resolving one free-text description."""

    source_text: str
    candidates: List[MatchCandidate] = Field(default_factory=list)
    primary_candidate: Optional[MatchCandidate] = None
    is_valid_query: bool = True
    query_validation_reason: Optional[str] = None
    search_method: SearchMethod = "ilike"


class QueryValidation(BaseModel):
    """Whether a description carries enough meaningful tokens to search on."""

    is_valid: bool
    meaningful_tokens: List[str] = Field(default_factory=list)
    reason: Optional[str] = None


class SuggestedCodes(BaseModel):
    """Lexical-index candidates for one source description."""

    source_description: str
    candidates: List[MatchCandidate] = Field(default_factory=list)
