"""Location inference models."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel

StateSource = Literal["text_pattern", "zip_lookup", "direct"]


class LocationEvidence(BaseModel):
    """ZIP/state evidence extracted from unstructured document text."""

    zip5: Optional[str] = None
    state_abbr: Optional[str] = None
    confidence: Literal["high", "medium", "low"] = "low"
    evidence: Optional[str] = None
    state_source: Optional[StateSource] = None
    ran: bool = True
    error: Optional[str] = None
    candidates_considered: int = 0


class ZipCandidate(BaseModel):
    """A ZIP-shaped match with its surrounding context and heuristic score."""

    zip5: str
    context: str
    score: int = 0
