"""Pre-scan location extraction from document text.

Fast ZIP/state detection from bill text, used to pre-fill the pricing
locality before a full analysis runs. Scanning fails soft: every outcome,
including unexpected errors, comes back as a ``LocationEvidence`` with
``ran=True``.
"""

from __future__ import annotations

import re

from app.common.exceptions import PersistenceError
from app.domain.reference_store.repository import TABLE_ZIP_LOCALITY, ReferenceStore
from app.location.zip_prefixes import US_STATE_SET, derive_state_from_zip_prefix
from billing_schemas.location import LocationEvidence, StateSource, ZipCandidate
from config.settings import LocationSettings, get_location_settings
from observability.logging_config import get_logger
from observability.lookup_metrics import LookupMetrics
from observability.timing import timed

logger = get_logger("location_prescan")

# Keywords that boost ZIP confidence
ADDRESS_KEYWORDS: tuple[str, ...] = (
    "address",
    "zip",
    "billing",
    "statement",
    "patient",
    "provider",
    "hospital",
    "clinic",
    "medical",
    "service",
    "po box",
    "street",
    "ave",
    "blvd",
)

# Keywords that reduce ZIP confidence (phone/fax context)
PHONE_CONTEXT_KEYWORDS: tuple[str, ...] = ("phone", "fax", "tel", "call")

ZIP_PATTERN = re.compile(r"\b(\d{5})(?:-\d{4})?\b", re.ASCII)
# "City, ST 12345" or "City ST 12345"
CITY_STATE_ZIP_PATTERN = re.compile(r"[A-Za-z]+[,\s]+([A-Z]{2})\s+\d{5}", re.ASCII)
_STATE_BEFORE_ZIP = re.compile(r"\b([A-Z]{2})\s+$", re.ASCII)
_FILENAME_ZIP = re.compile(r"(?<![0-9A-Za-z])(\d{5})(?![0-9A-Za-z])", re.ASCII)


class LocationInferencer:
    """Infers a ZIP/state pair from unstructured text."""

    def __init__(self, store: ReferenceStore | None = None, settings: LocationSettings | None = None) -> None:
        self._store = store
        self._settings = settings or get_location_settings()

    def extract_zip_candidates(self, text: str) -> list[ZipCandidate]:
        """Score every ZIP-shaped match; best first, ties in text order."""
        s = self._settings
        candidates: list[ZipCandidate] = []

        for match in ZIP_PATTERN.finditer(text):
            zip5 = match.group(1)
            start = match.start()
            context = text[max(0, start - s.context_before) : start + s.context_after].lower()

            score = 0
            if any(kw in context for kw in ADDRESS_KEYWORDS):
                score += s.address_keyword_weight

            preceding = text[max(0, start - s.state_lookbehind) : start]
            nearby_state = _STATE_BEFORE_ZIP.search(preceding)
            if nearby_state and nearby_state.group(1) in US_STATE_SET:
                score += s.state_adjacent_weight

            if any(kw in context for kw in PHONE_CONTEXT_KEYWORDS):
                score -= s.phone_keyword_penalty

            if s.zip_min <= int(zip5) <= s.zip_max:
                candidates.append(ZipCandidate(zip5=zip5, context=context, score=score))

        candidates.sort(key=lambda c: c.score, reverse=True)
        return candidates

    @staticmethod
    def extract_state_from_text_pattern(text: str) -> str | None:
        for match in CITY_STATE_ZIP_PATTERN.finditer(text):
            state = match.group(1).upper()
            if state in US_STATE_SET:
                return state
        return None

    async def lookup_state_from_zip(self, zip5: str) -> str | None:
        if self._store is None:
            return None
        try:
            row = await self._store.find_by_exact_key(TABLE_ZIP_LOCALITY, "zip5", zip5)
        except PersistenceError as exc:
            logger.warning(
                "ZIP lookup failed; falling back to prefix table",
                extra={"zip5": zip5, "table": TABLE_ZIP_LOCALITY, "error": str(exc)},
            )
            LookupMetrics.record_upstream_error(TABLE_ZIP_LOCALITY, "find_by_exact_key")
            return None
        state = (row or {}).get("state_abbr")
        return str(state).upper() if state else None

    async def scan(self, text: str) -> LocationEvidence:
        """Extract ZIP and state evidence from ``text``."""
        if not isinstance(text, str) or len(text.strip()) < self._settings.min_text_length:
            return LocationEvidence(ran=True, confidence="low", error="No text content to scan")

        try:
            with timed("location.scan"):
                result = await self._scan(text)
        except Exception as exc:  # noqa: BLE001
            logger.error("Location pre-scan failed", extra={"error": f"{type(exc).__name__}: {exc}"})
            return LocationEvidence(ran=True, confidence="low", error=str(exc) or type(exc).__name__)

        LookupMetrics.record_location_scan(result.confidence, result.state_source)
        return result

    async def _scan(self, text: str) -> LocationEvidence:
        zip_candidates = self.extract_zip_candidates(text)
        best_zip = zip_candidates[0] if zip_candidates else None

        state_abbr = self.extract_state_from_text_pattern(text)
        state_source: StateSource | None = "text_pattern" if state_abbr else None

        if not state_abbr and best_zip:
            state_abbr = await self.lookup_state_from_zip(best_zip.zip5)
            if not state_abbr:
                state_abbr = derive_state_from_zip_prefix(best_zip.zip5)
            if state_abbr:
                state_source = "zip_lookup"

        if best_zip and state_abbr and state_source == "text_pattern":
            confidence = "high"
        elif best_zip and state_abbr:
            confidence = "medium"
        else:
            confidence = "low"

        evidence = best_zip.context[: self._settings.evidence_length] if best_zip else None

        logger.debug(
            "Location pre-scan complete",
            extra={
                "zip5": best_zip.zip5 if best_zip else None,
                "state_abbr": state_abbr,
                "state_source": state_source,
                "candidates": len(zip_candidates),
            },
        )

        return LocationEvidence(
            zip5=best_zip.zip5 if best_zip else None,
            state_abbr=state_abbr,
            confidence=confidence,
            evidence=evidence,
            state_source=state_source,
            ran=True,
            candidates_considered=len(zip_candidates),
        )


def extract_text_from_filename(filename: str) -> str:
    """Scan text built from a filename when no document text is available."""
    match = _FILENAME_ZIP.search(filename or "")
    if match:
        return f"ZIP: {match.group(1)}"
    return ""


__all__ = [
    "ADDRESS_KEYWORDS",
    "PHONE_CONTEXT_KEYWORDS",
    "LocationInferencer",
    "extract_text_from_filename",
]
