"""Reverse code search against the reference store.

Infers likely CPT/HCPCS codes from a free-text procedure description, for
bills and statements where no valid code was extracted. Flow for one request:

    validate -> query the store per token -> (nothing?) local index -> pick primary

Per-token store queries fan out concurrently; results are merged in token
order and sorted stably by score, so the outcome does not depend on which
query finishes first.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from app.codes.reverse_index import LocalLexicalIndex
from app.codes.validator import tokenize_query, validate_reverse_search_query
from app.domain.reference_store.repository import (
    TABLE_DMEPOS,
    TABLE_MPFS,
    TABLE_OPPS,
    DescriptionRow,
    ReferenceStore,
)
from billing_schemas.codes import Confidence, MatchCandidate, ResolutionResult, SearchMethod
from config.settings import ResolverSettings, get_resolver_settings
from observability.logging_config import get_logger
from observability.lookup_metrics import LookupMetrics
from observability.timing import timed

logger = get_logger("reverse_search")


@dataclass(frozen=True)
class DescriptionSource:
    """One reference table searched by description substring."""

    name: str
    label: str
    table: str
    limit: int
    filters: Mapping[str, Any] = field(default_factory=dict)
    description_columns: tuple[str, ...] = ("description",)


def calculate_match_score(query_tokens: list[str], description: str) -> float:
    """Token-overlap score of a candidate description against the query.

    A query token matches when some description token equals it, starts with
    it, or is a prefix of it. Score = matches / max(query tokens, description
    tokens).
    """
    candidate_tokens = tokenize_query(description)
    if not candidate_tokens or not query_tokens:
        return 0.0

    matches = 0
    for qt in query_tokens:
        for ct in candidate_tokens:
            if ct == qt or ct.startswith(qt) or qt.startswith(ct):
                matches += 1
                break

    return matches / max(len(query_tokens), len(candidate_tokens))


class ReverseCodeSearch:
    """Resolves free-text descriptions to ranked candidate codes."""

    def __init__(
        self,
        store: ReferenceStore,
        index: LocalLexicalIndex,
        settings: ResolverSettings | None = None,
    ) -> None:
        self._store = store
        self._index = index
        self._settings = settings or get_resolver_settings()

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _sources(self, include_opps: bool, include_dmepos: bool) -> list[DescriptionSource]:
        s = self._settings
        sources = [
            DescriptionSource(
                name="mpfs",
                label="MPFS",
                table=TABLE_MPFS,
                limit=s.per_token_limit,
                filters={"year": s.benchmark_year, "qp_status": s.qp_status},
            )
        ]
        if include_opps:
            sources.append(
                DescriptionSource(
                    name="opps",
                    label="OPPS (outpatient)",
                    table=TABLE_OPPS,
                    limit=s.secondary_token_limit,
                    filters={"year": s.opps_year},
                    description_columns=("long_desc", "short_desc"),
                )
            )
        if include_dmepos:
            sources.append(
                DescriptionSource(
                    name="dmepos",
                    label="DMEPOS",
                    table=TABLE_DMEPOS,
                    limit=s.secondary_token_limit,
                    filters={"year": s.dmepos_year},
                    description_columns=("short_desc",),
                )
            )
        return sources

    def _search_tokens(self, query_tokens: list[str]) -> list[str]:
        return [
            token
            for token in query_tokens[: self._settings.max_search_tokens]
            if len(token) >= self._settings.min_search_token_length
        ]

    async def _query_token(self, source: DescriptionSource, token: str) -> list[DescriptionRow]:
        try:
            return await self._store.find_by_description_substring(
                source.table,
                token,
                filters=source.filters,
                limit=source.limit,
                description_columns=source.description_columns,
            )
        except Exception as exc:
            # Any store failure counts as zero rows for this token
            logger.warning(
                f"{source.label} description search failed; treating as no results",
                extra={
                    "table": source.table,
                    "token": token,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            LookupMetrics.record_upstream_error(source.table, "find_by_description_substring")
            return []

    async def _search_source(self, source: DescriptionSource, query_tokens: list[str]) -> list[MatchCandidate]:
        tokens = self._search_tokens(query_tokens)
        responses = await asyncio.gather(*(self._query_token(source, token) for token in tokens))

        seen: set[str] = set()
        candidates: list[MatchCandidate] = []
        for token, rows in zip(tokens, responses):
            for row in rows:
                if not row.code or row.code in seen:
                    continue
                seen.add(row.code)
                score = calculate_match_score(query_tokens, row.description)
                if score < self._settings.min_candidate_score:
                    continue
                candidates.append(
                    MatchCandidate(
                        code=row.code,
                        description=row.description or None,
                        score=score,
                        match_reason=f'Matched on "{token}" in {source.label}',
                    )
                )

        candidates.sort(key=lambda c: c.score, reverse=True)
        return candidates[: self._settings.max_candidates]

    # ------------------------------------------------------------------
    # Confidence
    # ------------------------------------------------------------------

    def determine_confidence(self, score: float, candidate_count: int) -> Confidence:
        s = self._settings
        if score >= s.high_score and candidate_count <= s.high_max_candidates:
            return "high"
        if score >= s.medium_score or (
            score >= s.medium_relaxed_score and candidate_count <= s.medium_relaxed_max_candidates
        ):
            return "medium"
        return "low"

    @staticmethod
    def select_primary(candidates: list[MatchCandidate]) -> MatchCandidate | None:
        for tier in ("high", "medium"):
            for candidate in candidates:
                if candidate.confidence == tier:
                    return candidate
        return candidates[0] if candidates else None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(
        self,
        query_text: str,
        include_opps: bool | None = None,
        include_dmepos: bool | None = None,
    ) -> ResolutionResult:
        """Resolve one description. Never raises for bad input or store failures."""
        query_text = query_text if isinstance(query_text, str) else ""
        s = self._settings
        include_opps = s.include_opps if include_opps is None else include_opps
        include_dmepos = s.include_dmepos if include_dmepos is None else include_dmepos

        validation = validate_reverse_search_query(query_text, s.min_meaningful_tokens)
        if not validation.is_valid or len(query_text.strip()) < s.min_query_length:
            reason = validation.reason or f"Query too short (min {s.min_query_length} chars)"
            LookupMetrics.record_resolution("ilike", 0, is_valid_query=False)
            return ResolutionResult(
                source_text=query_text,
                is_valid_query=False,
                query_validation_reason=reason,
            )

        with timed("reverse_search.resolve") as timing:
            query_tokens = validation.meaningful_tokens
            search_method: SearchMethod = "ilike"

            per_source = await asyncio.gather(
                *(self._search_source(src, query_tokens) for src in self._sources(include_opps, include_dmepos))
            )

            # Keep the highest score per code across sources
            best: dict[str, MatchCandidate] = {}
            for candidates in per_source:
                for candidate in candidates:
                    existing = best.get(candidate.code)
                    if existing is None or candidate.score > existing.score:
                        best[candidate.code] = candidate
            merged = list(best.values())

            if not merged:
                await self._index.initialize()
                merged = self._index.search(query_text, s.max_candidates)
                search_method = "fallback_cpt_master"

            merged.sort(key=lambda c: c.score, reverse=True)
            top = merged[: s.max_candidates]
            top = [
                c.model_copy(update={"confidence": self.determine_confidence(c.score, len(top))})
                for c in top
            ]
            primary = self.select_primary(top)

        LookupMetrics.record_resolution(search_method, len(top))
        logger.info(
            f"Reverse search found {len(top)} candidates via {search_method}",
            extra={
                "query_tokens": query_tokens,
                "primary_code": primary.code if primary else None,
                "elapsed_ms": round(timing.elapsed_ms, 1),
            },
        )

        return ResolutionResult(
            source_text=query_text,
            candidates=top,
            primary_candidate=primary,
            is_valid_query=True,
            search_method=search_method,
        )

    async def resolve_many(self, descriptions: Iterable[str]) -> list[ResolutionResult]:
        """Resolve each description long enough to search, in order."""
        results: list[ResolutionResult] = []
        for description in descriptions:
            if description and len(description.strip()) >= self._settings.min_query_length:
                results.append(await self.resolve(description))
        return results


__all__ = ["ReverseCodeSearch", "DescriptionSource", "calculate_match_score"]
