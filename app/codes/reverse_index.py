"""In-memory reverse search index over the master code list.

Maps procedure names and free-text descriptions to candidate codes by token
overlap. One ``LocalLexicalIndex`` is constructed at application startup and
shared by reference; it is built at most once (``unbuilt -> building ->
ready``) and is read-only afterwards, so searches need no locking.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from app.codes.master import MasterCodeLoader, MasterEntry, placeholder_entry
from app.codes.normalizer import normalize_code
from billing_schemas.codes import Confidence, MatchCandidate, SuggestedCodes
from config.settings import LexicalIndexSettings, get_lexical_index_settings
from observability.logging_config import get_logger
from observability.lookup_metrics import LookupMetrics

logger = get_logger("lexical_index")

MATCH_REASON = "Matched in local CPT master list"

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


class IndexState(str, Enum):
    UNBUILT = "unbuilt"
    BUILDING = "building"
    READY = "ready"


@dataclass(frozen=True)
class LexicalIndexEntry:
    """A master entry plus its precomputed search tokens."""

    entry: MasterEntry
    tokens: tuple[str, ...]
    token_set: frozenset[str]


def tokenize_text(text: str) -> list[str]:
    """Lowercase alphanumeric tokens; empty tokens are dropped."""
    return [t for t in _TOKEN_SPLIT.split((text or "").lower()) if t]


def build_index_entry(entry: MasterEntry) -> LexicalIndexEntry:
    fields = " ".join(
        [
            entry.short_label,
            entry.long_description,
            entry.section or "",
            entry.category or "",
            *entry.synonyms,
        ]
    )
    tokens = tuple(tokenize_text(fields))
    return LexicalIndexEntry(entry=entry, tokens=tokens, token_set=frozenset(tokens))


class LocalLexicalIndex:
    """Token index over ``MasterEntry`` rows with a guarded one-time build.

    Concurrent ``initialize()`` callers all await the same in-flight build, so
    the master list loader runs at most once per index lifetime unless
    ``reset()`` is called.
    """

    def __init__(
        self,
        loader: MasterCodeLoader,
        settings: LexicalIndexSettings | None = None,
    ) -> None:
        self._loader = loader
        self._settings = settings or get_lexical_index_settings()
        self._entries: tuple[LexicalIndexEntry, ...] = ()
        self._by_code: dict[str, MasterEntry] = {}
        self._state = IndexState.UNBUILT
        self._build_task: asyncio.Future[None] | None = None
        self._generation = 0

    @property
    def state(self) -> IndexState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is IndexState.READY

    def __len__(self) -> int:
        return len(self._entries)

    async def initialize(self) -> bool:
        """Build the index if needed; returns True once it is ready.

        A failed load is logged and leaves the index ``unbuilt`` so a later
        call can retry.
        """
        if self._state is IndexState.READY:
            return True

        if self._build_task is None:
            self._state = IndexState.BUILDING
            self._build_task = asyncio.ensure_future(self._build(self._generation))

        task = self._build_task
        try:
            # shield: a cancelled caller must not cancel the shared build
            await asyncio.shield(task)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            if self._build_task is task:
                logger.error(
                    "Master code index build failed",
                    extra={"error": f"{type(exc).__name__}: {exc}"},
                )
                self._build_task = None
                self._state = IndexState.UNBUILT
            return False

        return self._state is IndexState.READY

    async def _build(self, generation: int) -> None:
        entries = await self._loader.load_all()
        index = tuple(build_index_entry(entry) for entry in entries)

        if generation != self._generation:
            # reset() ran while this build was in flight
            return

        self._entries = index
        self._by_code = {}
        for item in index:
            self._by_code.setdefault(item.entry.code, item.entry)
        self._state = IndexState.READY
        LookupMetrics.record_index_built(len(index))
        logger.info(f"Initialized CPT reverse index with {len(index)} entries")

    def reset(self) -> None:
        """Drop the built index so the next ``initialize()`` reloads it."""
        self._generation += 1
        self._entries = ()
        self._by_code = {}
        self._build_task = None
        self._state = IndexState.UNBUILT

    def confidence_for(self, score: float) -> Confidence:
        if score >= self._settings.high_threshold:
            return "high"
        if score >= self._settings.medium_threshold:
            return "medium"
        return "low"

    def _score(self, item: LexicalIndexEntry, query_tokens: list[str]) -> float:
        matches = 0.0
        for qt in query_tokens:
            if qt in item.token_set:
                matches += 1.0
            elif len(qt) >= self._settings.prefix_min_length and any(
                token.startswith(qt) for token in item.tokens
            ):
                matches += self._settings.prefix_weight
        return matches / len(query_tokens)

    def search(self, query: str, max_results: int | None = None) -> list[MatchCandidate]:
        """Rank master entries against ``query``.

        Returns ``[]`` for an empty query or an index that is not built yet.
        Ties keep master-list order.
        """
        limit = self._settings.default_max_results if max_results is None else max_results
        query_tokens = tokenize_text(query)
        if not query_tokens or not self._entries or limit <= 0:
            return []

        scored: list[tuple[MasterEntry, float]] = []
        for item in self._entries:
            score = self._score(item, query_tokens)
            if score > 0:
                scored.append((item.entry, score))

        scored.sort(key=lambda pair: pair[1], reverse=True)

        return [
            MatchCandidate(
                code=entry.code,
                description=entry.long_description,
                score=score,
                match_reason=MATCH_REASON,
                confidence=self.confidence_for(score),
                short_label=entry.short_label,
                category=entry.section or entry.category or "Other",
            )
            for entry, score in scored[:limit]
        ]

    async def lookup(self, code: str) -> MasterEntry | None:
        """Look up a master entry, synthesizing a placeholder for unknown codes."""
        normalized = normalize_code(code)
        if not normalized:
            return None

        await self.initialize()
        entry = self._by_code.get(normalized) or self._by_code.get(normalized.rjust(5, "0"))
        return entry or placeholder_entry(normalized)

    async def suggest_for_descriptions(self, descriptions: Iterable[str]) -> list[SuggestedCodes]:
        """Initialize if needed and return top candidates for each description."""
        await self.initialize()
        limit = self._settings.suggestion_max_results
        return [
            SuggestedCodes(source_description=description, candidates=self.search(description, limit))
            for description in descriptions
        ]


__all__ = [
    "IndexState",
    "LexicalIndexEntry",
    "LocalLexicalIndex",
    "tokenize_text",
    "build_index_entry",
]
