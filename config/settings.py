"""Configuration settings using pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings


_REPO_ROOT = Path(__file__).resolve().parents[1]


def _resolve_repo_path(path: Path) -> Path:
    if path.is_absolute():
        return path
    return (_REPO_ROOT / path).resolve()


class ReferenceStoreSettings(BaseSettings):
    """Connection settings for the reference dataset store."""

    backend: Literal["memory", "supabase"] = Field(
        default="memory",
        validation_alias=AliasChoices("REFSTORE_BACKEND"),
    )
    supabase_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("SUPABASE_URL"))
    supabase_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY"),
    )
    timeout_s: float = Field(default=10.0, validation_alias=AliasChoices("REFSTORE_TIMEOUT_S"))

    model_config = {"extra": "ignore"}


class LexicalIndexSettings(BaseSettings):
    """Settings for the in-memory master code index."""

    high_threshold: float = 0.8
    medium_threshold: float = 0.5
    prefix_min_length: int = 3
    prefix_weight: float = 0.5
    default_max_results: int = 5
    suggestion_max_results: int = 3

    # Optional |CODE|Description| list; the built-in common codes are used otherwise
    dhs_code_list_path: Optional[Path] = None

    model_config = {"env_prefix": "LEXINDEX_"}

    @model_validator(mode="after")
    def _resolve_paths(self) -> "LexicalIndexSettings":
        if self.dhs_code_list_path is not None:
            self.dhs_code_list_path = _resolve_repo_path(self.dhs_code_list_path)
        return self


class ResolverSettings(BaseSettings):
    """Settings for reverse code search against the reference store."""

    # Query validation
    min_query_length: int = 8
    min_meaningful_tokens: int = 2

    # Remote querying
    max_search_tokens: int = 3
    min_search_token_length: int = 4
    per_token_limit: int = 20
    benchmark_year: int = 2026
    qp_status: str = "nonQP"

    # Optional secondary description sources
    include_opps: bool = False
    include_dmepos: bool = False
    opps_year: int = 2025
    dmepos_year: int = 2026
    secondary_token_limit: int = 15

    # Scoring and confidence tiers
    min_candidate_score: float = 0.2
    max_candidates: int = 5
    high_score: float = 0.6
    high_max_candidates: int = 2
    medium_score: float = 0.4
    medium_relaxed_score: float = 0.3
    medium_relaxed_max_candidates: int = 3

    model_config = {"env_prefix": "RESOLVER_"}


class LocationSettings(BaseSettings):
    """Settings for ZIP/state inference from document text."""

    min_text_length: int = 10
    context_before: int = 120
    context_after: int = 20
    state_lookbehind: int = 20
    address_keyword_weight: int = 3
    state_adjacent_weight: int = 2
    phone_keyword_penalty: int = 2
    zip_min: int = 501
    zip_max: int = 99950
    evidence_length: int = 80

    model_config = {"env_prefix": "LOCATION_"}


class ImportSettings(BaseSettings):
    """Settings for bulk reference data imports."""

    fee_batch_size: int = 500
    gpci_batch_size: int = 500
    zip_batch_size: int = 1000

    # CY 2026 Medicare Physician Fee Schedule defaults for rows that omit them
    default_conversion_factor: float = 34.6062
    default_year: int = 2026
    zip_source_label: str = "CMS ZIP-to-locality"

    # OPPS Addendum B and DMEPOS files carry no year column
    opps_year: int = 2025
    opps_source_label: str = "opps_addendum_b_2025"
    dmepos_year: int = 2026
    dmepos_source_label: str = "DMEPOS"
    # Rows above the header (title block) are scanned this far down
    header_search_rows: int = 20

    model_config = {"env_prefix": "IMPORT_"}


@lru_cache(maxsize=1)
def get_reference_store_settings() -> ReferenceStoreSettings:
    return ReferenceStoreSettings()


@lru_cache(maxsize=1)
def get_lexical_index_settings() -> LexicalIndexSettings:
    return LexicalIndexSettings()


@lru_cache(maxsize=1)
def get_resolver_settings() -> ResolverSettings:
    return ResolverSettings()


@lru_cache(maxsize=1)
def get_location_settings() -> LocationSettings:
    return LocationSettings()


@lru_cache(maxsize=1)
def get_import_settings() -> ImportSettings:
    return ImportSettings()
