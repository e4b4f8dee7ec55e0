"""Metric helpers for code resolution, location scans and imports."""

from __future__ import annotations

from .metrics import get_metrics_client


class LookupMetrics:
    """High-level metrics for the lookup and import pipelines."""

    # Counter metric names
    RESOLVE_REQUESTS = "reverse_search.requests"
    RESOLVE_INVALID = "reverse_search.invalid_queries"
    RESOLVE_FALLBACK = "reverse_search.fallback"
    UPSTREAM_ERRORS = "reverse_search.upstream_errors"
    LOCATION_SCANS = "location.scans"
    IMPORT_BATCHES = "import.batches"
    IMPORT_FAILURES = "import.failures"

    # Gauge metric names
    INDEX_ENTRIES = "lexical_index.entries"

    @staticmethod
    def record_resolution(search_method: str, candidate_count: int, is_valid_query: bool = True) -> None:
        client = get_metrics_client()
        tags = {"search_method": search_method}
        client.incr(LookupMetrics.RESOLVE_REQUESTS, tags)
        if not is_valid_query:
            client.incr(LookupMetrics.RESOLVE_INVALID)
        elif search_method == "fallback_cpt_master":
            client.incr(LookupMetrics.RESOLVE_FALLBACK)
        client.observe("reverse_search.candidates", float(candidate_count), tags)

    @staticmethod
    def record_upstream_error(table: str, operation: str) -> None:
        get_metrics_client().incr(
            LookupMetrics.UPSTREAM_ERRORS,
            {"table": table, "operation": operation},
        )

    @staticmethod
    def record_location_scan(confidence: str, state_source: str | None) -> None:
        get_metrics_client().incr(
            LookupMetrics.LOCATION_SCANS,
            {"confidence": confidence, "state_source": state_source or "none"},
        )

    @staticmethod
    def record_index_built(entry_count: int) -> None:
        get_metrics_client().observe(LookupMetrics.INDEX_ENTRIES, float(entry_count))

    @staticmethod
    def record_import_batch(dataset: str, rows: int, success: bool) -> None:
        client = get_metrics_client()
        tags = {"dataset": dataset}
        if success:
            client.incr(LookupMetrics.IMPORT_BATCHES, tags)
            client.incr("import.rows", tags, rows)
        else:
            client.incr(LookupMetrics.IMPORT_FAILURES, tags)
