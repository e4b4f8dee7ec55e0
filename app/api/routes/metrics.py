"""Prometheus scrape endpoint plus resolver/import summaries.

The endpoints only serve data when the in-process registry collects it:

    METRICS_BACKEND=registry   (or prometheus) collect and expose
    METRICS_ENABLED=false      hide the endpoints even with a registry
"""

from __future__ import annotations

import os
from typing import Any

from fastapi import APIRouter, HTTPException, Response

from observability.lookup_metrics import LookupMetrics
from observability.metrics import RegistryMetricsClient, get_metrics_client

router = APIRouter(prefix="/metrics")

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def _enabled() -> bool:
    explicit = os.getenv("METRICS_ENABLED", "").strip().lower()
    if explicit:
        return explicit in ("true", "1", "yes")
    return os.getenv("METRICS_BACKEND", "null").strip().lower() in ("registry", "prometheus")


def _registry() -> RegistryMetricsClient:
    """The active registry client; 404 when metrics are off or not kept in-process."""
    if not _enabled():
        raise HTTPException(status_code=404, detail="Metrics disabled; set METRICS_BACKEND=registry")

    client = get_metrics_client()
    if not isinstance(client, RegistryMetricsClient):
        raise HTTPException(
            status_code=404,
            detail=f"{type(client).__name__} keeps no in-process metrics",
        )
    return client


def _total(counters: dict[str, dict[str, float]], name: str) -> int:
    return int(sum(counters.get(name, {}).values()))


@router.get("", summary="Prometheus metrics")
def prometheus_metrics() -> Response:
    return Response(content=_registry().export_prometheus(), media_type=PROMETHEUS_CONTENT_TYPE)


@router.get("/resolution", summary="Reverse search outcomes")
def resolution_summary() -> dict[str, Any]:
    """Request, fallback and invalid-query totals for reverse code search.

    A rising fallback rate usually means the reference store is empty, stale
    or unreachable.
    """
    counters = _registry().export_json()["counters"]
    total = _total(counters, LookupMetrics.RESOLVE_REQUESTS)
    fallback = _total(counters, LookupMetrics.RESOLVE_FALLBACK)

    return {
        "total_requests": total,
        "fallback_requests": fallback,
        "invalid_queries": _total(counters, LookupMetrics.RESOLVE_INVALID),
        "upstream_errors": _total(counters, LookupMetrics.UPSTREAM_ERRORS),
        "fallback_rate": round(fallback / total, 4) if total else 0.0,
    }


@router.get("/imports", summary="Bulk import batches")
def import_summary() -> dict[str, Any]:
    """Committed and failed batch counts per dataset."""
    counters = _registry().export_json()["counters"]
    datasets: dict[str, dict[str, int]] = {}
    for name, key in ((LookupMetrics.IMPORT_BATCHES, "batches"), (LookupMetrics.IMPORT_FAILURES, "failures")):
        for labels, value in counters.get(name, {}).items():
            # labels look like {dataset="zip"}
            dataset = labels.split('"')[1] if '"' in labels else "unknown"
            datasets.setdefault(dataset, {"batches": 0, "failures": 0})[key] += int(value)
    return {"datasets": datasets}
