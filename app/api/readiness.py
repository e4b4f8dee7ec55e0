"""Readiness gating for endpoints that need the lexical index.

This module is intentionally dependency-light to avoid import cycles with
`app.api.fastapi_app`.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

_DEFAULT_RETRY_AFTER_S = 10


async def require_ready(request: Request) -> None:
    """Fail fast (503) if the master code index is not built.

    The lifespan hook builds the index before the first request is served, so
    a request only sees a missing index when that build failed.
    """
    if bool(getattr(request.app.state, "index_ready", False)):
        return

    index_error = getattr(request.app.state, "index_error", None)
    if index_error:
        raise HTTPException(status_code=503, detail=f"Index build failed: {index_error}")

    raise HTTPException(
        status_code=503,
        detail="Service warming up",
        headers={"Retry-After": str(_DEFAULT_RETRY_AFTER_S)},
    )


__all__ = ["require_ready"]
