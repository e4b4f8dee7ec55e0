"""Timing utilities for lookups, scans and imports."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Generator

from .metrics import get_metrics_client


class TimingContext:
    """Context manager that measures a block and emits a timing metric."""

    def __init__(self, name: str, tags: dict[str, str] | None = None, emit_metric: bool = True):
        self.name = name
        self.tags = tags or {}
        self.emit_metric = emit_metric
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self) -> "TimingContext":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000
        if self.emit_metric:
            tags = dict(self.tags)
            if exc_type is not None:
                tags["error"] = exc_type.__name__
            get_metrics_client().timing(self.name, self.elapsed_ms, tags)


@contextmanager
def timed(
    name: str, tags: dict[str, str] | None = None, emit_metric: bool = True
) -> Generator[TimingContext, None, None]:
    """Time a block of code.

    Usage:
        with timed("reverse_search.resolve") as t:
            result = await resolver.resolve(text)
        logger.info(f"Resolved in {t.elapsed_ms:.1f}ms")
    """
    ctx = TimingContext(name, tags, emit_metric)
    with ctx:
        yield ctx
