# Observability module
from .metrics import MetricsClient, StdoutMetricsClient, get_metrics_client
from .logging_config import configure_logging, get_logger
from .lookup_metrics import LookupMetrics
from .timing import timed, TimingContext

__all__ = [
    "MetricsClient",
    "StdoutMetricsClient",
    "get_metrics_client",
    "configure_logging",
    "get_logger",
    "LookupMetrics",
    "timed",
    "TimingContext",
]
