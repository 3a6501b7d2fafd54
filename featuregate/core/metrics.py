"""Prometheus metrics for feature gate evaluation and storage."""

from prometheus_client import Counter

from featuregate.core.logging import get_logger

logger = get_logger(__name__)


class _DummyMetric:
    def labels(self, *args, **kwargs):
        return self

    def inc(self, *args, **kwargs):
        pass


def _safe_counter(*args, **kwargs):
    # Re-importing the module (tests, reloads) must not fail on duplicate registration
    try:
        return Counter(*args, **kwargs)
    except ValueError:
        logger.debug("metric_already_registered", metric=args[0] if args else None)
        return _DummyMetric()


# Feature evaluations
feature_evaluations_total = _safe_counter(
    "featuregate_evaluations_total",
    "Total feature evaluations",
    ["result"],  # result: "enabled", "disabled", "error"
)

# Feature mutations
feature_mutations_total = _safe_counter(
    "featuregate_mutations_total",
    "Total feature mutations applied through the registry",
    ["operation", "gate"],  # operation: "enable", "disable", "add", "remove"
)

# Adapter failures
storage_errors_total = _safe_counter(
    "featuregate_storage_errors_total",
    "Total adapter I/O failures",
    ["adapter", "operation"],
)

# Registry cache
feature_cache_hits_total = _safe_counter(
    "featuregate_cache_hits_total",
    "Registry cache hits",
)

feature_cache_misses_total = _safe_counter(
    "featuregate_cache_misses_total",
    "Registry cache misses",
)
