"""
Metric bookkeeping for the autonomous orchestrator.

Keeps the latest reading per metric name and classifies each update by
threshold (status) and by change against the previous reading (trend).
"""

import logging
from typing import Optional, List, Dict

from .models import Metric, MetricStatus, Trend, utc_now_iso

logger = logging.getLogger(__name__)

# Static thresholds per metric name
METRIC_THRESHOLDS: Dict[str, float] = {
    'queue.failed': 5,
    'queue.pending': 15,
    'queue.running': 3,
    'system.load': 0.85,
}
DEFAULT_THRESHOLD = 100
WARNING_RATIO = 0.7
STABLE_BAND_PERCENT = 5


def get_threshold(name: str) -> float:
    """Threshold for a metric name; unknown names get the default."""
    return METRIC_THRESHOLDS.get(name, DEFAULT_THRESHOLD)


def classify_status(name: str, value: float) -> MetricStatus:
    """Classify a reading against its metric threshold."""
    threshold = get_threshold(name)
    if value >= threshold:
        return MetricStatus.CRITICAL
    if value >= threshold * WARNING_RATIO:
        return MetricStatus.WARNING
    return MetricStatus.NORMAL


def calculate_trend(previous: Optional[float], current: float) -> Trend:
    """
    Compare a reading with the previous one for the same metric.

    A prior value of None or 0 cannot anchor a percentage change, so
    the trend is stable. A drop to 0 is a -100% change and counts as
    improving.
    """
    if not previous:
        return Trend.STABLE

    change = (current - previous) / previous * 100
    if abs(change) < STABLE_BAND_PERCENT:
        return Trend.STABLE
    return Trend.DECLINING if change > 0 else Trend.IMPROVING


class MetricsTracker:
    """In-memory table of metric name -> latest Metric. Entries are never removed."""

    def __init__(self):
        self._metrics: Dict[str, Metric] = {}

    def update(self, values: Dict[str, float]) -> List[Metric]:
        """Record new readings, overwriting the previous Metric for each name."""
        now = utc_now_iso()
        updated = []
        for name, value in values.items():
            existing = self._metrics.get(name)
            metric = Metric(
                name=name,
                value=value,
                threshold=get_threshold(name),
                status=classify_status(name, value).value,
                trend=calculate_trend(existing.value if existing else None, value).value,
                last_updated=now,
            )
            self._metrics[name] = metric
            if metric.status != MetricStatus.NORMAL.value:
                logger.debug(f"Metric {name}={value} is {metric.status} (threshold {metric.threshold})")
            updated.append(metric)
        return updated

    def get(self, name: str) -> Optional[Metric]:
        return self._metrics.get(name)

    def snapshot(self) -> List[Metric]:
        """Copy of all current metrics."""
        return list(self._metrics.values())

    def __len__(self) -> int:
        return len(self._metrics)
