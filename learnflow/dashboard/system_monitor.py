"""
System Monitor

In-process ring of request timings used for the system-health views.
"""

import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Sequence

from learnflow.common.logger import app_logger
from learnflow.common.serialization import SerializableMixin

logger = app_logger.getChild("dashboard.monitor")

SERVER_ERROR_STATUS = 500


@dataclass
class RequestMetric:
    timestamp: float
    duration_ms: float
    status: int
    module: str


@dataclass
class ModuleStats(SerializableMixin):
    module: str
    count: int
    errors: int
    error_rate: float


@dataclass
class MonitorSnapshot(SerializableMixin):
    total: int = 0
    errors: int = 0
    avg_response_time_ms: float = 0
    p95_response_time_ms: float = 0
    error_rate: float = 0
    modules: List[ModuleStats] = field(default_factory=list)


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank style percentile over already sorted values."""
    if not sorted_values:
        return 0
    idx = min(len(sorted_values) - 1, max(0, math.floor(p / 100 * len(sorted_values))))
    return sorted_values[idx]


class SystemMonitor:
    """
    Keeps the most recent ``max_entries`` request metrics.

    Only statuses of 500 and above count as errors.
    """

    def __init__(self, max_entries: int = 10000, clock: Callable[[], float] = time.time):
        self.max_entries = max_entries
        self._clock = clock
        self._started_at = clock()
        self._metrics: Deque[RequestMetric] = deque(maxlen=max_entries)

    def record_request(self, duration_ms: float, status: int, module: str,
                       timestamp: Optional[float] = None) -> None:
        self._metrics.append(RequestMetric(
            timestamp=self._clock() if timestamp is None else timestamp,
            duration_ms=duration_ms,
            status=status,
            module=module,
        ))

    def record_error(self, error: BaseException, endpoint: Optional[str] = None,
                     status: Optional[int] = None) -> None:
        logger.warning(
            f"System error recorded: {error}",
            extra={"data": {"endpoint": endpoint, "status": status, "error_type": type(error).__name__}}
        )

    def uptime_seconds(self) -> int:
        return int(self._clock() - self._started_at)

    def snapshot(self, window_seconds: float) -> MonitorSnapshot:
        """
        Summarize the requests seen in the last ``window_seconds``.

        Returns:
            Totals, mean and p95 latency, error rate and a per-module breakdown
        """
        cutoff = self._clock() - window_seconds
        recent = [m for m in self._metrics if m.timestamp >= cutoff]
        if not recent:
            return MonitorSnapshot()

        durations = sorted(m.duration_ms for m in recent)
        total = len(recent)
        errors = sum(1 for m in recent if m.status >= SERVER_ERROR_STATUS)

        per_module: Dict[str, List[int]] = {}
        for m in recent:
            counts = per_module.setdefault(m.module, [0, 0])
            counts[0] += 1
            if m.status >= SERVER_ERROR_STATUS:
                counts[1] += 1

        return MonitorSnapshot(
            total=total,
            errors=errors,
            avg_response_time_ms=sum(durations) / total,
            p95_response_time_ms=percentile(durations, 95),
            error_rate=errors / total,
            modules=[
                ModuleStats(module=name, count=count, errors=errs, error_rate=errs / count)
                for name, (count, errs) in per_module.items()
            ],
        )

    def __len__(self) -> int:
        return len(self._metrics)
