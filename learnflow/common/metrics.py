"""
Metrics Export

This module provides the metrics sink used to export interaction metrics to
an experiment-tracking backend. Export is best-effort: a failing backend is
logged and never allowed to break the request that produced the metrics.
"""

import time
import logging
import threading
import contextlib
from typing import Any, Dict, List, Optional
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field

from learnflow.common.logger import app_logger

logger = app_logger.getChild("metrics")


class MetricsBackend(ABC):
    """Abstract base class for metrics backends."""

    @abstractmethod
    def increment_counter(self, name: str, value: float = 1.0, labels: Optional[Dict[str, str]] = None) -> None:
        """Increment a counter."""
        pass

    @abstractmethod
    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        """Set a gauge value."""
        pass

    @abstractmethod
    def observe_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        """Observe a value for a histogram."""
        pass

    @abstractmethod
    def log_record(self, name: str, record: Dict[str, Any]) -> None:
        """Log one structured record (an experiment-tracking row)."""
        pass

    def flush(self) -> None:
        """Flush metrics to the backend."""


class LoggingMetricsBackend(MetricsBackend):
    """Metrics backend that writes metrics to a logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or app_logger.getChild("metrics")

    def increment_counter(self, name: str, value: float = 1.0, labels: Optional[Dict[str, str]] = None) -> None:
        self.logger.info(f"METRIC_COUNTER {name}{self._format_labels(labels)} {value}")

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        self.logger.info(f"METRIC_GAUGE {name}{self._format_labels(labels)} {value}")

    def observe_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        self.logger.info(f"METRIC_HISTOGRAM {name}{self._format_labels(labels)} {value}")

    def log_record(self, name: str, record: Dict[str, Any]) -> None:
        self.logger.info(f"METRIC_RECORD {name}", extra={"data": {"record": record}})

    def _format_labels(self, labels: Optional[Dict[str, str]] = None) -> str:
        if not labels:
            return ""
        return "{" + ", ".join(f"{k}={v}" for k, v in labels.items()) + "}"


class InMemoryMetricsBackend(MetricsBackend):
    """
    Metrics backend that stores metrics in memory.

    Used by tests and as a local buffer for inspecting exported records.
    """

    def __init__(self):
        self.counters: Dict[str, float] = defaultdict(float)
        self.gauges: Dict[str, float] = {}
        self.histograms: Dict[str, List[float]] = defaultdict(list)
        self.records: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.lock = threading.RLock()

    def increment_counter(self, name: str, value: float = 1.0, labels: Optional[Dict[str, str]] = None) -> None:
        with self.lock:
            self.counters[self._get_key(name, labels)] += value

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        with self.lock:
            self.gauges[self._get_key(name, labels)] = value

    def observe_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        with self.lock:
            self.histograms[self._get_key(name, labels)].append(value)

    def log_record(self, name: str, record: Dict[str, Any]) -> None:
        with self.lock:
            self.records[name].append(dict(record))

    def flush(self) -> None:
        """Clear all stored metrics."""
        with self.lock:
            self.counters.clear()
            self.gauges.clear()
            self.histograms.clear()
            self.records.clear()

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        with self.lock:
            return self.counters.get(self._get_key(name, labels), 0.0)

    def get_gauge(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        with self.lock:
            return self.gauges.get(self._get_key(name, labels))

    def get_histogram_values(self, name: str, labels: Optional[Dict[str, str]] = None) -> List[float]:
        with self.lock:
            return self.histograms.get(self._get_key(name, labels), [])[:]

    def get_records(self, name: str) -> List[Dict[str, Any]]:
        with self.lock:
            return list(self.records.get(name, []))

    def _get_key(self, name: str, labels: Optional[Dict[str, str]] = None) -> str:
        """Generate a unique key for a metric with labels."""
        if not labels:
            return name
        sorted_labels = [f"{k}:{v}" for k, v in sorted(labels.items())]
        return f"{name}:{','.join(sorted_labels)}"


class MetricsService:
    """
    Facade over a metrics backend.

    The service is owned by the application container and handed to the
    components that report metrics.
    """

    def __init__(self, backend: Optional[MetricsBackend] = None, prefix: str = "learnflow",
                 enabled: bool = True):
        """
        Initialize the metrics service.

        Args:
            backend: Metrics backend (defaults to logging)
            prefix: Prefix prepended to every metric name
            enabled: When False every call is a no-op
        """
        self.backend = backend or LoggingMetricsBackend()
        self.prefix = prefix
        self.enabled = enabled

    def _name(self, name: str) -> str:
        return f"{self.prefix}.{name}" if self.prefix else name

    def counter(self, name: str, value: float = 1.0, labels: Optional[Dict[str, str]] = None) -> None:
        if self.enabled:
            self.backend.increment_counter(self._name(name), value, labels)

    def gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        if self.enabled:
            self.backend.set_gauge(self._name(name), value, labels)

    def histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        if self.enabled:
            self.backend.observe_histogram(self._name(name), value, labels)

    def record(self, name: str, record: Dict[str, Any]) -> None:
        if self.enabled:
            self.backend.log_record(self._name(name), record)

    @contextlib.contextmanager
    def timer_context(self, name: str, labels: Optional[Dict[str, str]] = None):
        """
        Context manager that records the elapsed milliseconds as a histogram.

        Args:
            name: Metric name
            labels: Optional labels
        """
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.histogram(name, (time.perf_counter() - start_time) * 1000.0, labels)

    def flush(self) -> None:
        self.backend.flush()


@dataclass
class InteractionMetrics:
    """One model interaction as reported to the experiment tracker."""
    prompt_version: str
    depth_level: str
    task_type: str
    input_tokens: int
    output_tokens: int
    depth_alignment_score: float
    clarity_score: float
    timestamp: str
    mode: Optional[str] = None
    ethics_flags: List[str] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        record = {
            "prompt_version": self.prompt_version,
            "depth_level": self.depth_level,
            "task_type": self.task_type,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "depth_alignment_score": self.depth_alignment_score,
            "clarity_score": self.clarity_score,
            "ethics_flags": ",".join(self.ethics_flags),
            "timestamp": self.timestamp,
        }
        if self.mode is not None:
            record["mode"] = self.mode
        return record


class ExperimentLogger:
    """
    Fire-and-forget exporter for interaction metrics.

    Any exception raised by the backend is logged and swallowed.
    """

    RECORD_NAME = "interaction"

    def __init__(self, metrics: MetricsService):
        self.metrics = metrics

    def log_interaction(self, metrics: InteractionMetrics) -> bool:
        """
        Export one interaction.

        Args:
            metrics: Interaction metrics

        Returns:
            True if the backend accepted the record, False otherwise
        """
        try:
            self.metrics.record(self.RECORD_NAME, metrics.to_record())
            self.metrics.counter("interactions", 1.0, {"task_type": metrics.task_type})
            self.metrics.histogram("tokens.output", float(metrics.output_tokens))
            return True
        except Exception as e:
            logger.warning(f"Experiment export failed: {e}")
            return False
