"""
Application Container

The service root. Every component is constructed here exactly once and
handed to its collaborators by reference; there are no module-level
singletons for the event log or the services built on it.
"""

from typing import Callable, Optional

from learnflow.common.cache import DashboardCache, MemoryCacheBackend
from learnflow.common.config import AppConfig, get_config
from learnflow.common.logger import app_logger
from learnflow.common.metrics import ExperimentLogger, LoggingMetricsBackend, MetricsBackend, MetricsService
from learnflow.dashboard.data_service import DashboardDataService
from learnflow.dashboard.service import DashboardService
from learnflow.dashboard.system_monitor import SystemMonitor
from learnflow.progress.tracker import ProgressTracker
from learnflow.telemetry.ethics import EthicsTelemetryRecorder
from learnflow.telemetry.ingest import TelemetryIngestor
from learnflow.telemetry.store import TelemetryStore, utc_now

logger = app_logger.getChild("container")


class Container:
    """Wires the event log, progress, dashboard and metrics components."""

    def __init__(self, config: Optional[AppConfig] = None,
                 metrics_backend: Optional[MetricsBackend] = None,
                 clock: Callable = utc_now):
        """
        Args:
            config: Application configuration (loaded from the environment when None)
            metrics_backend: Backend for exported metrics (logging when None)
            clock: Source of the current time for the event log
        """
        self.config = config or get_config()

        self.cache = DashboardCache(
            backend=MemoryCacheBackend(max_size=self.config.cache.max_size, name="dashboard"),
            namespace=self.config.cache.namespace,
            enabled=self.config.cache.enabled,
        )
        self.store = TelemetryStore(
            file_path=self.config.telemetry.file_path,
            retention_days=self.config.telemetry.retention_days,
            cache=self.cache,
            clock=clock,
            salt=self.config.privacy.anonymization_salt,
        )

        self.metrics = MetricsService(
            backend=metrics_backend or LoggingMetricsBackend(),
            prefix=self.config.metrics.prefix,
            enabled=self.config.metrics.enabled,
        )
        self.experiment_logger = ExperimentLogger(self.metrics)
        self.ingestor = TelemetryIngestor(self.store, self.experiment_logger)
        self.ethics = EthicsTelemetryRecorder(self.store, self.config.privacy.cheating_flags, clock=clock)

        self.tracker = ProgressTracker(self.store)

        self.monitor = SystemMonitor(max_entries=self.config.metrics.monitor_max_entries)
        self.dashboard_data = DashboardDataService(self.store, self.monitor, self.config.metrics)
        self.dashboards = DashboardService(
            self.dashboard_data,
            self.cache,
            cache_config=self.config.cache,
            metrics_config=self.config.metrics,
        )

    async def startup(self) -> None:
        """Load the log, apply retention and check that storage is writable."""
        removed = await self.store.purge_old()
        writable = await self.store.is_writable()
        logger.info(
            f"{self.config.app_name} started with {len(self.store)} telemetry events",
            extra={"data": {"purged": removed, "writable": writable,
                            "file_path": str(self.store.file_path)}}
        )

    async def shutdown(self) -> None:
        self.metrics.flush()
        await self.cache.clear_all()
        logger.info(f"{self.config.app_name} shut down")
