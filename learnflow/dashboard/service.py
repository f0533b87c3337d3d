"""
Dashboard Service

Role-checked, cached entry points for every dashboard view. Each view is
served from the dashboard cache when a live entry exists and otherwise
recomputed from the event log and cached for the view's TTL.
"""

import enum
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from learnflow.common.cache.dashboard import DashboardCache
from learnflow.common.cache.key_builder import KeyBuilder
from learnflow.common.config import CacheConfig, MetricsConfig
from learnflow.common.exceptions import AuthorizationError, NotFoundError, ValidationError
from learnflow.common.logger import app_logger, log_execution_time
from learnflow.common.numeric import round_half_up
from learnflow.dashboard import aggregator
from learnflow.dashboard.data_service import HEALTH_WINDOW_SECONDS, DashboardDataService
from learnflow.dashboard.models import (
    DashboardMetrics,
    DepthDistribution,
    EthicsReport,
    InstitutionDashboard,
    ModuleErrorRate,
    PipelineHealth,
    QualityMetric,
    SystemHealthMetric,
    TeacherDashboard,
    TopicAnalysis,
    UsageMetric,
)
from learnflow.telemetry.store import Period, TelemetryStore, previous_range

logger = app_logger.getChild("dashboard.service")

TEACHER_RECENT_LIMIT = 20
INSTITUTION_RECENT_LIMIT = 50


class Role(str, enum.Enum):
    TEACHER = "teacher"
    INSTITUTION = "institution"


_ROLE_ALIASES = {
    "teacher": Role.TEACHER,
    "institution": Role.INSTITUTION,
    "auditor": Role.INSTITUTION,
}


def resolve_role(raw: Optional[str]) -> Optional[Role]:
    """Map a role header value to a role; None when it is not recognized."""
    return _ROLE_ALIASES.get((raw or "").strip().lower())


def require_role(raw: Optional[str], allowed: Sequence[Role] = tuple(Role), resource: str = "dashboard") -> Role:
    """
    Coarse role check for the dashboard views.

    Raises:
        AuthorizationError: If the role is unknown or not allowed here
    """
    role = resolve_role(raw)
    if role is None or role not in allowed:
        raise AuthorizationError("Forbidden", role=raw, resource=resource)
    return role


def parse_period(value: Optional[Union[Period, str]], default: Period) -> Period:
    """Reporting period from a query value, falling back to ``default`` when absent or unknown."""
    try:
        return Period(value) if value else default
    except ValueError:
        return default


@dataclass
class DashboardResult:
    data: Any
    cached: bool = False


class DashboardService:
    """
    Dashboard views over the event log.

    Cache keys have the form ``<namespace>:<endpoint>:<period>:<role>``;
    every successful event write drops them all.
    """

    def __init__(self, data: DashboardDataService, cache: DashboardCache,
                 cache_config: Optional[CacheConfig] = None,
                 metrics_config: Optional[MetricsConfig] = None):
        self.data = data
        self.cache = cache
        self.cache_config = cache_config or CacheConfig()
        self.metrics_config = metrics_config or MetricsConfig()

    @property
    def store(self) -> TelemetryStore:
        return self.data.store

    def _key(self, endpoint: str, period: Optional[str], role: Role) -> str:
        return KeyBuilder.dashboard_key(endpoint, period, role.value, namespace=self.cache.namespace)

    async def _cached(self, key: str, ttl: float, compute: Callable[[], Awaitable[Any]]) -> DashboardResult:
        hit = await self.cache.get_cached_metrics(key)
        if hit is not None:
            return DashboardResult(hit, cached=True)
        generation = self.cache.generation
        value = await compute()
        await self.cache.set_cached_metrics(key, value, ttl, generation=generation)
        return DashboardResult(value)

    def _timestamp(self) -> str:
        return self.store.now().isoformat()

    async def _quality_with_trend(self, period: Period) -> QualityMetric:
        """Current quality, labeled against the previous period of the same length."""
        current_range = self.data.range_for(period)
        current = await self.data.get_quality_metrics(period, current_range)
        historical = await self.data.get_quality_metrics(period, previous_range(period, current_range))
        current.trend = aggregator.calculate_trends(current, historical).trend
        return current

    async def _base_metrics(self, period: Period, timestamp: str, include_students: bool,
                            quality: Optional[QualityMetric] = None) -> DashboardMetrics:
        interactions = await self.data.get_interaction_events(period)
        return aggregator.aggregate_teacher_metrics(
            period=period.value,
            timestamp=timestamp,
            student_progress=await self.data.get_student_progress_data(period) if include_students else [],
            topic_metrics=await self.data.get_topic_metrics(period) if include_students else [],
            ethics=await self.data.get_ethics_compliance(period),
            quality=quality or await self.data.get_quality_metrics(period),
            interaction_depths=[i.depth_level for i in interactions],
        )

    @log_execution_time(logger)
    async def get_teacher_dashboard(self, role: Optional[str], period: Optional[str] = None) -> DashboardResult:
        """Teacher view: class rollup, scores, feeds and insights (default period: week)."""
        require_role(role, (Role.TEACHER,), "teacher_dashboard")
        period = parse_period(period, Period.WEEK)

        async def compute() -> TeacherDashboard:
            timestamp = self._timestamp()
            quality = await self._quality_with_trend(period)
            base = await self._base_metrics(period, timestamp, include_students=True, quality=quality)
            progress = await self.data.get_student_progress_data(period)
            health = self.data.get_system_health_metrics()
            recent = await self.data.get_recent_telemetry(period, TEACHER_RECENT_LIMIT)

            return TeacherDashboard(
                period=period.value,
                timestamp=timestamp,
                metrics=base,
                system_health=health,
                system_health_score=aggregator.compute_system_health_score(health),
                compliance_score=aggregator.compute_compliance_score(base.ethics_flags, base.total_interactions),
                depth_trend=aggregator.depth_trend(await self.data.get_interaction_events(period)),
                assignment_stats=await self.data.get_assignment_stats(period),
                recent_activity=aggregator.recent_activity(recent),
                students_ready_for_advancement=aggregator.advancement_counts(progress),
                time_spent_by_depth_minutes=await self.data.get_depth_time_spent_minutes(period),
                insights=aggregator.generate_insights(base),
            )

        return await self._cached(self._key("teacher", period.value, Role.TEACHER),
                                  self.cache_config.teacher_ttl, compute)

    @log_execution_time(logger)
    async def get_institution_dashboard(self, role: Optional[str], period: Optional[str] = None) -> DashboardResult:
        """Institution view: usage, cost, quality, health and alerts (default period: month)."""
        require_role(role, (Role.INSTITUTION,), "institution_dashboard")
        period = parse_period(period, Period.MONTH)

        async def compute() -> InstitutionDashboard:
            interactions = await self.data.get_interaction_events(period)
            usage = await self.data.get_estimated_model_cost(period)
            snap = self.data.monitor.snapshot(HEALTH_WINDOW_SECONDS)
            recent = await self.data.get_recent_telemetry(period, INSTITUTION_RECENT_LIMIT)
            last_ingest = self.store.last_ingest_at

            return InstitutionDashboard(
                period=period.value,
                timestamp=self._timestamp(),
                usage=UsageMetric(
                    total_interactions=len(interactions),
                    model_api_calls=usage.api_calls,
                    estimated_model_cost_usd=usage.cost_usd,
                    average_response_time_ms=round_half_up(snap.avg_response_time_ms, 1),
                    p95_response_time_ms=round_half_up(snap.p95_response_time_ms, 1),
                    error_rate=round_half_up(snap.error_rate, 4),
                ),
                ethics_flags=await self.data.get_ethics_compliance(period),
                quality_scores=await self._quality_with_trend(period),
                system_health=self.data.get_system_health_metrics(),
                modules=[
                    ModuleErrorRate(module=m.module, error_rate=round_half_up(m.error_rate, 4), count=m.count)
                    for m in snap.modules
                ],
                pipeline=PipelineHealth(
                    telemetry_writable=await self.store.is_writable(),
                    metrics_enabled=self.metrics_config.enabled,
                    last_ingest_at=last_ingest.isoformat() if last_ingest else None,
                ),
                recent_alerts=aggregator.recent_alerts(recent),
            )

        return await self._cached(self._key("institution", period.value, Role.INSTITUTION),
                                  self.cache_config.institution_ttl, compute)

    async def get_metrics_for_period(self, role: Optional[str], period: Optional[str] = None) -> DashboardResult:
        """
        Class rollup for a period. Institution roles get the anonymized
        variant without per-student and per-topic rows.
        """
        resolved = require_role(role, resource="dashboard_metrics")
        period = parse_period(period, Period.WEEK)

        async def compute() -> DashboardMetrics:
            return await self._base_metrics(period, self._timestamp(),
                                            include_students=resolved is Role.TEACHER)

        return await self._cached(self._key("metrics", period.value, resolved),
                                  self.cache_config.metrics_ttl, compute)

    async def get_topic_analysis(self, role: Optional[str], topic: str,
                                 period: Optional[str] = None) -> DashboardResult:
        """
        Drill-down on one topic (case-insensitive, default period: month).

        Raises:
            ValidationError: If the topic name is too short or too long
            NotFoundError: If the topic has no evaluations in the period
        """
        resolved = require_role(role, resource="topic_analysis")
        topic = (topic or "").strip()
        if not 2 <= len(topic) <= 200:
            raise ValidationError("topic name must be 2-200 characters", {"topic": topic})
        period = parse_period(period, Period.MONTH)
        wanted = topic.lower()

        async def compute() -> TopicAnalysis:
            metric = next((t for t in await self.data.get_topic_metrics(period) if t.topic.lower() == wanted), None)
            if metric is None:
                raise NotFoundError("topic", topic)

            assignment = next(
                (a for a in await self.data.get_assignment_stats(period) if a.topic.lower() == wanted), None)

            distribution = DepthDistribution()
            misconceptions = {}
            for event in await self.data.get_topic_events(period, topic):
                distribution.add(event.depth_level)
                if event.action == "evaluate":
                    for concept in event.missing_concepts or []:
                        misconceptions[concept] = misconceptions.get(concept, 0) + 1

            return TopicAnalysis(
                topic=metric.topic,
                period=period.value,
                timestamp=self._timestamp(),
                metric=metric,
                depth_distribution=distribution,
                misconception_counts=misconceptions,
                recommended_interventions=aggregator.topic_interventions(metric, assignment),
            )

        key = self._key("topic", f"{period.value}:{wanted}", resolved)
        return await self._cached(key, self.cache_config.topic_ttl, compute)

    async def get_system_health(self, role: Optional[str]) -> DashboardResult:
        resolved = require_role(role, resource="system_health")

        async def compute() -> SystemHealthMetric:
            return self.data.get_system_health_metrics()

        return await self._cached(self._key("system-health", None, resolved),
                                  self.cache_config.system_health_ttl, compute)

    async def get_ethics_report(self, role: Optional[str], period: Optional[str] = None) -> DashboardResult:
        """Ethics counts, newest intervention events and compliance score (default period: month)."""
        require_role(role, (Role.INSTITUTION,), "ethics_report")
        period = parse_period(period, Period.MONTH)

        async def compute() -> EthicsReport:
            summary = await self.data.get_ethics_compliance(period)
            interactions = await self.data.get_interaction_events(period)
            return EthicsReport(
                period=period.value,
                timestamp=self._timestamp(),
                summary=summary,
                recent_events=aggregator.ethics_report_events(await self.data.get_ethics_events(period)),
                compliance_score=aggregator.compute_compliance_score(summary, len(interactions)),
            )

        return await self._cached(self._key("ethics", period.value, Role.INSTITUTION),
                                  self.cache_config.ethics_ttl, compute)
