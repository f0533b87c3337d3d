"""
Dashboard Data Service

Reads windows of the event log and reduces them into the per-topic,
per-student, ethics, quality, usage and time-spent figures the dashboards
are assembled from. Every method scans the in-memory index through the
telemetry store; nothing here is cached.
"""

from typing import Dict, List, Optional, Union

from learnflow.common.config import MetricsConfig
from learnflow.common.logger import app_logger
from learnflow.common.numeric import clamp, mean, round_half_up
from learnflow.dashboard.models import (
    AssignmentStatistic,
    DepthDistribution,
    EthicsMetric,
    HintEffectiveness,
    ModelUsage,
    QualityMetric,
    StudentProgressRow,
    SystemHealthMetric,
    TopicMetric,
)
from learnflow.dashboard.system_monitor import SystemMonitor
from learnflow.telemetry.events import (
    AssignmentEvent,
    EthicsEvent,
    InteractionEvent,
    PrivacyEvent,
    TelemetryEventBase,
)
from learnflow.telemetry.index import TimeRange
from learnflow.telemetry.store import Period, TelemetryStore, parse_timestamp, period_to_range

logger = app_logger.getChild("dashboard.data")

PASSING_SCORE = 60
HEALTH_WINDOW_SECONDS = 60 * 60
MAX_SESSION_GAP_SECONDS = 30 * 60
MAX_CREDITED_SECONDS = 10 * 60


def _score(event: AssignmentEvent) -> float:
    """Conceptual score clamped into [0, 100]."""
    return clamp((event.conceptual_score or 0) / 100, 0, 1) * 100


def _is_error(event: AssignmentEvent) -> bool:
    return (event.conceptual_score or 0) < PASSING_SCORE or bool(event.flags)


def _later(a: str, b: str) -> str:
    """The later of two event timestamps (``a`` wins ties)."""
    return a if parse_timestamp(a) >= parse_timestamp(b) else b


def reasoning_quality(depth_alignment: float, clarity: float) -> float:
    return round_half_up(clamp(depth_alignment, 0, 1) * 0.6 + clamp(clarity, 0, 1) * 0.4, 3)


def quality_from_interactions(interactions: List[InteractionEvent]) -> QualityMetric:
    """Mean alignment and clarity, with the weighted reasoning-quality blend."""
    alignment = round_half_up(mean(i.depth_alignment_score for i in interactions), 3)
    clarity = round_half_up(mean(i.clarity_score for i in interactions), 3)
    return QualityMetric(
        depth_alignment_score=alignment,
        clarity_score=clarity,
        reasoning_quality_average=reasoning_quality(alignment, clarity),
    )


def time_spent_by_depth(interactions: List[InteractionEvent]) -> DepthDistribution:
    """
    Minutes spent per depth, estimated from gaps between an actor's
    consecutive interactions.

    Gaps longer than the session gap are ignored and the rest are capped;
    each gap is credited to the depth of the interaction that opened it.
    """
    by_actor: Dict[str, List[InteractionEvent]] = {}
    for event in interactions:
        if event.actor_hash:
            by_actor.setdefault(event.actor_hash, []).append(event)

    seconds = DepthDistribution()
    for events in by_actor.values():
        timed = sorted(((parse_timestamp(e.timestamp), e) for e in events), key=lambda pair: pair[0])
        for (current_at, current), (next_at, _) in zip(timed, timed[1:]):
            gap = (next_at - current_at).total_seconds()
            if gap <= 0 or gap > MAX_SESSION_GAP_SECONDS:
                continue
            seconds.add(current.depth_level, min(gap, MAX_CREDITED_SECONDS))

    return DepthDistribution(
        core=round_half_up(seconds.core / 60, 1),
        applied=round_half_up(seconds.applied / 60, 1),
        mastery=round_half_up(seconds.mastery / 60, 1),
    )


class DashboardDataService:
    """Window queries over the telemetry store."""

    def __init__(self, store: TelemetryStore, monitor: SystemMonitor,
                 config: Optional[MetricsConfig] = None):
        """
        Args:
            store: Event log to read from
            monitor: Request timing monitor for system health
            config: Cost rates and metrics switches
        """
        self.store = store
        self.monitor = monitor
        self.config = config or MetricsConfig()

    def range_for(self, period: Union[Period, str]) -> TimeRange:
        return period_to_range(period, self.store.now())

    async def _events(self, period: Union[Period, str], *kinds: str) -> List[TelemetryEventBase]:
        return await self.store.query(self.range_for(period), kinds)

    async def get_student_progress_data(self, period: Union[Period, str]) -> List[StudentProgressRow]:
        """
        Per-student, per-topic progress from assignment evaluations.

        The mastery is the running mean of clamped conceptual scores; a
        score below the passing mark or any flag counts as an error.
        """
        rows: Dict[tuple, StudentProgressRow] = {}
        for event in await self._events(period, "assignment"):
            if not isinstance(event, AssignmentEvent) or event.action != "evaluate" or not event.actor_hash:
                continue

            key = (event.actor_hash, event.topic)
            row = rows.get(key)
            if row is None:
                row = StudentProgressRow(
                    student_hash=event.actor_hash,
                    topic=event.topic,
                    mastery_level=0,
                    depth_level=event.depth_level,
                    attempt_count=0,
                    error_count=0,
                    last_updated=event.timestamp,
                )
                rows[key] = row

            n = row.attempt_count
            row.mastery_level = (row.mastery_level * n + _score(event)) / (n + 1)
            row.attempt_count += 1
            if _is_error(event):
                row.error_count += 1
            if event.depth_level.order > row.depth_level.order:
                row.depth_level = event.depth_level
            row.last_updated = _later(row.last_updated, event.timestamp)

        for row in rows.values():
            row.mastery_level = round_half_up(row.mastery_level, 1)
        return list(rows.values())

    async def get_topic_metrics(self, period: Union[Period, str]) -> List[TopicMetric]:
        """Mean evaluation score, attempts and error share per topic."""
        stats: Dict[str, dict] = {}
        for event in await self._events(period, "assignment"):
            if not isinstance(event, AssignmentEvent) or event.action != "evaluate":
                continue
            current = stats.setdefault(event.topic, {"scores": [], "errors": 0, "last": event.timestamp})
            current["scores"].append(_score(event))
            if _is_error(event):
                current["errors"] += 1
            current["last"] = _later(current["last"], event.timestamp)

        return [
            TopicMetric(
                topic=topic,
                mastery_level=round_half_up(mean(v["scores"]), 1),
                attempt_count=len(v["scores"]),
                error_frequency=round_half_up(v["errors"] / len(v["scores"]), 3),
                last_updated=v["last"],
            )
            for topic, v in stats.items()
        ]

    async def get_ethics_compliance(self, period: Union[Period, str]) -> EthicsMetric:
        metric = EthicsMetric()
        for event in await self._events(period, "ethics", "privacy"):
            if isinstance(event, PrivacyEvent):
                metric.privacy_alerts += 1
            elif isinstance(event, EthicsEvent):
                if event.type == "cheating_detected":
                    metric.cheating_detected += 1
                elif event.type == "prompt_modified":
                    metric.prompt_modifications += 1
                else:
                    metric.assignment_enforcements += 1
        return metric

    async def get_quality_metrics(self, period: Union[Period, str],
                                  time_range: Optional[TimeRange] = None) -> QualityMetric:
        """Quality scores over a period (or an explicit window); trend is left stable."""
        window = time_range or self.range_for(period)
        events = await self.store.query(window, ("interaction",))
        return quality_from_interactions([e for e in events if isinstance(e, InteractionEvent)])

    def get_system_health_metrics(self) -> SystemHealthMetric:
        snap = self.monitor.snapshot(HEALTH_WINDOW_SECONDS)
        return SystemHealthMetric(
            uptime=self.monitor.uptime_seconds(),
            average_response_time=round_half_up(snap.avg_response_time_ms, 1),
            error_rate=round_half_up(snap.error_rate, 4),
            active_bugs=snap.errors,
        )

    async def get_assignment_stats(self, period: Union[Period, str]) -> List[AssignmentStatistic]:
        """Generation/evaluation counts, hint effectiveness and misconceptions per topic."""
        stats: Dict[str, dict] = {}
        for event in await self._events(period, "assignment"):
            if not isinstance(event, AssignmentEvent):
                continue
            current = stats.setdefault(event.topic, {
                "generated": 0, "evaluated": 0, "scores": [], "hints": [],
                "hinted_scores": [], "misconceptions": {}, "last": event.timestamp,
            })

            if event.action == "generate":
                current["generated"] += 1
            else:
                current["evaluated"] += 1
                score = _score(event)
                hints = event.hints_provided or 0
                current["scores"].append(score)
                current["hints"].append(hints)
                if hints > 0:
                    current["hinted_scores"].append(score)
                for concept in event.missing_concepts or []:
                    current["misconceptions"][concept] = current["misconceptions"].get(concept, 0) + 1

            current["last"] = _later(current["last"], event.timestamp)

        return [
            AssignmentStatistic(
                topic=topic,
                generated_count=v["generated"],
                evaluated_count=v["evaluated"],
                average_score=round_half_up(mean(v["scores"]), 1),
                hint_effectiveness=HintEffectiveness(
                    average_hints_provided=round_half_up(mean(v["hints"]), 2),
                    average_score_when_hints_provided=round_half_up(mean(v["hinted_scores"]), 1),
                ),
                misconception_counts=v["misconceptions"],
                last_updated=v["last"],
            )
            for topic, v in stats.items()
        ]

    async def get_interaction_events(self, period: Union[Period, str]) -> List[InteractionEvent]:
        return [e for e in await self._events(period, "interaction") if isinstance(e, InteractionEvent)]

    async def get_depth_time_spent_minutes(self, period: Union[Period, str]) -> DepthDistribution:
        return time_spent_by_depth(await self.get_interaction_events(period))

    async def get_estimated_model_cost(self, period: Union[Period, str]) -> ModelUsage:
        """Model calls in the period and their estimated cost in USD."""
        called = [i for i in await self.get_interaction_events(period) if i.model_called]
        input_tokens = sum(i.input_tokens for i in called)
        output_tokens = sum(i.output_tokens for i in called)
        cost = (input_tokens / 1000 * self.config.input_cost_per_1k
                + output_tokens / 1000 * self.config.output_cost_per_1k)
        return ModelUsage(api_calls=len(called), cost_usd=round_half_up(cost, 2))

    async def get_recent_telemetry(self, period: Union[Period, str], limit: int) -> List[TelemetryEventBase]:
        return await self.store.get_recent(limit, self.range_for(period))

    async def get_topic_events(self, period: Union[Period, str], topic: str) -> List[AssignmentEvent]:
        """Assignment events of one topic (case-insensitive)."""
        wanted = topic.lower()
        return [
            e for e in await self._events(period, "assignment")
            if isinstance(e, AssignmentEvent) and e.topic.lower() == wanted
        ]

    async def get_ethics_events(self, period: Union[Period, str]) -> List[TelemetryEventBase]:
        return await self._events(period, "ethics", "privacy")
