"""
Dashboard Aggregator

Pure functions that combine data-service outputs into dashboard views:
class rollups, quality trends, health and compliance scores, insight sets,
and the activity and alert feeds.
"""

import datetime
from typing import Any, Dict, List, Optional, Sequence

from learnflow.common.numeric import clamp, mean, round_half_up
from learnflow.dashboard.models import (
    ActivityEvent,
    ActivityType,
    AdvancementCounts,
    AlertEvent,
    AlertSeverity,
    AssignmentStatistic,
    DashboardMetrics,
    DepthDistribution,
    DepthTrendPoint,
    EthicsMetric,
    EthicsReportEvent,
    InsightRecommendation,
    InsightSet,
    InterventionPriority,
    QualityMetric,
    QualityTrend,
    StudentProgressRow,
    SystemHealthMetric,
    TopicMetric,
    TrendAnalysis,
)
from learnflow.telemetry.events import (
    AssignmentEvent,
    DepthLevel,
    EthicsEvent,
    InteractionEvent,
    LearningEvent,
    PrivacyEvent,
    SystemErrorEvent,
    TelemetryEventBase,
)
from learnflow.telemetry.store import parse_timestamp

TREND_THRESHOLD = 0.02
MAX_INTERVENTIONS = 8
MAX_ALERTS = 25
MAX_ETHICS_EVENTS = 50
CORE_ADVANCEMENT_SCORE = 75
APPLIED_ADVANCEMENT_SCORE = 82

NO_ACTIVITY_HIGHLIGHT = (
    "No topic activity logged yet. Once students complete assignments, "
    "this dashboard will populate with anonymized trends."
)
ERROR_HEAVY_INTERVENTION = (
    "Increase spaced retrieval practice and error-focused worked examples; "
    "encourage students to explain reasoning in steps."
)
DEFAULT_INTERVENTION = (
    "Add short formative checks and targeted practice; "
    "review key misconceptions and prerequisite concepts."
)


def aggregate_teacher_metrics(
    period: str,
    timestamp: str,
    student_progress: Sequence[StudentProgressRow],
    topic_metrics: Sequence[TopicMetric],
    ethics: EthicsMetric,
    quality: QualityMetric,
    interaction_depths: Sequence[DepthLevel],
) -> DashboardMetrics:
    """
    Class-level rollup for one period.

    The depth distribution holds each depth's share of the interactions
    (all zero when there were none).
    """
    return DashboardMetrics(
        period=period,
        timestamp=timestamp,
        total_students=len({row.student_hash for row in student_progress}),
        total_interactions=len(interaction_depths),
        average_mastery=round_half_up(mean(t.mastery_level for t in topic_metrics), 1),
        topic_breakdown={t.topic: t for t in topic_metrics},
        depth_distribution=DepthDistribution.from_depths(list(interaction_depths)).normalized(),
        ethics_flags=ethics,
        quality_scores=quality,
    )


def calculate_trends(current: QualityMetric, historical: QualityMetric) -> TrendAnalysis:
    """Label the change in reasoning quality against the previous period."""
    delta = round_half_up(current.reasoning_quality_average - historical.reasoning_quality_average, 3)
    if delta > TREND_THRESHOLD:
        return TrendAnalysis(QualityTrend.IMPROVING, delta)
    if delta < -TREND_THRESHOLD:
        return TrendAnalysis(QualityTrend.DECLINING, delta)
    return TrendAnalysis(QualityTrend.STABLE, delta)


def compute_system_health_score(health: SystemHealthMetric) -> int:
    error_penalty = min(60, health.error_rate * 100 * 10)
    latency_penalty = min(30, health.average_response_time / 100)
    bug_penalty = min(20, health.active_bugs * 2)
    return int(clamp(round_half_up(100 - error_penalty - latency_penalty - bug_penalty), 0, 100))


def compute_compliance_score(ethics: EthicsMetric, total_interactions: int) -> int:
    """
    Penalty score for ethics and privacy interventions per interaction.

    Cheating counts twice, privacy alerts three times; the rate is taken
    over at least one interaction.
    """
    severity = (ethics.cheating_detected * 2 + ethics.privacy_alerts * 3
                + ethics.assignment_enforcements + ethics.prompt_modifications)
    rate = severity / max(1, total_interactions)
    return int(clamp(round_half_up(100 - min(100, rate * 200)), 0, 100))


def _intervention(topic: TopicMetric) -> InsightRecommendation:
    if topic.mastery_level < 55 or topic.error_frequency > 0.4:
        priority = InterventionPriority.HIGH
    elif topic.mastery_level < 65:
        priority = InterventionPriority.MEDIUM
    else:
        priority = InterventionPriority.LOW
    text = ERROR_HEAVY_INTERVENTION if topic.error_frequency > 0.35 else DEFAULT_INTERVENTION
    return InsightRecommendation(topic=topic.topic, recommendation=text, priority=priority)


def generate_insights(metrics: DashboardMetrics) -> InsightSet:
    """Highlights, concerns and prioritized interventions for a class rollup."""
    topics = list(metrics.topic_breakdown.values())
    ranked = sorted(topics, key=lambda t: -t.mastery_level)

    insights = InsightSet()
    if ranked:
        top, bottom = ranked[0], ranked[-1]
        insights.highlights.append(
            f"Top topic: {top.topic} ({int(round_half_up(top.mastery_level))}% mastery)")
        insights.concerns.append(
            f"Weakest topic: {bottom.topic} ({int(round_half_up(bottom.mastery_level))}% mastery)")
    else:
        insights.highlights.append(NO_ACTIVITY_HIGHLIGHT)

    struggling = [
        t for t in topics
        if t.attempt_count >= 3 and (t.mastery_level < 70 or t.error_frequency > 0.25)
    ]
    struggling.sort(key=lambda t: t.mastery_level)
    insights.recommended_interventions = [_intervention(t) for t in struggling[:MAX_INTERVENTIONS]]
    return insights


def filter_anonymized_data(
    student_progress: Optional[Sequence[StudentProgressRow]] = None,
    recent_telemetry: Optional[Sequence[TelemetryEventBase]] = None,
) -> Dict[str, Any]:
    """Strip student and actor hashes before data leaves an institution view."""
    filtered: Dict[str, Any] = {}
    if student_progress is not None:
        filtered["student_progress"] = [
            {k: v for k, v in row.to_dict().items() if k != "student_hash"} for row in student_progress
        ]
    if recent_telemetry is not None:
        filtered["recent_telemetry"] = [
            event.model_dump(mode="json", exclude={"actor_hash"}, exclude_none=True)
            for event in recent_telemetry
        ]
    return filtered


def _day_key(timestamp: str) -> str:
    return parse_timestamp(timestamp).astimezone(datetime.timezone.utc).strftime("%Y-%m-%d")


def depth_trend(interactions: Sequence[InteractionEvent]) -> List[DepthTrendPoint]:
    """Depth shares per UTC day, oldest day first."""
    buckets: Dict[str, DepthDistribution] = {}
    for event in interactions:
        buckets.setdefault(_day_key(event.timestamp), DepthDistribution()).add(event.depth_level)

    points = []
    for day in sorted(buckets):
        shares = buckets[day].normalized()
        points.append(DepthTrendPoint(
            timestamp=day,
            core=round_half_up(shares.core, 3),
            applied=round_half_up(shares.applied, 3),
            mastery=round_half_up(shares.mastery, 3),
        ))
    return points


def advancement_counts(progress: Sequence[StudentProgressRow]) -> AdvancementCounts:
    """
    Students whose deepest level so far is Core (or Applied) and whose mean
    score across topics is high enough to move up.
    """
    by_student: Dict[str, dict] = {}
    for row in progress:
        current = by_student.setdefault(row.student_hash, {"depth": row.depth_level, "scores": []})
        current["scores"].append(row.mastery_level)
        if row.depth_level.order > current["depth"].order:
            current["depth"] = row.depth_level

    counts = AdvancementCounts()
    for student in by_student.values():
        average = mean(student["scores"])
        if student["depth"] is DepthLevel.CORE and average >= CORE_ADVANCEMENT_SCORE:
            counts.core_to_applied += 1
        if student["depth"] is DepthLevel.APPLIED and average >= APPLIED_ADVANCEMENT_SCORE:
            counts.applied_to_mastery += 1
    return counts


def _humanize(tag: str) -> str:
    return tag.replace("_", " ")


def to_activity(event: TelemetryEventBase) -> ActivityEvent:
    """Map one event to an activity feed entry."""
    if isinstance(event, InteractionEvent):
        if "/api/assignment/generate" in event.endpoint:
            return ActivityEvent(event.timestamp, ActivityType.ASSIGNMENT_GENERATE,
                                 "Assignment generated", depth_level=event.depth_level)
        if "/api/assignment/evaluate" in event.endpoint:
            return ActivityEvent(event.timestamp, ActivityType.ASSIGNMENT_EVALUATE,
                                 "Assignment evaluated", depth_level=event.depth_level)
        summary = "Chat interaction (model call)" if event.model_called else "Chat interaction (local response)"
        return ActivityEvent(event.timestamp, ActivityType.CHAT, summary, depth_level=event.depth_level)

    if isinstance(event, AssignmentEvent):
        if event.action == "generate":
            return ActivityEvent(event.timestamp, ActivityType.ASSIGNMENT_GENERATE,
                                 f"Assignment generated: {event.topic}", event.topic, event.depth_level)
        return ActivityEvent(event.timestamp, ActivityType.ASSIGNMENT_EVALUATE,
                             f"Assignment evaluated: {event.topic}", event.topic, event.depth_level)

    if isinstance(event, EthicsEvent):
        return ActivityEvent(event.timestamp, ActivityType.ETHICS_ENFORCEMENT,
                             f"Ethics event: {_humanize(event.type)}")

    if isinstance(event, PrivacyEvent):
        return ActivityEvent(event.timestamp, ActivityType.PRIVACY_ALERT,
                             "Privacy alert detected in user input")

    if isinstance(event, SystemErrorEvent):
        return ActivityEvent(event.timestamp, ActivityType.SYSTEM_ERROR, event.message)

    if isinstance(event, LearningEvent):
        outcome = "succeeded" if event.success else "missed"
        return ActivityEvent(event.timestamp, ActivityType.LEARNING,
                             f"Learning step {outcome}: {event.topic}", event.topic, event.depth_level)

    raise TypeError(f"Unhandled telemetry event type: {type(event).__name__}")


def to_alert(event: TelemetryEventBase) -> Optional[AlertEvent]:
    """Map one event to an alert, or None for kinds that never alert."""
    if isinstance(event, SystemErrorEvent):
        severity = AlertSeverity.CRITICAL if event.status and event.status >= 500 else AlertSeverity.WARNING
        return AlertEvent(event.timestamp, severity, event.message, event.endpoint)

    if isinstance(event, PrivacyEvent):
        return AlertEvent(event.timestamp, AlertSeverity.CRITICAL,
                          "Privacy safeguard triggered (possible PII detected)", event.endpoint)

    if isinstance(event, EthicsEvent):
        severity = AlertSeverity.WARNING if event.type == "cheating_detected" else AlertSeverity.INFO
        return AlertEvent(event.timestamp, severity, f"Ethics event: {_humanize(event.type)}", event.endpoint)

    if isinstance(event, (InteractionEvent, AssignmentEvent, LearningEvent)):
        return None

    raise TypeError(f"Unhandled telemetry event type: {type(event).__name__}")


def recent_activity(events: Sequence[TelemetryEventBase]) -> List[ActivityEvent]:
    return [to_activity(event) for event in events]


def recent_alerts(events: Sequence[TelemetryEventBase]) -> List[AlertEvent]:
    alerts = [alert for alert in (to_alert(event) for event in events) if alert is not None]
    return alerts[:MAX_ALERTS]


def ethics_report_events(events: Sequence[TelemetryEventBase]) -> List[EthicsReportEvent]:
    """Newest ethics and privacy events first, capped for the report."""
    ordered = sorted(events, key=lambda e: parse_timestamp(e.timestamp), reverse=True)
    report = []
    for event in ordered[:MAX_ETHICS_EVENTS]:
        if isinstance(event, PrivacyEvent):
            report.append(EthicsReportEvent(event.timestamp, "privacy_alert", event.endpoint))
        elif isinstance(event, EthicsEvent):
            flags = [str(flag) for flag in event.flags] if event.flags is not None else None
            report.append(EthicsReportEvent(event.timestamp, event.type, event.endpoint, flags))
        else:
            raise TypeError(f"Not an ethics event: {type(event).__name__}")
    return report


def topic_interventions(metric: TopicMetric, assignment: Optional[AssignmentStatistic]) -> List[str]:
    """Teaching suggestions for a single topic, plus its most common misconception."""
    interventions = [
        "Run a short prerequisite refresher and provide a worked example followed by a "
        "near-transfer practice problem."
        if metric.mastery_level < 55 else
        "Use a quick formative check, then provide targeted practice on the most-missed subskills.",
        "Increase feedback frequency: ask students to explain each step before moving on, "
        "and use retrieval practice."
        if metric.error_frequency > 0.3 else
        "Encourage self-explanation and use spaced repetition for reinforcement.",
    ]

    if assignment is not None and assignment.misconception_counts:
        top = max(assignment.misconception_counts.items(), key=lambda item: item[1])
        interventions.append(f'Address common misconception: "{top[0]}".')
    return interventions
