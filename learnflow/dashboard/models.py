"""
Dashboard Models

View objects served by the dashboards. They are recomputed on demand from
the event log and only ever live in the dashboard cache.
"""

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from learnflow.common.serialization import SerializableMixin
from learnflow.telemetry.events import DepthLevel


class QualityTrend(str, enum.Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class InterventionPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ActivityType(str, enum.Enum):
    CHAT = "chat"
    ASSIGNMENT_GENERATE = "assignment_generate"
    ASSIGNMENT_EVALUATE = "assignment_evaluate"
    ETHICS_ENFORCEMENT = "ethics_enforcement"
    PRIVACY_ALERT = "privacy_alert"
    SYSTEM_ERROR = "system_error"
    LEARNING = "learning"


class AlertSeverity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class DepthDistribution(SerializableMixin):
    """Per-depth values: raw counts, shares or minutes depending on the view."""

    core: float = 0
    applied: float = 0
    mastery: float = 0

    @classmethod
    def from_depths(cls, depths: List[Union[DepthLevel, str]]) -> "DepthDistribution":
        distribution = cls()
        for depth in depths:
            distribution.add(depth)
        return distribution

    @property
    def total(self) -> float:
        return self.core + self.applied + self.mastery

    def get(self, depth: Union[DepthLevel, str]) -> float:
        return getattr(self, DepthLevel(depth).name.lower())

    def add(self, depth: Union[DepthLevel, str], amount: float = 1) -> None:
        attr = DepthLevel(depth).name.lower()
        setattr(self, attr, getattr(self, attr) + amount)

    def normalized(self) -> "DepthDistribution":
        """Shares of the total; all zero when there is nothing to divide."""
        total = self.total
        if total == 0:
            return DepthDistribution()
        return DepthDistribution(
            core=self.core / total,
            applied=self.applied / total,
            mastery=self.mastery / total,
        )


@dataclass
class TopicMetric(SerializableMixin):
    topic: str
    mastery_level: float
    attempt_count: int
    error_frequency: float
    last_updated: str


@dataclass
class StudentProgressRow(SerializableMixin):
    """Assignment-evaluation progress of one anonymized student on one topic."""

    student_hash: str
    topic: str
    mastery_level: float
    depth_level: DepthLevel
    attempt_count: int
    error_count: int
    last_updated: str


@dataclass
class EthicsMetric(SerializableMixin):
    cheating_detected: int = 0
    prompt_modifications: int = 0
    assignment_enforcements: int = 0
    privacy_alerts: int = 0


@dataclass
class QualityMetric(SerializableMixin):
    depth_alignment_score: float = 0
    clarity_score: float = 0
    reasoning_quality_average: float = 0
    trend: QualityTrend = QualityTrend.STABLE


@dataclass
class SystemHealthMetric(SerializableMixin):
    uptime: int = 0
    average_response_time: float = 0
    error_rate: float = 0
    active_bugs: int = 0


@dataclass
class HintEffectiveness(SerializableMixin):
    average_hints_provided: float = 0
    average_score_when_hints_provided: float = 0


@dataclass
class AssignmentStatistic(SerializableMixin):
    topic: str
    generated_count: int
    evaluated_count: int
    average_score: float
    hint_effectiveness: HintEffectiveness
    misconception_counts: Dict[str, int]
    last_updated: str


@dataclass
class ModelUsage(SerializableMixin):
    api_calls: int = 0
    cost_usd: float = 0


@dataclass
class TrendAnalysis(SerializableMixin):
    trend: QualityTrend
    delta: float


@dataclass
class InsightRecommendation(SerializableMixin):
    topic: str
    recommendation: str
    priority: InterventionPriority


@dataclass
class InsightSet(SerializableMixin):
    highlights: List[str] = field(default_factory=list)
    concerns: List[str] = field(default_factory=list)
    recommended_interventions: List[InsightRecommendation] = field(default_factory=list)


@dataclass
class DepthTrendPoint(SerializableMixin):
    """Depth shares of one UTC day (``timestamp`` is ``YYYY-MM-DD``)."""

    timestamp: str
    core: float
    applied: float
    mastery: float


@dataclass
class AdvancementCounts(SerializableMixin):
    core_to_applied: int = 0
    applied_to_mastery: int = 0


@dataclass
class ActivityEvent(SerializableMixin):
    timestamp: str
    type: ActivityType
    summary: str
    topic: Optional[str] = None
    depth_level: Optional[DepthLevel] = None


@dataclass
class AlertEvent(SerializableMixin):
    timestamp: str
    severity: AlertSeverity
    message: str
    module: Optional[str] = None


@dataclass
class DashboardMetrics(SerializableMixin):
    """Class-level rollup for one period."""

    period: str
    timestamp: str
    total_students: int
    total_interactions: int
    average_mastery: float
    topic_breakdown: Dict[str, TopicMetric]
    depth_distribution: DepthDistribution
    ethics_flags: EthicsMetric
    quality_scores: QualityMetric


@dataclass
class TeacherDashboard(SerializableMixin):
    period: str
    timestamp: str
    metrics: DashboardMetrics
    system_health: SystemHealthMetric
    system_health_score: int
    compliance_score: int
    depth_trend: List[DepthTrendPoint]
    assignment_stats: List[AssignmentStatistic]
    recent_activity: List[ActivityEvent]
    students_ready_for_advancement: AdvancementCounts
    time_spent_by_depth_minutes: DepthDistribution
    insights: InsightSet


@dataclass
class UsageMetric(SerializableMixin):
    total_interactions: int
    model_api_calls: int
    estimated_model_cost_usd: float
    average_response_time_ms: float
    p95_response_time_ms: float
    error_rate: float


@dataclass
class ModuleErrorRate(SerializableMixin):
    module: str
    error_rate: float
    count: int


@dataclass
class PipelineHealth(SerializableMixin):
    telemetry_writable: bool
    metrics_enabled: bool
    last_ingest_at: Optional[str] = None


@dataclass
class InstitutionDashboard(SerializableMixin):
    period: str
    timestamp: str
    usage: UsageMetric
    ethics_flags: EthicsMetric
    quality_scores: QualityMetric
    system_health: SystemHealthMetric
    modules: List[ModuleErrorRate]
    pipeline: PipelineHealth
    recent_alerts: List[AlertEvent]


@dataclass
class TopicAnalysis(SerializableMixin):
    topic: str
    period: str
    timestamp: str
    metric: TopicMetric
    depth_distribution: DepthDistribution
    misconception_counts: Dict[str, int]
    recommended_interventions: List[str]


@dataclass
class EthicsReportEvent(SerializableMixin):
    timestamp: str
    type: str
    endpoint: Optional[str] = None
    flags: Optional[List[str]] = None


@dataclass
class EthicsReport(SerializableMixin):
    period: str
    timestamp: str
    summary: EthicsMetric
    recent_events: List[EthicsReportEvent]
    compliance_score: int
