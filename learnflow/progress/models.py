"""
Progress Models

Derived, never-persisted views of a student's learning state: per-topic
progress, the student snapshot, insights and adaptive recommendations.
"""

import enum
from typing import Dict, List, Optional
from dataclasses import dataclass, field

from learnflow.common.serialization import SerializableMixin
from learnflow.telemetry.events import DepthLevel, LearningEvent, TaskType

__all__ = [
    'DepthLevel',
    'TaskType',
    'LearningEvent',
    'ConfidenceTrend',
    'MasteryTrend',
    'AdaptiveSignalType',
    'TopicProgress',
    'StudentProgress',
    'StudentInsight',
    'AdaptiveRecommendation',
]


class ConfidenceTrend(str, enum.Enum):
    """Direction of a topic's recent mastery history."""
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class MasteryTrend(str, enum.Enum):
    """Direction of a student's mastery across topics."""
    ACCELERATING = "accelerating"
    STEADY = "steady"
    PLATEAUING = "plateauing"
    DECLINING = "declining"


class AdaptiveSignalType(str, enum.Enum):
    INCREASE_DEPTH = "INCREASE_DEPTH"
    MAINTAIN_LEVEL = "MAINTAIN_LEVEL"
    REDUCE_COMPLEXITY = "REDUCE_COMPLEXITY"
    PRACTICE_MORE = "PRACTICE_MORE"
    READY_FOR_MASTERY = "READY_FOR_MASTERY"


def _empty_depth_attempts() -> Dict[str, int]:
    return {depth.value: 0 for depth in DepthLevel.ordered()}


@dataclass
class TopicProgress(SerializableMixin):
    """Replayed state of one student on one topic."""

    topic: str
    mastery_level: float = 0
    confidence_trend: ConfidenceTrend = ConfidenceTrend.STABLE
    error_frequency: Dict[str, int] = field(default_factory=dict)
    last_interaction: Optional[str] = None
    depth_progress: DepthLevel = DepthLevel.CORE
    reasoning_average: float = 0.0
    attempt_count: int = 0
    depth_attempts: Dict[str, int] = field(default_factory=_empty_depth_attempts)
    mastery_history: List[float] = field(default_factory=list)

    @property
    def total_errors(self) -> int:
        return sum(self.error_frequency.values())

    def top_errors(self, limit: int) -> List[str]:
        """Most frequent mistake patterns, ties kept in first-seen order."""
        ranked = sorted(self.error_frequency.items(), key=lambda item: -item[1])
        return [pattern for pattern, _ in ranked[:limit]]


@dataclass
class StudentProgress(SerializableMixin):
    """All topic progress of one (pseudonymous) student."""

    student_id: str
    topics: List[TopicProgress] = field(default_factory=list)
    overall_mastery: int = 0
    total_interactions: int = 0
    last_activity: Optional[str] = None
    created_at: Optional[str] = None

    def get_topic(self, topic: str) -> Optional[TopicProgress]:
        for topic_progress in self.topics:
            if topic_progress.topic == topic:
                return topic_progress
        return None


@dataclass
class StudentInsight(SerializableMixin):
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    adaptive_signal: AdaptiveSignalType = AdaptiveSignalType.MAINTAIN_LEVEL
    mastery_trend: MasteryTrend = MasteryTrend.STEADY
    suggested_next_topic: Optional[str] = None


@dataclass
class AdaptiveRecommendation(SerializableMixin):
    """Concrete teaching recommendation derived from an adaptive signal."""

    signal: AdaptiveSignalType
    confidence: float
    reason: str
    suggested_depth: Optional[DepthLevel] = None
