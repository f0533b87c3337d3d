"""
Adaptive Engine

Maps adaptive signals to concrete teaching recommendations and builds
per-topic teaching plans and a single next-step suggestion.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from learnflow.common.numeric import round_half_up
from learnflow.common.serialization import SerializableMixin
from learnflow.progress.models import (
    AdaptiveRecommendation,
    AdaptiveSignalType,
    ConfidenceTrend,
    DepthLevel,
    StudentInsight,
    StudentProgress,
)


class PracticeIntensity(str, Enum):
    HEAVY_PRACTICE = "HEAVY_PRACTICE"
    LIGHT_PRACTICE = "LIGHT_PRACTICE"
    READY_TO_ADVANCE = "READY_TO_ADVANCE"


class PlanPriority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


MAINTAIN = "MAINTAIN"

DepthSuggestion = Union[DepthLevel, str]


@dataclass
class TopicPlan(SerializableMixin):
    topic: str
    current_depth: DepthLevel
    suggested_depth: DepthLevel
    practice_intensity: PracticeIntensity
    priority: PlanPriority
    focus_areas: List[str] = field(default_factory=list)


@dataclass
class TeachingPlan(SerializableMixin):
    student_id: str
    generated_at: str
    overall_mastery: int
    plan: List[TopicPlan] = field(default_factory=list)


@dataclass
class NextStep(SerializableMixin):
    recommended_topic: Optional[str]
    recommended_action: str
    reason: str
    estimated_time_minutes: int


class AdaptiveEngine:
    """Turns insights into teaching decisions."""

    SECONDS_PER_ATTEMPT = 300
    MASTERY_PER_ATTEMPT = 10
    CORE_ADHERENCE_THRESHOLD = 70

    def __init__(self):
        self._signal_handlers: Dict[AdaptiveSignalType, Callable[[str], AdaptiveRecommendation]] = {
            AdaptiveSignalType.INCREASE_DEPTH: self._increase_depth,
            AdaptiveSignalType.MAINTAIN_LEVEL: self._maintain_level,
            AdaptiveSignalType.REDUCE_COMPLEXITY: self._reduce_complexity,
            AdaptiveSignalType.PRACTICE_MORE: self._practice_more,
            AdaptiveSignalType.READY_FOR_MASTERY: self._ready_for_mastery,
        }

    def generate_signal(self, insight: StudentInsight, topic: str) -> AdaptiveRecommendation:
        """Recommendation for ``topic`` according to the insight's adaptive signal."""
        return self._signal_handlers[AdaptiveSignalType(insight.adaptive_signal)](topic)

    def determine_core_adherence(self, mastery_level: float) -> bool:
        """Whether teaching should stay at Core depth."""
        return mastery_level < self.CORE_ADHERENCE_THRESHOLD

    def suggest_depth_progression(self, topic: str, progress: StudentProgress) -> DepthSuggestion:
        """
        Next depth for a topic, or ``MAINTAIN`` once Mastery is secured.

        Unknown topics start at Core.
        """
        tp = progress.get_topic(topic)
        if tp is None:
            return DepthLevel.CORE

        improving = tp.confidence_trend is ConfidenceTrend.IMPROVING
        if tp.mastery_level >= 85 and tp.depth_progress is DepthLevel.APPLIED and improving:
            return DepthLevel.MASTERY
        if tp.mastery_level >= 70 and tp.depth_progress is DepthLevel.CORE and improving:
            return DepthLevel.APPLIED
        if tp.mastery_level >= 90 and tp.depth_progress is DepthLevel.MASTERY:
            return MAINTAIN
        return tp.depth_progress

    def generate_practice_recommendation(self, topic: str, progress: StudentProgress) -> PracticeIntensity:
        tp = progress.get_topic(topic)
        if tp is None:
            return PracticeIntensity.LIGHT_PRACTICE

        errors = tp.total_errors
        if tp.mastery_level < 40 or tp.confidence_trend is ConfidenceTrend.DECLINING or errors > 5:
            return PracticeIntensity.HEAVY_PRACTICE
        if tp.mastery_level >= 75 and tp.confidence_trend is ConfidenceTrend.IMPROVING and errors < 2:
            return PracticeIntensity.READY_TO_ADVANCE
        return PracticeIntensity.LIGHT_PRACTICE

    def generate_teaching_plan(self, student_id: str, progress: StudentProgress, generated_at: str) -> TeachingPlan:
        """
        Per-topic plan: suggested depth, practice intensity, priority and up
        to three focus areas taken from the most frequent mistakes.
        """
        plan = []
        for tp in progress.topics:
            depth = self.suggest_depth_progression(tp.topic, progress)
            if tp.mastery_level < 50:
                priority = PlanPriority.HIGH
            elif tp.mastery_level < 75:
                priority = PlanPriority.MEDIUM
            else:
                priority = PlanPriority.LOW
            plan.append(TopicPlan(
                topic=tp.topic,
                current_depth=tp.depth_progress,
                suggested_depth=tp.depth_progress if depth == MAINTAIN else depth,
                practice_intensity=self.generate_practice_recommendation(tp.topic, progress),
                priority=priority,
                focus_areas=tp.top_errors(3),
            ))

        return TeachingPlan(
            student_id=student_id,
            generated_at=generated_at,
            overall_mastery=progress.overall_mastery,
            plan=plan,
        )

    def calculate_optimal_next_step(self, progress: StudentProgress) -> NextStep:
        """Pick the most urgent (or most advanceable) topic and estimate time to mastery."""
        weak = [t for t in progress.topics if t.mastery_level < 50]
        strong = [t for t in progress.topics if t.mastery_level >= 70]

        if weak:
            topic = min(weak, key=lambda t: t.mastery_level).topic
            action = f"Strengthen fundamentals in {topic}"
        elif strong:
            topic = max(strong, key=lambda t: t.mastery_level).topic
            action = f"Advance to higher complexity in {topic}"
        else:
            topic = max(progress.topics, key=lambda t: t.mastery_level).topic if progress.topics else None
            action = "Continue current learning path"

        return NextStep(
            recommended_topic=topic,
            recommended_action=action,
            reason=self._explain(progress, topic),
            estimated_time_minutes=self.estimate_time_to_mastery(progress, topic),
        )

    def estimate_time_to_mastery(self, progress: StudentProgress, topic: Optional[str]) -> int:
        """Minutes of practice left, at a fixed mastery gain and duration per attempt."""
        tp = progress.get_topic(topic) if topic else None
        if tp is None:
            return 0
        attempts = math.ceil((100 - tp.mastery_level) / self.MASTERY_PER_ATTEMPT)
        return int(round_half_up(attempts * self.SECONDS_PER_ATTEMPT / 60))

    def _explain(self, progress: StudentProgress, topic: Optional[str]) -> str:
        if not topic:
            return "Not enough data to generate recommendation"
        tp = progress.get_topic(topic)
        if tp is None:
            return f"No progress data available for {topic}"
        if tp.mastery_level < 50:
            return f"Focus on {topic} to build a stronger foundation before advancing"
        if tp.mastery_level >= 85:
            return f"{topic} is nearly mastered - ready for advanced challenges"
        return f"{topic} shows steady progress - continue with current approach"

    def _increase_depth(self, topic: str) -> AdaptiveRecommendation:
        return AdaptiveRecommendation(
            signal=AdaptiveSignalType.INCREASE_DEPTH,
            confidence=0.85,
            reason=f"Student demonstrates strong understanding of {topic} and is ready for increased complexity",
            suggested_depth=DepthLevel.MASTERY,
        )

    def _maintain_level(self, topic: str) -> AdaptiveRecommendation:
        return AdaptiveRecommendation(
            signal=AdaptiveSignalType.MAINTAIN_LEVEL,
            confidence=0.75,
            reason=f"Student is making steady progress in {topic}. Continue with current depth level",
            suggested_depth=DepthLevel.APPLIED,
        )

    def _reduce_complexity(self, topic: str) -> AdaptiveRecommendation:
        return AdaptiveRecommendation(
            signal=AdaptiveSignalType.REDUCE_COMPLEXITY,
            confidence=0.80,
            reason=f"Student needs reinforcement of fundamental concepts in {topic} before advancing",
            suggested_depth=DepthLevel.CORE,
        )

    def _practice_more(self, topic: str) -> AdaptiveRecommendation:
        return AdaptiveRecommendation(
            signal=AdaptiveSignalType.PRACTICE_MORE,
            confidence=0.70,
            reason=f"Additional practice needed for {topic} to address common mistakes and build confidence",
        )

    def _ready_for_mastery(self, topic: str) -> AdaptiveRecommendation:
        return AdaptiveRecommendation(
            signal=AdaptiveSignalType.READY_FOR_MASTERY,
            confidence=0.90,
            reason=f"Student has demonstrated mastery of {topic} fundamentals and is prepared for advanced challenges",
            suggested_depth=DepthLevel.MASTERY,
        )
