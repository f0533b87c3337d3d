"""
Insight Generator

Derives strengths, weaknesses, recommendations, the cross-topic mastery
trend, a suggested next topic and the adaptive signal from a student
progress snapshot. All functions are pure over their inputs.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from learnflow.common.logger import app_logger
from learnflow.common.numeric import mean, round_half_up
from learnflow.progress.models import (
    AdaptiveSignalType,
    ConfidenceTrend,
    DepthLevel,
    LearningEvent,
    MasteryTrend,
    StudentInsight,
    StudentProgress,
    TopicProgress,
)

logger = app_logger.getChild("progress.insights")

STRENGTH_THRESHOLD = 75
WEAKNESS_THRESHOLD = 50
MAX_LISTED_TOPICS = 5
MAX_RECOMMENDATIONS = 7
FALLBACK_RECOMMENDATION = "Continue practicing - you're making steady progress!"


class InsightGenerator:
    """Rule-based insights over replayed progress."""

    TREND_WINDOW = 5
    TOPIC_CHANGE_THRESHOLD = 10
    TREND_AVERAGE_THRESHOLD = 8
    PLATEAU_THRESHOLD = 3

    def generate_insights(self, progress: Optional[StudentProgress]) -> Optional[StudentInsight]:
        """
        Build the full insight set for a student.

        Args:
            progress: Replayed progress, or None when the student has no events

        Returns:
            Insights, or None when there is no progress yet
        """
        if progress is None:
            logger.debug("No progress available for insights")
            return None

        strengths = self.identify_strengths(progress)
        weaknesses = self.identify_weaknesses(progress)
        mastery_trend = self.analyze_mastery_trend(progress)
        return StudentInsight(
            strengths=strengths,
            weaknesses=weaknesses,
            recommendations=self.generate_recommendations(progress, strengths, weaknesses),
            adaptive_signal=self.determine_adaptive_signal(progress, mastery_trend),
            mastery_trend=mastery_trend,
            suggested_next_topic=self.suggest_next_topic(progress),
        )

    def identify_strengths(self, progress: StudentProgress) -> List[str]:
        strong = [t for t in progress.topics if t.mastery_level >= STRENGTH_THRESHOLD]
        strong.sort(key=lambda t: -t.mastery_level)
        return [t.topic for t in strong[:MAX_LISTED_TOPICS]]

    def identify_weaknesses(self, progress: StudentProgress) -> List[str]:
        weak = [t for t in progress.topics if t.mastery_level < WEAKNESS_THRESHOLD]
        weak.sort(key=lambda t: t.mastery_level)
        return [t.topic for t in weak[:MAX_LISTED_TOPICS]]

    def generate_recommendations(self, progress: StudentProgress, strengths: Sequence[str],
                                 weaknesses: Sequence[str]) -> List[str]:
        """
        Rule-based study recommendations, at most one per rule and topic.

        Falls back to a generic encouragement when no rule fires.
        """
        recommendations: List[str] = []

        for topic in weaknesses:
            tp = progress.get_topic(topic)
            if tp is None:
                continue
            if tp.confidence_trend is ConfidenceTrend.DECLINING:
                recommendations.append(f"Review {topic} fundamentals - confidence appears to be declining")
            elif tp.attempt_count < 3:
                recommendations.append(f"Practice more {topic} to build a stronger foundation")
            elif tp.reasoning_average < 0.5:
                recommendations.append(f"Focus on understanding concepts behind {topic} rather than memorization")

        for topic in strengths:
            tp = progress.get_topic(topic)
            if tp is not None and tp.mastery_level >= 90 and tp.depth_progress is not DepthLevel.MASTERY:
                recommendations.append(f"{topic} is mastered - consider advancing to mastery-level challenges")

        for tp in progress.topics:
            if tp.total_errors >= 3:
                common = tp.top_errors(2)
                if common:
                    recommendations.append(f"Pay attention to common patterns in {tp.topic}: {', '.join(common)}")

        if progress.topics and progress.overall_mastery < 50:
            recommendations.append("Focus on building confidence in core concepts before advancing")

        if not recommendations:
            recommendations.append(FALLBACK_RECOMMENDATION)

        return recommendations[:MAX_RECOMMENDATIONS]

    def analyze_mastery_trend(self, progress: StudentProgress) -> MasteryTrend:
        """
        Cross-topic trend over topics with at least three mastery snapshots.

        A topic counts as accelerating (declining) when the mean of its last
        window exceeds (falls below) the previous window by more than the
        per-topic threshold. A non-steady label needs both an average change
        beyond the average threshold and more than half the topics agreeing.
        """
        if len(progress.topics) < 2:
            return MasteryTrend.STEADY

        qualifying = [t for t in progress.topics if len(t.mastery_history) >= 3]
        if not qualifying:
            return MasteryTrend.STEADY

        window = self.TREND_WINDOW
        accelerating = 0
        declining = 0
        total_change = 0.0
        for tp in qualifying:
            recent = tp.mastery_history[-window:]
            older = tp.mastery_history[-2 * window:-window]
            if not older:
                continue
            change = mean(recent) - mean(older)
            total_change += change
            if change > self.TOPIC_CHANGE_THRESHOLD:
                accelerating += 1
            elif change < -self.TOPIC_CHANGE_THRESHOLD:
                declining += 1

        average_change = total_change / len(qualifying)
        half = len(qualifying) / 2

        if average_change > self.TREND_AVERAGE_THRESHOLD and accelerating > half:
            return MasteryTrend.ACCELERATING
        if average_change < -self.TREND_AVERAGE_THRESHOLD and declining > half:
            return MasteryTrend.DECLINING
        if abs(average_change) < self.PLATEAU_THRESHOLD:
            return MasteryTrend.PLATEAUING
        return MasteryTrend.STEADY

    def suggest_next_topic(self, progress: StudentProgress) -> Optional[str]:
        if not progress.topics:
            return None

        in_progress = [t for t in progress.topics if 50 <= t.mastery_level < 80]
        if in_progress:
            return max(in_progress, key=lambda t: t.mastery_level).topic

        weakest = [t for t in progress.topics if t.mastery_level < 30]
        if weakest:
            return min(weakest, key=lambda t: t.mastery_level).topic

        return progress.topics[0].topic

    def determine_adaptive_signal(self, progress: StudentProgress, mastery_trend: MasteryTrend) -> AdaptiveSignalType:
        """Pick the adaptive signal by fixed precedence."""
        overall = progress.overall_mastery
        highest = self._highest_topic(progress.topics)

        if overall >= 85 and highest is not None and highest.confidence_trend is ConfidenceTrend.IMPROVING:
            return AdaptiveSignalType.INCREASE_DEPTH

        if 50 <= overall < 85 and mastery_trend is not MasteryTrend.DECLINING:
            return AdaptiveSignalType.MAINTAIN_LEVEL

        if overall < 50 or mastery_trend is MasteryTrend.DECLINING:
            return AdaptiveSignalType.REDUCE_COMPLEXITY

        if any(t.total_errors >= 3 and t.attempt_count < 5 for t in progress.topics):
            return AdaptiveSignalType.PRACTICE_MORE

        if any(t.mastery_level >= 80 and t.depth_progress is DepthLevel.CORE for t in progress.topics):
            return AdaptiveSignalType.READY_FOR_MASTERY

        return AdaptiveSignalType.MAINTAIN_LEVEL

    def get_topic_analysis(self, progress: Optional[StudentProgress], topic: str) -> Optional[TopicProgress]:
        if progress is None:
            return None
        return progress.get_topic(topic)

    def compare_topics(self, progress: StudentProgress, topics: Iterable[str]) -> Dict[str, float]:
        """Mastery per requested topic, 0 for topics never attempted."""
        comparison = {}
        for topic in topics:
            tp = progress.get_topic(topic)
            comparison[topic] = tp.mastery_level if tp is not None else 0
        return comparison

    def learning_velocity(self, events: Sequence[LearningEvent]) -> int:
        """Success share of the last ten learning events, as a percentage."""
        if len(events) < 2:
            return 0
        recent = events[-10:]
        successes = sum(1 for event in recent if event.success)
        return int(round_half_up(successes / len(recent) * 100))

    @staticmethod
    def _highest_topic(topics: Sequence[TopicProgress]) -> Optional[TopicProgress]:
        """First topic holding the strictly highest positive mastery."""
        highest = None
        for tp in topics:
            if tp.mastery_level > (highest.mastery_level if highest is not None else 0):
                highest = tp
        return highest
