"""
Progress Engine

Rebuilds per-topic mastery by replaying a student's learning events in log
order. Replay is a pure function of the event sequence: the same events
always produce identical results, and nothing is kept between calls.
"""

import math
from typing import Dict, Iterable, List, Optional, Sequence

from learnflow.common.logger import app_logger
from learnflow.common.exceptions import ProgressComputationError
from learnflow.common.numeric import clamp, mean, round_half_up
from learnflow.progress.models import (
    ConfidenceTrend,
    DepthLevel,
    LearningEvent,
    StudentProgress,
    TopicProgress,
)

logger = app_logger.getChild("progress.engine")


class ProgressEngine:
    """
    Event-sourced mastery computation.

    Success raises mastery by a depth-dependent amount, failure lowers it by
    a fixed penalty; mastery stays within [0, 100]. Applied and Mastery
    successes advance ``depth_progress``, which never moves back down.
    """

    MASTERY_DELTAS: Dict[DepthLevel, int] = {
        DepthLevel.CORE: 10,
        DepthLevel.APPLIED: 15,
        DepthLevel.MASTERY: 25,
    }
    FAILURE_DELTA = -5
    TREND_WINDOW = 5
    TREND_THRESHOLD = 5
    TREND_MIN_HISTORY = 3

    def mastery_delta(self, depth: DepthLevel, success: bool) -> int:
        if not success:
            return self.FAILURE_DELTA
        return self.MASTERY_DELTAS[depth]

    def replay(self, events: Iterable[LearningEvent]) -> List[TopicProgress]:
        """
        Replay learning events into topic progress.

        Args:
            events: One student's learning events, in log order

        Returns:
            Topic progress in order of first appearance

        Raises:
            ProgressComputationError: If an event carries malformed state
        """
        topics: Dict[str, TopicProgress] = {}

        for event in events:
            depth = self._validate(event)
            progress = topics.get(event.topic)
            if progress is None:
                progress = TopicProgress(topic=event.topic, last_interaction=event.timestamp)
                topics[event.topic] = progress
            self._apply(progress, event, depth)

        for progress in topics.values():
            if len(progress.mastery_history) >= self.TREND_MIN_HISTORY:
                progress.confidence_trend = self.confidence_trend(progress.mastery_history)

        return list(topics.values())

    def build_student_progress(self, student_id: str, events: Sequence[LearningEvent]) -> Optional[StudentProgress]:
        """
        Replay a student's full history into a progress snapshot.

        Returns:
            The snapshot, or None if the student has no learning events
        """
        if not events:
            return None

        topics = self.replay(events)
        return StudentProgress(
            student_id=student_id,
            topics=topics,
            overall_mastery=self.overall_mastery(topics),
            total_interactions=len(events),
            last_activity=events[-1].timestamp,
            created_at=events[0].timestamp,
        )

    def confidence_trend(self, history: Sequence[float]) -> ConfidenceTrend:
        """
        Compare the mean of the last window of mastery snapshots with the
        mean of the window before it.
        """
        window = self.TREND_WINDOW
        recent = list(history[-window:])
        older = list(history[-2 * window:-window])
        if not older:
            return ConfidenceTrend.STABLE

        delta = mean(recent) - mean(older)
        if delta > self.TREND_THRESHOLD:
            return ConfidenceTrend.IMPROVING
        if delta < -self.TREND_THRESHOLD:
            return ConfidenceTrend.DECLINING
        return ConfidenceTrend.STABLE

    @staticmethod
    def overall_mastery(topics: Sequence[TopicProgress]) -> int:
        if not topics:
            return 0
        return int(round_half_up(mean(t.mastery_level for t in topics)))

    def _apply(self, progress: TopicProgress, event: LearningEvent, depth: DepthLevel) -> None:
        progress.attempt_count += 1
        progress.depth_attempts[depth.value] = progress.depth_attempts.get(depth.value, 0) + 1
        progress.last_interaction = event.timestamp

        delta = self.mastery_delta(depth, event.success)
        progress.mastery_level = clamp(progress.mastery_level + delta, 0, 100)
        if event.success and depth is not DepthLevel.CORE and depth.order > progress.depth_progress.order:
            progress.depth_progress = depth

        progress.mastery_history.append(progress.mastery_level)

        n = progress.attempt_count
        progress.reasoning_average = (progress.reasoning_average * (n - 1) + event.reasoning_quality) / n

        for pattern in event.mistake_patterns:
            progress.error_frequency[pattern] = progress.error_frequency.get(pattern, 0) + 1

    def _validate(self, event: LearningEvent) -> DepthLevel:
        if not isinstance(event, LearningEvent):
            raise ProgressComputationError(f"cannot replay {type(event).__name__}")
        if not event.topic:
            raise ProgressComputationError("learning event without topic")
        try:
            depth = DepthLevel(event.depth_level)
        except ValueError as e:
            raise ProgressComputationError(f"unknown depth {event.depth_level!r}", event.topic) from e

        quality = event.reasoning_quality
        if not isinstance(quality, (int, float)) or not math.isfinite(quality) or not 0 <= quality <= 1:
            raise ProgressComputationError(f"reasoning quality {quality!r} outside [0, 1]", event.topic)
        return depth
