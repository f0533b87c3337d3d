"""
Progress Tracker

Service over the event log and the progress engine. Learning events are
persisted as ``learning`` telemetry events under the anonymized student id;
every read replays the student's full history from the log.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as SchemaValidationError

from learnflow.common.logger import app_logger, log_execution_time
from learnflow.common.exceptions import NotFoundError, ValidationError
from learnflow.common.serialization import serialize
from learnflow.progress.adaptive import AdaptiveEngine, NextStep, TeachingPlan
from learnflow.progress.engine import ProgressEngine
from learnflow.progress.insights import InsightGenerator
from learnflow.progress.models import (
    AdaptiveRecommendation,
    DepthLevel,
    LearningEvent,
    StudentInsight,
    StudentProgress,
    TopicProgress,
)
from learnflow.telemetry.store import TelemetryStore

logger = app_logger.getChild("progress.tracker")

LEARNING_KINDS = ("learning",)


class ProgressTracker:
    """Records learning events and serves replayed progress, insights and plans."""

    def __init__(
        self,
        store: TelemetryStore,
        engine: Optional[ProgressEngine] = None,
        insights: Optional[InsightGenerator] = None,
        adaptive: Optional[AdaptiveEngine] = None,
    ):
        self.store = store
        self.engine = engine or ProgressEngine()
        self.insights = insights or InsightGenerator()
        self.adaptive = adaptive or AdaptiveEngine()

    def _student_key(self, student_id: str) -> str:
        if not student_id or not isinstance(student_id, str):
            raise ValidationError("invalid student id", {"student_id": "required"})
        return self.store.anonymize(student_id)

    def _to_event(self, student_id: str, event: Union[LearningEvent, Mapping[str, Any]]) -> LearningEvent:
        payload = event.model_dump() if isinstance(event, LearningEvent) else dict(event)
        payload.pop("student_id", None)
        payload["kind"] = "learning"
        if not payload.get("timestamp"):
            payload["timestamp"] = self.store.now().isoformat()
        payload["actor_hash"] = self._student_key(student_id)
        try:
            return LearningEvent.model_validate(payload)
        except SchemaValidationError as e:
            errors = e.errors(include_url=False, include_context=False)
            raise ValidationError("invalid learning event", {"errors": errors}) from e

    async def record_interaction(self, student_id: str,
                                 event: Union[LearningEvent, Mapping[str, Any]]) -> StudentProgress:
        """
        Append a learning event and return the recomputed progress.

        Raises:
            ValidationError: If the event payload is malformed or the log
                rejected it (for example an unparsable timestamp)
        """
        learning_event = self._to_event(student_id, event)
        if not await self.store.record(learning_event):
            raise ValidationError("learning event rejected", {"timestamp": learning_event.timestamp})

        progress = await self.get_student_progress(student_id)
        if progress is None:
            raise NotFoundError("student progress", learning_event.actor_hash)

        topic = progress.get_topic(learning_event.topic)
        logger.debug(
            f"Recorded learning event on {learning_event.topic}",
            extra={"data": {"success": learning_event.success,
                            "mastery": topic.mastery_level if topic else None}}
        )
        return progress

    async def batch_record_interactions(self, student_id: str,
                                        events: Sequence[Union[LearningEvent, Mapping[str, Any]]]) -> List[StudentProgress]:
        results = [await self.record_interaction(student_id, event) for event in events]
        logger.info(f"Recorded batch of {len(results)} learning events")
        return results

    async def get_student_events(self, student_id: str) -> List[LearningEvent]:
        return await self.store.events_for_actor(self._student_key(student_id), LEARNING_KINDS)

    @log_execution_time(logger)
    async def get_student_progress(self, student_id: str) -> Optional[StudentProgress]:
        """Replay the student's history; None when there are no learning events."""
        actor_hash = self._student_key(student_id)
        events = await self.store.events_for_actor(actor_hash, LEARNING_KINDS)
        return self.engine.build_student_progress(actor_hash, events)

    async def get_topic_progress(self, student_id: str, topic: str) -> Optional[TopicProgress]:
        return self.insights.get_topic_analysis(await self.get_student_progress(student_id), topic)

    async def get_topic_mastery(self, student_id: str, topic: str) -> float:
        tp = await self.get_topic_progress(student_id, topic)
        return tp.mastery_level if tp is not None else 0

    async def get_overall_mastery(self, student_id: str) -> int:
        progress = await self.get_student_progress(student_id)
        return progress.overall_mastery if progress is not None else 0

    async def get_topics_attempted(self, student_id: str) -> List[str]:
        progress = await self.get_student_progress(student_id)
        return [t.topic for t in progress.topics] if progress is not None else []

    async def get_depth_progress(self, student_id: str, topic: str) -> DepthLevel:
        tp = await self.get_topic_progress(student_id, topic)
        return tp.depth_progress if tp is not None else DepthLevel.CORE

    def calculate_mastery_delta(self, depth: DepthLevel, success: bool) -> int:
        return self.engine.mastery_delta(DepthLevel(depth), success)

    async def get_insights(self, student_id: str) -> Optional[StudentInsight]:
        return self.insights.generate_insights(await self.get_student_progress(student_id))

    async def get_learning_velocity(self, student_id: str) -> int:
        return self.insights.learning_velocity(await self.get_student_events(student_id))

    async def get_recommendation(self, student_id: str, topic: Optional[str] = None) -> Optional[AdaptiveRecommendation]:
        """
        Adaptive recommendation for one topic (defaults to the suggested next topic).

        Returns:
            None when the student has no progress yet
        """
        progress = await self.get_student_progress(student_id)
        insight = self.insights.generate_insights(progress)
        if insight is None:
            return None
        target = topic or insight.suggested_next_topic or progress.topics[0].topic
        return self.adaptive.generate_signal(insight, target)

    async def get_teaching_plan(self, student_id: str) -> Optional[TeachingPlan]:
        progress = await self.get_student_progress(student_id)
        if progress is None:
            return None
        return self.adaptive.generate_teaching_plan(progress.student_id, progress,
                                                    generated_at=self.store.now().isoformat())

    async def get_next_step(self, student_id: str) -> Optional[NextStep]:
        progress = await self.get_student_progress(student_id)
        if progress is None:
            return None
        return self.adaptive.calculate_optimal_next_step(progress)

    async def export_student_data(self, student_id: str) -> Dict[str, Any]:
        """
        Export a student's replayed progress and raw learning events.

        Only the anonymized id appears in the export.
        """
        progress = await self.get_student_progress(student_id)
        events = await self.get_student_events(student_id)
        return {
            "version": "1.0",
            "exported_at": self.store.now().isoformat(),
            "student_id": self._student_key(student_id),
            "progress": serialize(progress),
            "events": [event.model_dump(mode="json", exclude_none=True) for event in events],
        }
