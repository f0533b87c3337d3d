"""
Telemetry Ingest

Entry point for events coming from outside the process. Accepted model
interactions are also forwarded to the experiment tracker.
"""

from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError as SchemaValidationError

from learnflow.common.logger import app_logger
from learnflow.common.metrics import ExperimentLogger, InteractionMetrics
from learnflow.telemetry.ethics import ASSIGNMENT_MODE
from learnflow.telemetry.events import InteractionEvent, TaskType, TelemetryEventBase, parse_event
from learnflow.telemetry.store import TelemetryStore

logger = app_logger.getChild("telemetry.ingest")


def interaction_metrics(event: InteractionEvent) -> InteractionMetrics:
    task_type = TaskType.ASSIGNMENT if event.mode == ASSIGNMENT_MODE else TaskType.LEARNING
    return InteractionMetrics(
        prompt_version=event.prompt_version,
        depth_level=event.depth_level.value,
        task_type=task_type.value,
        input_tokens=event.input_tokens,
        output_tokens=event.output_tokens,
        depth_alignment_score=event.depth_alignment_score,
        clarity_score=event.clarity_score,
        timestamp=event.timestamp,
        mode=event.mode,
        ethics_flags=list(event.ethics_flags),
    )


class TelemetryIngestor:
    """Validates raw payloads, records them and exports interaction metrics."""

    def __init__(self, store: TelemetryStore, experiment_logger: Optional[ExperimentLogger] = None):
        self.store = store
        self.experiment_logger = experiment_logger

    def anonymize_payload(self, payload: Mapping[str, Any]) -> dict:
        """Replace a raw ``actor_id`` with its salted hash; the raw id is never stored."""
        data = dict(payload)
        raw_id = data.pop("actor_id", None)
        if raw_id:
            data["actor_hash"] = self.store.anonymize(str(raw_id))
        return data

    async def ingest(self, payload: Union[TelemetryEventBase, Mapping[str, Any]]) -> bool:
        """
        Record one event.

        Returns:
            True if the event was accepted; malformed events are dropped
        """
        if isinstance(payload, TelemetryEventBase):
            event = payload
        else:
            try:
                event = parse_event(self.anonymize_payload(payload))
            except SchemaValidationError as e:
                logger.debug(f"Dropping malformed telemetry payload: {e.error_count()} validation errors")
                return False

        accepted = await self.store.record(event)
        if accepted and isinstance(event, InteractionEvent) and event.model_called and self.experiment_logger:
            self.experiment_logger.log_interaction(interaction_metrics(event))
        return accepted
