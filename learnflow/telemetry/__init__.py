"""
Telemetry

The event log: typed events, the in-memory index, the durable store and
the ethics telemetry boundary.
"""

from learnflow.telemetry.events import (
    EVENT_KINDS,
    AssignmentEvent,
    DepthLevel,
    EthicsEvent,
    InteractionEvent,
    LearningEvent,
    PrivacyEvent,
    SystemErrorEvent,
    TaskType,
    TelemetryEvent,
    TelemetryEventBase,
    parse_event,
)
from learnflow.telemetry.index import EventIndex, TimeRange
from learnflow.telemetry.store import (
    Period,
    TelemetryStore,
    parse_timestamp,
    period_to_range,
    previous_range,
    utc_now,
)
from learnflow.telemetry.ethics import EthicsAssessment, EthicsAssessor, EthicsTelemetryRecorder
from learnflow.telemetry.ingest import TelemetryIngestor

__all__ = [
    'EVENT_KINDS',
    'AssignmentEvent',
    'DepthLevel',
    'EthicsEvent',
    'InteractionEvent',
    'LearningEvent',
    'PrivacyEvent',
    'SystemErrorEvent',
    'TaskType',
    'TelemetryEvent',
    'TelemetryEventBase',
    'parse_event',
    'EventIndex',
    'TimeRange',
    'Period',
    'TelemetryStore',
    'parse_timestamp',
    'period_to_range',
    'previous_range',
    'utc_now',
    'EthicsAssessment',
    'EthicsAssessor',
    'EthicsTelemetryRecorder',
    'TelemetryIngestor',
]
