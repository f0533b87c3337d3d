"""
Telemetry Events

Typed telemetry events recorded in the event log. Every event carries a
``kind`` tag and the models form a discriminated union on it; consumers
dispatch on the concrete class and raise on anything they do not handle.
"""

from enum import Enum
from typing import Annotated, Any, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class DepthLevel(str, Enum):
    """Pedagogical difficulty tier."""
    CORE = "Core"
    APPLIED = "Applied"
    MASTERY = "Mastery"

    @property
    def order(self) -> int:
        return _DEPTH_ORDER[self]

    @classmethod
    def ordered(cls) -> List["DepthLevel"]:
        return [cls.CORE, cls.APPLIED, cls.MASTERY]


_DEPTH_ORDER = {DepthLevel.CORE: 0, DepthLevel.APPLIED: 1, DepthLevel.MASTERY: 2}


class TaskType(str, Enum):
    LEARNING = "Learning"
    ASSIGNMENT = "Assignment"


EVENT_KINDS = ("interaction", "assignment", "ethics", "privacy", "system_error", "learning")


class TelemetryEventBase(BaseModel):
    """
    Fields shared by every event.

    ``timestamp`` is kept exactly as the client sent it; the store parses it
    for windowing and retention and rejects values that do not parse.
    ``actor_hash`` is always a salted digest, never a raw identifier.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    timestamp: str
    actor_hash: Optional[str] = None


class InteractionEvent(TelemetryEventBase):
    """One chat turn handled by the model (or refused before the call)."""
    kind: Literal["interaction"] = "interaction"
    endpoint: str
    mode: Optional[str] = None
    depth_level: DepthLevel
    prompt_version: str
    model_called: bool
    input_tokens: int = Field(ge=0)
    output_tokens: int = Field(ge=0)
    depth_alignment_score: float = Field(ge=0, le=1)
    clarity_score: float = Field(ge=0, le=1)
    ethics_flags: List[str] = Field(default_factory=list)
    redacted: bool = False


class AssignmentEvent(TelemetryEventBase):
    """An assignment being generated or evaluated."""
    kind: Literal["assignment"] = "assignment"
    action: Literal["generate", "evaluate"]
    assignment_id: str
    topic: str
    depth_level: DepthLevel
    conceptual_score: Optional[float] = None
    missing_concepts: Optional[List[str]] = None
    hints_provided: Optional[int] = Field(default=None, ge=0)
    flags: Optional[List[str]] = None


class EthicsEvent(TelemetryEventBase):
    """An ethics intervention."""
    kind: Literal["ethics"] = "ethics"
    type: Literal["cheating_detected", "prompt_modified", "assignment_enforced"]
    endpoint: Optional[str] = None
    flags: Optional[List[str]] = None


class PrivacyEvent(TelemetryEventBase):
    """A privacy detector hit on user input."""
    kind: Literal["privacy"] = "privacy"
    type: Literal["privacy_alert"] = "privacy_alert"
    endpoint: Optional[str] = None
    detector: str


class SystemErrorEvent(TelemetryEventBase):
    """A server-side failure worth surfacing on the dashboards."""
    kind: Literal["system_error"] = "system_error"
    endpoint: Optional[str] = None
    status: Optional[int] = None
    message: str


class LearningEvent(TelemetryEventBase):
    """
    One graded learning step of a student on a topic.

    The progress engine replays these, in log order, to rebuild mastery.
    """
    kind: Literal["learning"] = "learning"
    topic: str = Field(min_length=1)
    depth_level: DepthLevel
    task_type: TaskType = TaskType.LEARNING
    reasoning_quality: float = Field(ge=0, le=1)
    success: bool
    mistake_patterns: List[str] = Field(default_factory=list)
    time_spent: float = Field(default=0, ge=0)


TelemetryEvent = Annotated[
    Union[InteractionEvent, AssignmentEvent, EthicsEvent, PrivacyEvent, SystemErrorEvent, LearningEvent],
    Field(discriminator="kind"),
]

_event_adapter: TypeAdapter = TypeAdapter(TelemetryEvent)


def parse_event(data: Mapping[str, Any]) -> TelemetryEventBase:
    """
    Validate a raw mapping into the matching event model.

    Raises:
        pydantic.ValidationError: If the mapping matches no event kind
    """
    return _event_adapter.validate_python(data)


def parse_event_json(line: str) -> TelemetryEventBase:
    """Validate one serialized log line into an event model."""
    return _event_adapter.validate_json(line)


def dump_event(event: TelemetryEventBase) -> str:
    """Serialize an event to a single JSON line (no trailing newline)."""
    return event.model_dump_json(exclude_none=True)
