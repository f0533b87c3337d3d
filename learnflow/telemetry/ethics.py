"""
Ethics Telemetry

Boundary to the ethics classifier. The classifier itself lives outside
this package; it is consumed through the ``EthicsAssessor`` protocol and its
flags are treated as opaque tags that are only counted and logged.
"""

from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Iterable, List, Optional, Protocol

from learnflow.common.logger import app_logger
from learnflow.telemetry.events import EthicsEvent, PrivacyEvent, TelemetryEventBase
from learnflow.telemetry.store import TelemetryStore, utc_now

logger = app_logger.getChild("telemetry.ethics")

ASSIGNMENT_MODE = "Assignment Help"
DEFAULT_CHEATING_FLAGS = frozenset({"cheating_intent", "explicit_request_final_answer"})


@dataclass
class EthicsAssessment:
    """Classifier verdict for one user message."""
    flags: List[str] = field(default_factory=list)
    allow: bool = True
    message: Optional[str] = None


class EthicsAssessor(Protocol):
    def assess(self, text: str, mode: str) -> EthicsAssessment:
        ...


class EthicsTelemetryRecorder:
    """
    Turns one request's ethics outcome into ethics and privacy events.

    Emission rules:
    - ``privacy`` when the caller reports a privacy detector hit
    - ``cheating_detected`` when any flag is a configured cheating tag
    - ``prompt_modified`` when the caller guarded the prompt
    - ``assignment_enforced`` when the request was blocked, or when the
      output was redacted in assignment mode

    No route in this package calls it. The chat handlers that own the
    classifier get it from the container through
    ``learnflow.api.dependencies.get_ethics_recorder``.
    """

    def __init__(self, store: TelemetryStore, cheating_flags: Iterable[str] = DEFAULT_CHEATING_FLAGS,
                 clock: Callable = utc_now):
        self.store = store
        self.cheating_flags: FrozenSet[str] = frozenset(cheating_flags)
        self._clock = clock

    def build_events(
        self,
        assessment: EthicsAssessment,
        *,
        mode: str,
        endpoint: Optional[str] = None,
        actor_hash: Optional[str] = None,
        prompt_modified: bool = False,
        redacted: bool = False,
        privacy_detector: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> List[TelemetryEventBase]:
        """Build (without recording) the events for one outcome."""
        ts = timestamp or self._clock().isoformat()
        flags = list(assessment.flags)
        events: List[TelemetryEventBase] = []

        if privacy_detector:
            events.append(PrivacyEvent(timestamp=ts, actor_hash=actor_hash, endpoint=endpoint,
                                       detector=privacy_detector))

        if self.cheating_flags.intersection(flags):
            events.append(EthicsEvent(timestamp=ts, actor_hash=actor_hash, type="cheating_detected",
                                      endpoint=endpoint, flags=flags))

        if prompt_modified:
            events.append(EthicsEvent(timestamp=ts, actor_hash=actor_hash, type="prompt_modified",
                                      endpoint=endpoint, flags=flags))

        if not assessment.allow or (redacted and mode == ASSIGNMENT_MODE):
            events.append(EthicsEvent(timestamp=ts, actor_hash=actor_hash, type="assignment_enforced",
                                      endpoint=endpoint, flags=flags))

        return events

    async def record_outcome(self, assessment: EthicsAssessment, **kwargs) -> List[TelemetryEventBase]:
        """
        Record the events for one outcome.

        Returns:
            The events the store accepted
        """
        accepted = []
        for event in self.build_events(assessment, **kwargs):
            if await self.store.record(event):
                accepted.append(event)
        if accepted:
            logger.info(f"Recorded {len(accepted)} ethics events: {[getattr(e, 'type') for e in accepted]}")
        return accepted

    async def assess_and_record(self, assessor: EthicsAssessor, text: str, mode: str,
                                **kwargs) -> EthicsAssessment:
        """Run the classifier on ``text`` and record what it found."""
        assessment = assessor.assess(text, mode)
        await self.record_outcome(assessment, mode=mode, **kwargs)
        return assessment
