"""
Progress Router

Records learning events and serves replayed progress, insights,
recommendations, teaching plans and exports for one student.
"""

from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field

from learnflow.api.dependencies import get_tracker
from learnflow.api.errors import APIResponse
from learnflow.common.exceptions import NotFoundError
from learnflow.common.serialization import serialize
from learnflow.progress.models import AdaptiveSignalType, DepthLevel, MasteryTrend, StudentProgress, TaskType
from learnflow.progress.tracker import ProgressTracker

router = APIRouter()

StudentId = Annotated[str, Path(min_length=1, max_length=100)]

NO_PROGRESS_RECOMMENDATION = "Start practicing to generate personalized recommendations"


class LearningEventRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=200)
    depth_level: DepthLevel
    task_type: TaskType = TaskType.LEARNING
    reasoning_quality: float = Field(..., ge=0.0, le=1.0)
    success: bool
    mistake_patterns: List[str] = Field(default_factory=list)
    time_spent: float = Field(0, ge=0, description="Seconds spent on the step")
    timestamp: Optional[str] = Field(None, description="ISO-8601; defaults to now")


class TrackRequest(LearningEventRequest):
    student_id: str = Field(..., min_length=1, max_length=100)


class BatchTrackRequest(BaseModel):
    student_id: str = Field(..., min_length=1, max_length=100)
    events: List[LearningEventRequest] = Field(..., min_length=1, max_length=500)


def _summary(progress: StudentProgress) -> Dict[str, Any]:
    return {
        "student_id": progress.student_id,
        "overall_mastery": progress.overall_mastery,
        "topics_count": len(progress.topics),
        "last_activity": progress.last_activity,
    }


@router.post("/track")
async def track_learning_event(
    request: TrackRequest,
    tracker: ProgressTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    event = request.model_dump(exclude={"student_id"}, exclude_none=True)
    progress = await tracker.record_interaction(request.student_id, event)
    return APIResponse.success(_summary(progress), "Learning event recorded")


@router.post("/track/batch")
async def track_learning_events(
    request: BatchTrackRequest,
    tracker: ProgressTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    events = [event.model_dump(exclude_none=True) for event in request.events]
    results = await tracker.batch_record_interactions(request.student_id, events)
    return APIResponse.success(_summary(results[-1]), f"{len(results)} learning events recorded")


@router.get("/summary/{student_id}")
async def get_progress_summary(
    student_id: StudentId,
    tracker: ProgressTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    """Replayed progress; an empty summary when the student has no events yet."""
    progress = await tracker.get_student_progress(student_id)
    if progress is None:
        return APIResponse.success({
            "student_id": tracker.store.anonymize(student_id),
            "topics": [],
            "overall_mastery": 0,
            "total_interactions": 0,
            "last_activity": None,
        })

    return APIResponse.success({
        "student_id": progress.student_id,
        "topics": [
            {
                "topic": tp.topic,
                "mastery_level": tp.mastery_level,
                "depth_progress": tp.depth_progress.value,
                "attempt_count": tp.attempt_count,
                "confidence_trend": tp.confidence_trend.value,
            }
            for tp in progress.topics
        ],
        "overall_mastery": progress.overall_mastery,
        "total_interactions": progress.total_interactions,
        "last_activity": progress.last_activity,
        "learning_velocity": await tracker.get_learning_velocity(student_id),
    })


@router.get("/insights/{student_id}")
async def get_insights(
    student_id: StudentId,
    tracker: ProgressTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    insight = await tracker.get_insights(student_id)
    if insight is None:
        raise NotFoundError("student progress", student_id)
    return APIResponse.success(insight.to_dict())


@router.get("/recommendations/{student_id}")
async def get_recommendations(
    student_id: StudentId,
    topic: Optional[str] = Query(None, min_length=1, max_length=200),
    tracker: ProgressTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    insight = await tracker.get_insights(student_id)
    if insight is None:
        return APIResponse.success({
            "strengths": [],
            "weaknesses": [],
            "recommendations": [NO_PROGRESS_RECOMMENDATION],
            "adaptive_signal": AdaptiveSignalType.MAINTAIN_LEVEL.value,
            "mastery_trend": MasteryTrend.STEADY.value,
            "suggested_next_topic": None,
            "current_signal": None,
        })

    signal = await tracker.get_recommendation(student_id, topic)
    data = insight.to_dict()
    data["current_signal"] = serialize(signal)
    return APIResponse.success(data)


@router.get("/topic/{student_id}/{topic}")
async def get_topic_progress(
    student_id: StudentId,
    topic: str = Path(..., min_length=1, max_length=200),
    tracker: ProgressTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    topic_progress = await tracker.get_topic_progress(student_id, topic)
    if topic_progress is None:
        raise NotFoundError("topic progress", topic)
    return APIResponse.success(topic_progress.to_dict())


@router.get("/teaching-plan/{student_id}")
async def get_teaching_plan(
    student_id: StudentId,
    tracker: ProgressTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    plan = await tracker.get_teaching_plan(student_id)
    if plan is None:
        raise NotFoundError("student progress", student_id)
    return APIResponse.success(plan.to_dict())


@router.get("/next-step/{student_id}")
async def get_next_step(
    student_id: StudentId,
    tracker: ProgressTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    step = await tracker.get_next_step(student_id)
    if step is None:
        raise NotFoundError("student progress", student_id)
    return APIResponse.success(step.to_dict())


@router.get("/export/{student_id}")
async def export_student_data(
    student_id: StudentId,
    tracker: ProgressTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    return APIResponse.success(await tracker.export_student_data(student_id))


__all__ = ["router"]
