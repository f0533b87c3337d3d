"""
Dashboard Router

Thin HTTP wrappers over the dashboard service. The role comes from the
``X-Role`` header; periods that are missing or unknown fall back to each
view's default.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query

from learnflow.api.dependencies import get_dashboards, get_role
from learnflow.api.errors import APIResponse
from learnflow.common.serialization import serialize
from learnflow.dashboard.service import DashboardResult, DashboardService

router = APIRouter()


def _respond(result: DashboardResult) -> Dict[str, Any]:
    return APIResponse.success(serialize(result.data), cached=result.cached)


@router.get("/teacher")
async def teacher_dashboard(
    period: Optional[str] = Query(None, description="day, week or month"),
    role: Optional[str] = Depends(get_role),
    dashboards: DashboardService = Depends(get_dashboards),
) -> Dict[str, Any]:
    return _respond(await dashboards.get_teacher_dashboard(role, period))


@router.get("/institution")
async def institution_dashboard(
    period: Optional[str] = Query(None, description="day, week or month"),
    role: Optional[str] = Depends(get_role),
    dashboards: DashboardService = Depends(get_dashboards),
) -> Dict[str, Any]:
    return _respond(await dashboards.get_institution_dashboard(role, period))


@router.get("/metrics/{period}")
async def metrics_for_period(
    period: str,
    role: Optional[str] = Depends(get_role),
    dashboards: DashboardService = Depends(get_dashboards),
) -> Dict[str, Any]:
    return _respond(await dashboards.get_metrics_for_period(role, period))


@router.get("/topic/{topic_name}")
async def topic_analysis(
    topic_name: str = Path(..., min_length=2, max_length=200),
    period: Optional[str] = Query(None, description="day, week or month"),
    role: Optional[str] = Depends(get_role),
    dashboards: DashboardService = Depends(get_dashboards),
) -> Dict[str, Any]:
    return _respond(await dashboards.get_topic_analysis(role, topic_name, period))


@router.get("/system-health")
async def system_health(
    role: Optional[str] = Depends(get_role),
    dashboards: DashboardService = Depends(get_dashboards),
) -> Dict[str, Any]:
    return _respond(await dashboards.get_system_health(role))


@router.get("/ethics-report")
async def ethics_report(
    period: Optional[str] = Query(None, description="day, week or month"),
    role: Optional[str] = Depends(get_role),
    dashboards: DashboardService = Depends(get_dashboards),
) -> Dict[str, Any]:
    return _respond(await dashboards.get_ethics_report(role, period))


__all__ = ["router"]
