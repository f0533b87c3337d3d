"""
HTTP surface for LearnFlow Analytics.

Registers the telemetry, progress and dashboard routers under the API prefix.
"""

from fastapi import APIRouter

from learnflow.api.dashboard import router as dashboard_router
from learnflow.api.progress import router as progress_router
from learnflow.api.telemetry import router as telemetry_router

main_router = APIRouter()
main_router.include_router(telemetry_router, prefix="/telemetry", tags=["telemetry"])
main_router.include_router(progress_router, prefix="/progress", tags=["progress"])
main_router.include_router(dashboard_router, prefix="/dashboard", tags=["dashboard"])

__all__ = ['main_router']
