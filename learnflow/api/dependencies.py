"""
API dependencies.

The container lives on ``app.state``; the dashboard role is read from the
``X-Role`` header, with ``X-Learnflow-Role`` accepted as an alias.
"""

from typing import Optional

from fastapi import Header, Request

from learnflow.common.config import AppConfig
from learnflow.container import Container
from learnflow.dashboard.service import DashboardService
from learnflow.progress.tracker import ProgressTracker
from learnflow.telemetry.ethics import EthicsTelemetryRecorder
from learnflow.telemetry.ingest import TelemetryIngestor
from learnflow.telemetry.store import TelemetryStore


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_config(request: Request) -> AppConfig:
    return get_container(request).config


def get_store(request: Request) -> TelemetryStore:
    return get_container(request).store


def get_ingestor(request: Request) -> TelemetryIngestor:
    return get_container(request).ingestor


def get_ethics_recorder(request: Request) -> EthicsTelemetryRecorder:
    """Ethics telemetry boundary for chat handlers mounted alongside these routers."""
    return get_container(request).ethics


def get_tracker(request: Request) -> ProgressTracker:
    return get_container(request).tracker


def get_dashboards(request: Request) -> DashboardService:
    return get_container(request).dashboards


async def get_role(
    x_role: Optional[str] = Header(None),
    x_learnflow_role: Optional[str] = Header(None),
) -> Optional[str]:
    """
    Raw role header value; the dashboard service decides what it may see.

    Returns:
        The header value, or None when neither header is present
    """
    return x_role or x_learnflow_role
