"""
Telemetry Router

Ingest endpoint for external collaborators plus read access to the most
recent events and a storage liveness check.
"""

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, Query

from learnflow.api.dependencies import get_config, get_ingestor, get_role, get_store
from learnflow.api.errors import APIResponse
from learnflow.common.config import AppConfig
from learnflow.common.logger import app_logger
from learnflow.dashboard.aggregator import filter_anonymized_data
from learnflow.dashboard.service import Role, parse_period, require_role
from learnflow.telemetry.ingest import TelemetryIngestor
from learnflow.telemetry.store import Period, TelemetryStore, period_to_range

logger = app_logger.getChild("api.telemetry")

router = APIRouter()


@router.post("/events")
async def record_events(
    payload: Union[Dict[str, Any], List[Dict[str, Any]]] = Body(..., description="One event or a list of events"),
    ingestor: TelemetryIngestor = Depends(get_ingestor),
) -> Dict[str, Any]:
    """
    Record telemetry events.

    Malformed events are dropped rather than rejected; the response only
    reports how many were accepted.
    """
    events = payload if isinstance(payload, list) else [payload]
    accepted = 0
    for event in events:
        if await ingestor.ingest(event):
            accepted += 1

    if accepted < len(events):
        logger.info(f"Dropped {len(events) - accepted} of {len(events)} telemetry events")
    return APIResponse.success({"accepted": accepted, "dropped": len(events) - accepted})


@router.get("/recent")
async def get_recent_events(
    period: Optional[str] = Query(None, description="day, week or month"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    role: Optional[str] = Depends(get_role),
    store: TelemetryStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
) -> Dict[str, Any]:
    """Newest events first (configured limit by default). Institution roles never see actor hashes."""
    resolved = require_role(role, resource="recent_telemetry")
    window = period_to_range(parse_period(period, Period.DAY), store.now())
    events = await store.get_recent(limit or config.telemetry.recent_limit, window)

    if resolved is Role.INSTITUTION:
        data = filter_anonymized_data(recent_telemetry=events)["recent_telemetry"]
    else:
        data = [event.model_dump(mode="json", exclude_none=True) for event in events]
    return APIResponse.success(data)


@router.get("/health")
async def telemetry_health(store: TelemetryStore = Depends(get_store)) -> Dict[str, Any]:
    writable = await store.is_writable()
    last_ingest = store.last_ingest_at
    return APIResponse.success({
        "writable": writable,
        "events": len(store),
        "last_ingest_at": last_ingest.isoformat() if last_ingest else None,
    })


__all__ = ["router"]
