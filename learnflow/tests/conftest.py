"""
Shared fixtures: a telemetry store on a temporary file with a fixed clock,
and a fully wired container for service and API tests.
"""

import datetime

import pytest

from learnflow.common.cache import DashboardCache, MemoryCacheBackend
from learnflow.common.config import AppConfig, TelemetryConfig
from learnflow.common.metrics import InMemoryMetricsBackend
from learnflow.container import Container
from learnflow.telemetry.store import TelemetryStore

NOW = datetime.datetime(2024, 5, 15, 12, 0, 0, tzinfo=datetime.timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime.datetime = NOW):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + datetime.timedelta(**kwargs)


def ts(**ago) -> str:
    """ISO timestamp ``ago`` before the fixed test time."""
    return (NOW - datetime.timedelta(**ago)).isoformat()


def interaction(timestamp: str, depth: str = "Core", actor: str = "actor-1", **overrides) -> dict:
    event = {
        "kind": "interaction",
        "timestamp": timestamp,
        "actor_hash": actor,
        "endpoint": "/api/chat",
        "mode": "Learning",
        "depth_level": depth,
        "prompt_version": "v1",
        "model_called": True,
        "input_tokens": 1000,
        "output_tokens": 2000,
        "depth_alignment_score": 0.8,
        "clarity_score": 0.5,
    }
    event.update(overrides)
    return event


def evaluation(timestamp: str, topic: str, score: float, actor: str = "student-a",
               depth: str = "Core", **overrides) -> dict:
    event = {
        "kind": "assignment",
        "timestamp": timestamp,
        "actor_hash": actor,
        "action": "evaluate",
        "assignment_id": f"as-{topic}-{timestamp}",
        "topic": topic,
        "depth_level": depth,
        "conceptual_score": score,
    }
    event.update(overrides)
    return event


def learning(topic: str, success: bool = True, depth: str = "Core", quality: float = 0.7, **overrides) -> dict:
    event = {
        "topic": topic,
        "depth_level": depth,
        "reasoning_quality": quality,
        "success": success,
    }
    event.update(overrides)
    return event


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def cache():
    return DashboardCache(MemoryCacheBackend(name="test"), namespace="dashboard")


@pytest.fixture
def store(tmp_path, clock, cache):
    return TelemetryStore(
        file_path=tmp_path / "telemetry.jsonl",
        retention_days=365,
        cache=cache,
        clock=clock,
    )


@pytest.fixture
def metrics_backend():
    return InMemoryMetricsBackend()


@pytest.fixture
def container(tmp_path, clock, metrics_backend):
    config = AppConfig(telemetry=TelemetryConfig(file_path=str(tmp_path / "telemetry.jsonl")))
    return Container(config=config, metrics_backend=metrics_backend, clock=clock)
