"""
Tests for the role-checked, cached dashboard views, run against a real
container with a seeded event log.
"""

import pytest

from learnflow.common.config import AppConfig, CacheConfig, TelemetryConfig
from learnflow.common.exceptions import AuthorizationError, NotFoundError, ValidationError
from learnflow.container import Container
from learnflow.dashboard.models import QualityTrend
from learnflow.dashboard.service import Role, parse_period, require_role, resolve_role
from learnflow.telemetry.store import Period

from conftest import NOW, evaluation, interaction, ts

BIG_CALL = {"input_tokens": 40000, "output_tokens": 60000}


async def seed(store):
    events = [
        evaluation(ts(hours=2), "Algebra", 80, actor="student-a"),
        evaluation(ts(hours=3), "Algebra", 90, actor="student-a"),
        evaluation(ts(hours=4), "Fractions", 40, actor="student-b",
                   missing_concepts=["denominator"], hints_provided=2),
        evaluation(ts(hours=5), "Fractions", 50, actor="student-b", flags=["late"]),
        evaluation(ts(hours=6), "Fractions", 45, actor="student-c", missing_concepts=["denominator", "sign"]),
        evaluation(ts(hours=7), "Fractions", 0, actor="teacher-1", action="generate", conceptual_score=None),
        interaction(ts(minutes=30), depth="Core", actor="x", **BIG_CALL),
        interaction(ts(minutes=25), depth="Applied", actor="x", **BIG_CALL),
        interaction(ts(minutes=20), depth="Core", actor="x", model_called=False),
        interaction(ts(days=10), depth="Core", actor="y", depth_alignment_score=0.2, clarity_score=0.2),
        {"kind": "ethics", "timestamp": ts(hours=1), "type": "cheating_detected",
         "flags": ["cheating_intent"], "endpoint": "/api/chat"},
        {"kind": "privacy", "timestamp": ts(hours=1), "detector": "email", "endpoint": "/api/chat"},
    ]
    for event in events:
        assert await store.record(event)


def test_role_resolution():
    assert resolve_role("teacher") is Role.TEACHER
    assert resolve_role(" Auditor ") is Role.INSTITUTION
    assert resolve_role("student") is None
    assert resolve_role(None) is None

    assert require_role("institution") is Role.INSTITUTION
    with pytest.raises(AuthorizationError):
        require_role("institution", (Role.TEACHER,))
    with pytest.raises(AuthorizationError):
        require_role("student")


def test_parse_period_falls_back():
    assert parse_period("day", Period.WEEK) is Period.DAY
    assert parse_period(None, Period.WEEK) is Period.WEEK
    assert parse_period("decade", Period.MONTH) is Period.MONTH


@pytest.mark.asyncio
async def test_teacher_dashboard(container):
    await seed(container.store)
    result = await container.dashboards.get_teacher_dashboard("teacher")
    dashboard = result.data

    assert result.cached is False
    assert dashboard.period == "week"
    assert dashboard.timestamp == NOW.isoformat()

    metrics = dashboard.metrics
    assert metrics.total_students == 3
    assert metrics.total_interactions == 3
    assert metrics.average_mastery == 65
    assert metrics.topic_breakdown["Algebra"].mastery_level == 85
    assert metrics.topic_breakdown["Fractions"].error_frequency == 1
    assert metrics.depth_distribution.core == pytest.approx(2 / 3)
    assert metrics.depth_distribution.applied == pytest.approx(1 / 3)
    assert metrics.ethics_flags.cheating_detected == 1
    assert metrics.ethics_flags.privacy_alerts == 1
    assert metrics.quality_scores.trend is QualityTrend.IMPROVING

    assert dashboard.compliance_score == 0
    assert dashboard.system_health_score == 100
    assert dashboard.students_ready_for_advancement.core_to_applied == 1
    assert dashboard.time_spent_by_depth_minutes.core == 5
    assert dashboard.time_spent_by_depth_minutes.applied == 5
    assert dashboard.insights.highlights == ["Top topic: Algebra (85% mastery)"]
    assert [i.topic for i in dashboard.insights.recommended_interventions] == ["Fractions"]
    assert dashboard.recent_activity[0].summary == "Chat interaction (local response)"

    fractions = next(s for s in dashboard.assignment_stats if s.topic == "Fractions")
    assert fractions.generated_count == 1
    assert fractions.evaluated_count == 3
    assert fractions.misconception_counts == {"denominator": 2, "sign": 1}
    assert fractions.hint_effectiveness.average_score_when_hints_provided == 40


@pytest.mark.asyncio
async def test_teacher_dashboard_rejects_other_roles(container):
    for role in ("institution", "auditor", "student", None):
        with pytest.raises(AuthorizationError):
            await container.dashboards.get_teacher_dashboard(role)


@pytest.mark.asyncio
async def test_dashboard_is_cached_until_next_write(container):
    await seed(container.store)
    dashboards = container.dashboards

    first = await dashboards.get_teacher_dashboard("teacher", "week")
    second = await dashboards.get_teacher_dashboard("teacher", "week")
    assert (first.cached, second.cached) == (False, True)
    assert second.data is first.data
    assert await container.cache.get_cached_metrics("dashboard:teacher:week:teacher") is not None

    await container.store.record(interaction(ts(minutes=1)))
    third = await dashboards.get_teacher_dashboard("teacher", "week")
    assert third.cached is False
    assert third.data.metrics.total_interactions == 4


@pytest.mark.asyncio
async def test_unknown_period_uses_default(container):
    result = await container.dashboards.get_teacher_dashboard("teacher", "fortnight")
    assert result.data.period == "week"
    assert (await container.dashboards.get_teacher_dashboard("teacher", "week")).cached is True


@pytest.mark.asyncio
async def test_empty_log(container):
    dashboard = (await container.dashboards.get_teacher_dashboard("teacher", "day")).data
    assert dashboard.metrics.total_students == 0
    assert dashboard.metrics.depth_distribution.total == 0
    assert dashboard.compliance_score == 100
    assert dashboard.depth_trend == []
    assert dashboard.insights.recommended_interventions == []


@pytest.mark.asyncio
async def test_institution_dashboard(container):
    await seed(container.store)
    container.monitor.record_request(120.0, 200, "dashboard")
    container.monitor.record_request(80.0, 503, "telemetry")

    result = await container.dashboards.get_institution_dashboard("auditor", "week")
    dashboard = result.data

    assert dashboard.usage.total_interactions == 3
    assert dashboard.usage.model_api_calls == 2
    assert dashboard.usage.estimated_model_cost_usd == pytest.approx(0.08)
    assert dashboard.usage.average_response_time_ms == 100
    assert dashboard.usage.error_rate == 0.5
    assert {m.module for m in dashboard.modules} == {"dashboard", "telemetry"}
    assert dashboard.pipeline.telemetry_writable is True
    assert dashboard.pipeline.last_ingest_at == NOW.isoformat()
    assert dashboard.system_health.active_bugs == 1
    assert [a.severity.value for a in dashboard.recent_alerts] == ["warning", "critical"]

    payload = dashboard.to_dict()
    assert "student-a" not in str(payload)
    assert "actor_hash" not in str(payload)


@pytest.mark.asyncio
async def test_institution_dashboard_rejects_teacher(container):
    with pytest.raises(AuthorizationError):
        await container.dashboards.get_institution_dashboard("teacher")


@pytest.mark.asyncio
async def test_metrics_for_period_by_role(container):
    await seed(container.store)

    teacher = (await container.dashboards.get_metrics_for_period("teacher", "week")).data
    institution = (await container.dashboards.get_metrics_for_period("institution", "week")).data

    assert teacher.total_students == 3
    assert set(teacher.topic_breakdown) == {"Algebra", "Fractions"}
    assert institution.total_students == 0
    assert institution.topic_breakdown == {}
    assert institution.total_interactions == teacher.total_interactions

    assert await container.cache.get_cached_metrics("dashboard:metrics:week:institution") is not None


@pytest.mark.asyncio
async def test_topic_analysis(container):
    await seed(container.store)
    analysis = (await container.dashboards.get_topic_analysis("teacher", "fractions")).data

    assert analysis.topic == "Fractions"
    assert analysis.period == "month"
    assert analysis.metric.attempt_count == 3
    assert analysis.depth_distribution.core == 4
    assert analysis.misconception_counts == {"denominator": 2, "sign": 1}
    assert analysis.recommended_interventions[-1] == 'Address common misconception: "denominator".'


@pytest.mark.asyncio
async def test_topic_analysis_errors(container):
    await seed(container.store)
    with pytest.raises(NotFoundError):
        await container.dashboards.get_topic_analysis("teacher", "Geometry")
    with pytest.raises(ValidationError):
        await container.dashboards.get_topic_analysis("teacher", "a")
    with pytest.raises(AuthorizationError):
        await container.dashboards.get_topic_analysis("guest", "Fractions")


@pytest.mark.asyncio
async def test_system_health(container):
    container.monitor.record_request(50.0, 200, "progress")
    result = await container.dashboards.get_system_health("teacher")

    assert result.data.average_response_time == 50
    assert result.data.error_rate == 0
    assert await container.cache.get_cached_metrics("dashboard:system-health:null:teacher") is not None


@pytest.mark.asyncio
async def test_ethics_report(container):
    await seed(container.store)
    report = (await container.dashboards.get_ethics_report("institution")).data

    assert report.summary.cheating_detected == 1
    assert report.summary.privacy_alerts == 1
    assert {e.type for e in report.recent_events} == {"cheating_detected", "privacy_alert"}
    assert report.compliance_score == 0

    with pytest.raises(AuthorizationError):
        await container.dashboards.get_ethics_report("teacher")


@pytest.mark.asyncio
async def test_write_during_recompute_is_not_cached(container, monkeypatch):
    store = container.store
    await store.record(interaction(ts(minutes=5)))
    is_writable = store.is_writable

    async def writable_with_concurrent_write():
        await store.record(interaction(ts(minutes=1)))
        return await is_writable()

    monkeypatch.setattr(store, "is_writable", writable_with_concurrent_write)
    first = await container.dashboards.get_institution_dashboard("institution", "day")
    monkeypatch.setattr(store, "is_writable", is_writable)

    assert first.data.usage.total_interactions == 1

    second = await container.dashboards.get_institution_dashboard("institution", "day")
    assert second.cached is False
    assert second.data.usage.total_interactions == 2


@pytest.mark.asyncio
async def test_container_cache_uses_configured_size(tmp_path):
    config = AppConfig(
        telemetry=TelemetryConfig(file_path=str(tmp_path / "telemetry.jsonl")),
        cache=CacheConfig(max_size=3),
    )
    stats = await Container(config=config).cache.get_stats()
    assert stats["max_size"] == 3
    assert stats["backend"] == "dashboard"
