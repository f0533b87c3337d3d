"""
Tests for the dashboard aggregation functions and the pure helpers of the
dashboard data service.
"""

import unittest

from learnflow.dashboard import aggregator
from learnflow.dashboard.data_service import quality_from_interactions, reasoning_quality, time_spent_by_depth
from learnflow.dashboard.models import (
    ActivityType,
    AlertSeverity,
    AssignmentStatistic,
    DepthDistribution,
    EthicsMetric,
    HintEffectiveness,
    InterventionPriority,
    QualityMetric,
    QualityTrend,
    StudentProgressRow,
    SystemHealthMetric,
    TopicMetric,
)
from learnflow.telemetry.events import DepthLevel, parse_event

from conftest import interaction, ts


def topic_metric(name, mastery, attempts=5, error_frequency=0.1):
    return TopicMetric(topic=name, mastery_level=mastery, attempt_count=attempts,
                       error_frequency=error_frequency, last_updated=ts(hours=1))


def row(student, topic, mastery, depth=DepthLevel.CORE):
    return StudentProgressRow(student_hash=student, topic=topic, mastery_level=mastery, depth_level=depth,
                              attempt_count=1, error_count=0, last_updated=ts(hours=1))


def metrics(topics=(), depths=(), progress=()):
    return aggregator.aggregate_teacher_metrics(
        period="week",
        timestamp=ts(),
        student_progress=list(progress),
        topic_metrics=list(topics),
        ethics=EthicsMetric(),
        quality=QualityMetric(),
        interaction_depths=list(depths),
    )


class TestScores(unittest.TestCase):

    def test_compliance_score_bottoms_out(self):
        ethics = EthicsMetric(cheating_detected=2, prompt_modifications=1)
        self.assertEqual(aggregator.compute_compliance_score(ethics, 10), 0)

    def test_compliance_score_without_events(self):
        self.assertEqual(aggregator.compute_compliance_score(EthicsMetric(), 0), 100)

    def test_compliance_score_weights(self):
        # severity 1 over 40 interactions -> 100 - 5
        ethics = EthicsMetric(assignment_enforcements=1)
        self.assertEqual(aggregator.compute_compliance_score(ethics, 40), 95)
        # privacy counts three times
        self.assertEqual(aggregator.compute_compliance_score(EthicsMetric(privacy_alerts=1), 40), 85)

    def test_system_health_score(self):
        self.assertEqual(aggregator.compute_system_health_score(SystemHealthMetric()), 100)
        health = SystemHealthMetric(average_response_time=500, error_rate=0.01, active_bugs=3)
        self.assertEqual(aggregator.compute_system_health_score(health), 79)
        worst = SystemHealthMetric(average_response_time=10000, error_rate=1, active_bugs=50)
        self.assertEqual(aggregator.compute_system_health_score(worst), 0)

    def test_calculate_trends(self):
        def quality(value):
            return QualityMetric(reasoning_quality_average=value)

        self.assertEqual(aggregator.calculate_trends(quality(0.73), quality(0.70)).trend, QualityTrend.IMPROVING)
        self.assertEqual(aggregator.calculate_trends(quality(0.65), quality(0.70)).trend, QualityTrend.DECLINING)
        stable = aggregator.calculate_trends(quality(0.71), quality(0.70))
        self.assertEqual(stable.trend, QualityTrend.STABLE)
        self.assertAlmostEqual(stable.delta, 0.01)


class TestTeacherMetrics(unittest.TestCase):

    def test_depth_distribution_sums_to_one(self):
        result = metrics(depths=[DepthLevel.CORE, DepthLevel.CORE, DepthLevel.APPLIED, DepthLevel.MASTERY])
        distribution = result.depth_distribution
        self.assertAlmostEqual(distribution.core + distribution.applied + distribution.mastery, 1.0)
        self.assertAlmostEqual(distribution.core, 0.5)
        self.assertEqual(result.total_interactions, 4)

    def test_empty_distribution_is_all_zero(self):
        distribution = metrics().depth_distribution
        self.assertEqual((distribution.core, distribution.applied, distribution.mastery), (0, 0, 0))

    def test_rollup(self):
        result = metrics(
            topics=[topic_metric("Algebra", 70), topic_metric("Geometry", 65)],
            progress=[row("a", "Algebra", 70), row("a", "Geometry", 60), row("b", "Algebra", 70)],
        )
        self.assertEqual(result.total_students, 2)
        self.assertEqual(result.average_mastery, 67.5)
        self.assertEqual(set(result.topic_breakdown), {"Algebra", "Geometry"})
        self.assertEqual(result.to_dict()["topic_breakdown"]["Algebra"]["mastery_level"], 70)


class TestInsights(unittest.TestCase):

    def test_no_activity(self):
        insights = aggregator.generate_insights(metrics())
        self.assertEqual(insights.highlights, [aggregator.NO_ACTIVITY_HIGHLIGHT])
        self.assertEqual(insights.concerns, [])
        self.assertEqual(insights.recommended_interventions, [])

    def test_highlights_and_interventions(self):
        insights = aggregator.generate_insights(metrics(topics=[
            topic_metric("Algebra", 82.5),
            topic_metric("Fractions", 50, error_frequency=0.5),
            topic_metric("Geometry", 60),
            topic_metric("Ratios", 40, attempts=2),
        ]))

        self.assertEqual(insights.highlights, ["Top topic: Algebra (83% mastery)"])
        self.assertEqual(insights.concerns, ["Weakest topic: Ratios (40% mastery)"])

        interventions = insights.recommended_interventions
        self.assertEqual([i.topic for i in interventions], ["Fractions", "Geometry"])
        self.assertEqual(interventions[0].priority, InterventionPriority.HIGH)
        self.assertEqual(interventions[0].recommendation, aggregator.ERROR_HEAVY_INTERVENTION)
        self.assertEqual(interventions[1].priority, InterventionPriority.MEDIUM)
        self.assertEqual(interventions[1].recommendation, aggregator.DEFAULT_INTERVENTION)

    def test_interventions_are_capped(self):
        topics = [topic_metric(f"T{i}", 40 + i) for i in range(12)]
        insights = aggregator.generate_insights(metrics(topics=topics))
        self.assertEqual(len(insights.recommended_interventions), aggregator.MAX_INTERVENTIONS)
        self.assertEqual(insights.recommended_interventions[0].topic, "T0")

    def test_topic_interventions(self):
        assignment = AssignmentStatistic(
            topic="Fractions", generated_count=1, evaluated_count=3, average_score=50,
            hint_effectiveness=HintEffectiveness(), misconception_counts={"denominator": 3, "sign": 1},
            last_updated=ts(hours=1),
        )
        texts = aggregator.topic_interventions(topic_metric("Fractions", 50, error_frequency=0.5), assignment)
        self.assertEqual(len(texts), 3)
        self.assertTrue(texts[0].startswith("Run a short prerequisite refresher"))
        self.assertTrue(texts[1].startswith("Increase feedback frequency"))
        self.assertEqual(texts[2], 'Address common misconception: "denominator".')

        self.assertEqual(len(aggregator.topic_interventions(topic_metric("Fractions", 80), None)), 2)


class TestAnonymizationAndProgress(unittest.TestCase):

    def test_filter_anonymized_data(self):
        events = [parse_event(interaction(ts(hours=1), actor="secret-hash"))]
        filtered = aggregator.filter_anonymized_data([row("secret-hash", "Algebra", 70)], events)

        self.assertNotIn("student_hash", filtered["student_progress"][0])
        self.assertNotIn("actor_hash", filtered["recent_telemetry"][0])
        self.assertNotIn("secret-hash", str(filtered))
        self.assertEqual(filtered["student_progress"][0]["topic"], "Algebra")

    def test_filter_only_requested_parts(self):
        self.assertEqual(aggregator.filter_anonymized_data(), {})

    def test_advancement_counts(self):
        counts = aggregator.advancement_counts([
            row("a", "Algebra", 80), row("a", "Geometry", 76),
            row("b", "Algebra", 85, DepthLevel.APPLIED),
            row("c", "Algebra", 60),
            row("d", "Algebra", 90), row("d", "Geometry", 70, DepthLevel.APPLIED),
        ])
        self.assertEqual(counts.core_to_applied, 1)
        self.assertEqual(counts.applied_to_mastery, 1)

    def test_depth_trend_by_day(self):
        events = [
            parse_event(interaction(ts(hours=30), depth="Core")),
            parse_event(interaction(ts(hours=29), depth="Applied")),
            parse_event(interaction(ts(hours=1), depth="Mastery")),
        ]
        points = aggregator.depth_trend(events)
        self.assertEqual([p.timestamp for p in points], ["2024-05-14", "2024-05-15"])
        self.assertEqual((points[0].core, points[0].applied, points[0].mastery), (0.5, 0.5, 0))
        self.assertEqual(points[1].mastery, 1)


class TestFeeds(unittest.TestCase):

    def test_activity_mapping(self):
        generate = parse_event(interaction(ts(hours=1), endpoint="/api/assignment/generate"))
        chat = parse_event(interaction(ts(hours=1)))
        local = parse_event(interaction(ts(hours=1), model_called=False))
        ethics = parse_event({"kind": "ethics", "timestamp": ts(hours=1), "type": "prompt_modified"})
        learning = parse_event({"kind": "learning", "timestamp": ts(hours=1), "topic": "Fractions",
                                "depth_level": "Core", "reasoning_quality": 0.4, "success": False})

        self.assertEqual(aggregator.to_activity(generate).type, ActivityType.ASSIGNMENT_GENERATE)
        self.assertEqual(aggregator.to_activity(chat).summary, "Chat interaction (model call)")
        self.assertEqual(aggregator.to_activity(local).summary, "Chat interaction (local response)")
        self.assertEqual(aggregator.to_activity(ethics).summary, "Ethics event: prompt modified")
        self.assertEqual(aggregator.to_activity(learning).summary, "Learning step missed: Fractions")

    def test_alert_mapping(self):
        crash = parse_event({"kind": "system_error", "timestamp": ts(hours=1), "message": "boom", "status": 503})
        missing = parse_event({"kind": "system_error", "timestamp": ts(hours=1), "message": "gone", "status": 404})
        cheating = parse_event({"kind": "ethics", "timestamp": ts(hours=1), "type": "cheating_detected"})
        privacy = parse_event({"kind": "privacy", "timestamp": ts(hours=1), "detector": "email",
                               "endpoint": "/api/chat"})

        self.assertEqual(aggregator.to_alert(crash).severity, AlertSeverity.CRITICAL)
        self.assertEqual(aggregator.to_alert(missing).severity, AlertSeverity.WARNING)
        self.assertEqual(aggregator.to_alert(cheating).severity, AlertSeverity.WARNING)
        self.assertEqual(aggregator.to_alert(privacy).module, "/api/chat")
        self.assertIsNone(aggregator.to_alert(parse_event(interaction(ts(hours=1)))))

    def test_recent_alerts_skip_quiet_events(self):
        events = [parse_event(interaction(ts(hours=1)))] * 3
        events += [parse_event({"kind": "system_error", "timestamp": ts(hours=1), "message": "x"})] * 30
        alerts = aggregator.recent_alerts(events)
        self.assertEqual(len(alerts), aggregator.MAX_ALERTS)

    def test_ethics_report_events(self):
        events = [
            parse_event({"kind": "ethics", "timestamp": ts(hours=3), "type": "cheating_detected",
                         "flags": ["cheating_intent"]}),
            parse_event({"kind": "privacy", "timestamp": ts(hours=1), "detector": "phone"}),
        ]
        report = aggregator.ethics_report_events(events)
        self.assertEqual([e.type for e in report], ["privacy_alert", "cheating_detected"])
        self.assertEqual(report[1].flags, ["cheating_intent"])

        with self.assertRaises(TypeError):
            aggregator.ethics_report_events([parse_event(interaction(ts(hours=1)))])


class TestDataHelpers(unittest.TestCase):

    def test_reasoning_quality(self):
        self.assertEqual(reasoning_quality(0.8, 0.5), 0.68)
        self.assertEqual(reasoning_quality(2, -1), 0.6)

    def test_quality_from_interactions(self):
        events = [
            parse_event(interaction(ts(hours=2), depth_alignment_score=1.0, clarity_score=0.5)),
            parse_event(interaction(ts(hours=1), depth_alignment_score=0.6, clarity_score=0.5)),
        ]
        quality = quality_from_interactions(events)
        self.assertEqual(quality.depth_alignment_score, 0.8)
        self.assertEqual(quality.clarity_score, 0.5)
        self.assertEqual(quality.reasoning_quality_average, 0.68)
        self.assertEqual(quality_from_interactions([]).reasoning_quality_average, 0)

    def test_time_spent_by_depth(self):
        events = [
            parse_event(interaction(ts(minutes=60), depth="Core", actor="a")),
            parse_event(interaction(ts(minutes=55), depth="Applied", actor="a")),
            # 40 minute gap: a new session, nothing credited
            parse_event(interaction(ts(minutes=15), depth="Core", actor="a")),
            parse_event(interaction(ts(minutes=0), depth="Core", actor="a")),
            parse_event(interaction(ts(minutes=3), depth="Mastery", actor="b")),
            parse_event(interaction(ts(minutes=1), depth="Core", actor="b")),
            parse_event(interaction(ts(minutes=1), depth="Core", actor=None)),
        ]
        minutes = time_spent_by_depth(events)
        self.assertEqual(minutes, DepthDistribution(core=15, applied=0, mastery=2))
