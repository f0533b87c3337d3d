"""
LearnFlow Learning Analytics Core

This package ingests learning-interaction telemetry, persists it in an
append-only event log, and derives analytics from it:

1. Event log with crash-safe persistence and retention
2. Event-sourced per-student/per-topic mastery recomputation
3. Insight and adaptive-signal derivation
4. Time-windowed dashboard aggregation behind a read-through cache
"""

__version__ = "0.1.0"
