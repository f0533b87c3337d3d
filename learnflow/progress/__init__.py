"""
Progress

Event-sourced student progress: the replay engine, the tracker service,
rule-based insights and the adaptive teaching recommendations.
"""

from learnflow.progress.models import (
    AdaptiveRecommendation,
    AdaptiveSignalType,
    ConfidenceTrend,
    MasteryTrend,
    StudentInsight,
    StudentProgress,
    TopicProgress,
)
from learnflow.progress.engine import ProgressEngine
from learnflow.progress.insights import InsightGenerator
from learnflow.progress.adaptive import AdaptiveEngine, NextStep, PracticeIntensity, TeachingPlan
from learnflow.progress.tracker import ProgressTracker

__all__ = [
    'AdaptiveRecommendation',
    'AdaptiveSignalType',
    'ConfidenceTrend',
    'MasteryTrend',
    'StudentInsight',
    'StudentProgress',
    'TopicProgress',
    'ProgressEngine',
    'InsightGenerator',
    'AdaptiveEngine',
    'NextStep',
    'PracticeIntensity',
    'TeachingPlan',
    'ProgressTracker',
]
