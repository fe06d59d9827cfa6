"""Scoring core: session detection, metrics, baselines, scores, recalculation."""

from app.scoring.source import InMemorySampleSource, SampleSource, SqlSampleSource
from app.scoring.session_detector import SleepSessionDetector
from app.scoring.metric_window import MetricWindowExtractor
from app.scoring.baselines import BaselineEngine
from app.scoring.sleep_score import SleepScoreEngine
from app.scoring.recovery_score import RecoveryScoreEngine
from app.scoring.pipeline import ScorePipeline
from app.scoring.store import ScoreStore
from app.scoring.events import EventChannel
from app.scoring.recalculation import RecalculationController

__all__ = [
    "SampleSource",
    "InMemorySampleSource",
    "SqlSampleSource",
    "SleepSessionDetector",
    "MetricWindowExtractor",
    "BaselineEngine",
    "SleepScoreEngine",
    "RecoveryScoreEngine",
    "ScorePipeline",
    "ScoreStore",
    "EventChannel",
    "RecalculationController",
]
