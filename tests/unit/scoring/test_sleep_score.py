"""
Unit tests for the sleep score: component curves, weights, the
consistency component and the composite result.
"""

import datetime

import pytest
from pydantic import ValidationError

from app.schemas.baseline import Baseline, BaselineKind, BaselineSet
from app.schemas.outcome import Unavailable
from app.scoring.session_detector import primary_session_from_samples
from app.scoring.sleep_score import (
    DEFAULT_SLEEP_SCORE_CONFIG,
    SleepScoreConfig,
    SleepScoreEngine,
    band_points,
    clamp_score,
    consistency_points,
    duration_points,
    efficiency_points,
    sleep_directive,
)
from sample_factory import night_stages

WAKE = datetime.date(2026, 3, 15)
NOW = datetime.datetime(2026, 3, 15, 8, 0)


def _baseline(kind: BaselineKind, value: float) -> Baseline:
    return Baseline(kind=kind, window_days=14, value=value, sample_count=14, as_of=WAKE, last_updated=NOW)


def _baselines(bedtime_minutes=None) -> BaselineSet:
    missing = Unavailable(reason="not enough history")
    bedtime = _baseline(BaselineKind.BEDTIME, bedtime_minutes) if bedtime_minutes is not None else missing
    return BaselineSet(
        as_of=WAKE,
        hrv=missing,
        resting_heart_rate=missing,
        walking_heart_rate=missing,
        respiratory_rate=missing,
        oxygen_saturation=missing,
        bedtime=bedtime,
        wake_time=missing,
    )


def _session(**kwargs):
    return primary_session_from_samples(night_stages(WAKE, **kwargs), WAKE)


# ======================================================================
# Configuration
# ======================================================================


class TestSleepScoreConfig:

    def test_default_weights_sum_to_one(self):
        assert sum(DEFAULT_SLEEP_SCORE_CONFIG.weights.values()) == pytest.approx(1.0, abs=1e-9)

    def test_bad_sum_is_rejected(self):
        with pytest.raises(ValidationError):
            SleepScoreConfig(weights={
                "duration": 0.5, "deep": 0.25, "rem": 0.20, "efficiency": 0.15, "consistency": 0.10,
            })

    def test_missing_weight_is_rejected(self):
        with pytest.raises(ValidationError):
            SleepScoreConfig(weights={"duration": 0.5, "deep": 0.5})

    def test_custom_weights(self):
        cfg = SleepScoreConfig(weights={
            "duration": 0.20, "deep": 0.20, "rem": 0.20, "efficiency": 0.20, "consistency": 0.20,
        })
        assert cfg.weights["duration"] == 0.20


# ======================================================================
# Component curves
# ======================================================================


class TestDurationPoints:

    @pytest.mark.parametrize("hours,expected", [
        (8.0, 100.0),
        (8.5, 100.0),
        (9.0, 100.0),
        (7.0, 80.0),
        (6.0, 60.0),
        (5.0, 30.0),
        (4.0, 0.0),
        (2.0, 0.0),
        (10.0, 90.0),
        (14.0, 60.0),
    ])
    def test_curve(self, hours, expected):
        assert duration_points(hours) == pytest.approx(expected)

    def test_penalty_below_six_is_steeper(self):
        assert duration_points(6.0) - duration_points(5.5) > duration_points(7.5) - duration_points(7.0)


class TestBandPoints:

    @pytest.mark.parametrize("fraction,expected", [
        (0.13, 100.0),
        (0.18, 100.0),
        (0.23, 100.0),
        (0.065, 50.0),
        (0.0, 0.0),
        (0.28, 80.0),
        (0.60, 0.0),
    ])
    def test_deep_band(self, fraction, expected):
        assert band_points(fraction, (0.13, 0.23)) == pytest.approx(expected)


class TestEfficiencyPoints:

    @pytest.mark.parametrize("efficiency,expected", [
        (1.0, 100.0),
        (0.95, 100.0),
        (0.93, 80.0),
        (0.91, 67.0),
        (0.86, 33.0),
        (0.84, 0.0),
    ])
    def test_thresholds(self, efficiency, expected):
        assert efficiency_points(efficiency) == expected


class TestConsistencyPoints:

    def test_on_time_is_full(self):
        assert consistency_points(0.0) == pytest.approx(100.0)

    def test_decays_monotonically(self):
        values = [consistency_points(d) for d in (0, 10, 20, 30, 45, 59)]
        assert values == sorted(values, reverse=True)

    def test_zero_beyond_an_hour(self):
        assert consistency_points(60.0) == 0.0
        assert consistency_points(180.0) == 0.0


class TestClamp:

    @pytest.mark.parametrize("value,expected", [
        (-5.0, 0.0), (50.0, 50.0), (130.0, 100.0), (float("nan"), 0.0),
    ])
    def test_clamp(self, value, expected):
        assert clamp_score(value) == expected


# ======================================================================
# Engine
# ======================================================================


class TestSleepScoreEngine:

    def test_excellent_night(self):
        # 8h10m asleep, 16 % deep, 22 % REM, 96 % efficiency,
        # bed at 23:10 against a 23:00 baseline.
        asleep = 490.0
        session = _session(
            bedtime=datetime.time(23, 10),
            asleep_minutes=asleep,
            awake_minutes=asleep / 0.96 - asleep,
            deep_frac=0.16,
            rem_frac=0.22,
        )
        result = SleepScoreEngine().score(session, _baselines(bedtime_minutes=23 * 60))

        assert result.final_score >= 85
        assert result.directive.startswith("Excellent")
        by_name = {c.name: c for c in result.components}
        assert by_name["duration"].score == 100.0
        assert by_name["consistency"].score == pytest.approx(consistency_points(10.0))

    def test_components_are_ordered_and_weighted(self):
        result = SleepScoreEngine().score(_session(), _baselines(bedtime_minutes=23 * 60))
        assert [c.name for c in result.components] == ["duration", "deep", "rem", "efficiency", "consistency"]
        assert sum(c.weight for c in result.components) == pytest.approx(1.0)

    def test_every_component_has_a_description(self):
        result = SleepScoreEngine().score(_session(), _baselines(bedtime_minutes=23 * 60))
        for c in result.components:
            assert c.description
            assert "Score" in c.description

    def test_missing_bedtime_baseline_is_neutral(self):
        result = SleepScoreEngine().score(_session(), _baselines())
        consistency = result.components[-1]
        assert consistency.unavailable is True
        assert consistency.score == 50.0
        assert "unavailable" in consistency.description
        assert "Usual bedtime still being learned" in result.key_findings

    def test_cross_midnight_deviation_uses_clock_time(self):
        session = _session(bedtime=datetime.time(0, 10))
        result = SleepScoreEngine().score(session, _baselines(bedtime_minutes=23 * 60 + 50))
        consistency = result.components[-1]
        assert consistency.score == pytest.approx(consistency_points(20.0))
        assert "20 min" in consistency.description

    def test_short_night_is_poor(self):
        session = _session(asleep_minutes=200, awake_minutes=90, deep_frac=0.05, rem_frac=0.05)
        result = SleepScoreEngine().score(session, _baselines(bedtime_minutes=21 * 60))
        assert result.final_score < 50
        assert result.directive.startswith("Poor")

    @pytest.mark.parametrize("asleep,awake,deep,rem", [
        (30, 0, 0.0, 0.0),
        (60, 600, 0.9, 0.1),
        (900, 0, 0.5, 0.5),
        (480, 20, 0.18, 0.22),
    ])
    def test_final_score_in_range(self, asleep, awake, deep, rem):
        session = _session(asleep_minutes=asleep, awake_minutes=awake, deep_frac=deep, rem_frac=rem)
        for baselines in (_baselines(), _baselines(bedtime_minutes=600)):
            result = SleepScoreEngine().score(session, baselines)
            assert 0 <= result.final_score <= 100
            assert all(0.0 <= c.score <= 100.0 for c in result.components)

    def test_key_findings_cover_each_area(self):
        result = SleepScoreEngine().score(_session(), _baselines(bedtime_minutes=23 * 60))
        assert len(result.key_findings) == 5
        assert result.key_findings[0].startswith("Optimal sleep duration")


class TestSleepDirective:

    @pytest.mark.parametrize("score,prefix", [
        (100, "Excellent"), (85, "Excellent"), (84, "Good"), (70, "Good"),
        (69, "Fair"), (50, "Fair"), (49, "Poor"), (0, "Poor"),
    ])
    def test_bands(self, score, prefix):
        assert sleep_directive(score).startswith(prefix)
