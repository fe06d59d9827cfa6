"""
Unit tests for the recovery score: ratio curves, the stress component,
neutral substitution for missing data and directive selection.
"""

import datetime
import math

import pytest
from pydantic import ValidationError

from app.schemas.baseline import Baseline, BaselineKind, BaselineSet
from app.schemas.outcome import Ok, Unavailable
from app.schemas.score import NightMetrics
from app.scoring.recovery_score import (
    DEFAULT_RECOVERY_SCORE_CONFIG,
    RatioCurve,
    RecoveryScoreConfig,
    RecoveryScoreEngine,
    oxygen_penalty,
    recovery_directive,
    stress_points,
)
from app.scoring.session_detector import primary_session_from_samples
from sample_factory import night_stages

WAKE = datetime.date(2026, 3, 15)
NOW = datetime.datetime(2026, 3, 15, 8, 0)
SESSION = primary_session_from_samples(night_stages(WAKE), WAKE)
MISSING = Unavailable(reason="not enough history")


def _b(kind: BaselineKind, value: float) -> Baseline:
    window = 60 if kind in (BaselineKind.HRV, BaselineKind.RESTING_HEART_RATE) else 14
    return Baseline(kind=kind, window_days=window, value=value, sample_count=window, as_of=WAKE, last_updated=NOW)


def _baselines(hrv=50.0, rhr=60.0, walking=100.0, respiratory=14.5, spo2=97.0) -> BaselineSet:
    def pick(kind, value):
        return _b(kind, value) if value is not None else MISSING

    return BaselineSet(
        as_of=WAKE,
        hrv=pick(BaselineKind.HRV, hrv),
        resting_heart_rate=pick(BaselineKind.RESTING_HEART_RATE, rhr),
        walking_heart_rate=pick(BaselineKind.WALKING_HEART_RATE, walking),
        respiratory_rate=pick(BaselineKind.RESPIRATORY_RATE, respiratory),
        oxygen_saturation=pick(BaselineKind.OXYGEN_SATURATION, spo2),
        bedtime=MISSING,
        wake_time=MISSING,
    )


def _metrics(hrv=50.0, rhr=60.0, walking=100.0, respiratory=14.5, spo2=97.0) -> NightMetrics:
    def pick(value):
        if isinstance(value, (Ok, Unavailable)):
            return value
        return Ok(value=value, sample_count=3) if value is not None else Unavailable(reason="no samples")

    return NightMetrics(
        hrv=pick(hrv),
        resting_heart_rate=pick(rhr),
        walking_heart_rate=pick(walking),
        respiratory_rate=pick(respiratory),
        oxygen_saturation=pick(spo2),
    )


def _score(metrics, baselines, sleep_score=80):
    return RecoveryScoreEngine().score(SESSION, metrics, baselines, sleep_score)


def _component(result, name):
    return next(c for c in result.components if c.name == name)


# ======================================================================
# Configuration
# ======================================================================


class TestRecoveryScoreConfig:

    def test_default_weights(self):
        cfg = DEFAULT_RECOVERY_SCORE_CONFIG
        assert sum(cfg.weights.values()) == pytest.approx(1.0)
        assert sum(cfg.stress_weights.values()) == pytest.approx(1.0)

    def test_bad_weights_are_rejected(self):
        with pytest.raises(ValidationError):
            RecoveryScoreConfig(weights={"hrv": 0.6, "rhr": 0.25, "sleep": 0.15, "stress": 0.10})

    def test_bad_stress_weights_are_rejected(self):
        with pytest.raises(ValidationError):
            RecoveryScoreConfig(stress_weights={"oxygen_saturation": 1.0})


# ======================================================================
# Curves
# ======================================================================


class TestRatioCurve:

    hrv = DEFAULT_RECOVERY_SCORE_CONFIG.hrv_curve
    rhr = DEFAULT_RECOVERY_SCORE_CONFIG.rhr_curve

    def test_baseline_ratio_is_target(self):
        assert self.hrv.points(1.0) == pytest.approx(75.0)
        assert self.rhr.points(1.0) == pytest.approx(75.0)

    def test_growth_above_baseline_is_logarithmic(self):
        assert self.hrv.points(1.1) == pytest.approx(75.0 + 90.0 * math.log(1.1))

    def test_drop_costs_more_than_gain_earns(self):
        assert 75.0 - self.hrv.points(0.9) > self.hrv.points(1.1) - 75.0

    def test_rhr_decay_is_steeper_than_hrv(self):
        assert self.rhr.points(0.8) < self.hrv.points(0.8)

    def test_large_ratio_is_capped(self):
        assert self.hrv.points(5.0) == 100.0

    @pytest.mark.parametrize("ratio", [0.0, -1.0, float("nan"), float("inf")])
    def test_degenerate_ratio_scores_zero(self, ratio):
        assert RatioCurve(log_gain=90.0, decay_exponent=3.0).points(ratio) == 0.0


class TestStressCurves:

    @pytest.mark.parametrize("deviation,expected", [
        (0.0, 100.0),
        (3.0, 97.0),
        (5.0, 95.0),
        (15.0, 95.0 * math.exp(-1.0)),
    ])
    def test_stress_points(self, deviation, expected):
        assert stress_points(deviation) == pytest.approx(expected)

    @pytest.mark.parametrize("spo2,expected", [(97.0, 0.0), (95.0, 0.0), (93.0, 20.0), (90.5, 45.0)])
    def test_oxygen_penalty(self, spo2, expected):
        assert oxygen_penalty(spo2) == pytest.approx(expected)


# ======================================================================
# Engine
# ======================================================================


class TestRecoveryScoreEngine:

    def test_strong_night_is_above_target(self):
        result = _score(_metrics(hrv=60.0, rhr=56.0), _baselines(), sleep_score=90)
        assert 75 < result.final_score <= 100
        assert result.directive.startswith("Primed")
        assert [c.name for c in result.components] == ["hrv", "rhr", "sleep", "stress"]
        assert not any(c.unavailable for c in result.components)

    def test_rhr_ratio_is_inverted(self):
        lower = _component(_score(_metrics(rhr=54.0), _baselines()), "rhr")
        higher = _component(_score(_metrics(rhr=66.0), _baselines()), "rhr")
        assert lower.score > 75.0 > higher.score

    def test_sleep_score_passes_through(self):
        sleep = _component(_score(_metrics(), _baselines(), sleep_score=63), "sleep")
        assert sleep.score == 63.0
        assert sleep.weight == 0.15

    def test_missing_hrv_gets_neutral_score(self):
        result = _score(_metrics(hrv=Unavailable(reason="No hrv samples overnight or on 2026-03-15")), _baselines())
        hrv = _component(result, "hrv")
        assert hrv.score == 50.0
        assert hrv.unavailable is True
        assert "data unavailable" in hrv.description
        assert "No hrv samples" in hrv.description

    def test_missing_baseline_reason_is_reported(self):
        hrv = _component(_score(_metrics(), _baselines(hrv=None)), "hrv")
        assert hrv.unavailable is True
        assert "not enough history" in hrv.description

    def test_non_positive_value_is_neutral(self):
        rhr = _component(_score(_metrics(rhr=0.0), _baselines()), "rhr")
        assert rhr.score == 50.0
        assert "non-positive" in rhr.description

    @pytest.mark.parametrize("name,baselines", [
        ("hrv", _baselines(hrv=0.0)),
        ("rhr", _baselines(rhr=0.0)),
        ("hrv", _baselines(hrv=-1.0)),
    ])
    def test_non_positive_baseline_is_neutral(self, name, baselines):
        result = _score(_metrics(), baselines)
        component = _component(result, name)
        assert component.score == 50.0
        assert component.unavailable is True
        assert "data unavailable" in component.description
        assert "non-positive baseline" in component.description
        assert 0 <= result.final_score <= 100

    def test_stress_on_baseline_is_full(self):
        stress = _component(_score(_metrics(), _baselines()), "stress")
        assert stress.score == pytest.approx(100.0)

    def test_stress_is_renormalised_over_available_metrics(self):
        metrics = _metrics(walking=110.0, respiratory=None, spo2=None)
        stress = _component(_score(metrics, _baselines()), "stress")
        assert stress.score == pytest.approx(stress_points(10.0))
        assert "Walking HR" in stress.description
        assert stress.unavailable is False

    def test_low_oxygen_is_penalised_without_baseline(self):
        metrics = _metrics(walking=None, respiratory=None, spo2=92.0)
        stress = _component(_score(metrics, _baselines(spo2=None)), "stress")
        assert stress.score == pytest.approx(20.0)
        assert "below 95%" in stress.description

    def test_stress_without_any_data_is_neutral(self):
        metrics = _metrics(walking=None, respiratory=None, spo2=None)
        stress = _component(_score(metrics, _baselines()), "stress")
        assert stress.score == 50.0
        assert stress.unavailable is True

    def test_same_day_value_is_noted(self):
        metrics = _metrics(walking=Ok(value=100.0, sample_count=1, fallback=True))
        stress = _component(_score(metrics, _baselines()), "stress")
        assert "(same-day value)" in stress.description

    def test_unavailable_components_do_not_pick_the_directive(self):
        metrics = _metrics(hrv=None, rhr=80.0, walking=None, respiratory=None, spo2=None)
        result = _score(metrics, _baselines(), sleep_score=30)
        assert result.final_score < 55
        assert result.directive.startswith("Elevated cardiovascular load")

    @pytest.mark.parametrize("hrv,rhr,sleep_score", [
        (1.0, 200.0, 0),
        (500.0, 20.0, 100),
        (None, None, 50),
    ])
    def test_final_score_in_range(self, hrv, rhr, sleep_score):
        result = _score(_metrics(hrv=hrv, rhr=rhr, spo2=80.0), _baselines(), sleep_score=sleep_score)
        assert 0 <= result.final_score <= 100
        assert all(0.0 <= c.score <= 100.0 for c in result.components)


class TestRecoveryDirective:

    @pytest.mark.parametrize("final,components,prefix", [
        (90, {}, "Primed"),
        (72, {}, "Good recovery"),
        (60, {}, "Moderate recovery"),
        (40, {"hrv": 30.0}, "Nervous system"),
        (40, {"hrv": 80.0, "rhr": 40.0}, "Elevated cardiovascular"),
        (40, {"hrv": 80.0, "rhr": 80.0, "sleep": 40.0}, "Poor sleep"),
        (40, {"hrv": 80.0, "rhr": 80.0, "sleep": 80.0, "stress": 60.0}, "Stress indicators"),
        (40, {"hrv": 80.0, "rhr": 80.0, "sleep": 80.0, "stress": 90.0}, "Recovery needs attention"),
    ])
    def test_directive(self, final, components, prefix):
        assert recovery_directive(final, components).startswith(prefix)
