"""
Recovery score.

Model
-----
Four components, each normalised to 0-100 then weighted:

    hrv      0.50   overnight HRV / long-window baseline
    rhr      0.25   long-window baseline / overnight resting HR
    sleep    0.15   that night's sleep score, passed through
    stress   0.10   deviation of walking HR, respiratory rate and
                    oxygen saturation from their short-window baselines

Ratio scaling
-------------
Both ratios are oriented so that > 1.0 is good.  A ratio of exactly
1.0 maps to ``target`` (75, "good but not perfect").  Scaling is
asymmetric, so drops below baseline cost more than gains above it earn:

    r >= 1    target + gain * ln(r)        (logarithmic growth)
    r <  1    target * r ** exponent       (cubic for HRV, quartic for RHR)

Stress
------
Per metric, ``dev = |today - baseline| / baseline * 100``:

    dev <= 5     100 - dev
    dev >  5     95 * exp(-(dev - 5) / 10)

combined as a weighted mean over the metrics that have both a value
and a baseline (oxygen 0.5, respiratory 0.3, walking HR 0.2, weights
renormalised over what is present).  Oxygen saturation below 95 % then
costs 10 points per percentage point, regardless of its baseline.

Missing data
------------
HRV or RHR with no value (even after the same-day fallback) or no
baseline take the neutral score (50) and say "data unavailable"; the
pipeline never fails on a missing metric.
"""

from __future__ import annotations

import math
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from app.core.logging import get_logger
from app.schemas.baseline import Baseline, BaselineOutcome, BaselineSet
from app.schemas.outcome import Ok, Outcome
from app.schemas.score import NightMetrics, RecoveryScoreResult, ScoreComponent
from app.schemas.sleep_session import SleepSession
from app.scoring.sleep_score import clamp_score, validate_weights

logger = get_logger(__name__)

# ======================================================================
# Configuration
# ======================================================================

_DEFAULT_WEIGHTS: dict[str, float] = {
    "hrv": 0.50,
    "rhr": 0.25,
    "sleep": 0.15,
    "stress": 0.10,
}

_DEFAULT_STRESS_WEIGHTS: dict[str, float] = {
    "oxygen_saturation": 0.5,
    "respiratory_rate": 0.3,
    "walking_heart_rate": 0.2,
}


class RatioCurve(BaseModel):
    """Asymmetric ratio-to-score mapping."""

    target: float = Field(75.0, ge=0.0, le=100.0, description="Score at ratio 1.0")
    log_gain: float = Field(..., gt=0.0)
    decay_exponent: float = Field(..., gt=0.0)

    def points(self, ratio: float) -> float:
        if not math.isfinite(ratio) or ratio <= 0.0:
            return 0.0
        if ratio >= 1.0:
            return clamp_score(self.target + self.log_gain * math.log(ratio))
        return clamp_score(self.target * ratio ** self.decay_exponent)


class RecoveryScoreConfig(BaseModel):
    """Calibration of the recovery score."""

    weights: dict[str, float] = Field(default_factory=lambda: dict(_DEFAULT_WEIGHTS))
    hrv_curve: RatioCurve = Field(default_factory=lambda: RatioCurve(log_gain=90.0, decay_exponent=3.0))
    rhr_curve: RatioCurve = Field(default_factory=lambda: RatioCurve(log_gain=110.0, decay_exponent=4.0))

    stress_weights: dict[str, float] = Field(default_factory=lambda: dict(_DEFAULT_STRESS_WEIGHTS))
    stress_tolerance_pct: float = Field(5.0, ge=0.0)
    stress_decay_pct: float = Field(10.0, gt=0.0)
    oxygen_floor_pct: float = Field(95.0, gt=0.0, le=100.0)
    oxygen_penalty_per_pct: float = Field(10.0, ge=0.0)

    neutral_score: float = Field(50.0, ge=0.0, le=100.0)

    @model_validator(mode="after")
    def _check_weights(self) -> "RecoveryScoreConfig":
        validate_weights(self.weights, set(_DEFAULT_WEIGHTS))
        validate_weights(self.stress_weights, set(_DEFAULT_STRESS_WEIGHTS))
        return self


DEFAULT_RECOVERY_SCORE_CONFIG = RecoveryScoreConfig()

_METRIC_LABELS = {
    "oxygen_saturation": ("Oxygen saturation", "%"),
    "respiratory_rate": ("Respiratory rate", " br/min"),
    "walking_heart_rate": ("Walking HR", " bpm"),
}


# ======================================================================
# Component curves
# ======================================================================


def stress_points(
    deviation_pct: float, config: RecoveryScoreConfig = DEFAULT_RECOVERY_SCORE_CONFIG,
) -> float:
    """Score one metric's percentage deviation from its baseline."""
    tol = config.stress_tolerance_pct
    if deviation_pct <= tol:
        return clamp_score(100.0 - deviation_pct)
    return clamp_score((100.0 - tol) * math.exp(-(deviation_pct - tol) / config.stress_decay_pct))


def oxygen_penalty(
    spo2: float, config: RecoveryScoreConfig = DEFAULT_RECOVERY_SCORE_CONFIG,
) -> float:
    if spo2 >= config.oxygen_floor_pct:
        return 0.0
    return (config.oxygen_floor_pct - spo2) * config.oxygen_penalty_per_pct


def _source_note(outcome: Ok) -> str:
    return " (same-day value)" if outcome.fallback else ""


# ======================================================================
# Engine
# ======================================================================


class RecoveryScoreEngine:
    """Scores next-day recovery from one night's physiology."""

    def __init__(self, config: Optional[RecoveryScoreConfig] = None):
        self.config = config or DEFAULT_RECOVERY_SCORE_CONFIG

    def score(
        self,
        session: SleepSession,
        metrics: NightMetrics,
        baselines: BaselineSet,
        sleep_score: int,
    ) -> RecoveryScoreResult:
        cfg = self.config
        components = [
            self._ratio_component(
                "hrv", "Overnight HRV", " ms", metrics.hrv, baselines.hrv, cfg.hrv_curve, invert=False,
            ),
            self._ratio_component(
                "rhr", "Resting HR", " bpm", metrics.resting_heart_rate, baselines.resting_heart_rate,
                cfg.rhr_curve, invert=True,
            ),
            ScoreComponent(
                name="sleep",
                score=clamp_score(sleep_score),
                weight=cfg.weights["sleep"],
                description=f"Sleep score for the night ending {session.end:%H:%M}: {sleep_score}/100.",
            ),
            self._stress_component(metrics, baselines),
        ]

        weighted = sum(clamp_score(c.score) * c.weight for c in components)
        final = int(clamp_score(round(weighted)))
        by_name = {c.name: c.score for c in components if not c.unavailable}

        return RecoveryScoreResult(
            final_score=final,
            components=components,
            directive=recovery_directive(final, by_name),
        )

    def _ratio_component(
        self,
        name: str,
        label: str,
        unit: str,
        today: Outcome,
        baseline: BaselineOutcome,
        curve: RatioCurve,
        invert: bool,
    ) -> ScoreComponent:
        cfg = self.config
        weight = cfg.weights[name]

        if (
            not isinstance(today, Ok)
            or not isinstance(baseline, Baseline)
            or today.value <= 0
            or baseline.value <= 0
        ):
            if not isinstance(today, Ok):
                reason = today.reason
            elif not isinstance(baseline, Baseline):
                reason = baseline.reason
            elif today.value <= 0:
                reason = f"non-positive value {today.value:g}"
            else:
                reason = f"non-positive baseline {baseline.value:g}"
            logger.info("neutral_score_substituted", component=name, reason=reason)
            return ScoreComponent(
                name=name,
                score=cfg.neutral_score,
                weight=weight,
                description=f"{label}: data unavailable ({reason}). Neutral score {cfg.neutral_score:.0f}/100.",
                unavailable=True,
            )

        ratio = baseline.value / today.value if invert else today.value / baseline.value
        pts = curve.points(ratio)
        return ScoreComponent(
            name=name,
            score=pts,
            weight=weight,
            description=(
                f"{label} {today.value:.0f}{unit}{_source_note(today)} vs. "
                f"{baseline.window_days}-day baseline {baseline.value:.0f}{unit} "
                f"(ratio {ratio:.2f}). Score {pts:.0f}/100."
            ),
        )

    def _stress_component(self, metrics: NightMetrics, baselines: BaselineSet) -> ScoreComponent:
        cfg = self.config
        weight = cfg.weights["stress"]

        parts: list[str] = []
        weighted_sum = 0.0
        weight_sum = 0.0
        for metric_name, metric_weight in cfg.stress_weights.items():
            today = getattr(metrics, metric_name)
            baseline = getattr(baselines, metric_name)
            if not isinstance(today, Ok) or not isinstance(baseline, Baseline) or baseline.value <= 0:
                continue
            deviation = abs(today.value - baseline.value) / baseline.value * 100.0
            pts = stress_points(deviation, cfg)
            weighted_sum += pts * metric_weight
            weight_sum += metric_weight
            label, unit = _METRIC_LABELS[metric_name]
            parts.append(
                f"{label} {today.value:.1f}{unit}{_source_note(today)} vs. {baseline.value:.1f}{unit} "
                f"({deviation:.1f}% off)"
            )

        unavailable = weight_sum == 0.0
        score = cfg.neutral_score if unavailable else weighted_sum / weight_sum
        if unavailable:
            description = "Stress indicators: data unavailable."
        else:
            description = "Stress indicators: " + "; ".join(parts) + "."

        spo2 = metrics.oxygen_saturation
        if isinstance(spo2, Ok):
            penalty = oxygen_penalty(spo2.value, cfg)
            if penalty > 0:
                score -= penalty
                description += (
                    f" Oxygen saturation {spo2.value:.1f}% is below {cfg.oxygen_floor_pct:g}%: "
                    f"-{penalty:.0f} points."
                )

        score = clamp_score(score)
        if unavailable:
            logger.info("neutral_score_substituted", component="stress", reason="no stress metric with baseline")
        return ScoreComponent(
            name="stress",
            score=score,
            weight=weight,
            description=f"{description} Score {score:.0f}/100.",
            unavailable=unavailable,
        )


def recovery_directive(final_score: int, components: dict[str, float]) -> str:
    """Guidance text; below the moderate band the weakest system picks the message."""
    if final_score >= 85:
        return "Primed for peak performance. Your body is ready for high-intensity training."
    if final_score >= 70:
        return "Good recovery state. Moderate to high-intensity training is appropriate."
    if final_score >= 55:
        return "Moderate recovery. Consider lighter training or active recovery."
    if components.get("hrv", 100.0) < 60:
        return "Nervous system under strain. Prioritize rest and recovery activities."
    if components.get("rhr", 100.0) < 60:
        return "Elevated cardiovascular load. Focus on active recovery and stress management."
    if components.get("sleep", 100.0) < 50:
        return "Poor sleep quality detected. Prioritize sleep hygiene and recovery."
    if components.get("stress", 100.0) < 70:
        return "Stress indicators present. Consider reducing training load."
    return "Recovery needs attention. Focus on rest, nutrition, and stress management."
