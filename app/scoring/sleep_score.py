"""
Sleep score.

Model
-----
Five components, each scored on 0-100 and clamped *before* weighting:

    duration     0.30   hours asleep, plateau 8-9 h
    deep         0.25   deep fraction of asleep time vs. a 13-23 % band
    rem          0.20   REM fraction of asleep time vs. a 20-25 % band
    efficiency   0.15   time asleep / time in bed, high bar (>= 95 %)
    consistency  0.10   bedtime deviation from the circadian baseline

    final = clamp(round(sum(score_i * weight_i)), 0, 100)

Duration curve (h = hours asleep):

    h < 6        60 * (h - 4) / 2          (0 at 4 h, steep)
    6 <= h < 8   60 + 20 * (h - 6)         (gentle)
    8 <= h <= 9  100                       (plateau)
    h > 9        max(60, 100 - 10 * (h - 9))  (mild oversleep penalty)

Stage bands: inside the band scores 100; below, proportionally
(``fraction / low * 100``); above, 4 points lost per percentage point
of excess.

Consistency compares **time-of-day** only.  With ``d`` the circular
distance in minutes between tonight's bedtime and the baseline anchor:

    score = 100 * (exp(-d / tau) - exp(-cutoff / tau)) / (1 - exp(-cutoff / tau))

for ``d < cutoff`` and 0 beyond, i.e. a smooth decay that reaches 0
at about an hour.  Without a bedtime baseline the component takes the
neutral score and is marked unavailable.
"""

from __future__ import annotations

import math
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from app.core.logging import get_logger
from app.schemas.baseline import Baseline, BaselineSet, minutes_to_clock
from app.schemas.score import ScoreComponent, SleepScoreResult
from app.schemas.sleep_session import SleepSession
from app.scoring.baselines import clock_difference_minutes, minutes_of_day

logger = get_logger(__name__)

# ======================================================================
# Configuration
# ======================================================================

_DEFAULT_WEIGHTS: dict[str, float] = {
    "duration": 0.30,
    "deep": 0.25,
    "rem": 0.20,
    "efficiency": 0.15,
    "consistency": 0.10,
}

# (minimum efficiency, points), checked top-down.
_EFFICIENCY_STEPS: list[tuple[float, float]] = [
    (0.95, 100.0),
    (0.925, 80.0),
    (0.90, 67.0),
    (0.85, 33.0),
]

WEIGHT_TOLERANCE = 1e-6


def validate_weights(weights: dict[str, float], expected: set[str]) -> None:
    """Raise ``ValueError`` unless *weights* is a proper weight set."""
    if set(weights) != expected:
        raise ValueError(f"weights must be exactly {sorted(expected)}, got {sorted(weights)}")
    for name, w in weights.items():
        if not 0.0 < w <= 1.0:
            raise ValueError(f"weight {name}={w} outside (0, 1]")
    total = sum(weights.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ValueError(f"weights sum to {total}, expected 1.0")


class SleepScoreConfig(BaseModel):
    """Calibration of the sleep score."""

    weights: dict[str, float] = Field(default_factory=lambda: dict(_DEFAULT_WEIGHTS))

    plateau_hours: tuple[float, float] = (8.0, 9.0)
    gentle_from_hours: float = 6.0
    zero_below_hours: float = 4.0

    deep_band: tuple[float, float] = (0.13, 0.23)
    rem_band: tuple[float, float] = (0.20, 0.25)
    above_band_penalty: float = Field(4.0, ge=0.0, description="Points per percentage point above a band")

    efficiency_steps: list[tuple[float, float]] = Field(
        default_factory=lambda: list(_EFFICIENCY_STEPS),
    )

    consistency_tau_minutes: float = Field(30.0, gt=0.0)
    consistency_cutoff_minutes: float = Field(60.0, gt=0.0)

    neutral_score: float = Field(50.0, ge=0.0, le=100.0)

    @model_validator(mode="after")
    def _check_weights(self) -> "SleepScoreConfig":
        validate_weights(self.weights, set(_DEFAULT_WEIGHTS))
        return self


DEFAULT_SLEEP_SCORE_CONFIG = SleepScoreConfig()


# ======================================================================
# Component curves
# ======================================================================


def clamp_score(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(100.0, value))


def duration_points(hours: float, config: SleepScoreConfig = DEFAULT_SLEEP_SCORE_CONFIG) -> float:
    low, high = config.plateau_hours
    gentle = config.gentle_from_hours
    if low <= hours <= high:
        return 100.0
    if hours > high:
        return clamp_score(max(60.0, 100.0 - 10.0 * (hours - high)))
    if hours >= gentle:
        return clamp_score(60.0 + (hours - gentle) * 40.0 / (low - gentle))
    span = gentle - config.zero_below_hours
    return clamp_score(60.0 * (hours - config.zero_below_hours) / span)


def band_points(
    fraction: float,
    band: tuple[float, float],
    config: SleepScoreConfig = DEFAULT_SLEEP_SCORE_CONFIG,
) -> float:
    """Score a stage fraction against its optimal band."""
    low, high = band
    if fraction < low:
        return clamp_score(fraction / low * 100.0)
    if fraction <= high:
        return 100.0
    excess_pp = (fraction - high) * 100.0
    return clamp_score(100.0 - config.above_band_penalty * excess_pp)


def efficiency_points(
    efficiency: float, config: SleepScoreConfig = DEFAULT_SLEEP_SCORE_CONFIG,
) -> float:
    for threshold, points in config.efficiency_steps:
        if efficiency >= threshold:
            return clamp_score(points)
    return 0.0


def consistency_points(
    deviation_minutes: float, config: SleepScoreConfig = DEFAULT_SLEEP_SCORE_CONFIG,
) -> float:
    tau = config.consistency_tau_minutes
    cutoff = config.consistency_cutoff_minutes
    if deviation_minutes >= cutoff:
        return 0.0
    floor = math.exp(-cutoff / tau)
    return clamp_score(100.0 * (math.exp(-deviation_minutes / tau) - floor) / (1.0 - floor))


def _format_duration(seconds: float) -> str:
    total = int(round(seconds / 60.0))
    return f"{total // 60}h {total % 60:02d}m"


def _pct(fraction: float) -> str:
    return f"{fraction * 100:.1f}%"


# ======================================================================
# Engine
# ======================================================================


class SleepScoreEngine:
    """Scores one night of sleep."""

    def __init__(self, config: Optional[SleepScoreConfig] = None):
        self.config = config or DEFAULT_SLEEP_SCORE_CONFIG

    def score(self, session: SleepSession, baselines: BaselineSet) -> SleepScoreResult:
        cfg = self.config
        w = cfg.weights

        asleep = session.time_asleep_seconds
        in_bed = session.time_in_bed_seconds
        hours = asleep / 3600.0
        deep_frac = session.deep_seconds / asleep if asleep > 0 else 0.0
        rem_frac = session.rem_seconds / asleep if asleep > 0 else 0.0
        efficiency = min(1.0, asleep / in_bed) if in_bed > 0 else 0.0

        components: list[ScoreComponent] = []

        pts = duration_points(hours, cfg)
        low, high = cfg.plateau_hours
        components.append(ScoreComponent(
            name="duration",
            score=pts,
            weight=w["duration"],
            description=(
                f"Slept {_format_duration(asleep)} against an optimal {low:g}-{high:g} h. "
                f"Score {pts:.0f}/100."
            ),
        ))

        for name, label, frac, seconds, band in (
            ("deep", "Deep sleep", deep_frac, session.deep_seconds, cfg.deep_band),
            ("rem", "REM sleep", rem_frac, session.rem_seconds, cfg.rem_band),
        ):
            pts = band_points(frac, band, cfg)
            components.append(ScoreComponent(
                name=name,
                score=pts,
                weight=w[name],
                description=(
                    f"{label} {_format_duration(seconds)} ({_pct(frac)} of sleep) against an "
                    f"optimal {band[0] * 100:g}-{band[1] * 100:g}%. Score {pts:.0f}/100."
                ),
            ))

        pts = efficiency_points(efficiency, cfg)
        components.append(ScoreComponent(
            name="efficiency",
            score=pts,
            weight=w["efficiency"],
            description=(
                f"Asleep {_pct(efficiency)} of {_format_duration(in_bed)} in bed; "
                f"{cfg.efficiency_steps[0][0] * 100:g}% or more scores full marks. "
                f"Score {pts:.0f}/100."
            ),
        ))

        components.append(self._consistency(session, baselines))

        weighted = sum(clamp_score(c.score) * c.weight for c in components)
        final = int(clamp_score(round(weighted)))

        return SleepScoreResult(
            final_score=final,
            components=components,
            directive=sleep_directive(final),
            key_findings=self._key_findings(hours, deep_frac, rem_frac, efficiency, components[-1]),
        )

    def _consistency(self, session: SleepSession, baselines: BaselineSet) -> ScoreComponent:
        cfg = self.config
        weight = cfg.weights["consistency"]
        bedtime = minutes_of_day(session.bedtime)

        if not isinstance(baselines.bedtime, Baseline):
            logger.info("neutral_score_substituted", component="consistency", reason=baselines.bedtime.reason)
            return ScoreComponent(
                name="consistency",
                score=cfg.neutral_score,
                weight=weight,
                description=(
                    f"Went to bed at {minutes_to_clock(bedtime)}; bedtime baseline unavailable "
                    f"({baselines.bedtime.reason}). Neutral score {cfg.neutral_score:.0f}/100."
                ),
                unavailable=True,
            )

        anchor = baselines.bedtime.value
        deviation = clock_difference_minutes(bedtime, anchor)
        pts = consistency_points(deviation, cfg)
        return ScoreComponent(
            name="consistency",
            score=pts,
            weight=weight,
            description=(
                f"Went to bed at {minutes_to_clock(bedtime)}, {deviation:.0f} min from your usual "
                f"{minutes_to_clock(anchor)}. Score {pts:.0f}/100."
            ),
        )

    def _key_findings(
        self,
        hours: float,
        deep_frac: float,
        rem_frac: float,
        efficiency: float,
        consistency: ScoreComponent,
    ) -> list[str]:
        cfg = self.config
        findings: list[str] = []

        low, high = cfg.plateau_hours
        if hours < low:
            findings.append(f"Sleep duration below recommended ({hours:.1f} hours)")
        elif hours > high:
            findings.append(f"Sleep duration above recommended ({hours:.1f} hours)")
        else:
            findings.append(f"Optimal sleep duration ({hours:.1f} hours)")

        for label, frac, (band_low, band_high) in (
            ("Deep sleep", deep_frac, cfg.deep_band),
            ("REM sleep", rem_frac, cfg.rem_band),
        ):
            if frac < band_low:
                findings.append(f"{label} below optimal ({_pct(frac)})")
            elif frac > band_high:
                findings.append(f"{label} above optimal ({_pct(frac)})")
            else:
                findings.append(f"{label} within optimal range ({_pct(frac)})")

        if efficiency >= 0.90:
            findings.append(f"Excellent sleep efficiency ({efficiency * 100:.0f}%)")
        elif efficiency >= 0.80:
            findings.append(f"Good sleep efficiency ({efficiency * 100:.0f}%)")
        else:
            findings.append(f"Sleep efficiency could improve ({efficiency * 100:.0f}%)")

        if consistency.unavailable:
            findings.append("Usual bedtime still being learned")
        elif consistency.score >= 80:
            findings.append("Consistent sleep schedule maintained")
        elif consistency.score >= 60:
            findings.append("Minor deviation from usual sleep schedule")
        else:
            findings.append("Significant deviation from usual sleep schedule")

        return findings


def sleep_directive(final_score: int) -> str:
    if final_score >= 85:
        return "Excellent sleep quality. Your body is well-rested and ready for optimal performance."
    if final_score >= 70:
        return "Good sleep quality. Maintain your current sleep habits for continued improvement."
    if final_score >= 50:
        return "Fair sleep quality. Consider improving your sleep routine for better recovery."
    return "Poor sleep quality. Focus on sleep hygiene and consider adjusting your schedule."
