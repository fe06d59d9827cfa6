"""Simulate three weeks of nights and print the daily scores.

Generates synthetic sleep stages and overnight physiology into an
in-memory sample source, scores the last fortnight, then delivers a
late HRV sample for the most recent night and shows the recalculated
record.

Usage:
    python scripts/simulate_fortnight.py
"""

import asyncio
import datetime
import random
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

import app.db.base  # noqa: F401
from app.core.logging import configure_logging
from app.schemas.samples import MetricType, Sample, SleepStage
from app.schemas.score import AvailableScore, ScoreKind
from app.scoring.source import InMemorySampleSource
from app.scoring.store import ScoreStore
from app.services.scoring_service import ScoringService

TODAY = datetime.date(2026, 10, 19)
NIGHTS = 21
SEED = 7

# (stage, minutes) cycle of one ~90 min sleep cycle.
CYCLE = [
    (SleepStage.ASLEEP_CORE, 35),
    (SleepStage.ASLEEP_DEEP, 20),
    (SleepStage.ASLEEP_CORE, 15),
    (SleepStage.ASLEEP_REM, 20),
]


def night_samples(wake_date: datetime.date, rng: random.Random) -> list[Sample]:
    bedtime = datetime.datetime.combine(
        wake_date - datetime.timedelta(days=1), datetime.time(22, 45),
    ) + datetime.timedelta(minutes=rng.randint(-30, 40))

    samples = [
        Sample(
            metric_type=MetricType.SLEEP_STAGE,
            start=bedtime,
            end=bedtime + datetime.timedelta(minutes=12),
            stage=SleepStage.AWAKE,
        )
    ]
    t = bedtime + datetime.timedelta(minutes=12)
    cycles = rng.choice([4, 5, 5, 5, 6])
    for _ in range(cycles):
        for stage, minutes in CYCLE:
            length = datetime.timedelta(minutes=max(5, minutes + rng.randint(-5, 5)))
            samples.append(Sample(metric_type=MetricType.SLEEP_STAGE, start=t, end=t + length, stage=stage))
            t += length
    samples.append(Sample(
        metric_type=MetricType.SLEEP_STAGE,
        start=bedtime,
        end=t,
        stage=SleepStage.IN_BED,
    ))

    night = [bedtime + (t - bedtime) * i / 6 for i in range(1, 6)]
    hrv = rng.gauss(55, 6)
    for ts in night:
        samples.append(Sample(metric_type=MetricType.HRV, start=ts, end=ts, value=max(15.0, hrv + rng.gauss(0, 4))))
        samples.append(Sample(metric_type=MetricType.RESPIRATORY_RATE, start=ts, end=ts, value=rng.gauss(14.5, 0.6)))
        samples.append(Sample(metric_type=MetricType.OXYGEN_SATURATION, start=ts, end=ts, value=min(100.0, rng.gauss(97, 0.8))))
        samples.append(Sample(metric_type=MetricType.RESTING_HEART_RATE, start=ts, end=ts, value=rng.gauss(58, 2.5)))

    walk = datetime.datetime.combine(wake_date, datetime.time(17, 30))
    samples.append(Sample(metric_type=MetricType.WALKING_HEART_RATE, start=walk, end=walk, value=rng.gauss(98, 4)))
    return samples


async def main() -> None:
    rng = random.Random(SEED)
    source = InMemorySampleSource()
    for offset in range(NIGHTS, 0, -1):
        source.add(*night_samples(TODAY - datetime.timedelta(days=offset - 1), rng), notify=False)

    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)

    now = datetime.datetime.combine(TODAY, datetime.time(18, 0))
    service = ScoringService(source, ScoreStore(engine), debounce_seconds=0.1, clock=lambda: now)
    await service.start()

    print("=" * 78)
    print(f"{'Date':<12} {'Sleep':>6} {'Recovery':>9}  Directive")
    print("=" * 78)
    for offset in range(13, -1, -1):
        day = TODAY - datetime.timedelta(days=offset)
        sleep = await service.get_score(day, ScoreKind.SLEEP)
        recovery = await service.get_score(day, ScoreKind.RECOVERY)
        if not isinstance(sleep, AvailableScore) or not isinstance(recovery, AvailableScore):
            print(f"{day!s:<12} {'-':>6} {'-':>9}  {getattr(sleep, 'reason', '')}")
            continue
        flag = "*" if recovery.partial else " "
        print(
            f"{day!s:<12} {sleep.record.final_score:>6} {recovery.record.final_score:>8}{flag}  "
            f"{recovery.record.directive[:44]}"
        )
    print("(* partial: a component used a neutral value)")

    print()
    print("Late HRV sample for last night arrives...")
    updates = service.subscribe()
    late = datetime.datetime.combine(TODAY, datetime.time(5, 50))
    source.add(Sample(metric_type=MetricType.HRV, start=late, end=late, value=95.0))
    await service.controller.wait_idle()

    while not updates.empty():
        event = updates.get_nowait()
        print(
            f"  {event.date} {event.kind.value:<8} {event.previous_score} -> {event.final_score}"
            f" (changed={event.changed})"
        )
    service.unsubscribe(updates)

    recovery = await service.get_score(TODAY, ScoreKind.RECOVERY)
    if isinstance(recovery, AvailableScore):
        print()
        for component in recovery.record.components:
            print(f"  {component.name:<8} {component.score:5.1f} x {component.weight:.2f}  {component.description}")

    await service.stop()


if __name__ == "__main__":
    configure_logging()
    asyncio.run(main())
