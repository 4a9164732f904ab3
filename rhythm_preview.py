#!/usr/bin/env python3
"""
Standalone rhythm preview.

Prints the target curve a rhythm generator would produce for a location and
a pair of bounds, so swings and phase shifts can be tuned before deploying.

Usage:
    python rhythm_preview.py --min 22 --max 28                 # next 24h, hourly
    python rhythm_preview.py --min 70 --max 90 --phase-shift 180
    python rhythm_preview.py --min 0 --max 100 --hours 48 --step-minutes 30 --csv
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

from vivarium.domain.models import RhythmConfig, parse_utc_offset
from vivarium.domain.rhythm import RhythmGenerator


def preview(
    cfg: RhythmConfig,
    absolute_min: float,
    absolute_max: float,
    start: datetime,
    hours: float = 24.0,
    step: timedelta = timedelta(hours=1),
) -> Iterator[tuple[datetime, datetime, float]]:
    """Yield (real time, simulated time, target) samples."""
    if step <= timedelta(0):
        raise ValueError("step must be positive")
    gen = RhythmGenerator(cfg, name="preview")
    gen.bounds.absolute_min = absolute_min
    gen.bounds.absolute_max = absolute_max

    end = start + timedelta(hours=hours)
    t = start
    while t <= end:
        emission = gen.tick(t)
        yield t, emission.simulated_time, emission.target
        t += step


def main(argv: Optional[list[str]] = None) -> None:
    p = argparse.ArgumentParser(description="Preview a rhythm generator target curve")

    p.add_argument("--min", dest="absolute_min", type=float, required=True, help="Absolute minimum")
    p.add_argument("--max", dest="absolute_max", type=float, required=True, help="Absolute maximum")

    p.add_argument("--latitude", type=float, default=50.98)
    p.add_argument("--longitude", type=float, default=4.32)
    p.add_argument("--timezone", default="UTC+1", help='UTC offset, e.g. "UTC+1"')
    p.add_argument("--orbital-period", type=float, default=365.25, help="Days per year")
    p.add_argument("--rotational-period", type=float, default=24.0, help="Hours per day")
    p.add_argument("--time-scale", type=float, default=1.0, help="Simulation speed multiplier")
    p.add_argument("--phase-shift", type=float, default=0.0, help="Diurnal phase shift in degrees")
    p.add_argument("--diurnal-swing", type=float, default=1.0)
    p.add_argument("--seasonal-swing", type=float, default=0.5)
    p.add_argument("--decimals", type=int, default=1)

    p.add_argument("--start", help="ISO-8601 start time (default: now, UTC)")
    p.add_argument("--hours", type=float, default=24.0, help="Real-time horizon")
    p.add_argument("--step-minutes", type=float, default=60.0)
    p.add_argument("--csv", action="store_true", help="Comma separated output")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = p.parse_args(argv)
    if args.step_minutes <= 0:
        p.error("--step-minutes must be > 0")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    cfg = RhythmConfig(
        latitude=args.latitude,
        longitude=args.longitude,
        timezone_offset_hours=parse_utc_offset(args.timezone),
        orbital_period_days=args.orbital_period,
        rotational_period_hours=args.rotational_period,
        time_scale=args.time_scale,
        phase_shift=args.phase_shift,
        diurnal_swing=args.diurnal_swing,
        seasonal_swing=args.seasonal_swing,
        decimals=args.decimals,
    )

    start = datetime.fromisoformat(args.start) if args.start else datetime.now(timezone.utc)
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)

    samples = preview(cfg, args.absolute_min, args.absolute_max, start,
                      hours=args.hours, step=timedelta(minutes=args.step_minutes))
    if args.csv:
        print("real_time,simulated_time,target")
    for real, sim, target in samples:
        if args.csv:
            print(f"{real.isoformat()},{sim.isoformat()},{target}")
        else:
            print(f"{real:%Y-%m-%d %H:%M}  sim {sim:%Y-%m-%d %H:%M}  target {target}")


if __name__ == "__main__":
    main()
