#!/usr/bin/env python3
"""
Snap every field agent trail in a time window to roads and print a report.

Usage:
  python -m scripts.snap_trails --from 2024-05-01T00:00:00Z --to 2024-05-02T00:00:00Z
  python -m scripts.snap_trails --user 64f0c2 --mode walking
"""
import argparse
import asyncio
import logging
import sys

from clients.tracking_client import FetchError
from fieldtrack.config import settings
from fieldtrack.models import TravelMode
from fieldtrack.session import TrailTrackingSession
from fieldtrack.track_geometry import format_distance, format_duration, trail_length


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Snap field agent trails to roads via OSRM.")
    parser.add_argument("--user", dest="user_id", default=None, help="Only this user id")
    parser.add_argument("--from", dest="from_", default=None, help="ISO-8601 lower bound")
    parser.add_argument("--to", dest="to", default=None, help="ISO-8601 upper bound")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in TravelMode],
        default=TravelMode.driving.value,
        help="Travel mode (default: driving)",
    )
    parser.add_argument("--token", default=None, help="Bearer token (default: FIELDTRACK_API_TOKEN)")
    return parser.parse_args(argv)


def _print_progress(processed: int, total: int):
    print(f"  snapped {processed}/{total}", file=sys.stderr)


async def run(args: argparse.Namespace) -> int:
    async with TrailTrackingSession.from_settings(settings, token=args.token) as session:
        try:
            added = await session.load_initial(user_id=args.user_id, from_=args.from_, to=args.to)
        except FetchError as e:
            if e.is_unauthorized:
                print("Tracking API rejected the token (401).", file=sys.stderr)
            else:
                print(f"Tracking API error: {e}", file=sys.stderr)
            return 1

        trails = session.aggregator.to_trails()
        print(f"Loaded {added} tracks, {len(trails)} trails")
        if not trails:
            return 0

        results = await session.snap_all(args.mode, on_progress=_print_progress)

        for trail in trails:
            raw = format_distance(trail_length(trail.path))
            route = results.get(trail.user.id)
            label = f"{trail.user.display_name} ({trail.user.id})"
            if route is None:
                print(f"{label}: {len(trail.path)} pts, raw {raw}, no route")
            else:
                print(
                    f"{label}: {len(trail.path)} pts, raw {raw}, "
                    f"snapped {format_distance(route.distance_meters)} "
                    f"in {format_duration(route.duration_seconds)}"
                )
    return 0


def main(argv=None) -> int:
    logging.basicConfig(level=settings.LOG_LEVEL)
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    raise SystemExit(main())
