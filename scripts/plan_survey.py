#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from drone_survey.config import configure_logging, load_settings
from drone_survey.errors import InvalidBoundary, InvalidParameters
from drone_survey.models import Boundary, FlightParameters, PatternType
from drone_survey.planner import estimate_flight, generate


def _load_boundary(path: Path) -> Boundary:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, list):
        return Boundary(coordinates=[tuple(p) for p in data])
    if data.get("type") == "Feature":
        data = data["geometry"]
    return Boundary.from_geojson(data)


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Generate a survey flight path for a polygon")
    ap.add_argument("--boundary", required=True, help="GeoJSON Polygon/Feature or [[lng,lat],...] JSON file")
    ap.add_argument("--pattern", default="grid", choices=[p.value for p in PatternType])
    ap.add_argument("--altitude", type=float, default=40.0)
    ap.add_argument("--speed", type=float, default=8.0)
    ap.add_argument("--overlap", type=float, default=30.0)
    ap.add_argument("--out", default=None, help="Write waypoints JSON here (default: stdout summary only)")
    ap.add_argument("--plot", default=None, help="Write a PNG of the path here")
    args = ap.parse_args(argv)

    settings = load_settings()
    configure_logging(settings)

    try:
        boundary = _load_boundary(Path(args.boundary))
        params = FlightParameters(altitude=args.altitude, speed=args.speed, overlap=args.overlap)
        wps = generate(boundary, args.pattern, params, max_waypoints=settings.max_waypoints)
    except (InvalidBoundary, InvalidParameters) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 2

    est = estimate_flight(wps, params.speed)
    print(f"Pattern: {args.pattern}; waypoints: {len(wps)}; "
          f"distance: {est.distance_m:.1f} m; duration: {est.duration_s:.0f} s")

    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps([w.model_dump(mode="json") for w in wps], indent=2), encoding="utf-8")
        print(f"Wrote {out}")
    if args.plot:
        from drone_survey.vis.plot import plot_flight_path

        print(f"Wrote {plot_flight_path(boundary, wps, args.plot, title=f'{args.pattern} survey')}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
