from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

from drone_survey.models import Boundary, Waypoint, WaypointAction  # noqa: E402


def plot_flight_path(boundary: Boundary, waypoints: list[Waypoint], out_path: str | Path, title: str = "") -> Path:
    """Boundary ring, flight path and takeoff/land marker, saved as an image."""
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    fig, ax = plt.subplots(figsize=(6, 6))

    ring_lng = [p[0] for p in boundary.coordinates]
    ring_lat = [p[1] for p in boundary.coordinates]
    ax.plot(ring_lng, ring_lat, "r--", label="boundary")

    ax.plot([w.longitude for w in waypoints], [w.latitude for w in waypoints], "-", lw=0.8, label="path")
    captures = [w for w in waypoints if w.action is WaypointAction.CAPTURE]
    ax.plot([w.longitude for w in captures], [w.latitude for w in captures], ".", ms=3, label="capture")
    if waypoints:
        home = waypoints[0]
        ax.plot([home.longitude], [home.latitude], "k^", label="takeoff/land")

    ax.set_xlabel("longitude")
    ax.set_ylabel("latitude")
    ax.set_title(title or f"{len(waypoints)} waypoints")
    ax.set_aspect("equal", adjustable="datalim")
    ax.legend(loc="best", fontsize="small")
    fig.savefig(out, dpi=100)
    plt.close(fig)
    return out
