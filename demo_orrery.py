#!/usr/bin/env python3
"""Top-down plot of the planetary orbits and positions at a given date."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parent / "backend"))

from orbit_engine import OrbitEngine  # noqa: E402

COLORS = {
    'mercury': 'silver',
    'venus': 'wheat',
    'earth': 'deepskyblue',
    'mars': 'orangered',
    'jupiter': 'sandybrown',
    'saturn': 'khaki',
    'uranus': 'paleturquoise',
    'neptune': 'royalblue',
    'pluto': 'rosybrown',
}

ORBIT_POINTS = 360


def build_figure(engine: OrbitEngine, date: datetime, max_radius_au: float | None = None):
    fig, ax = plt.subplots(figsize=(10, 10))
    ax.set_facecolor('black')
    fig.patch.set_facecolor('black')

    ax.scatter([0], [0], color='yellow', s=200, label='Sun', marker='o')

    positions = engine.all_positions(date)
    for name in engine.planets:
        color = COLORS.get(name, 'white')
        orbit = np.array(engine.generate_orbit_points(name, ORBIT_POINTS, date))
        closed = np.vstack([orbit, orbit[:1]])
        ax.plot(closed[:, 0], closed[:, 1], color=color, linestyle='--', linewidth=0.8, alpha=0.7)

        pos = positions[name]
        ax.plot(
            [pos.distance * np.cos(pos.angle)],
            [pos.distance * np.sin(pos.angle)],
            'o', color=color, markersize=6, label=name.capitalize(),
        )

    if max_radius_au is None:
        max_radius_au = max(engine.planets[name].a for name in engine.planets) * 1.5
    ax.set_xlim([-max_radius_au, max_radius_au])
    ax.set_ylim([-max_radius_au, max_radius_au])
    ax.set_aspect('equal')

    ax.set_xlabel("X (AU)", color='white')
    ax.set_ylabel("Y (AU)", color='white')
    ax.tick_params(axis='x', colors='white')
    ax.tick_params(axis='y', colors='white')
    ax.grid(color='gray', linestyle=':', linewidth=0.5)
    utc_date = date.replace(tzinfo=timezone.utc) if date.tzinfo is None else date.astimezone(timezone.utc)
    ax.set_title(f"Heliocentric ecliptic positions\n{utc_date.strftime('%Y-%m-%d %H:%M UTC')}", color='white', fontsize=10)

    legend = ax.legend(facecolor='darkslategray', labelcolor='white', fontsize=8, loc='upper right')
    for text in legend.get_texts():
        text.set_color("white")

    return fig, ax


def main(argv: list[str]) -> int:
    date = datetime.now(timezone.utc)
    save_path = None

    args = list(argv)
    if "--save" in args:
        idx = args.index("--save")
        if idx + 1 >= len(args):
            print("Missing path after --save")
            return 2
        save_path = args[idx + 1]
        del args[idx:idx + 2]

    if args:
        try:
            date = datetime.fromisoformat(args[0].replace("Z", "+00:00"))
        except ValueError:
            print(f"Invalid date: {args[0]!r} (expected ISO 8601)")
            return 2
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)

    engine = OrbitEngine()
    fig, _ax = build_figure(engine, date)

    if save_path:
        fig.savefig(save_path, dpi=150, facecolor=fig.get_facecolor())
        print(f"Saved {save_path}")
        return 0

    try:
        plt.show()
    except Exception as e:
        print(f"Could not display plot: {e}")
        print("Ensure you have a graphical backend configured for matplotlib (e.g., TkAgg, Qt5Agg).")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
