import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import numpy as np

from camera import (
    DEFAULT_CAM_POS,
    DEFAULT_CAM_TARGET,
    CameraController,
    CameraPose,
    LiveAnchor,
    StaticAnchor,
)
from orbit_engine import OrbitEngine

# Latest instant a datetime can hold; the simulated clock saturates here.
MAX_SIM_DATE = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class MoonSpec:
    name: str
    radius: float
    distance: float  # From the parent body (scene units)
    orbital_period: float  # Days


@dataclass(frozen=True)
class BodySpec:
    name: str
    radius: float  # Display radius (scene units)
    distance: float  # Orbit radius in the scene (scene units)
    ephemeris_name: Optional[str] = None
    decorative: bool = False
    orbital_period: float = 0.0  # Decorative bodies only (arbitrary units)
    rotation_period: float = 0.0  # Sidereal day in Earth days, negative for retrograde
    idle_spin: float = 0.0  # Radians per real second, for bodies without a rotation period
    moons: Tuple[MoonSpec, ...] = ()


# Scene distances are artistic, not to scale.
BODY_CATALOG: List[BodySpec] = [
    BodySpec('sun', radius=4.0, distance=0.0, idle_spin=0.02),
    BodySpec('mercury', radius=0.4, distance=10.0, ephemeris_name='mercury', rotation_period=58.646),
    BodySpec('venus', radius=0.9, distance=15.0, ephemeris_name='venus', rotation_period=-243.025),
    BodySpec('earth', radius=1.0, distance=21.0, ephemeris_name='earth', rotation_period=0.99727,
             moons=(MoonSpec('moon', radius=0.27, distance=2.5, orbital_period=27.321661),)),
    BodySpec('mars', radius=0.6, distance=27.0, ephemeris_name='mars', rotation_period=1.02596),
    BodySpec('jupiter', radius=2.4, distance=38.0, ephemeris_name='jupiter', rotation_period=0.41354),
    BodySpec('saturn', radius=2.0, distance=50.0, ephemeris_name='saturn', rotation_period=0.44401),
    BodySpec('uranus', radius=1.4, distance=61.0, ephemeris_name='uranus', rotation_period=-0.71833),
    BodySpec('neptune', radius=1.3, distance=70.0, ephemeris_name='neptune', rotation_period=0.67125),
    BodySpec('pluto', radius=0.3, distance=78.0, ephemeris_name='pluto', rotation_period=-6.38723),
    BodySpec('github', radius=0.8, distance=88.0, decorative=True, orbital_period=6000.0, idle_spin=0.015),
    BodySpec('linkedin', radius=0.8, distance=96.0, decorative=True, orbital_period=7500.0, idle_spin=0.015),
]


class SimulationState:
    SPEED_MODES = ('artistic', 'realtime')
    # Artistic mode: simulated days per real second at 1x.
    ARTISTIC_DAYS_PER_SECOND = 2.0

    def __init__(self, sim_date: Optional[datetime] = None):
        self.sim_date = _utc(sim_date) if sim_date is not None else datetime.now(timezone.utc)
        self.speed_mode = 'artistic'
        self.speed_multiplier = 1.0
        self.is_running = True
        self.paused = False

    @property
    def moving(self) -> bool:
        return self.is_running and not self.paused

    def step_days(self, delta_seconds: float) -> float:
        """Simulated days covered by delta_seconds of real time."""
        delta_seconds = max(0.0, float(delta_seconds))
        if not self.moving:
            return 0.0
        if self.speed_mode == 'realtime':
            return delta_seconds / 86400.0
        return delta_seconds * self.speed_multiplier * self.ARTISTIC_DAYS_PER_SECOND

    def advance(self, delta_seconds: float) -> datetime:
        delta_seconds = max(0.0, float(delta_seconds))
        if not self.moving:
            return self.sim_date

        try:
            if self.speed_mode == 'realtime':
                step = timedelta(seconds=delta_seconds)
            else:
                step = timedelta(days=self.step_days(delta_seconds))
            self.sim_date = self.sim_date + step
        except OverflowError:
            self.sim_date = MAX_SIM_DATE
        return self.sim_date

    def set_speed(self, multiplier: float) -> None:
        multiplier = float(multiplier)
        if not math.isfinite(multiplier):
            raise ValueError(f"Speed must be finite: {multiplier!r}")
        self.speed_mode = 'artistic'
        self.speed_multiplier = max(0.0, multiplier)

    def set_mode(self, mode: str) -> None:
        if mode not in self.SPEED_MODES:
            raise ValueError(f"Unknown speed mode: {mode!r}")
        self.speed_mode = mode
        if mode == 'realtime':
            self.speed_multiplier = 1.0

    def set_date(self, date: datetime) -> None:
        self.sim_date = _utc(date)

    def snapshot(self) -> dict:
        return {
            "sim_date": self.sim_date.isoformat(),
            "speed_mode": self.speed_mode,
            "speed_multiplier": self.speed_multiplier,
            "is_running": self.is_running,
            "paused": self.paused,
        }


def _utc(date: datetime) -> datetime:
    if date.tzinfo is None:
        return date.replace(tzinfo=timezone.utc)
    return date.astimezone(timezone.utc)


class SolarSystemScene:
    """
    Owns everything one rendered scene needs per frame: the simulated clock,
    the orbit pivot rotations, the camera pose and its controller.
    """

    def __init__(
        self,
        engine: Optional[OrbitEngine] = None,
        camera: Optional[CameraController] = None,
        bodies: Optional[List[BodySpec]] = None,
        sim_date: Optional[datetime] = None,
    ):
        self.engine = engine or OrbitEngine()
        self.camera = camera or CameraController()
        self.sim = SimulationState(sim_date)
        self.pose = CameraPose()

        self.bodies: Dict[str, BodySpec] = {b.name: b for b in (bodies if bodies is not None else BODY_CATALOG)}
        # Y-rotation of each body's orbit pivot, renderer convention.
        self.pivot_rotation: Dict[str, float] = {name: 0.0 for name in self.bodies}
        # Axial rotation of each body mesh and Y-rotation of each moon pivot.
        self.spin: Dict[str, float] = {name: 0.0 for name in self.bodies}
        self.moon_rotation: Dict[str, float] = {
            moon.name: 0.0 for body in self.bodies.values() for moon in body.moons
        }
        self.locked: Optional[str] = None
        self.distances: Dict[str, float] = {}

        self.apply_ephemeris(self.sim.sim_date)

    def apply_ephemeris(self, date: datetime) -> None:
        positions = self.engine.all_positions(date)
        for body in self.bodies.values():
            if body.decorative or body.ephemeris_name is None:
                continue
            pos = positions.get(body.ephemeris_name)
            if pos is None:
                continue
            # The pivot rotates clockwise for positive Y, the ecliptic angle is counter-clockwise.
            self.pivot_rotation[body.name] = -pos.angle
            self.distances[body.name] = pos.distance

    def _advance_rotations(self, delta_seconds: float, step_days: float) -> None:
        # Nothing turns while the clock is stopped or paused.
        if not self.sim.moving:
            return

        if not math.isfinite(step_days):
            step_days = 0.0

        wrap = OrbitEngine._wrap_to_pi
        for body in self.bodies.values():
            if body.decorative and body.orbital_period > 0:
                rate = 2 * math.pi / body.orbital_period
                self.pivot_rotation[body.name] = wrap(self.pivot_rotation[body.name] + rate * delta_seconds * 60)

            if body.rotation_period:
                sign = -1.0 if body.rotation_period < 0 else 1.0
                rad_per_day = 2 * math.pi / abs(body.rotation_period)
                self.spin[body.name] = wrap(self.spin[body.name] + sign * rad_per_day * step_days)
            elif body.idle_spin:
                self.spin[body.name] = wrap(self.spin[body.name] + body.idle_spin * delta_seconds)

            for moon in body.moons:
                rad_per_day = 2 * math.pi / moon.orbital_period
                self.moon_rotation[moon.name] = wrap(self.moon_rotation[moon.name] + rad_per_day * step_days)

    def world_position(self, name: str) -> np.ndarray:
        body = self.bodies[name]
        phi = self.pivot_rotation[name]
        return np.array([body.distance * math.cos(phi), 0.0, -body.distance * math.sin(phi)])

    def moon_world_position(self, body_name: str, moon: MoonSpec) -> np.ndarray:
        # The moon pivot sits on the parent and turns with the parent's orbit pivot.
        phi = self.pivot_rotation[body_name] + self.moon_rotation[moon.name]
        offset = np.array([moon.distance * math.cos(phi), 0.0, -moon.distance * math.sin(phi)])
        return self.world_position(body_name) + offset

    def anchor_for(self, name: str) -> LiveAnchor:
        return LiveAnchor(lambda: self.world_position(name))

    def focus_body(self, name: str, now_ms: float) -> bool:
        if not isinstance(name, str):
            return False
        body = self.bodies.get(name)
        if body is None:
            return False

        standoff = body.radius * 7 + 5
        self.locked = name
        self.camera.begin_transition(self.anchor_for(name), standoff, self.pose, now_ms)
        return True

    def reset_camera(self, now_ms: float) -> None:
        self.locked = None
        self.camera.begin_transition(
            StaticAnchor(DEFAULT_CAM_TARGET),
            0.0,
            self.pose,
            now_ms,
            explicit_end_position=DEFAULT_CAM_POS,
        )

    def unlock(self) -> None:
        self.locked = None

    def cancel_transition(self) -> None:
        self.camera.cancel()

    def set_sim_date(self, date: datetime) -> None:
        self.sim.set_date(date)
        self.apply_ephemeris(self.sim.sim_date)

    def tick(self, delta_seconds: float, now_ms: float) -> dict:
        # Date, then ephemeris, then camera: the camera must see this frame's positions.
        delta_seconds = max(0.0, float(delta_seconds))
        step_days = self.sim.step_days(delta_seconds)
        date = self.sim.advance(delta_seconds)
        self.apply_ephemeris(date)
        self._advance_rotations(delta_seconds, step_days)

        locked_anchor = self.anchor_for(self.locked) if self.locked is not None else None
        transitioning = self.camera.advance(self.pose, now_ms, locked_anchor)

        frame = self.snapshot()
        frame["camera"]["transitioning"] = transitioning
        return frame

    def snapshot(self) -> dict:
        bodies = {}
        for name, body in self.bodies.items():
            bodies[name] = {
                "rotation_y": self.pivot_rotation[name],
                "position": [float(v) for v in self.world_position(name)],
                "distance_au": self.distances.get(name),
                "decorative": body.decorative,
                "spin": self.spin[name],
                "moons": {
                    moon.name: {
                        "rotation_y": self.moon_rotation[moon.name],
                        "position": [float(v) for v in self.moon_world_position(name, moon)],
                    }
                    for moon in body.moons
                },
            }

        camera = self.pose.to_dict()
        camera["transitioning"] = self.camera.active
        camera["locked"] = self.locked

        return {
            "simulation": self.sim.snapshot(),
            "bodies": bodies,
            "camera": camera,
        }
