#!/usr/bin/env python3
"""
Test script for the Portfolio Solar System backend
"""

import json
import math
import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parent / 'backend'))

from orbit_engine import (  # noqa: E402
    DEFAULT_RESULT,
    J2000_EPOCH,
    OrbitEngine,
    centuries_since_j2000,
    date_to_jd,
    normalize_deg,
    solve_kepler_equation,
)
from camera import (  # noqa: E402
    DEFAULT_CAM_POS,
    DEFAULT_CAM_TARGET,
    CameraController,
    CameraPose,
    LiveAnchor,
    StaticAnchor,
    ease_in_out_quart,
)
from scene import MAX_SIM_DATE, SolarSystemScene, SimulationState  # noqa: E402


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def unwrap(angles):
    unwrapped = [angles[0]]
    for a in angles[1:]:
        prev = unwrapped[-1]
        while a - prev <= -math.pi:
            a += 2 * math.pi
        while a - prev > math.pi:
            a -= 2 * math.pi
        unwrapped.append(a)
    return unwrapped


def angle_diff(a, b):
    return (a - b + math.pi) % (2 * math.pi) - math.pi


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def test_dependencies():
    print("Testing Dependencies...")
    import numpy
    print(f"  ✅ NumPy version: {numpy.__version__}")

    import fastapi
    print(f"  ✅ FastAPI version: {fastapi.__version__}")

    import uvicorn
    print(f"  ✅ Uvicorn version: {uvicorn.__version__}")

    import websockets
    ws_version = getattr(websockets, "__version__", None)
    if not ws_version:
        try:
            from importlib.metadata import version as pkg_version
            ws_version = pkg_version("websockets")
        except Exception:
            ws_version = "unknown"
    print(f"  ✅ WebSockets version: {ws_version}")

    import matplotlib
    print(f"  ✅ Matplotlib version: {matplotlib.__version__}")


# ---------------------------------------------------------------------------
# Time conversion / Kepler solver
# ---------------------------------------------------------------------------

def test_time_conversion():
    print("Testing Julian date conversion...")
    assert date_to_jd(utc(1970, 1, 1)) == 2440587.5
    assert date_to_jd(J2000_EPOCH) == 2451545.0
    assert centuries_since_j2000(J2000_EPOCH) == 0.0

    # 2000 is a leap year and 2100 is not: exactly 36525 days.
    T = centuries_since_j2000(utc(2100, 1, 1, 12))
    assert abs(T - 1.0) < 1e-12, T

    assert centuries_since_j2000(utc(1900, 1, 1)) < 0
    # Naive datetimes are UTC.
    assert centuries_since_j2000(datetime(2024, 6, 1, 3)) == centuries_since_j2000(utc(2024, 6, 1, 3))
    print("  ✅ JD / Julian centuries")


def test_normalize_deg():
    assert normalize_deg(0.0) == 0.0
    assert normalize_deg(180.0) == 180.0
    assert normalize_deg(-180.0) == 180.0
    assert normalize_deg(190.0) == -170.0
    assert normalize_deg(-190.0) == 170.0
    assert abs(normalize_deg(725.0) - 5.0) < 1e-12
    assert abs(normalize_deg(-725.0) + 5.0) < 1e-12


def test_kepler_solver():
    print("Testing Kepler solver...")
    for M in (-179.0, -90.0, -12.5, 0.0, 33.3, 90.0, 180.0):
        assert solve_kepler_equation(M, 0.0) == M

    for e in (0.0, 0.05, 0.2, 0.5, 0.7, 0.9):
        e_star = math.degrees(e)
        for M in np.arange(-180.0, 180.1, 7.5):
            E = solve_kepler_equation(float(M), e)
            residual = E - e_star * math.sin(math.radians(E)) - M
            if abs(residual) > 1e-6:
                raise AssertionError(f"Kepler residual {residual:.3e} deg for M={M}, e={e}")
    print("  ✅ M == E - e* sin(E) for e in [0, 0.9]")


def test_kepler_solver_iteration_cap():
    # One iteration cannot converge at high eccentricity; a finite estimate still comes back.
    E = solve_kepler_equation(5.0, 0.95, max_iter=1)
    assert math.isfinite(E)


# ---------------------------------------------------------------------------
# Ephemeris
# ---------------------------------------------------------------------------

def test_known_epoch_elements():
    engine = OrbitEngine()
    for name, elem in engine.planets.items():
        at_epoch = engine.elements_at(name, J2000_EPOCH)
        if at_epoch != elem:
            raise AssertionError(f"{name}: elements at J2000 differ from table: {at_epoch} != {elem}")
    assert engine.elements_at('vulcan', J2000_EPOCH) is None


def test_earth_at_j2000():
    engine = OrbitEngine()
    pos = engine.position_of('earth', J2000_EPOCH)
    # Heliocentric longitude of the Earth on 2000-01-01.5 is about 100.4 deg, a few days before perihelion.
    assert abs(math.degrees(pos.angle) - 100.38) < 0.5, math.degrees(pos.angle)
    assert 0.98 < pos.distance < 0.99, pos.distance
    print(f"  ✅ Earth at J2000: {math.degrees(pos.angle):.2f} deg, {pos.distance:.4f} AU")


def test_positions_1900_2100():
    print("Testing positions 1900-2100...")
    engine = OrbitEngine()
    date = utc(1900, 1, 1)
    end = utc(2100, 12, 31)
    while date <= end:
        positions = engine.all_positions(date)
        assert list(positions) == list(engine.planets)
        for name, pos in positions.items():
            if not (-math.pi < pos.angle <= math.pi):
                raise AssertionError(f"{name} angle {pos.angle} out of range at {date}")
            if not pos.distance > 0:
                raise AssertionError(f"{name} distance {pos.distance} not positive at {date}")
        date += timedelta(days=97)
    print("  ✅ Angles in (-pi, pi], distances positive")


def test_distance_bounds():
    engine = OrbitEngine()
    date = utc(2024, 3, 20)
    for name, elem in engine.planets.items():
        pos = engine.position_of(name, date)
        # Projected on the ecliptic, so the inclined orbits may come in a little under perihelion.
        r_min = elem.a * (1 - elem.e) * math.cos(math.radians(elem.i)) - 1e-3
        r_max = elem.a * (1 + elem.e) + 1e-3
        if not (r_min <= pos.distance <= r_max):
            raise AssertionError(f"{name} distance {pos.distance} outside [{r_min}, {r_max}]")


def test_determinism():
    engine = OrbitEngine()
    date = utc(2031, 7, 4, 18, 30)
    for name in engine.planets:
        a = engine.position_of(name, date)
        b = engine.position_of(name, date)
        assert a == b
    assert OrbitEngine().all_positions(date) == engine.all_positions(date)


def test_unknown_body():
    engine = OrbitEngine()
    pos = engine.position_of('github', J2000_EPOCH)
    assert pos == DEFAULT_RESULT
    assert pos.angle == 0 and pos.distance == 1
    assert engine.get_planet_position('github', J2000_EPOCH) == (1.0, 0.0, 0.0)


def test_full_revolution():
    print("Testing one revolution per orbital period...")
    engine = OrbitEngine()
    start = utc(2010, 1, 1)
    for name, max_step in (('mercury', 0.15), ('earth', 0.05), ('mars', 0.05)):
        period = engine.planets[name].period_days
        steps = int(round(period))
        angles = [
            engine.position_of(name, start + timedelta(days=period * k / steps)).angle
            for k in range(steps + 1)
        ]
        unwrapped = unwrap(angles)
        deltas = [unwrapped[k + 1] - unwrapped[k] for k in range(steps)]

        total = unwrapped[-1] - unwrapped[0]
        if abs(total - 2 * math.pi) > 1e-2:
            raise AssertionError(f"{name}: revolution sums to {total:.5f} rad")
        if min(deltas) <= 0:
            raise AssertionError(f"{name}: angle went backwards")
        if max(deltas) > max_step:
            raise AssertionError(f"{name}: daily step {max(deltas):.4f} rad too large")
        print(f"  ✅ {name}: {total:.5f} rad over {period:.1f} days")


def test_orbit_points():
    engine = OrbitEngine()
    points = engine.generate_orbit_points('earth', 90)
    assert len(points) == 90
    elem = engine.planets['earth']
    for p in points:
        r = math.sqrt(p[0] ** 2 + p[1] ** 2 + p[2] ** 2)
        assert elem.a * (1 - elem.e) - 1e-3 <= r <= elem.a * (1 + elem.e) + 1e-3

    # Pluto's inclination lifts its orbit out of the ecliptic.
    pluto = engine.generate_orbit_points('pluto', 36)
    assert max(abs(p[2]) for p in pluto) > 5.0

    try:
        engine.generate_orbit_points('vulcan')
    except ValueError:
        pass
    else:
        raise AssertionError("Expected ValueError for unknown planet")


def test_planet_info():
    info = OrbitEngine().get_planet_info()
    assert list(info) == ['mercury', 'venus', 'earth', 'mars', 'jupiter', 'saturn', 'uranus', 'neptune', 'pluto']
    assert abs(info['earth']['period'] - 365.25) < 0.1
    assert abs(info['mars']['period'] - 687.0) < 0.5


# ---------------------------------------------------------------------------
# Camera
# ---------------------------------------------------------------------------

class MovingPoint:
    def __init__(self, xyz):
        self.xyz = np.array(xyz, dtype=float)

    def __call__(self):
        return self.xyz


def test_ease_in_out_quart():
    assert ease_in_out_quart(0.0) == 0.0
    assert ease_in_out_quart(0.5) == 0.5
    assert ease_in_out_quart(1.0) == 1.0
    assert abs(ease_in_out_quart(0.25) - 8 * 0.25 ** 4) < 1e-15
    assert abs(ease_in_out_quart(0.75) - (1 - 0.5 ** 4 / 2)) < 1e-15


def test_explicit_end_position():
    print("Testing camera transitions...")
    end = np.array([15.0, 20.0, 30.0])
    for standoff in (0.0, 3.0, 250.0):
        camera = CameraController()
        pose = CameraPose(position=[40.0, 5.0, -12.0], target=[3.0, 0.0, 1.0])
        camera.begin_transition(StaticAnchor([0.0, 0.0, 0.0]), standoff, pose, now_ms=1000.0,
                                explicit_end_position=end)

        assert camera.advance(pose, now_ms=1800.0) is True
        assert camera.active

        assert camera.advance(pose, now_ms=2600.0) is True
        assert not camera.active
        assert np.array_equal(pose.position, end), pose.position
        assert np.array_equal(pose.target, np.zeros(3)), pose.target

        # Nothing in flight any more.
        assert camera.advance(pose, now_ms=3000.0) is False
    print("  ✅ Explicit end position reached exactly")


def test_halfway_point():
    camera = CameraController()
    pose = CameraPose(position=[0.0, 0.0, 0.0], target=[0.0, 0.0, 0.0])
    camera.begin_transition(StaticAnchor([10.0, 0.0, 0.0]), 0.0, pose, now_ms=0.0,
                            explicit_end_position=[0.0, 8.0, 0.0])
    camera.advance(pose, now_ms=800.0)
    assert np.allclose(pose.position, [0.0, 4.0, 0.0])
    assert np.allclose(pose.target, [5.0, 0.0, 0.0])


def test_standoff_offset_and_height_clamp():
    camera = CameraController()
    pose = CameraPose(position=[0.0, 10.0, 20.0], target=[0.0, 0.0, 0.0])
    camera.begin_transition(StaticAnchor([30.0, 0.0, 0.0]), 5.0, pose, now_ms=0.0)
    camera.advance(pose, now_ms=1600.0)
    direction = np.array([0.0, 10.0, 20.0]) / math.sqrt(500.0)
    assert np.allclose(pose.position, np.array([30.0, 0.0, 0.0]) + direction * 5.0)
    assert np.allclose(pose.target, [30.0, 0.0, 0.0])

    # Looking along the ecliptic at a body below the plane: the camera must stay above it.
    camera = CameraController()
    pose = CameraPose(position=[10.0, 0.0, 0.0], target=[0.0, 0.0, 0.0])
    camera.begin_transition(StaticAnchor([0.0, -5.0, 0.0]), 4.0, pose, now_ms=0.0)
    camera.advance(pose, now_ms=1600.0)
    assert np.allclose(pose.position, [4.0, 1.2, 0.0]), pose.position

    camera = CameraController(min_height_fraction=0.5)
    pose = CameraPose(position=[10.0, 0.0, 0.0], target=[0.0, 0.0, 0.0])
    camera.begin_transition(StaticAnchor([0.0, 0.0, 0.0]), 4.0, pose, now_ms=0.0)
    camera.advance(pose, now_ms=1600.0)
    assert np.allclose(pose.position, [4.0, 2.0, 0.0]), pose.position


def test_coincident_start_pose():
    camera = CameraController()
    pose = CameraPose(position=[1.0, 1.0, 1.0], target=[1.0, 1.0, 1.0])
    camera.begin_transition(StaticAnchor([5.0, 0.0, 0.0]), 2.0, pose, now_ms=0.0)
    camera.advance(pose, now_ms=1600.0)
    assert np.all(np.isfinite(pose.position))
    assert np.allclose(pose.position, [5.0, 0.6, 0.0])


def test_live_retargeting():
    print("Testing live re-targeting...")
    camera = CameraController()
    body = MovingPoint([20.0, 0.0, 0.0])
    pose = CameraPose(position=[0.0, 10.0, 20.0], target=[0.0, 0.0, 0.0])
    camera.begin_transition(LiveAnchor(body), 5.0, pose, now_ms=0.0)

    camera.advance(pose, now_ms=400.0)
    body.xyz = np.array([0.0, 0.0, 25.0])
    camera.advance(pose, now_ms=1200.0)
    body.xyz = np.array([-18.0, 0.0, 11.0])
    assert camera.advance(pose, now_ms=1600.0) is True

    assert np.allclose(pose.target, [-18.0, 0.0, 11.0]), pose.target
    direction = np.array([0.0, 10.0, 20.0]) / math.sqrt(500.0)
    assert np.allclose(pose.position, np.array([-18.0, 0.0, 11.0]) + direction * 5.0)
    print("  ✅ Transition ends on the anchor's position at completion")


def test_new_transition_replaces_previous():
    camera = CameraController()
    pose = CameraPose(position=[0.0, 10.0, 20.0], target=[0.0, 0.0, 0.0])
    camera.begin_transition(StaticAnchor([50.0, 0.0, 0.0]), 9.0, pose, now_ms=0.0)
    second = camera.begin_transition(StaticAnchor([-7.0, 0.0, 3.0]), 4.0, pose, now_ms=0.0)
    assert camera.transition is second

    reference = CameraController()
    ref_pose = CameraPose(position=[0.0, 10.0, 20.0], target=[0.0, 0.0, 0.0])
    reference.begin_transition(StaticAnchor([-7.0, 0.0, 3.0]), 4.0, ref_pose, now_ms=0.0)

    for now in (300.0, 900.0, 1600.0):
        camera.advance(pose, now_ms=now)
        reference.advance(ref_pose, now_ms=now)
        assert np.array_equal(pose.position, ref_pose.position)
        assert np.array_equal(pose.target, ref_pose.target)


def test_retarget_mid_flight_starts_from_current_pose():
    camera = CameraController()
    pose = CameraPose(position=[0.0, 10.0, 20.0], target=[0.0, 0.0, 0.0])
    camera.begin_transition(StaticAnchor([50.0, 0.0, 0.0]), 9.0, pose, now_ms=0.0)
    camera.advance(pose, now_ms=800.0)
    mid_position = pose.position.copy()

    tr = camera.begin_transition(StaticAnchor([-7.0, 0.0, 3.0]), 4.0, pose, now_ms=800.0)
    assert np.array_equal(tr.start_position, mid_position)
    assert tr.start_time_ms == 800.0


def test_cancel_keeps_pose():
    camera = CameraController()
    pose = CameraPose(position=[0.0, 10.0, 20.0], target=[0.0, 0.0, 0.0])
    camera.begin_transition(StaticAnchor([30.0, 0.0, 0.0]), 5.0, pose, now_ms=0.0)
    camera.advance(pose, now_ms=800.0)
    position, target = pose.position.copy(), pose.target.copy()

    camera.cancel()
    assert not camera.active
    assert camera.advance(pose, now_ms=1600.0) is False
    assert np.array_equal(pose.position, position)
    assert np.array_equal(pose.target, target)


def test_idle_tracking():
    camera = CameraController()
    pose = CameraPose(position=[0.0, 10.0, 20.0], target=[0.0, 0.0, 0.0])
    assert camera.advance(pose, now_ms=0.0) is False
    assert np.array_equal(pose.target, np.zeros(3))

    assert camera.advance(pose, now_ms=16.0, locked_anchor=LiveAnchor(MovingPoint([10.0, 0.0, 0.0]))) is False
    assert np.allclose(pose.target, [0.8, 0.0, 0.0])
    assert np.array_equal(pose.position, [0.0, 10.0, 20.0])


# ---------------------------------------------------------------------------
# Scene driver
# ---------------------------------------------------------------------------

def test_scene_maps_ephemeris_to_pivots():
    engine = OrbitEngine()
    scene = SolarSystemScene(engine=engine, sim_date=J2000_EPOCH)
    for name in engine.planets:
        pos = engine.position_of(name, J2000_EPOCH)
        d = scene.bodies[name].distance
        assert scene.pivot_rotation[name] == -pos.angle
        assert np.allclose(scene.world_position(name), [d * math.cos(pos.angle), 0.0, d * math.sin(pos.angle)])
        assert scene.distances[name] == pos.distance
    assert np.allclose(scene.world_position('sun'), np.zeros(3))


def test_scene_speed_modes():
    sim = SimulationState(J2000_EPOCH)
    sim.advance(1.0)
    assert sim.sim_date == J2000_EPOCH + timedelta(days=2)

    sim.set_speed(5)
    sim.advance(0.5)
    assert sim.sim_date == J2000_EPOCH + timedelta(days=7)

    sim.set_mode('realtime')
    before = sim.sim_date
    sim.advance(2.0)
    assert sim.sim_date == before + timedelta(seconds=2)

    sim.paused = True
    before = sim.sim_date
    sim.advance(10.0)
    assert sim.sim_date == before

    sim.paused = False
    sim.advance(-3.0)
    assert sim.sim_date == before

    try:
        sim.set_mode('ludicrous')
    except ValueError:
        pass
    else:
        raise AssertionError("Expected ValueError for unknown speed mode")

    sim.set_speed(0)
    assert sim.speed_mode == 'artistic'
    before = sim.sim_date
    sim.advance(1.0)
    assert sim.sim_date == before


def test_scene_tick_targets_current_frame():
    print("Testing scene frame ordering...")
    scene = SolarSystemScene(sim_date=J2000_EPOCH)
    scene.sim.set_speed(20)
    start_pos = scene.world_position('mercury')

    assert scene.focus_body('mercury', now_ms=0.0)
    assert scene.locked == 'mercury'

    frame = scene.tick(1.0, now_ms=1600.0)
    current = scene.world_position('mercury')
    assert not np.allclose(current, start_pos)
    assert np.allclose(scene.pose.target, current)
    assert frame["camera"]["transitioning"] is True
    assert frame["simulation"]["sim_date"] == (J2000_EPOCH + timedelta(days=40)).isoformat()

    # Locked: the target keeps easing toward the moving body.
    frame = scene.tick(1.0, now_ms=1650.0)
    assert frame["camera"]["transitioning"] is False
    assert frame["camera"]["locked"] == 'mercury'
    assert np.linalg.norm(scene.pose.target - scene.world_position('mercury')) < np.linalg.norm(
        current - scene.world_position('mercury'))
    print("  ✅ Camera reads this frame's body position")


def test_scene_focus_standoff():
    scene = SolarSystemScene(sim_date=J2000_EPOCH)
    assert scene.focus_body('jupiter', now_ms=0.0)
    assert scene.camera.transition.standoff_distance == 2.4 * 7 + 5
    assert scene.focus_body('sun', now_ms=0.0)
    assert scene.camera.transition.standoff_distance == 4.0 * 7 + 5

    scene.camera.cancel()
    assert scene.focus_body('vulcan', now_ms=0.0) is False
    assert not scene.camera.active
    assert scene.locked == 'sun'


def test_scene_reset_camera():
    scene = SolarSystemScene(sim_date=J2000_EPOCH)
    scene.focus_body('earth', now_ms=0.0)
    scene.tick(0.1, now_ms=1600.0)

    scene.reset_camera(now_ms=2000.0)
    assert scene.locked is None
    scene.tick(0.1, now_ms=3600.0)
    assert np.array_equal(scene.pose.position, DEFAULT_CAM_POS)
    assert np.array_equal(scene.pose.target, DEFAULT_CAM_TARGET)


def test_scene_unlock_stops_tracking():
    scene = SolarSystemScene(sim_date=J2000_EPOCH)
    scene.focus_body('mars', now_ms=0.0)
    scene.tick(0.0, now_ms=1600.0)
    scene.unlock()
    target = scene.pose.target.copy()
    scene.tick(1.0, now_ms=1700.0)
    assert np.array_equal(scene.pose.target, target)


def test_scene_decorative_bodies():
    scene = SolarSystemScene(sim_date=J2000_EPOCH)
    assert 'github' not in scene.distances
    before = scene.pivot_rotation['github']
    scene.tick(1.0, now_ms=0.0)
    expected = before + 2 * math.pi / scene.bodies['github'].orbital_period * 60
    assert abs(scene.pivot_rotation['github'] - expected) < 1e-12
    assert scene.focus_body('github', now_ms=0.0)


def test_scene_set_sim_date_and_snapshot():
    scene = SolarSystemScene(sim_date=J2000_EPOCH)
    scene.set_sim_date(datetime(2024, 1, 1))
    assert scene.sim.sim_date == utc(2024, 1, 1)
    assert scene.pivot_rotation['earth'] == -scene.engine.position_of('earth', utc(2024, 1, 1)).angle

    snapshot = json.loads(json.dumps(scene.tick(0.016, now_ms=0.0)))
    assert set(snapshot) == {"simulation", "bodies", "camera"}
    assert snapshot["bodies"]["sun"]["distance_au"] is None


def test_scene_huge_speed_saturates_clock():
    print("Testing clock saturation...")
    scene = SolarSystemScene(sim_date=J2000_EPOCH)
    scene.sim.set_speed(1e12)
    assert scene.focus_body('earth', now_ms=0.0)

    scene.tick(0.1, now_ms=100.0)
    assert scene.sim.sim_date == MAX_SIM_DATE
    scene.tick(0.1, now_ms=800.0)
    scene.tick(0.1, now_ms=1700.0)
    assert not scene.camera.active
    assert np.allclose(scene.pose.target, scene.world_position('earth'))

    snapshot = json.loads(json.dumps(scene.tick(0.1, now_ms=1750.0), allow_nan=False))
    assert snapshot["simulation"]["sim_date"] == MAX_SIM_DATE.isoformat()

    # A multiplier large enough to make the step infinite.
    scene.sim.set_speed(1e308)
    scene.tick(10.0, now_ms=1800.0)
    assert all(math.isfinite(v) for v in scene.spin.values())

    near_end = SolarSystemScene(sim_date=utc(9999, 12, 31, 23, 59))
    near_end.tick(1.0, now_ms=0.0)
    assert near_end.sim.sim_date == MAX_SIM_DATE
    near_end.sim.set_mode('realtime')
    near_end.tick(1.0, now_ms=50.0)
    assert near_end.sim.sim_date == MAX_SIM_DATE

    for bad in (float('inf'), float('-inf'), float('nan')):
        try:
            scene.sim.set_speed(bad)
        except ValueError:
            pass
        else:
            raise AssertionError(f"Expected ValueError for speed {bad!r}")
    assert scene.sim.speed_multiplier == 1e308
    print("  ✅ Clock stops at the last representable date")


def test_scene_axial_spin_and_moons():
    print("Testing axial spin and moons...")
    realtime = SolarSystemScene(sim_date=J2000_EPOCH)
    realtime.sim.set_mode('realtime')
    realtime.tick(1.0, now_ms=0.0)
    assert abs(realtime.spin['earth'] - 2 * math.pi / 0.99727 / 86400) < 1e-12
    assert abs(realtime.moon_rotation['moon'] - 2 * math.pi / 27.321661 / 86400) < 1e-12
    # Retrograde rotators turn the other way.
    assert realtime.spin['venus'] < 0
    assert realtime.spin['uranus'] < 0
    assert realtime.spin['mars'] > 0

    artistic = SolarSystemScene(sim_date=J2000_EPOCH)
    artistic.tick(1.0, now_ms=0.0)
    assert abs(angle_diff(artistic.spin['earth'], 2 * math.pi / 0.99727 * 2)) < 1e-9
    assert abs(angle_diff(artistic.spin['venus'], -2 * math.pi / 243.025 * 2)) < 1e-9
    assert abs(angle_diff(artistic.moon_rotation['moon'], 2 * math.pi / 27.321661 * 2)) < 1e-9

    artistic.sim.set_speed(3)
    before = artistic.moon_rotation['moon']
    artistic.tick(0.5, now_ms=50.0)
    step = angle_diff(artistic.moon_rotation['moon'], before)
    assert abs(step - 2 * math.pi / 27.321661 * 3) < 1e-9

    # Bodies without a sidereal day spin at a fixed rate per real second.
    assert abs(realtime.spin['sun'] - 0.02) < 1e-12
    assert abs(realtime.spin['github'] - 0.015) < 1e-12
    print("  ✅ Spin follows the speed mode")


def test_scene_paused_holds_rotations():
    scene = SolarSystemScene(sim_date=J2000_EPOCH)
    scene.tick(1.0, now_ms=0.0)

    for stop in ('paused', 'stopped'):
        if stop == 'paused':
            scene.sim.paused = True
        else:
            scene.sim.paused = False
            scene.sim.is_running = False
        pivots = dict(scene.pivot_rotation)
        spin = dict(scene.spin)
        moons = dict(scene.moon_rotation)
        scene.tick(1.0, now_ms=100.0)
        assert scene.pivot_rotation == pivots
        assert scene.spin == spin
        assert scene.moon_rotation == moons


def test_scene_snapshot_spin_and_moons():
    scene = SolarSystemScene(sim_date=J2000_EPOCH)
    snapshot = json.loads(json.dumps(scene.tick(1.0, now_ms=0.0)))
    earth = snapshot["bodies"]["earth"]
    assert earth["spin"] == scene.spin['earth']
    assert set(earth["moons"]) == {"moon"}
    moon = earth["moons"]["moon"]
    assert moon["rotation_y"] == scene.moon_rotation['moon']
    offset = np.array(moon["position"]) - np.array(earth["position"])
    assert abs(np.linalg.norm(offset) - 2.5) < 1e-9
    assert offset[1] == 0.0
    assert snapshot["bodies"]["mars"]["moons"] == {}


def test_independent_scenes():
    a = SolarSystemScene(sim_date=J2000_EPOCH)
    b = SolarSystemScene(sim_date=J2000_EPOCH)
    a.focus_body('earth', now_ms=0.0)
    assert a.camera.active and not b.camera.active
    assert b.locked is None


# ---------------------------------------------------------------------------
# Web service
# ---------------------------------------------------------------------------

def _receive_until(ws, message_type, limit=10):
    for _ in range(limit):
        msg = ws.receive_json()
        if msg["type"] == message_type:
            return msg
    raise AssertionError(f"No {message_type!r} message received")


def test_rest_api():
    print("Testing FastAPI Application...")
    from fastapi.testclient import TestClient
    from main import app

    client = TestClient(app)

    planets = client.get("/api/planets").json()
    assert len(planets) == 9 and planets["earth"]["a"] == 1.00000261

    data = client.get("/api/positions", params={"date": "2000-01-01T12:00:00Z"}).json()
    assert set(data["positions"]) == set(planets)
    assert abs(math.degrees(data["positions"]["earth"]["angle"]) - 100.38) < 0.5

    one = client.get("/api/positions/vulcan").json()
    assert one["angle"] == 0 and one["distance"] == 1

    orbit = client.get("/api/orbit/earth", params={"num_points": 10}).json()
    assert orbit["planet"] == "earth" and len(orbit["points"]) == 10
    assert "error" in client.get("/api/orbit/vulcan").json()
    assert "error" in client.get("/api/orbit/earth", params={"num_points": 2}).json()

    state = client.get("/api/state").json()
    assert {"sim_date", "speed_mode", "speed_multiplier", "is_running", "paused"} <= set(state)

    snapshot = client.get("/api/snapshot").json()
    assert "earth" in snapshot["bodies"]

    routes = [route.path for route in app.routes]
    print(f"  ✅ App title: {app.title}, {len(routes)} routes")


def test_websocket_commands():
    from fastapi.testclient import TestClient
    from main import app, scene

    client = TestClient(app)
    with client.websocket_connect("/ws") as ws:
        init = ws.receive_json()
        assert init["type"] == "init"
        assert "earth" in init["planets"]

        ws.send_json({"command": "focus", "body": "mars"})
        update = _receive_until(ws, "update")
        assert update["camera"]["locked"] == "mars"
        assert _receive_until(ws, "ack")["command"] == "focus"

        ws.send_json({"command": "focus", "body": "vulcan"})
        err = ws.receive_json()
        assert err["type"] == "error" and err["command"] == "focus"

        ws.send_json({"command": "set_date", "date": "2030-05-01T00:00:00Z"})
        _receive_until(ws, "ack")
        assert scene.sim.sim_date == utc(2030, 5, 1)

        ws.send_json({"command": "set_date", "date": "not a date"})
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"command": "set_speed", "speed": "fast"})
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"command": "set_mode", "mode": "realtime"})
        _receive_until(ws, "ack")
        assert scene.sim.speed_mode == "realtime"

        ws.send_json({"command": "reset"})
        _receive_until(ws, "ack")
        assert scene.locked is None

        ws.send_json({"command": "get_snapshot"})
        assert ws.receive_json()["type"] == "snapshot"
        assert ws.receive_json()["type"] == "ack"

        ws.send_json({"command": "warp"})
        err = ws.receive_json()
        assert err["type"] == "error" and err["message"] == "Unknown command"

        ws.send_text("{not json")
        assert ws.receive_json()["message"] == "Invalid JSON message"

    scene.sim.set_mode("artistic")
    print("  ✅ WebSocket commands")


def test_websocket_rejects_bad_arguments():
    from fastapi.testclient import TestClient
    from main import app, scene

    client = TestClient(app)
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json()["type"] == "init"

        ws.send_json({"command": "focus", "body": ["earth"]})
        err = ws.receive_json()
        assert err["type"] == "error" and err["command"] == "focus"

        ws.send_json({"command": "focus", "body": {"name": "earth"}})
        assert ws.receive_json()["type"] == "error"

        speed = scene.sim.speed_multiplier
        for raw in ("1e400", "inf", "nan", [1]):
            ws.send_json({"command": "set_speed", "speed": raw})
            err = ws.receive_json()
            assert err["type"] == "error" and err["command"] == "set_speed"
        assert scene.sim.speed_multiplier == speed

        date = scene.sim.sim_date
        ws.send_json({"command": "set_date", "date": "9999-12-31T23:00:00-05:00"})
        err = ws.receive_json()
        assert err["type"] == "error" and err["command"] == "set_date"
        assert scene.sim.sim_date == date

        # The connection is still served after the rejected commands.
        ws.send_json({"command": "focus", "body": "earth"})
        assert _receive_until(ws, "ack")["command"] == "focus"
        assert scene.locked == "earth"

        ws.send_json({"command": "reset"})
        _receive_until(ws, "ack")
    print("  ✅ Bad arguments answered with errors")


# ---------------------------------------------------------------------------
# Orrery plot
# ---------------------------------------------------------------------------

def test_orrery_plot():
    print("Testing orrery plot...")
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt
    import demo_orrery

    fig, ax = demo_orrery.build_figure(OrbitEngine(), J2000_EPOCH)
    # One dashed orbit and one marker per body.
    assert len(ax.lines) == 2 * 9
    plt.close(fig)

    # The title is always shown in UTC.
    plus_five = datetime(2000, 1, 1, 17, 0, tzinfo=timezone(timedelta(hours=5)))
    fig, ax = demo_orrery.build_figure(OrbitEngine(), plus_five)
    assert "2000-01-01 12:00 UTC" in ax.get_title()
    plt.close(fig)

    with tempfile.TemporaryDirectory() as tmp:
        out = os.path.join(tmp, "orrery.png")
        assert demo_orrery.main(["2000-01-01T12:00:00Z", "--save", out]) == 0
        assert os.path.getsize(out) > 0
    plt.close("all")

    assert demo_orrery.main(["yesterday"]) == 2
    print("  ✅ Orrery figure rendered")


def main():
    print("=" * 60)
    print("Portfolio Solar System - Test Suite")
    print("=" * 60)
    print()

    tests = [
        ("Dependencies", test_dependencies),
        ("Time conversion", test_time_conversion),
        ("Angle normalization", test_normalize_deg),
        ("Kepler solver", test_kepler_solver),
        ("Kepler iteration cap", test_kepler_solver_iteration_cap),
        ("Elements at J2000", test_known_epoch_elements),
        ("Earth at J2000", test_earth_at_j2000),
        ("Positions 1900-2100", test_positions_1900_2100),
        ("Distance bounds", test_distance_bounds),
        ("Determinism", test_determinism),
        ("Unknown body", test_unknown_body),
        ("Full revolution", test_full_revolution),
        ("Orbit points", test_orbit_points),
        ("Planet info", test_planet_info),
        ("Easing", test_ease_in_out_quart),
        ("Explicit end position", test_explicit_end_position),
        ("Halfway point", test_halfway_point),
        ("Standoff and height clamp", test_standoff_offset_and_height_clamp),
        ("Coincident start pose", test_coincident_start_pose),
        ("Live re-targeting", test_live_retargeting),
        ("Transition replacement", test_new_transition_replaces_previous),
        ("Mid-flight retarget", test_retarget_mid_flight_starts_from_current_pose),
        ("Cancel", test_cancel_keeps_pose),
        ("Idle tracking", test_idle_tracking),
        ("Scene pivots", test_scene_maps_ephemeris_to_pivots),
        ("Speed modes", test_scene_speed_modes),
        ("Frame ordering", test_scene_tick_targets_current_frame),
        ("Focus standoff", test_scene_focus_standoff),
        ("Reset camera", test_scene_reset_camera),
        ("Unlock", test_scene_unlock_stops_tracking),
        ("Decorative bodies", test_scene_decorative_bodies),
        ("Set date / snapshot", test_scene_set_sim_date_and_snapshot),
        ("Clock saturation", test_scene_huge_speed_saturates_clock),
        ("Axial spin and moons", test_scene_axial_spin_and_moons),
        ("Paused rotations", test_scene_paused_holds_rotations),
        ("Snapshot spin and moons", test_scene_snapshot_spin_and_moons),
        ("Independent scenes", test_independent_scenes),
        ("REST API", test_rest_api),
        ("WebSocket", test_websocket_commands),
        ("WebSocket bad arguments", test_websocket_rejects_bad_arguments),
        ("Orrery plot", test_orrery_plot),
    ]

    results = []
    for name, fn in tests:
        try:
            fn()
        except Exception as e:
            print(f"❌ {name} failed: {e}\n")
            import traceback
            traceback.print_exc()
            results.append((name, False))
        else:
            results.append((name, True))

    # Summary
    print("=" * 60)
    print("Test Summary")
    print("=" * 60)

    passed = sum(1 for _, result in results if result)
    total = len(results)

    for test_name, result in results:
        status = "✅ PASS" if result else "❌ FAIL"
        print(f"{test_name:.<40} {status}")

    print()
    print(f"Total: {passed}/{total} tests passed")
    print()

    if passed == total:
        print("🎉 All tests passed! System is ready to run.")
        print()
        print("To start the backend, run:")
        print("  cd backend && python3 main.py")
    else:
        print("⚠️  Some tests failed. Please fix the issues above.")

    print("=" * 60)

    return 0 if passed == total else 1

if __name__ == "__main__":
    sys.exit(main())
