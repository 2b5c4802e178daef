from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from contextlib import asynccontextmanager, suppress
from datetime import datetime
from typing import Optional
import asyncio
import time
from orbit_engine import OrbitEngine
from scene import SolarSystemScene

FRAME_INTERVAL_S = 0.05  # 20 FPS


def _now_ms() -> float:
    return time.monotonic() * 1000.0


def _parse_date(raw) -> datetime:
    if isinstance(raw, datetime):
        return raw
    if not isinstance(raw, str):
        raise ValueError(f"Invalid date: {raw!r}")
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


# Lifespan context manager
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    print(f"[startup] Simulation starts at {scene.sim.sim_date.isoformat()}", flush=True)
    simulation_task = asyncio.create_task(simulation_loop())
    try:
        yield
    finally:
        # Shutdown
        simulation_task.cancel()
        with suppress(asyncio.CancelledError):
            await simulation_task
        print("[shutdown] Simulation loop stopped", flush=True)

app = FastAPI(title="Portfolio Solar System", lifespan=lifespan)

orbit_engine = OrbitEngine()
scene = SolarSystemScene(engine=orbit_engine)

_orbit_points_cache: dict[tuple[str, int], dict] = {}


def _get_orbit_points_cached(planet: str, num_points: int) -> dict:
    key = (planet, int(num_points))
    cached = _orbit_points_cache.get(key)
    if cached is not None:
        return cached

    points = orbit_engine.generate_orbit_points(planet, num_points)
    payload = {"planet": planet, "points": points}

    if num_points == 360:
        _orbit_points_cache[key] = payload

    return payload

# Store active WebSocket connections
active_connections: list[WebSocket] = []


def build_simulation_update(message_type: str = "update") -> dict:
    update = scene.snapshot()
    update["type"] = message_type
    return update


def _position_payload(planet: str, date: datetime) -> dict:
    pos = orbit_engine.position_of(planet, date)
    return {"angle": pos.angle, "distance": pos.distance}

@app.get("/api/planets")
async def get_planets():
    """Get planet orbital elements at J2000"""
    return orbit_engine.get_planet_info()

@app.get("/api/positions")
async def get_positions(date: Optional[datetime] = None):
    """Heliocentric angle/distance of every body"""
    when = date or scene.sim.sim_date
    return {
        "date": when.isoformat(),
        "positions": {name: _position_payload(name, when) for name in orbit_engine.planets},
    }

@app.get("/api/positions/{planet}")
async def get_position(planet: str, date: Optional[datetime] = None):
    """Heliocentric angle/distance of one body"""
    when = date or scene.sim.sim_date
    return {"planet": planet, "date": when.isoformat(), **_position_payload(planet, when)}

@app.get("/api/orbit/{planet}")
async def get_orbit_points(planet: str, num_points: int = 360):
    """Get orbit points for a planet"""
    if planet not in orbit_engine.planets:
        return {"error": "Invalid planet"}

    if num_points < 4 or num_points > 5000:
        return {"error": "Invalid num_points (expected 4..5000)"}

    return _get_orbit_points_cached(planet, num_points)

@app.get("/api/state")
async def get_simulation_state():
    """Get current simulation state"""
    return scene.sim.snapshot()

@app.get("/api/snapshot")
async def get_snapshot():
    """Get current snapshot of the scene"""
    return scene.snapshot()

async def broadcast_to_clients(message: dict):
    """Send message to all connected clients"""

    async def _send_one(connection: WebSocket):
        try:
            await asyncio.wait_for(connection.send_json(message), timeout=0.5)
            return None
        except Exception:
            return connection

    connections = list(active_connections)
    if not connections:
        return

    results = await asyncio.gather(*(_send_one(connection) for connection in connections))
    for dead in results:
        if dead is None:
            continue
        try:
            active_connections.remove(dead)
        except ValueError:
            pass
        print("[ws] Dropped unresponsive client", flush=True)

async def simulation_loop():
    """Main simulation loop"""
    last = time.monotonic()
    try:
        while True:
            now = time.monotonic()
            delta = now - last
            last = now

            try:
                frame = scene.tick(delta, now * 1000.0)
            except Exception as e:
                # A bad frame must not stop the animation.
                print(f"[sim] Frame failed: {e!r}", flush=True)
            else:
                moving = scene.sim.is_running and not scene.sim.paused
                if moving or frame["camera"]["transitioning"] or scene.locked is not None:
                    frame["type"] = "update"
                    await broadcast_to_clients(frame)

            await asyncio.sleep(FRAME_INTERVAL_S)
    except asyncio.CancelledError:
        return


async def _send_error(websocket: WebSocket, command, message: str) -> None:
    await websocket.send_json({
        "type": "error",
        "command": command,
        "message": message,
    })


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for real-time updates"""
    await websocket.accept()
    active_connections.append(websocket)
    print(f"[ws] Client connected ({len(active_connections)} active)", flush=True)

    try:
        # Send initial state
        initial_data = {
            "type": "init",
            "planets": await get_planets(),
            "simulation_state": await get_simulation_state(),
            "current_snapshot": await get_snapshot()
        }
        try:
            await websocket.send_json(initial_data)
        except Exception:
            return

        # Listen for client commands
        while True:
            try:
                data = await websocket.receive_json()
            except WebSocketDisconnect:
                raise
            except Exception:
                await _send_error(websocket, None, "Invalid JSON message")
                continue

            if not isinstance(data, dict):
                await _send_error(websocket, None, "Expected a JSON object")
                continue

            command = data.get("command")

            handled = True
            ok = True

            if command == "start":
                scene.sim.is_running = True
                scene.sim.paused = False
                await broadcast_to_clients(build_simulation_update("update"))

            elif command == "pause":
                scene.sim.paused = not scene.sim.paused
                await broadcast_to_clients(build_simulation_update("update"))

            elif command == "stop":
                scene.sim.is_running = False
                scene.sim.paused = False
                await broadcast_to_clients(build_simulation_update("update"))

            elif command == "set_speed":
                raw_speed = data.get("speed", 1.0)
                try:
                    scene.sim.set_speed(raw_speed)
                except (TypeError, ValueError):
                    ok = False
                    await _send_error(websocket, command, f"Invalid speed: {raw_speed!r}")
                else:
                    await broadcast_to_clients(build_simulation_update("update"))

            elif command == "set_mode":
                raw_mode = data.get("mode")
                try:
                    scene.sim.set_mode(raw_mode)
                except ValueError as e:
                    ok = False
                    await _send_error(websocket, command, str(e))
                else:
                    await broadcast_to_clients(build_simulation_update("update"))

            elif command == "set_date":
                raw_date = data.get("date")
                try:
                    scene.set_sim_date(_parse_date(raw_date))
                except (ValueError, OverflowError):
                    ok = False
                    await _send_error(websocket, command, f"Invalid date: {raw_date!r}")
                else:
                    await broadcast_to_clients(build_simulation_update("update"))

            elif command == "focus":
                body = data.get("body")
                if scene.focus_body(body, _now_ms()):
                    await broadcast_to_clients(build_simulation_update("update"))
                else:
                    ok = False
                    await _send_error(websocket, command, f"Unknown body: {body!r}")

            elif command == "reset":
                scene.reset_camera(_now_ms())
                await broadcast_to_clients(build_simulation_update("update"))

            elif command == "unlock":
                scene.unlock()
                await broadcast_to_clients(build_simulation_update("update"))

            elif command == "cancel":
                scene.cancel_transition()
                await broadcast_to_clients(build_simulation_update("update"))

            elif command == "get_snapshot":
                snapshot = await get_snapshot()
                await websocket.send_json({"type": "snapshot", "data": snapshot})

            else:
                handled = False
                ok = False
                await _send_error(websocket, command, "Unknown command")

            if handled and ok:
                await websocket.send_json({"type": "ack", "command": command})

    except WebSocketDisconnect:
        pass
    finally:
        if websocket in active_connections:
            active_connections.remove(websocket)
        print(f"[ws] Client disconnected ({len(active_connections)} active)", flush=True)

if __name__ == "__main__":
    import uvicorn
    import sys

    # Check for port argument
    port = 8712
    if len(sys.argv) > 1 and sys.argv[1] == "--port":
        if len(sys.argv) > 2:
            try:
                port = int(sys.argv[2])
            except ValueError:
                print(f"Invalid port: {sys.argv[2]!r}; using default {port}")
        else:
            print(f"Missing port after --port; using default {port}")

    uvicorn.run(app, host="0.0.0.0", port=port)
