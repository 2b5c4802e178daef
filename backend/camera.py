from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Union

import numpy as np

DEFAULT_CAM_POS = np.array([15.0, 20.0, 30.0])
DEFAULT_CAM_TARGET = np.array([0.0, 0.0, 0.0])


def _vec3(v: Sequence[float]) -> np.ndarray:
    return np.array(v, dtype=float).reshape(3)


def _lerp(a: np.ndarray, b: np.ndarray, t: float) -> np.ndarray:
    return a * (1.0 - t) + b * t


def ease_in_out_quart(t: float) -> float:
    if t < 0.5:
        return 8 * t * t * t * t
    return 1 - (-2 * t + 2) ** 4 / 2


@dataclass(frozen=True)
class StaticAnchor:
    point: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "point", _vec3(self.point))


@dataclass(frozen=True)
class LiveAnchor:
    world_position: Callable[[], Sequence[float]]


Anchor = Union[StaticAnchor, LiveAnchor]


def anchor_position(anchor: Anchor) -> np.ndarray:
    if isinstance(anchor, LiveAnchor):
        return _vec3(anchor.world_position())
    return anchor.point.copy()


@dataclass
class CameraPose:
    position: np.ndarray = field(default_factory=lambda: DEFAULT_CAM_POS.copy())
    target: np.ndarray = field(default_factory=lambda: DEFAULT_CAM_TARGET.copy())

    def __post_init__(self):
        self.position = _vec3(self.position)
        self.target = _vec3(self.target)

    def to_dict(self) -> dict:
        return {
            "position": [float(v) for v in self.position],
            "target": [float(v) for v in self.target],
        }


@dataclass(frozen=True)
class CameraTransition:
    anchor: Anchor
    standoff_distance: float
    start_position: np.ndarray
    start_target: np.ndarray
    start_time_ms: float
    duration_ms: float
    explicit_end_position: Optional[np.ndarray] = None

    def progress(self, now_ms: float) -> float:
        if self.duration_ms <= 0:
            return 1.0
        return min(max((now_ms - self.start_time_ms) / self.duration_ms, 0.0), 1.0)


class CameraController:
    def __init__(
        self,
        duration_ms: float = 1600.0,
        min_height_fraction: float = 0.3,
        tracking_damping: float = 0.08,
    ):
        self.duration_ms = duration_ms
        self.min_height_fraction = min_height_fraction
        self.tracking_damping = tracking_damping

        self._transition: Optional[CameraTransition] = None

    @property
    def transition(self) -> Optional[CameraTransition]:
        return self._transition

    @property
    def active(self) -> bool:
        return self._transition is not None

    def begin_transition(
        self,
        anchor: Anchor,
        standoff_distance: float,
        pose: CameraPose,
        now_ms: float,
        explicit_end_position: Optional[Sequence[float]] = None,
    ) -> CameraTransition:
        """Start a fly-to, replacing whatever transition was in flight."""
        self._transition = CameraTransition(
            anchor=anchor,
            standoff_distance=float(standoff_distance),
            start_position=pose.position.copy(),
            start_target=pose.target.copy(),
            start_time_ms=float(now_ms),
            duration_ms=float(self.duration_ms),
            explicit_end_position=None if explicit_end_position is None else _vec3(explicit_end_position),
        )
        return self._transition

    def _end_position(self, tr: CameraTransition, live_target: np.ndarray) -> np.ndarray:
        if tr.explicit_end_position is not None:
            return tr.explicit_end_position

        direction = tr.start_position - tr.start_target
        norm = np.linalg.norm(direction)
        if norm > 0:
            direction = direction / norm

        end_pos = live_target + direction * tr.standoff_distance
        end_pos[1] = max(end_pos[1], tr.standoff_distance * self.min_height_fraction)
        return end_pos

    def advance(self, pose: CameraPose, now_ms: float, locked_anchor: Optional[Anchor] = None) -> bool:
        """
        Move the camera one frame.

        Returns True when a transition drove this frame (including the frame
        that completes it). Otherwise the target eases toward locked_anchor,
        if any, and False is returned.
        """
        tr = self._transition
        if tr is not None:
            raw_t = tr.progress(now_ms)
            t = ease_in_out_quart(raw_t)

            live_target = anchor_position(tr.anchor)
            end_pos = self._end_position(tr, live_target)

            pose.position = _lerp(tr.start_position, end_pos, t)
            pose.target = _lerp(tr.start_target, live_target, t)

            if raw_t >= 1:
                self._transition = None
            return True

        if locked_anchor is not None:
            pose.target = _lerp(pose.target, anchor_position(locked_anchor), self.tracking_damping)
        return False

    def cancel(self) -> None:
        self._transition = None
