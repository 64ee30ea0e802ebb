#!/usr/bin/env python3
"""
Data models for the trajectory pipeline.

This module defines the records shared between the propagator, the sampler, the
projector, SOI relevance and the maneuver predictor.

Units and usage
- position is in meters [m], velocity in meters per second [m/s], radius in meters
  [m], mass in kg, times in seconds [s].
- Bodies live in a BodyArena and refer to their parent by integer handle (the index
  in the arena), never by object reference.
- The pipeline reads bodies once per frame and never mutates them; only the
  propagator writes position, velocity, mean_anomaly and orbit.
"""
import uuid
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from .constants import G
from .errors import SceneError
from .orbit import OrbitModel


class BodyKind(Enum):
    """Closed set of body kinds. Code that dispatches on kind must handle all of them."""
    STAR = "star"
    TERRESTRIAL = "terrestrial"
    GAS_GIANT = "gas_giant"
    MOON = "moon"
    CRAFT = "craft"

    @classmethod
    def parse(cls, value: str) -> "BodyKind":
        try:
            return cls(str(value).lower())
        except ValueError:
            raise SceneError(f"unknown body kind {value!r}") from None


@dataclass
class Body:
    """
    Represents a celestial body or craft in the simulation.

    Fields:
    - name: Identifier for the body
    - kind: BodyKind tag
    - mass: Mass in kilograms
    - radius: Visual/physical radius in meters
    - position: 2D world position (x, y) in meters, double precision
    - velocity: 2D world velocity (vx, vy) in meters/second
    - parent: Handle of the gravitating body, or None for a root (star)
    - orbit: Current OrbitModel, replaced wholesale by the propagator
    - mean_anomaly: Current mean anomaly on `orbit`, radians
    - color: RGB tuple used for rendering
    """
    name: str
    kind: BodyKind
    mass: float
    radius: float
    position: Tuple[float, float] = (0.0, 0.0)
    velocity: Tuple[float, float] = (0.0, 0.0)
    parent: Optional[int] = None
    orbit: Optional[OrbitModel] = None
    mean_anomaly: float = 0.0
    color: Tuple[int, int, int] = (200, 200, 255)


class BodyArena:
    """
    Owns every body in a scene. Handles are list indices and stay valid for the
    lifetime of the arena (bodies are never removed, only orbit-cleared).
    """

    def __init__(self):
        self._bodies: List[Body] = []
        self._by_name: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._bodies)

    def __iter__(self) -> Iterator[Body]:
        return iter(self._bodies)

    def add(self, body: Body) -> int:
        """Add a body and return its handle. Parents must already be in the arena."""
        if body.name in self._by_name:
            raise SceneError(f"duplicate body name {body.name!r}")
        if body.parent is not None and not 0 <= body.parent < len(self._bodies):
            raise SceneError(f"{body.name!r} refers to unknown parent handle {body.parent}")
        handle = len(self._bodies)
        self._bodies.append(body)
        self._by_name[body.name] = handle
        return handle

    def get(self, handle: int) -> Body:
        return self._bodies[handle]

    def handles(self) -> range:
        return range(len(self._bodies))

    def find(self, name: str) -> Optional[int]:
        return self._by_name.get(name)

    def parent_of(self, handle: int) -> Optional[Body]:
        parent = self._bodies[handle].parent
        return None if parent is None else self._bodies[parent]

    def children_of(self, handle: int) -> List[int]:
        return [h for h, b in enumerate(self._bodies) if b.parent == handle]

    def set_parent(self, handle: int, parent: Optional[int]) -> None:
        """Re-parent a body (e.g. on an SOI transition), rejecting cycles."""
        if parent is not None:
            if not 0 <= parent < len(self._bodies):
                raise SceneError(f"unknown parent handle {parent}")
            cursor: Optional[int] = parent
            while cursor is not None:
                if cursor == handle:
                    raise SceneError(f"re-parenting {self._bodies[handle].name!r} would form a cycle")
                cursor = self._bodies[cursor].parent
        self._bodies[handle].parent = parent

    def mu_of(self, handle: int) -> float:
        """Gravitational parameter G*(M_parent + m) for a body's two-body problem."""
        body = self._bodies[handle]
        if body.parent is None:
            return 0.0
        return G * (self._bodies[body.parent].mass + body.mass)

    def depth_of(self, handle: int) -> int:
        depth = 0
        cursor = self._bodies[handle].parent
        while cursor is not None:
            depth += 1
            cursor = self._bodies[cursor].parent
        return depth

    def iter_parent_first(self) -> List[int]:
        """Handles ordered so that every parent precedes its children."""
        return sorted(self.handles(), key=self.depth_of)


# ============================================================
# Maneuver and trajectory records
# ============================================================

class DeltaVFrame(Enum):
    """How a node's delta_v components are interpreted."""
    PROGRADE = "prograde"  # (prograde, normal); normal is prograde rotated +90 deg
    PARENT = "parent"      # fixed x/y axes of the parent-relative frame


def _new_node_id() -> str:
    return uuid.uuid4().hex[:9]


@dataclass
class ManeuverNode:
    """
    A planned impulsive burn.

    Fields:
    - time_offset: Seconds from now until the burn (>= 0)
    - delta_v: 2D delta-v in m/s, read according to `frame`
    - frame: DeltaVFrame for delta_v
    - radial: m/s along the parent-to-craft direction at the burn, added on top
      of delta_v in either frame
    - id: Stable identifier used by the flight plan
    """
    time_offset: float
    delta_v: Tuple[float, float] = (0.0, 0.0)
    frame: DeltaVFrame = DeltaVFrame.PROGRADE
    id: str = field(default_factory=_new_node_id)
    radial: float = 0.0

    def __post_init__(self):
        if not math.isfinite(self.time_offset) or self.time_offset < 0.0:
            raise ValueError(f"maneuver time_offset must be finite and >= 0, got {self.time_offset}")
        self.delta_v = (float(self.delta_v[0]), float(self.delta_v[1]))
        self.radial = float(self.radial)

    @property
    def total_delta_v(self) -> float:
        return math.sqrt(self.delta_v[0] ** 2 + self.delta_v[1] ** 2 + self.radial ** 2)


class SegmentKind(Enum):
    PRE_BURN = "pre_burn"
    POST_BURN = "post_burn"


@dataclass
class TrajectorySegment:
    """
    One continuous predicted arc.

    points is an (N, 2) float64 array of world positions ordered by time. Segment 0
    is always PRE_BURN (the current orbit up to the first node); later segments are
    POST_BURN legs created by node `node_id`.
    """
    index: int
    kind: SegmentKind
    orbit: OrbitModel
    t_start: float
    t_end: float
    points: np.ndarray
    node_id: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.t_end - self.t_start


@dataclass(frozen=True)
class SOIInfo:
    """SOI membership of one query point; recomputed on demand, never stored."""
    body: int
    soi_radius: float
    is_inside: bool
