#!/usr/bin/env python3
"""
Sphere-of-influence relevance for predicted trajectories.

Responsibilities
- Compute SOI radii with the Laplace approximation r = a * (m / M)^(2/5), scaled
  by a gameplay factor (0.75).
- Decide whether a body's SOI is relevant to a trajectory (any point within a
  multiple of the radius) and how opaque its boundary should be drawn.
- Answer point queries: which SOIs contain a point, which body dominates it, and
  which SOIs a trajectory enters.
- Predict where a body (and so its SOI) will be at a future time using its orbit.

Opacity curve
- Closest approach inside the SOI: 0.8.
- Outside: linear fade from 0.6 at the boundary to 0.2 one extra radius out, then
  flat at 0.2. Moving the closest point inward never lowers the value.

Every function here is a pure read of (body, geometry); nothing is cached or
mutated, so it is safe to call for many bodies per frame.
"""
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from . import constants as C
from .data_models import Body, BodyArena, BodyKind, ManeuverNode, SOIInfo
from .vector_utils import Vec2, vec_dist


def soi_radius(handle: int, arena: BodyArena, scale_factor: float = C.SOI_SCALE_FACTOR) -> float:
    """
    Sphere of influence radius of a body, in meters.

    The current distance to the parent stands in for the semi-major axis, which is
    close enough for the near-circular orbits this is used with. Bodies without a
    parent (stars) have an unbounded SOI.
    """
    body = arena.get(handle)
    if body.parent is None:
        return math.inf
    parent = arena.get(body.parent)
    if parent.mass <= 0.0:
        return math.inf
    a = vec_dist(body.position, parent.position)
    return a * (body.mass / parent.mass) ** C.SOI_MASS_EXPONENT * scale_factor


def _as_points(points) -> np.ndarray:
    arr = np.asarray(points, dtype=np.float64)
    if arr.size == 0:
        return arr.reshape(0, 2)
    return arr.reshape(-1, 2)


def _distances(position: Vec2, points: np.ndarray) -> np.ndarray:
    return np.hypot(points[:, 0] - position[0], points[:, 1] - position[1])


def closest_distance(position: Vec2, points) -> float:
    """Closest approach of a point set to a position; inf for an empty set."""
    pts = _as_points(points)
    if pts.shape[0] == 0:
        return math.inf
    return float(_distances(position, pts).min())


def is_relevant(body: Body, radius: float, points,
                threshold_multiple: float = C.SOI_RELEVANCE_MULTIPLE) -> bool:
    """True iff some trajectory point lies within radius * threshold_multiple of the body."""
    pts = _as_points(points)
    if pts.shape[0] == 0:
        return False
    threshold = radius * threshold_multiple
    return bool((_distances(body.position, pts) < threshold).any())


def opacity(body: Body, radius: float, points) -> float:
    """Boundary opacity in [0, 1] from the trajectory's closest approach."""
    d = closest_distance(body.position, points)
    if not math.isfinite(d) or not radius > 0.0:
        return C.SOI_OPACITY_FLOOR
    if d < radius:
        return C.SOI_OPACITY_INSIDE
    t = min(1.0, (d - radius) / radius)
    return C.SOI_OPACITY_BOUNDARY - t * (C.SOI_OPACITY_BOUNDARY - C.SOI_OPACITY_FLOOR)


def relevant_sois(point: Vec2, arena: BodyArena,
                  scale_factor: float = C.SOI_SCALE_FACTOR) -> List[SOIInfo]:
    """SOIInfo for every body with a finite SOI, evaluated at one point."""
    infos: List[SOIInfo] = []
    for handle in arena.handles():
        body = arena.get(handle)
        if body.parent is None or body.kind is BodyKind.CRAFT:
            continue
        r = soi_radius(handle, arena, scale_factor)
        infos.append(SOIInfo(body=handle, soi_radius=r,
                             is_inside=vec_dist(point, body.position) < r))
    return infos


def encountered_sois(points, arena: BodyArena,
                     scale_factor: float = C.SOI_SCALE_FACTOR) -> List[SOIInfo]:
    """First SOIInfo for each body whose SOI the trajectory enters, in encounter order."""
    pts = _as_points(points)
    if pts.shape[0] == 0:
        return []
    hits = []
    for handle in arena.handles():
        body = arena.get(handle)
        if body.parent is None or body.kind is BodyKind.CRAFT:
            continue
        r = soi_radius(handle, arena, scale_factor)
        inside = np.nonzero(_distances(body.position, pts) < r)[0]
        if inside.size:
            hits.append((int(inside[0]), SOIInfo(body=handle, soi_radius=r, is_inside=True)))
    hits.sort(key=lambda item: item[0])
    return [info for _, info in hits]


def find_dominant_body(position: Vec2, arena: BodyArena,
                       scale_factor: float = C.SOI_SCALE_FACTOR) -> Optional[int]:
    """
    Body whose gravity dominates at a position.

    Checked from the smallest SOIs outward: moons, then planets, then the first
    star (or the first body if the scene has no star).
    """
    moons, planets, stars = [], [], []
    for handle in arena.handles():
        kind = arena.get(handle).kind
        if kind is BodyKind.MOON:
            moons.append(handle)
        elif kind in (BodyKind.TERRESTRIAL, BodyKind.GAS_GIANT):
            planets.append(handle)
        elif kind is BodyKind.STAR:
            stars.append(handle)
        elif kind is BodyKind.CRAFT:
            continue
        else:
            raise ValueError(f"unhandled body kind {kind!r}")

    for group in (moons, planets):
        for handle in group:
            body = arena.get(handle)
            if body.parent is None:
                continue
            if vec_dist(position, body.position) < soi_radius(handle, arena, scale_factor):
                return handle
    if stars:
        return stars[0]
    return 0 if len(arena) else None


def future_position(handle: int, arena: BodyArena, seconds: float) -> Optional[Vec2]:
    """
    World position of a body `seconds` from now, from its Kepler orbit.

    The parent is assumed to stay where it is, as the orbit is parent-relative.
    Returns None for bodies without a sampleable orbit.
    """
    body = arena.get(handle)
    orbit = body.orbit
    if orbit is None or body.parent is None or not orbit.is_sampleable:
        return None
    parent = arena.get(body.parent)
    rel = orbit.position_at_time(arena.mu_of(handle), seconds, body.mean_anomaly)
    return (parent.position[0] + rel[0], parent.position[1] + rel[1])


def future_path(handle: int, arena: BodyArena, seconds: float,
                samples: int = C.FUTURE_PATH_SAMPLES) -> Optional[np.ndarray]:
    """(samples + 1, 2) world points along a body's orbit from now to `seconds` ahead."""
    body = arena.get(handle)
    orbit = body.orbit
    if orbit is None or body.parent is None or not orbit.is_sampleable:
        return None
    parent = arena.get(body.parent)
    mu = arena.mu_of(handle)
    out = np.empty((samples + 1, 2), dtype=np.float64)
    for i in range(samples + 1):
        t = seconds * i / samples
        rel = orbit.position_at_time(mu, t, body.mean_anomaly)
        out[i, 0] = parent.position[0] + rel[0]
        out[i, 1] = parent.position[1] + rel[1]
    return out


@dataclass(frozen=True)
class SOIOverlay:
    """What the renderer needs to draw one SOI boundary."""
    body: int
    center: Vec2
    radius: float
    relevant: bool
    opacity: float


def evaluate_sois(arena: BodyArena, points, threshold_multiple: float = C.SOI_RELEVANCE_MULTIPLE,
                  show_all: bool = False,
                  scale_factor: float = C.SOI_SCALE_FACTOR) -> List[SOIOverlay]:
    """
    Relevance and opacity for every body with a finite SOI.

    Bodies that are not relevant are only returned when show_all is set.
    """
    pts = _as_points(points)
    overlays: List[SOIOverlay] = []
    for handle in arena.handles():
        body = arena.get(handle)
        if body.parent is None or body.kind is BodyKind.CRAFT:
            continue
        r = soi_radius(handle, arena, scale_factor)
        relevant = is_relevant(body, r, pts, threshold_multiple)
        if not (relevant or show_all):
            continue
        overlays.append(SOIOverlay(body=handle, center=body.position, radius=r,
                                   relevant=relevant, opacity=opacity(body, r, pts)))
    return overlays


@dataclass
class FutureSOI:
    """
    A body's SOI at the time of a maneuver node.

    path holds the body's positions from now to that time; build_frame replaces the
    world points with their projected float32 buffer.
    """
    body: int
    node_id: str
    seconds: float
    center: Vec2
    radius: float
    path: np.ndarray


def future_sois(arena: BodyArena, bodies: Sequence[int], nodes: Sequence[ManeuverNode],
                samples: int = C.FUTURE_PATH_SAMPLES,
                scale_factor: float = C.SOI_SCALE_FACTOR) -> List[FutureSOI]:
    """Each body's SOI at every node time; bodies without an orbit are skipped."""
    out: List[FutureSOI] = []
    for handle in bodies:
        radius = soi_radius(handle, arena, scale_factor)
        if not math.isfinite(radius):
            continue
        for node in nodes:
            center = future_position(handle, arena, node.time_offset)
            if center is None:
                break
            out.append(FutureSOI(body=handle, node_id=node.id, seconds=node.time_offset,
                                 center=center, radius=radius,
                                 path=future_path(handle, arena, node.time_offset, samples)))
    return out
