#!/usr/bin/env python3
"""
Floating-origin projection from double-precision world space to float32 render space.

What this module does
- Converts world positions (float64, meters) into camera-relative render
  coordinates (float32, screen units) for bodies, orbit samples, trajectory
  segments and particles.

Precision rule
- World coordinates reach 1e12 m while the camera scale can be 1e-9 or smaller.
  The camera center is subtracted in float64 *before* multiplying by scale or
  narrowing to float32. Scaling first and subtracting afterwards throws away the
  significant digits this module exists to keep.
- Parent-relative entities follow the same rule one level up:
  (parent_world + relative * local_scale - center) stays in float64 until the
  final multiply.

Buffers
- Every render key owns a float64 scratch buffer and a float32 output buffer.
  They are reused across frames and only ever grow (capacity doubling), so the
  steady state allocates nothing. Returned arrays are views into those buffers
  and are overwritten by the next call with the same key.
- Single-threaded use only. A parallel renderer would need two output buffers per
  key (write one while the other is drawn).

Faults
- NaN/Inf results (degenerate orbit, non-finite scale) are replaced by the
  origin and reported once per occurrence class.
"""
import logging
from typing import Dict, Hashable

import numpy as np

from .data_models import Body, BodyArena, BodyKind
from .utils import warn_once
from .vector_utils import Vec2

logger = logging.getLogger(__name__)

SENTINEL = (0.0, 0.0)


def local_scale_for(kind: BodyKind, moon_scale: float) -> float:
    """Visual multiplier applied to a body's offset from its parent."""
    if kind is BodyKind.MOON:
        return moon_scale
    if kind in (BodyKind.STAR, BodyKind.TERRESTRIAL, BodyKind.GAS_GIANT, BodyKind.CRAFT):
        return 1.0
    raise ValueError(f"unhandled body kind {kind!r}")


def visual_position(body: Body, arena: BodyArena, moon_scale: float) -> Vec2:
    """
    World position at which a body should be drawn.

    Moons are pushed away from their parent by moon_scale so they stay visible
    outside the planet disc; everything else is drawn where it is.
    """
    factor = local_scale_for(body.kind, moon_scale)
    if body.parent is None or factor == 1.0:
        return body.position
    parent = arena.get(body.parent).position
    return (parent[0] + (body.position[0] - parent[0]) * factor,
            parent[1] + (body.position[1] - parent[1]) * factor)


def project_point(world: Vec2, center: Vec2, scale: float) -> np.ndarray:
    """
    Project a single world point.

    Returns:
        float32 array of shape (2,); the origin if the result is not finite.
    """
    x = (float(world[0]) - float(center[0])) * scale
    y = (float(world[1]) - float(center[1])) * scale
    out = np.array((x, y), dtype=np.float32)
    if not np.all(np.isfinite(out)):
        warn_once(logger, "projector.point", "non-finite projection of %r (scale=%r); using origin",
                  world, scale)
        out[:] = SENTINEL
    return out


class _RenderBuffer:
    """Grow-only pair of float64 scratch and float32 output arrays."""

    __slots__ = ("scratch", "output")

    def __init__(self, capacity: int):
        self.scratch = np.empty((capacity, 2), dtype=np.float64)
        self.output = np.empty((capacity, 2), dtype=np.float32)

    @property
    def capacity(self) -> int:
        return self.output.shape[0]

    def ensure(self, n: int) -> None:
        if n <= self.capacity:
            return
        capacity = max(n, self.capacity * 2)
        self.scratch = np.empty((capacity, 2), dtype=np.float64)
        self.output = np.empty((capacity, 2), dtype=np.float32)


class PrecisionProjector:
    """
    Projects point sets into reusable float32 render buffers, keyed by caller.

    Keys are any hashable value; the pipeline uses ("orbit", handle),
    ("segment", index) and similar tuples.
    """

    def __init__(self, initial_capacity: int = 1024):
        self.initial_capacity = max(1, int(initial_capacity))
        self._buffers: Dict[Hashable, _RenderBuffer] = {}

    def capacity(self, key: Hashable) -> int:
        buf = self._buffers.get(key)
        return 0 if buf is None else buf.capacity

    def release(self, key: Hashable) -> None:
        self._buffers.pop(key, None)

    def _buffer(self, key: Hashable, n: int) -> _RenderBuffer:
        buf = self._buffers.get(key)
        if buf is None:
            buf = _RenderBuffer(max(n, self.initial_capacity))
            self._buffers[key] = buf
        else:
            buf.ensure(n)
        return buf

    def _finish(self, buf: _RenderBuffer, n: int, scale: float, occurrence: str) -> np.ndarray:
        scratch = buf.scratch[:n]
        # the only multiply by scale happens here, after every subtraction
        np.multiply(scratch, scale, out=scratch)
        # NaN and Inf both poison the sum, so the mask is only built on a fault
        if n and not np.isfinite(scratch.sum()):
            warn_once(logger, f"projector.{occurrence}",
                      "non-finite %s projection (scale=%r); substituting origin", occurrence, scale)
            bad = ~np.isfinite(scratch).all(axis=1)
            scratch[bad] = SENTINEL
        out = buf.output[:n]
        out[...] = scratch
        return out

    def project_orbit(self, key: Hashable, parent_world: Vec2, rel_points: np.ndarray,
                      center: Vec2, scale: float, local_scale: float = 1.0) -> np.ndarray:
        """
        Project parent-relative samples: (parent + rel * local_scale - center) * scale.

        Args:
            key: Render buffer key.
            parent_world: Parent's world position (float64).
            rel_points: (N, 2) float64 parent-relative points.
            center: Camera center in world meters.
            scale: Screen units per meter.
            local_scale: Visual multiplier on the relative offsets (moons).

        Returns:
            (N, 2) float32 view into the key's render buffer.
        """
        n = rel_points.shape[0]
        buf = self._buffer(key, n)
        scratch = buf.scratch[:n]
        if local_scale == 1.0:
            scratch[...] = rel_points
        else:
            np.multiply(rel_points, local_scale, out=scratch)
        # parent - center is formed first so its magnitude stays small
        offset_x = float(parent_world[0]) - float(center[0])
        offset_y = float(parent_world[1]) - float(center[1])
        scratch[:, 0] += offset_x
        scratch[:, 1] += offset_y
        return self._finish(buf, n, scale, "orbit")

    def project_points(self, key: Hashable, world_points: np.ndarray, center: Vec2,
                       scale: float) -> np.ndarray:
        """Project absolute world points (trajectories, particles, debris)."""
        n = world_points.shape[0]
        buf = self._buffer(key, n)
        scratch = buf.scratch[:n]
        scratch[...] = world_points
        scratch[:, 0] -= float(center[0])
        scratch[:, 1] -= float(center[1])
        return self._finish(buf, n, scale, "points")

    def project_bodies(self, arena: BodyArena, center: Vec2, scale: float,
                       moon_scale: float = 1.0, key: Hashable = "bodies") -> np.ndarray:
        """Project every body's visual position into one (len(arena), 2) buffer."""
        n = len(arena)
        buf = self._buffer(key, n)
        scratch = buf.scratch[:n]
        cx = float(center[0])
        cy = float(center[1])
        for handle, body in enumerate(arena):
            pos = visual_position(body, arena, moon_scale)
            scratch[handle, 0] = pos[0] - cx
            scratch[handle, 1] = pos[1] - cy
        return self._finish(buf, n, scale, "bodies")
