#!/usr/bin/env python3
"""
Orbit tessellation into cached double-precision point buffers.

What this module does
- OrbitSampler.sample turns a body's OrbitModel into (segments + 1) parent-relative
  points around the full ellipse and caches them per body handle.
- sample_arc samples only the part of an orbit flown during a time window; the
  maneuver predictor uses it for pre- and post-burn legs.

Segment budget
- The segment count targets a fixed chord length (~1000 km) regardless of orbit
  size: segments = clamp(ceil(arc_length / target_chord), MIN, MAX). The lower
  clamp keeps small orbits smooth, the upper clamp bounds cost for huge ones.
- a * |dE| is used as the arc length. Since |dr/dE| = a*sqrt(1 - e^2 cos^2 E) <= a,
  this never underestimates the true arc, so the chord budget still holds.

Cache invalidation
- A cache entry records the version of the OrbitModel it was built from. The
  propagator replaces orbit objects when it recomputes them, so comparing versions
  is enough; no dirty flags are needed.
- Entries are replaced wholesale, never patched.
"""
import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from .constants import TWO_PI
from .data_models import Body, BodyArena
from .kepler import unwrapped_eccentric_anomaly
from .orbit import OrbitModel
from .settings import PipelineSettings
from .utils import warn_once
from .vector_utils import clamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrbitSampleCache:
    """
    Sampled ellipse for one body.

    points: (segments + 1, 2) float64, parent-relative; the last point repeats the first.
    source_version: OrbitModel.version the points were built from.
    """
    points: np.ndarray
    source_version: int
    segments: int


def segment_count(arc_length: float, target_chord: float, min_segments: int, max_segments: int) -> int:
    """Number of segments needed to keep chords at or under target_chord."""
    if not math.isfinite(arc_length) or arc_length <= 0.0:
        return min_segments
    return int(clamp(math.ceil(arc_length / target_chord), min_segments, max_segments))


def sample_ellipse(orbit: OrbitModel, segments: int) -> np.ndarray:
    """Full-orbit samples at E = i/segments * 2*pi for i in [0, segments]."""
    angles = np.arange(segments + 1, dtype=np.float64) * (TWO_PI / segments)
    points = orbit.positions_at_angles(angles)
    # close the loop exactly; cos/sin of 2*pi differ from 0 in the last ulp
    points[-1] = points[0]
    return points


class OrbitSampler:
    """
    Per-body cache of full-orbit samples.

    Written only by sample(); callers treat returned buffers as read-only.
    """

    def __init__(self, settings: Optional[PipelineSettings] = None):
        self.settings = settings or PipelineSettings()
        self._cache: Dict[int, OrbitSampleCache] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def segments_for(self, orbit: OrbitModel) -> int:
        s = self.settings
        circumference = TWO_PI * orbit.semi_major_axis
        return segment_count(circumference, s.target_chord_length,
                             s.min_orbit_segments, s.max_orbit_segments)

    def sample(self, handle: int, body: Body, segments: Optional[int] = None) -> Optional[OrbitSampleCache]:
        """
        Return cached samples for a body, rebuilding them if its orbit changed.

        Args:
            handle: Arena handle of the body (the cache key).
            body: The body itself.
            segments: Optional explicit segment count overriding the chord budget.

        Returns:
            The cache entry, or None if the body has no valid orbit. A body without
            a valid orbit also loses any stale entry.
        """
        orbit = body.orbit
        if orbit is None or body.parent is None or not orbit.is_sampleable:
            if orbit is not None:
                warn_once(logger, f"sampler.degenerate.{body.name}",
                          "skipping %s: degenerate orbit (a=%r, e=%r, parent=%r)",
                          body.name, orbit.semi_major_axis, orbit.eccentricity, orbit.parent)
            self._cache.pop(handle, None)
            return None

        count = segments if segments is not None else self.segments_for(orbit)
        cached = self._cache.get(handle)
        if cached is not None and cached.source_version == orbit.version and cached.segments == count:
            return cached

        entry = OrbitSampleCache(points=sample_ellipse(orbit, count),
                                 source_version=orbit.version, segments=count)
        self._cache[handle] = entry
        logger.debug("sampled %s with %d segments (orbit v%d)", body.name, count, orbit.version)
        return entry

    def sample_all(self, arena: BodyArena) -> Dict[int, OrbitSampleCache]:
        out: Dict[int, OrbitSampleCache] = {}
        for handle in arena.handles():
            entry = self.sample(handle, arena.get(handle))
            if entry is not None:
                out[handle] = entry
        return out

    def evict(self, handle: int) -> None:
        self._cache.pop(handle, None)

    def clear(self) -> None:
        self._cache.clear()

    def sample_arc(self, orbit: OrbitModel, mu: float, t_start: float, t_end: float) -> np.ndarray:
        """
        Parent-relative samples of the arc flown between two clock times.

        E is sampled uniformly between the unwrapped eccentric anomalies at both
        ends, so a window that crosses periapsis or spans several revolutions is
        traced continuously. Times are on the same clock as orbit.epoch.

        Returns:
            (N + 1, 2) float64 array, first point at t_start and last at t_end.
        """
        s = self.settings
        n = orbit.mean_motion(mu)
        m0 = orbit.mean_anomaly_at_epoch
        m_start = m0 + n * (t_start - orbit.epoch)
        m_end = m0 + n * (t_end - orbit.epoch)
        e_start = unwrapped_eccentric_anomaly(m_start, orbit.eccentricity)
        e_end = unwrapped_eccentric_anomaly(m_end, orbit.eccentricity)
        span = e_end - e_start
        count = segment_count(orbit.semi_major_axis * abs(span), s.target_chord_length,
                              s.min_arc_segments, s.max_arc_segments)
        angles = e_start + np.arange(count + 1, dtype=np.float64) * (span / count)
        return orbit.positions_at_angles(angles)
