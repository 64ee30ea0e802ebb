#!/usr/bin/env python3
"""
Maneuver node application and post-burn trajectory prediction.

What this module does
- apply_node applies a node's impulsive delta-v to an orbit at the node time and
  rebuilds a new OrbitModel from the perturbed state vector.
- ManeuverPredictor.predict_segments chains nodes in time order into trajectory
  segments: segment 0 is the current orbit up to the first node, each later
  segment is the orbit produced by the previous node, flown until the next node
  (or for one full period after the last one).
- FlightPlan owns the node list and keeps the segments it computed, recomputing
  only from the first segment an edit can affect.

Clock
- All times are seconds from "now". An orbit's epoch is the time on this clock at
  which its mean anomaly holds; orbits produced by a node have epoch = node time.

Frames
- PROGRADE nodes read delta_v as (prograde, normal): prograde is the unit velocity
  at the node, normal is prograde rotated +90 degrees. PARENT nodes read it on the
  fixed axes of the parent-relative frame.
- A node's radial component is added along the parent-to-craft direction in
  either frame.

Limits
- The model is two-body and elliptical. A burn that leaves the orbit unbound
  (e >= 1) raises UnsupportedOrbitError instead of being traced as an ellipse.
"""
import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .data_models import (
    BodyArena,
    DeltaVFrame,
    ManeuverNode,
    SegmentKind,
    TrajectorySegment,
)
from .errors import UnsupportedOrbitError
from .orbit import OrbitModel, orbit_from_state
from .sampler import OrbitSampler
from .settings import PipelineSettings
from .utils import warn_once
from .vector_utils import Vec2, vec_norm, vec_perp

logger = logging.getLogger(__name__)


def delta_v_vector(node: ManeuverNode, velocity: Vec2, position: Vec2 = (0.0, 0.0)) -> Vec2:
    """
    Node delta-v expressed in the parent-relative frame.

    Args:
        node: The burn.
        velocity: Parent-relative velocity at the burn; sets the prograde axis.
        position: Parent-relative position at the burn; sets the radial axis.
            Only read when node.radial is non-zero.
    """
    if node.frame is DeltaVFrame.PARENT:
        dv = node.delta_v
    elif node.frame is DeltaVFrame.PROGRADE:
        prograde = vec_norm(velocity)
        normal = vec_perp(prograde)
        dp, dn = node.delta_v
        dv = (prograde[0] * dp + normal[0] * dn, prograde[1] * dp + normal[1] * dn)
    else:
        raise ValueError(f"unhandled delta-v frame {node.frame!r}")
    if node.radial:
        radial = vec_norm(position)
        dv = (dv[0] + radial[0] * node.radial, dv[1] + radial[1] * node.radial)
    return dv


def apply_node(orbit: OrbitModel, node: ManeuverNode, mu: float) -> OrbitModel:
    """
    Orbit after executing `node` on `orbit`.

    Args:
        orbit: Orbit flown up to the node.
        node: The burn; its time_offset is on the same clock as orbit.epoch.
        mu: Gravitational parameter of the parent system.

    Returns:
        A new OrbitModel with epoch = node.time_offset.

    Raises:
        UnsupportedOrbitError: if the burn leaves the orbit unbound.
    """
    r, v = orbit.state_at_time(mu, node.time_offset - orbit.epoch)
    dv = delta_v_vector(node, v, r)
    new_v = (v[0] + dv[0], v[1] + dv[1])
    return orbit_from_state(r, new_v, mu, orbit.parent, epoch=node.time_offset)


def closest_point(points: np.ndarray, position: Vec2) -> Optional[Tuple[int, Vec2, float]]:
    """(index, point, distance) of the trajectory point nearest to a position."""
    if points.shape[0] == 0:
        return None
    d = np.hypot(points[:, 0] - position[0], points[:, 1] - position[1])
    i = int(np.argmin(d))
    return i, (float(points[i, 0]), float(points[i, 1])), float(d[i])


def sorted_nodes(nodes: Sequence[ManeuverNode]) -> List[ManeuverNode]:
    return sorted(nodes, key=lambda n: n.time_offset)


class ManeuverPredictor:
    """Builds trajectory segments for an orbit and a chain of maneuver nodes."""

    def __init__(self, settings: Optional[PipelineSettings] = None,
                 sampler: Optional[OrbitSampler] = None):
        self.settings = settings or PipelineSettings()
        self.sampler = sampler or OrbitSampler(self.settings)

    def apply_node(self, orbit: OrbitModel, node: ManeuverNode, mu: float) -> OrbitModel:
        return apply_node(orbit, node, mu)

    def _segment(self, index: int, orbit: OrbitModel, mu: float, t_start: float, t_end: float,
                 parent_position: Vec2, node_id: Optional[str]) -> TrajectorySegment:
        points = self.sampler.sample_arc(orbit, mu, t_start, t_end)
        points[:, 0] += parent_position[0]
        points[:, 1] += parent_position[1]
        kind = SegmentKind.PRE_BURN if index == 0 else SegmentKind.POST_BURN
        return TrajectorySegment(index=index, kind=kind, orbit=orbit, t_start=t_start,
                                 t_end=t_end, points=points, node_id=node_id)

    def predict_segments(self, orbit: OrbitModel, nodes: Sequence[ManeuverNode], mu: float,
                         parent_position: Vec2 = (0.0, 0.0),
                         prefix: Sequence[TrajectorySegment] = ()) -> List[TrajectorySegment]:
        """
        Trajectory segments for `orbit` flown through `nodes`.

        Args:
            orbit: Current (pre-burn) orbit; segment 0 starts at its epoch.
            nodes: Maneuver nodes in any order; they are sorted by time_offset.
            mu: Gravitational parameter of the parent system.
            parent_position: World position of the parent, added to every point.
            prefix: Already computed leading segments to keep as they are. They
                must come from the same orbit and the same nodes before them.

        Returns:
            len(nodes) + 1 segments ordered by time.

        Raises:
            UnsupportedOrbitError: if a node produces an unbound orbit. The error
                carries the id of that node and the segments computed before it.
        """
        chain = sorted_nodes(nodes)
        segments: List[TrajectorySegment] = list(prefix[:len(chain)])
        k = len(segments)

        if k == 0:
            current = orbit
            t_prev = orbit.epoch
            prev_id: Optional[str] = None
        else:
            node = chain[k - 1]
            current = self._apply(segments[k - 1].orbit, node, mu, segments)
            t_prev = segments[k - 1].t_end
            prev_id = node.id

        for i in range(k, len(chain)):
            node = chain[i]
            t_node = max(node.time_offset, t_prev)
            segments.append(self._segment(i, current, mu, t_prev, t_node, parent_position, prev_id))
            current = self._apply(current, node, mu, segments)
            t_prev = t_node
            prev_id = node.id

        t_end = t_prev + current.period(mu)
        segments.append(self._segment(len(chain), current, mu, t_prev, t_end, parent_position, prev_id))
        return segments

    def _apply(self, orbit: OrbitModel, node: ManeuverNode, mu: float,
               segments: List[TrajectorySegment]) -> OrbitModel:
        try:
            return apply_node(orbit, node, mu)
        except UnsupportedOrbitError as exc:
            raise UnsupportedOrbitError(f"node {node.id}: {exc}", node_id=node.id,
                                        segments=list(segments)) from exc

    def predict_for_body(self, handle: int, arena: BodyArena,
                         nodes: Sequence[ManeuverNode]) -> List[TrajectorySegment]:
        """Segments for a body's current orbit, starting from its current mean anomaly."""
        body = arena.get(handle)
        if body.orbit is None or body.parent is None or not body.orbit.is_sampleable:
            return []
        base = body.orbit.rebased(body.mean_anomaly, 0.0)
        parent = arena.get(body.parent)
        return self.predict_segments(base, nodes, arena.mu_of(handle), parent.position)


class FlightPlan:
    """
    Ordered maneuver nodes for one craft, with incremental segment reuse.

    Edits mark the first segment they can change:
    - delta-v, radial or frame edit of the node at sorted index j: segments >= j + 1
    - insert, delete or time edit at sorted index j: segments >= j
    Segments before that index are returned unchanged. Any change of the craft's
    base state (orbit version, mean anomaly, parent position) recomputes all of them.
    """

    def __init__(self, predictor: Optional[ManeuverPredictor] = None):
        self.predictor = predictor or ManeuverPredictor()
        self.nodes: List[ManeuverNode] = []
        self.unsupported_node: Optional[str] = None
        self._segments: List[TrajectorySegment] = []
        self._dirty_from: Optional[int] = 0
        self._base_key = None

    def __len__(self) -> int:
        return len(self.nodes)

    def _mark(self, index: int) -> None:
        self._dirty_from = index if self._dirty_from is None else min(self._dirty_from, index)

    def _index_of(self, node_id: str) -> int:
        for i, n in enumerate(self.nodes):
            if n.id == node_id:
                return i
        raise KeyError(node_id)

    def add(self, node: ManeuverNode) -> ManeuverNode:
        if self.get(node.id) is not None:
            raise ValueError(f"flight plan already has a node with id {node.id!r}")
        self.nodes.append(node)
        self.nodes = sorted_nodes(self.nodes)
        self._mark(self._index_of(node.id))
        return node

    def remove(self, node_id: str) -> None:
        i = self._index_of(node_id)
        del self.nodes[i]
        self._mark(i)

    def update(self, node_id: str, delta_v: Optional[Vec2] = None,
               time_offset: Optional[float] = None,
               frame: Optional[DeltaVFrame] = None,
               radial: Optional[float] = None) -> ManeuverNode:
        i = self._index_of(node_id)
        node = self.nodes[i]
        if time_offset is not None:
            if not math.isfinite(time_offset) or time_offset < 0.0:
                raise ValueError(f"maneuver time_offset must be finite and >= 0, got {time_offset}")
            node.time_offset = float(time_offset)
            self.nodes = sorted_nodes(self.nodes)
            self._mark(min(i, self._index_of(node_id)))
        if delta_v is not None or frame is not None or radial is not None:
            if delta_v is not None:
                node.delta_v = (float(delta_v[0]), float(delta_v[1]))
            if frame is not None:
                node.frame = frame
            if radial is not None:
                node.radial = float(radial)
            self._mark(self._index_of(node_id) + 1)
        return node

    def get(self, node_id: str) -> Optional[ManeuverNode]:
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None

    def next_node(self) -> Optional[ManeuverNode]:
        return self.nodes[0] if self.nodes else None

    def clear(self) -> None:
        self.nodes = []
        self._segments = []
        self._dirty_from = 0
        self.unsupported_node = None

    def segments(self, handle: int, arena: BodyArena) -> List[TrajectorySegment]:
        """
        Current predicted segments for the craft at `handle`.

        If a node produces an unbound orbit the segments before it are returned and
        unsupported_node holds that node's id.
        """
        body = arena.get(handle)
        if body.orbit is None or body.parent is None or not body.orbit.is_sampleable:
            self._segments = []
            self._dirty_from = 0
            return []

        parent = arena.get(body.parent)
        base_key = (body.orbit.version, body.mean_anomaly, parent.position, arena.mu_of(handle))
        if base_key != self._base_key:
            self._base_key = base_key
            self._dirty_from = 0
        if self._dirty_from is None:
            return self._segments

        prefix = self._segments[:self._dirty_from] if self._dirty_from > 0 else []
        base = prefix[0].orbit if prefix else body.orbit.rebased(body.mean_anomaly, 0.0)
        try:
            result = self.predictor.predict_segments(base, self.nodes, arena.mu_of(handle),
                                                     parent.position, prefix=prefix)
            self.unsupported_node = None
        except UnsupportedOrbitError as exc:
            warn_once(logger, f"maneuver.unbound.{exc.node_id}",
                      "maneuver %s gives an unbound trajectory; prediction stops there", exc.node_id)
            result = exc.segments
            self.unsupported_node = exc.node_id
        self._segments = result
        self._dirty_from = None
        return result
