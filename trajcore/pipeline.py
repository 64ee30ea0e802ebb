#!/usr/bin/env python3
"""
Per-frame trajectory pipeline.

What this module does
- TrajectoryPipeline ties the propagator, the orbit sampler, the maneuver
  predictor, SOI relevance and the precision projector together.
- step(dt) advances the bodies (and moves a craft into the SOI it now sits in).
- build_frame(center, scale, ...) returns a Frame of float32 render buffers that a
  renderer can draw without any further math besides the viewport offset.

Lifetime of frame data
- Arrays in a Frame are views into the projector's reusable buffers. They are
  valid until the next build_frame call; copy them if they must outlive it.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .data_models import BodyArena, BodyKind, SegmentKind
from .maneuver import FlightPlan, ManeuverPredictor
from .physics import KeplerPropagator
from .projector import PrecisionProjector, local_scale_for, visual_position
from .sampler import OrbitSampler
from .settings import PipelineSettings
from .soi import FutureSOI, SOIOverlay, evaluate_sois, find_dominant_body, future_sois
from .vector_utils import Vec2

logger = logging.getLogger(__name__)


@dataclass
class FrameSegment:
    index: int
    kind: SegmentKind
    node_id: Optional[str]
    points: np.ndarray


@dataclass
class Frame:
    """
    Render-ready output of one build_frame call.

    Fields:
    - center / scale: camera the buffers were projected with
    - orbits: body handle -> (N, 2) float32 closed orbit polyline
    - bodies: (len(arena), 2) float32, row i is body handle i
    - segments: predicted maneuver legs in time order
    - soi: SOI boundaries to draw
    - future_soi: relevant SOIs at each maneuver node time, paths projected
    - unsupported_node: id of a node whose burn is unbound, or None
    """
    center: Vec2
    scale: float
    orbits: Dict[int, np.ndarray] = field(default_factory=dict)
    bodies: np.ndarray = field(default_factory=lambda: np.empty((0, 2), dtype=np.float32))
    segments: List[FrameSegment] = field(default_factory=list)
    soi: List[SOIOverlay] = field(default_factory=list)
    future_soi: List[FutureSOI] = field(default_factory=list)
    unsupported_node: Optional[str] = None


class TrajectoryPipeline:
    """Owns the per-scene caches and produces one Frame per render tick."""

    def __init__(self, arena: BodyArena, settings: Optional[PipelineSettings] = None,
                 auto_reparent: bool = True):
        """
        Initialize the pipeline.

        Args:
            arena: Scene bodies; the propagator is their only writer.
            settings: Tunables; defaults from constants.py.
            auto_reparent: Move crafts into the SOI of the dominant body after each step.
        """
        self.arena = arena
        self.settings = settings or PipelineSettings()
        self.sampler = OrbitSampler(self.settings)
        self.projector = PrecisionProjector()
        self.predictor = ManeuverPredictor(self.settings, self.sampler)
        self.propagator = KeplerPropagator(arena)
        self.auto_reparent = auto_reparent
        self._segment_keys = 0
        self._future_keys = 0

    @property
    def time(self) -> float:
        return self.propagator.time

    def new_flight_plan(self) -> FlightPlan:
        return FlightPlan(self.predictor)

    def step(self, dt: float) -> None:
        self.propagator.step(dt)
        if self.auto_reparent:
            self._update_parents()

    def _update_parents(self) -> None:
        for handle in self.arena.handles():
            body = self.arena.get(handle)
            if body.kind is not BodyKind.CRAFT:
                continue
            dominant = find_dominant_body(body.position, self.arena, self.settings.soi_scale_factor)
            if dominant is None or dominant == body.parent:
                continue
            old = body.parent
            self.propagator.reparent(handle, dominant)
            logger.info("%s moved from %s to the SOI of %s", body.name,
                        "nothing" if old is None else self.arena.get(old).name,
                        self.arena.get(dominant).name)

    def build_frame(self, center: Vec2, scale: float, craft: Optional[int] = None,
                    flight_plan: Optional[FlightPlan] = None) -> Frame:
        """
        Sample, predict and project everything drawn this frame.

        Args:
            center: Camera center (floating origin) in world meters.
            scale: Screen units per meter.
            craft: Handle of the craft whose trajectory drives SOI relevance.
            flight_plan: Maneuver nodes for `craft`; its legs become frame segments.

        Returns:
            A Frame whose arrays are valid until the next call.
        """
        arena = self.arena
        settings = self.settings
        frame = Frame(center=center, scale=scale)

        for handle, cache in self.sampler.sample_all(arena).items():
            body = arena.get(handle)
            parent = arena.get(body.parent)
            frame.orbits[handle] = self.projector.project_orbit(
                ("orbit", handle),
                visual_position(parent, arena, settings.moon_scale),
                cache.points,
                center,
                scale,
                local_scale_for(body.kind, settings.moon_scale),
            )
        frame.bodies = self.projector.project_bodies(arena, center, scale, settings.moon_scale)

        trajectory = np.empty((0, 2), dtype=np.float64)
        if craft is not None and flight_plan is not None:
            legs = flight_plan.segments(craft, arena)
            frame.unsupported_node = flight_plan.unsupported_node
            for seg in legs:
                frame.segments.append(FrameSegment(
                    index=seg.index,
                    kind=seg.kind,
                    node_id=seg.node_id,
                    points=self.projector.project_points(("segment", seg.index), seg.points,
                                                         center, scale),
                ))
            if legs:
                trajectory = np.concatenate([seg.points for seg in legs])
            for stale in range(len(legs), self._segment_keys):
                self.projector.release(("segment", stale))
            self._segment_keys = len(legs)
        elif craft is not None:
            cache = self.sampler.sample(craft, arena.get(craft))
            if cache is not None:
                parent = arena.get(arena.get(craft).parent)
                trajectory = cache.points + np.asarray(parent.position, dtype=np.float64)

        frame.soi = evaluate_sois(arena, trajectory, settings.soi_relevance_multiple,
                                  settings.show_all_soi, settings.soi_scale_factor)

        future: List[FutureSOI] = []
        if craft is not None and flight_plan is not None and flight_plan.nodes:
            relevant = [o.body for o in frame.soi if o.relevant]
            future = future_sois(arena, relevant, flight_plan.nodes,
                                 settings.future_path_samples, settings.soi_scale_factor)
        for i, entry in enumerate(future):
            entry.path = self.projector.project_points(("future", i), entry.path, center, scale)
        for stale in range(len(future), self._future_keys):
            self.projector.release(("future", stale))
        self._future_keys = len(future)
        frame.future_soi = future
        return frame
