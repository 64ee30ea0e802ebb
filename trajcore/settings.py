#!/usr/bin/env python3
"""
Tunable settings for the trajectory pipeline.

Defaults come from constants.py. A scene template may carry a "settings" object
whose keys match the field names below; unknown keys are ignored and values that
do not parse as numbers keep the default.
"""
import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from . import constants as C
from .data_models import DeltaVFrame
from .utils import try_float

logger = logging.getLogger(__name__)

_INT_FIELDS = {
    "min_orbit_segments",
    "max_orbit_segments",
    "min_arc_segments",
    "max_arc_segments",
    "future_path_samples",
}


@dataclass
class PipelineSettings:
    """Container for sampler, SOI, projection and maneuver settings."""
    target_chord_length: float = C.TARGET_CHORD_LENGTH
    min_orbit_segments: int = C.MIN_ORBIT_SEGMENTS
    max_orbit_segments: int = C.MAX_ORBIT_SEGMENTS
    min_arc_segments: int = C.MIN_ARC_SEGMENTS
    max_arc_segments: int = C.MAX_ARC_SEGMENTS
    soi_scale_factor: float = C.SOI_SCALE_FACTOR
    soi_relevance_multiple: float = C.SOI_RELEVANCE_MULTIPLE
    show_all_soi: bool = False
    future_path_samples: int = C.FUTURE_PATH_SAMPLES
    moon_scale: float = C.MOON_SCALE
    delta_v_frame: DeltaVFrame = DeltaVFrame.PROGRADE

    def __post_init__(self):
        if self.target_chord_length <= 0:
            raise ValueError("target_chord_length must be positive")
        if self.min_orbit_segments < 1 or self.max_orbit_segments < self.min_orbit_segments:
            raise ValueError("orbit segment bounds must satisfy 1 <= min <= max")
        if self.min_arc_segments < 1 or self.max_arc_segments < self.min_arc_segments:
            raise ValueError("arc segment bounds must satisfy 1 <= min <= max")
        if self.future_path_samples < 1:
            raise ValueError("future_path_samples must be at least 1")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PipelineSettings":
        """Build settings from a JSON-like mapping, keeping defaults for bad values."""
        kwargs: Dict[str, Any] = {}
        known = {f.name for f in fields(cls)}
        for key, raw in (data or {}).items():
            if key not in known:
                logger.debug("ignoring unknown setting %r", key)
                continue
            if key == "show_all_soi":
                kwargs[key] = bool(raw)
            elif key == "delta_v_frame":
                try:
                    kwargs[key] = DeltaVFrame(str(raw).lower())
                except ValueError:
                    logger.warning("unknown delta_v_frame %r, keeping default", raw)
            else:
                val = try_float(raw)
                if val is None:
                    logger.warning("setting %s=%r is not a number, keeping default", key, raw)
                    continue
                kwargs[key] = int(val) if key in _INT_FIELDS else val
        return cls(**kwargs)
