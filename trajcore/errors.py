#!/usr/bin/env python3
"""
Exception types raised by the trajectory pipeline.

Per-frame paths (sampling, projection) never raise into the renderer; they skip
or substitute and log instead. The exceptions here are for callers that ask a
question the two-body elliptical model cannot answer, or for bad scene input.
"""
from typing import List, Optional


class TrajectoryError(Exception):
    """Base class for pipeline errors."""


class UnsupportedOrbitError(TrajectoryError):
    """
    A state vector does not describe a bound ellipse (e >= 1, a <= 0, or NaN).

    When raised while predicting a maneuver chain, node_id names the node whose
    burn produced the unbound orbit and segments holds the arcs computed before it.
    """

    def __init__(self, message: str, node_id: Optional[str] = None,
                 segments: Optional[List] = None):
        super().__init__(message)
        self.node_id = node_id
        self.segments = segments if segments is not None else []


class SceneError(TrajectoryError):
    """Invalid body graph: unknown parent, duplicate name, or a cycle."""
