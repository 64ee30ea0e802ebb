#!/usr/bin/env python3
"""
Vector helper functions for 2D operations.

These are small, fast functions for scalar vector math used throughout the
pipeline. Bulk point work goes through numpy arrays instead.
"""
import math
from typing import Tuple

Vec2 = Tuple[float, float]


def clamp(x: float, a: float, b: float) -> float:
    """Clamp x to the inclusive range [a, b]."""
    return max(a, min(b, x))


def vec_add(a: Vec2, b: Vec2) -> Vec2:
    return (a[0] + b[0], a[1] + b[1])


def vec_sub(a: Vec2, b: Vec2) -> Vec2:
    return (a[0] - b[0], a[1] - b[1])


def vec_len(a: Vec2) -> float:
    return math.hypot(a[0], a[1])


def vec_norm(a: Vec2) -> Vec2:
    l = vec_len(a)
    if l == 0:
        return (0.0, 0.0)
    return (a[0] / l, a[1] / l)


def vec_dot(a: Vec2, b: Vec2) -> float:
    return a[0] * b[0] + a[1] * b[1]


def vec_cross(a: Vec2, b: Vec2) -> float:
    """z component of the 3D cross product of two planar vectors."""
    return a[0] * b[1] - a[1] * b[0]


def vec_perp(a: Vec2) -> Vec2:
    """Rotate a by +90 degrees."""
    return (-a[1], a[0])


def vec_dist(a: Vec2, b: Vec2) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])

