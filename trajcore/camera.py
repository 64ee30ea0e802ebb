#!/usr/bin/env python3
"""
Camera utilities for 2D world-to-screen transforms.

The camera keeps its center in double-precision world meters and a zoom `scale`
in screen units per meter. World-to-screen goes through project_point so the
center is subtracted before scaling.
"""
from typing import Optional, Tuple

from .constants import (
    DEFAULT_SCALE,
    MIN_SCALE,
    MAX_SCALE,
    VIEW_WIDTH,
    VIEW_HEIGHT,
)
from .projector import project_point
from .vector_utils import clamp


class Camera2D:
    """
    Simple 2D camera that maps world coordinates (meters) to screen pixels.

    Screen y grows downward, world y grows upward.
    """

    def __init__(self, center=(0.0, 0.0), scale=DEFAULT_SCALE):
        self.center = (float(center[0]), float(center[1]))
        self.scale = scale
        self.viewport_size = (VIEW_WIDTH, VIEW_HEIGHT)

    def set_viewport_size(self, w: int, h: int) -> None:
        self.viewport_size = (w, h)

    @property
    def meters_per_pixel(self) -> float:
        return 1.0 / self.scale

    def follow(self, pos: Tuple[float, float]) -> None:
        """Re-center on a world position (the floating origin)."""
        self.center = (float(pos[0]), float(pos[1]))

    def render_to_screen(self, render: Tuple[float, float]) -> Tuple[float, float]:
        """Render-space (center-relative) coordinates to pixel coordinates."""
        return (render[0] + self.viewport_size[0] / 2,
                self.viewport_size[1] / 2 - render[1])

    def world_to_screen(self, pos: Tuple[float, float]) -> Tuple[int, int]:
        rx, ry = project_point(pos, self.center, self.scale)
        px, py = self.render_to_screen((float(rx), float(ry)))
        return (int(px), int(py))

    def screen_to_world(self, screen: Tuple[int, int]) -> Tuple[float, float]:
        cx, cy = self.center
        wx = (screen[0] - self.viewport_size[0] / 2) / self.scale + cx
        wy = (self.viewport_size[1] / 2 - screen[1]) / self.scale + cy
        return (wx, wy)

    def zoom(self, factor, pivot_screen: Optional[Tuple[int, int]] = None):
        factor = clamp(factor, 0.05, 20.0)
        before = None
        if pivot_screen is not None:
            before = self.screen_to_world(pivot_screen)
        self.scale = clamp(self.scale * factor, MIN_SCALE, MAX_SCALE)
        if pivot_screen is not None and before is not None:
            after = self.screen_to_world(pivot_screen)
            self.center = (self.center[0] + (before[0] - after[0]),
                           self.center[1] + (before[1] - after[1]))

    def pan_pixels(self, dx_pixels, dy_pixels):
        self.center = (self.center[0] - dx_pixels / self.scale,
                       self.center[1] + dy_pixels / self.scale)
