#!/usr/bin/env python3
"""
Orbit trajectory viewer: a Pygame window on top of trajcore.TrajectoryPipeline.

What this module does
- Loads a scene template, advances it on rails and draws the float32 buffers the
  pipeline produces: body orbits, bodies, the craft's maneuver legs (cyan before
  the first burn, orange after), the SOI boundaries relevant to them and where
  those SOIs will be at each burn.
- Lets the user plan burns for the craft with the keyboard.

Threading model
- Everything runs on the main thread: input, pipeline step, build_frame and draw,
  in that order, once per tick. The pipeline is not shared with any other thread.

Units and conventions
- SI units throughout: meters [m], kilograms [kg], seconds [s]. The camera stores
  a scale in pixels per meter; render buffers are already centered and scaled, so
  drawing only adds the half viewport and flips y.
- Colors are RGB tuples in 0..255.

Running
1) Install dependencies: `pip install -e .`
2) Run this module: `python orbit_view.py [template.json]`

Controls
- Wheel: zoom | Right/Middle-drag or arrows: pan | Space: pause/play
- [ / ]: slower / faster time warp | F: follow craft | A: toggle all SOIs
- N: add a burn half an orbit ahead | Tab: select next burn | Delete: remove it
- W / S: prograde +/- 10 m/s | Q / E: normal +/- 10 m/s | Z / X: radial out / in
  10 m/s on the selected burn
"""
import logging
import math
import sys
import time
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pygame
from pygame import gfxdraw

from trajcore.camera import Camera2D
from trajcore.constants import (
    BACKGROUND_COLOR,
    CRAFT_ORBIT_COLOR,
    MOON_ORBIT_COLOR,
    ORBIT_COLOR,
    POST_BURN_COLOR,
    PRE_BURN_COLOR,
    SAFE_COORD_LIMIT,
    VIEW_HEIGHT,
    VIEW_WIDTH,
)
from trajcore.data_models import BodyKind, ManeuverNode, SegmentKind
from trajcore.errors import SceneError
from trajcore.maneuver import delta_v_vector
from trajcore.pipeline import Frame, TrajectoryPipeline
from trajcore.presets_loader import list_templates, load_template

logger = logging.getLogger(__name__)

SOI_COLOR = (120, 160, 255)
FUTURE_SOI_COLOR = (70, 90, 140)
UNSUPPORTED_COLOR = (255, 80, 80)
NODE_COLOR = (255, 255, 0)
HUD_COLOR = (200, 200, 200)
DV_STEP = 10.0  # m/s per key press
TIME_WARPS = (1.0, 10.0, 100.0, 1000.0, 10000.0, 100000.0, 1000000.0)


def _safe_point(pt) -> Optional[Tuple[int, int]]:
    try:
        x, y = int(pt[0]), int(pt[1])
    except (TypeError, ValueError, OverflowError):
        return None
    if -SAFE_COORD_LIMIT <= x <= SAFE_COORD_LIMIT and -SAFE_COORD_LIMIT <= y <= SAFE_COORD_LIMIT:
        return (x, y)
    return None


def screen_runs(buffer: np.ndarray, viewport_size: Sequence[int]) -> List[List[Tuple[int, int]]]:
    """
    Convert a centered float32 render buffer to pixel polylines.

    Points outside the safe integer range break the line, so each returned run
    can be passed to pygame.draw.aalines on its own.
    """
    if buffer.shape[0] == 0:
        return []
    half_w = viewport_size[0] / 2
    half_h = viewport_size[1] / 2
    xs = buffer[:, 0].astype(np.float64) + half_w
    ys = half_h - buffer[:, 1].astype(np.float64)
    ok = (np.abs(xs) <= SAFE_COORD_LIMIT) & (np.abs(ys) <= SAFE_COORD_LIMIT)
    runs: List[List[Tuple[int, int]]] = []
    current: List[Tuple[int, int]] = []
    for x, y, good in zip(xs.astype(np.int64).tolist(), ys.astype(np.int64).tolist(), ok.tolist()):
        if good:
            current.append((x, y))
        elif current:
            runs.append(current)
            current = []
    if current:
        runs.append(current)
    return runs


def blend(color, background, alpha: float) -> Tuple[int, int, int]:
    """Opaque color that looks like `color` drawn over `background` at `alpha`."""
    a = max(0.0, min(1.0, alpha))
    return tuple(int(round(b + (c - b) * a)) for c, b in zip(color, background))


_cached_font = None


def draw_text(surface, text, x, y, color):
    global _cached_font
    if not pygame.font.get_init():
        pygame.font.init()
    if _cached_font is None:
        _cached_font = pygame.font.SysFont("consolas", 16)
    img = _cached_font.render(text, True, color)
    surface.blit(img, (x, y))


def draw_polyline(surface, color, buffer: np.ndarray, viewport_size, closed: bool = False) -> None:
    for run in screen_runs(buffer, viewport_size):
        if len(run) > 1:
            pygame.draw.aalines(surface, color, closed and len(run) == buffer.shape[0], run)


class OrbitViewer:
    """
    Pygame loop: draws orbits, bodies, maneuver legs and SOI boundaries.
    Handles camera panning and zoom and the burn-planning keys.
    """
    def __init__(self, pipeline: TrajectoryPipeline, title: str = "Orbit Trace"):
        self.pipeline = pipeline
        self.title = title
        self.camera = Camera2D(center=(0.0, 0.0))
        self.craft = self._find_craft()
        self.flight_plan = pipeline.new_flight_plan()
        self.selected_node: Optional[str] = None
        self.follow_craft = self.craft is not None
        self.playing = True
        self.warp_index = 2
        self.surface = None
        self.clock = None
        self.dragging_background = False
        self.drag_start_screen = (0, 0)
        self.pan_speed_keys = 600  # pixels per second
        self.running = True

    @property
    def time_warp(self) -> float:
        return TIME_WARPS[self.warp_index]

    def _find_craft(self) -> Optional[int]:
        for handle in self.pipeline.arena.handles():
            if self.pipeline.arena.get(handle).kind is BodyKind.CRAFT:
                return handle
        return None

    def frame_craft(self):
        """Center on the craft and zoom so its orbit fills the view."""
        arena = self.pipeline.arena
        if self.craft is None:
            return
        body = arena.get(self.craft)
        self.camera.follow(body.position)
        if body.orbit is not None and body.orbit.is_sampleable:
            extent = body.orbit.apoapsis * 2.6
            self.camera.scale = min(self.camera.viewport_size) / extent

    # --------------------------------------------------------------
    # Burn planning
    # --------------------------------------------------------------

    def add_node(self):
        if self.craft is None:
            return
        body = self.pipeline.arena.get(self.craft)
        if body.orbit is None or not body.orbit.is_sampleable:
            return
        last = self.flight_plan.nodes[-1].time_offset if self.flight_plan.nodes else 0.0
        half = body.orbit.period(self.pipeline.arena.mu_of(self.craft)) / 2
        node = ManeuverNode(time_offset=last + half, frame=self.pipeline.settings.delta_v_frame)
        self.flight_plan.add(node)
        self.selected_node = node.id
        logger.info("added burn %s at T+%.0f s", node.id, node.time_offset)

    def cycle_node(self):
        ids = [n.id for n in self.flight_plan.nodes]
        if not ids:
            self.selected_node = None
            return
        if self.selected_node not in ids:
            self.selected_node = ids[0]
        else:
            self.selected_node = ids[(ids.index(self.selected_node) + 1) % len(ids)]

    def nudge_node(self, d_prograde: float, d_normal: float, d_radial: float = 0.0):
        node = self.flight_plan.get(self.selected_node) if self.selected_node else None
        if node is None:
            return
        dv = (node.delta_v[0] + d_prograde, node.delta_v[1] + d_normal)
        self.flight_plan.update(node.id, delta_v=dv, radial=node.radial + d_radial)

    def remove_node(self):
        if self.selected_node and self.flight_plan.get(self.selected_node):
            self.flight_plan.remove(self.selected_node)
        self.selected_node = None
        self.cycle_node()

    def _shift_nodes(self, dt: float):
        for node in list(self.flight_plan.nodes):
            self.flight_plan.update(node.id, time_offset=max(0.0, node.time_offset - dt))

    def _execute(self, node: ManeuverNode):
        arena = self.pipeline.arena
        body = arena.get(self.craft)
        parent = arena.get(body.parent)
        rel_r = (body.position[0] - parent.position[0], body.position[1] - parent.position[1])
        rel_v = (body.velocity[0] - parent.velocity[0], body.velocity[1] - parent.velocity[1])
        self.pipeline.propagator.apply_impulse(self.craft, delta_v_vector(node, rel_v, rel_r))
        self.flight_plan.remove(node.id)
        logger.info("executed burn %s", node.id)

    def advance(self, dt: float):
        """
        Advance the clock by dt, executing every burn that falls due at its own time.

        The step is split at each due node: the burn is applied to the state at the
        node time and the rest of dt is flown on the orbit it produced.
        """
        remaining = dt
        while self.craft is not None and self.flight_plan.nodes:
            node = self.flight_plan.next_node()
            if node.time_offset > remaining:
                break
            lead = node.time_offset
            self.pipeline.step(lead)
            self._shift_nodes(lead)
            remaining -= lead
            if self.pipeline.arena.get(self.craft).parent is None:
                self.flight_plan.remove(node.id)
                continue
            self._execute(node)
        self.pipeline.step(remaining)
        if self.craft is not None and self.flight_plan.nodes:
            self._shift_nodes(remaining)

    # --------------------------------------------------------------
    # Loop
    # --------------------------------------------------------------

    def run(self):
        pygame.init()
        pygame.display.set_caption(self.title)
        self.surface = pygame.display.set_mode((VIEW_WIDTH, VIEW_HEIGHT), pygame.RESIZABLE)
        self.camera.set_viewport_size(VIEW_WIDTH, VIEW_HEIGHT)
        self.clock = pygame.time.Clock()
        self.frame_craft()

        last_time = time.perf_counter()
        while self.running:
            now = time.perf_counter()
            real_dt = now - last_time
            last_time = now

            self.handle_events(real_dt)

            if self.playing:
                self.advance(real_dt * self.time_warp)

            if self.follow_craft and self.craft is not None:
                self.camera.follow(self.pipeline.arena.get(self.craft).position)

            frame = self.pipeline.build_frame(self.camera.center, self.camera.scale,
                                              self.craft, self.flight_plan)
            self.draw(frame)

            self.clock.tick(60)

        pygame.quit()

    def handle_events(self, real_dt):
        keys = pygame.key.get_pressed()
        if keys[pygame.K_LEFT]:
            self.camera.pan_pixels(self.pan_speed_keys * real_dt, 0)
            self.follow_craft = False
        if keys[pygame.K_RIGHT]:
            self.camera.pan_pixels(-self.pan_speed_keys * real_dt, 0)
            self.follow_craft = False
        if keys[pygame.K_UP]:
            self.camera.pan_pixels(0, self.pan_speed_keys * real_dt)
            self.follow_craft = False
        if keys[pygame.K_DOWN]:
            self.camera.pan_pixels(0, -self.pan_speed_keys * real_dt)
            self.follow_craft = False

        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.running = False

            elif event.type == pygame.VIDEORESIZE:
                self.surface = pygame.display.set_mode((event.w, event.h), pygame.RESIZABLE)
                self.camera.set_viewport_size(event.w, event.h)

            elif event.type == pygame.MOUSEWHEEL:
                factor = 1.1 if event.y > 0 else 1.0/1.1
                pivot = None if self.follow_craft else pygame.mouse.get_pos()
                self.camera.zoom(factor, pivot)

            elif event.type == pygame.MOUSEBUTTONDOWN:
                if event.button in (2, 3):  # middle/right pan
                    self.dragging_background = True
                    self.follow_craft = False
                    self.drag_start_screen = pygame.mouse.get_pos()

            elif event.type == pygame.MOUSEBUTTONUP:
                if event.button in (2, 3):
                    self.dragging_background = False

            elif event.type == pygame.MOUSEMOTION:
                if self.dragging_background:
                    mouse = pygame.mouse.get_pos()
                    dx = mouse[0] - self.drag_start_screen[0]
                    dy = mouse[1] - self.drag_start_screen[1]
                    self.camera.pan_pixels(dx, dy)
                    self.drag_start_screen = mouse

            elif event.type == pygame.KEYDOWN:
                self.handle_key(event.key)

    def handle_key(self, key):
        if key == pygame.K_SPACE:
            self.playing = not self.playing
        elif key == pygame.K_LEFTBRACKET:
            self.warp_index = max(0, self.warp_index - 1)
        elif key == pygame.K_RIGHTBRACKET:
            self.warp_index = min(len(TIME_WARPS) - 1, self.warp_index + 1)
        elif key == pygame.K_f:
            self.follow_craft = True
            self.frame_craft()
        elif key == pygame.K_a:
            settings = self.pipeline.settings
            settings.show_all_soi = not settings.show_all_soi
        elif key == pygame.K_n:
            self.add_node()
        elif key == pygame.K_TAB:
            self.cycle_node()
        elif key in (pygame.K_DELETE, pygame.K_BACKSPACE):
            self.remove_node()
        elif key == pygame.K_w:
            self.nudge_node(DV_STEP, 0.0)
        elif key == pygame.K_s:
            self.nudge_node(-DV_STEP, 0.0)
        elif key == pygame.K_q:
            self.nudge_node(0.0, DV_STEP)
        elif key == pygame.K_e:
            self.nudge_node(0.0, -DV_STEP)
        elif key == pygame.K_z:
            self.nudge_node(0.0, 0.0, DV_STEP)
        elif key == pygame.K_x:
            self.nudge_node(0.0, 0.0, -DV_STEP)

    # --------------------------------------------------------------
    # Drawing
    # --------------------------------------------------------------

    def draw_soi(self, surf, frame: Frame):
        for overlay in frame.soi:
            center = _safe_point(self.camera.world_to_screen(overlay.center))
            r_px = overlay.radius * frame.scale
            if center is None or not math.isfinite(r_px) or not 2 <= r_px <= SAFE_COORD_LIMIT:
                continue
            color = blend(SOI_COLOR, BACKGROUND_COLOR, overlay.opacity)
            gfxdraw.aacircle(surf, center[0], center[1], int(r_px), color)

        size = self.camera.viewport_size
        for future in frame.future_soi:
            draw_polyline(surf, FUTURE_SOI_COLOR, future.path, size)
            center = _safe_point(self.camera.world_to_screen(future.center))
            r_px = future.radius * frame.scale
            if center is None or not math.isfinite(r_px) or not 2 <= r_px <= SAFE_COORD_LIMIT:
                continue
            gfxdraw.aacircle(surf, center[0], center[1], int(r_px), FUTURE_SOI_COLOR)

    def draw(self, frame: Frame):
        surf = self.surface
        surf.fill(BACKGROUND_COLOR)
        arena = self.pipeline.arena
        size = self.camera.viewport_size

        self.draw_soi(surf, frame)

        for handle, buffer in frame.orbits.items():
            kind = arena.get(handle).kind
            if kind is BodyKind.CRAFT:
                if frame.segments:
                    continue
                color = CRAFT_ORBIT_COLOR
            elif kind is BodyKind.MOON:
                color = MOON_ORBIT_COLOR
            else:
                color = ORBIT_COLOR
            draw_polyline(surf, color, buffer, size, closed=True)

        for seg in frame.segments:
            color = PRE_BURN_COLOR if seg.kind is SegmentKind.PRE_BURN else POST_BURN_COLOR
            draw_polyline(surf, color, seg.points, size)
            runs = screen_runs(seg.points[-1:], size)
            if seg.index < len(frame.segments) - 1 and runs:
                x, y = runs[0][0]
                gfxdraw.aacircle(surf, x, y, 5, NODE_COLOR)

        for handle, body in enumerate(arena):
            pos = _safe_point(self.camera.render_to_screen(frame.bodies[handle]))
            if pos is None:
                continue
            vis_r = max(2, min(50, int(body.radius * frame.scale)))
            gfxdraw.filled_circle(surf, pos[0], pos[1], vis_r, body.color)
            gfxdraw.aacircle(surf, pos[0], pos[1], vis_r, (0, 0, 0))

        draw_text(surf, "Wheel: zoom | Right-drag/Arrows: pan | Space: pause | [ ]: warp | F: follow | "
                        "N: burn | Tab: select | W/S Q/E Z/X: dv | Del: remove | A: SOIs", 10, 10, HUD_COLOR)
        draw_text(surf, f"T+{self.pipeline.time:,.0f} s  Warp: {self.time_warp:,.0f}x  "
                        f"[{'Playing' if self.playing else 'Paused'}]", 10, 30, HUD_COLOR)
        node = self.flight_plan.get(self.selected_node) if self.selected_node else None
        if node is not None:
            draw_text(surf, f"Burn {node.id}: T-{node.time_offset:,.0f} s  "
                            f"prograde {node.delta_v[0]:+.0f} m/s  normal {node.delta_v[1]:+.0f} m/s  "
                            f"radial {node.radial:+.0f} m/s",
                      10, 50, NODE_COLOR)
        if frame.unsupported_node is not None:
            draw_text(surf, f"Burn {frame.unsupported_node} escapes: prediction stops there",
                      10, 70, UNSUPPORTED_COLOR)

        pygame.display.flip()


def main(argv: Optional[List[str]] = None):
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    argv = sys.argv[1:] if argv is None else argv
    if argv:
        file_name = argv[0]
    else:
        templates = list_templates()
        if not templates:
            logger.error("no scene templates found")
            return 1
        file_name = templates[0][0]
    try:
        arena, settings, display_name = load_template(file_name)
    except SceneError as exc:
        logger.error("cannot load %s: %s", file_name, exc)
        return 1
    logger.info("loaded %s (%d bodies)", display_name, len(arena))

    viewer = OrbitViewer(TrajectoryPipeline(arena, settings), title=f"Orbit Trace - {display_name}")
    viewer.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
