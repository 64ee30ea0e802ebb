"""
Camera transform tests.
"""

import pytest

from trajcore.camera import Camera2D
from trajcore.constants import MAX_SCALE, MIN_SCALE


@pytest.fixture
def camera():
    cam = Camera2D(center=(1.0e11, -2.0e10), scale=1e-6)
    cam.set_viewport_size(800, 600)
    return cam


def test_center_maps_to_viewport_middle(camera):
    assert camera.world_to_screen(camera.center) == (400, 300)


def test_y_axis_points_up(camera):
    x, y = camera.world_to_screen((camera.center[0] + 1.0e8, camera.center[1] + 1.0e8))
    assert (x, y) == (500, 200)


def test_screen_to_world_inverts_world_to_screen(camera):
    world = camera.screen_to_world((123, 456))
    assert camera.world_to_screen(world) == (123, 456)


def test_zoom_keeps_pivot_fixed(camera):
    pivot = (100, 500)
    before = camera.screen_to_world(pivot)
    camera.zoom(2.0, pivot)
    after = camera.screen_to_world(pivot)
    assert after == pytest.approx(before, rel=1e-12)
    assert camera.scale == pytest.approx(2e-6)


def test_zoom_is_clamped(camera):
    for _ in range(100):
        camera.zoom(20.0)
    assert camera.scale == MAX_SCALE
    for _ in range(100):
        camera.zoom(0.05)
    assert camera.scale == MIN_SCALE


def test_pan_pixels(camera):
    cx, cy = camera.center
    camera.pan_pixels(10, 20)
    assert camera.center == pytest.approx((cx - 1.0e7, cy + 2.0e7))


def test_follow_and_meters_per_pixel(camera):
    camera.follow((5.0, 6.0))
    assert camera.center == (5.0, 6.0)
    assert camera.meters_per_pixel == pytest.approx(1.0e6)
