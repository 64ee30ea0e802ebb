"""
End-to-end frame pipeline tests on the bundled solar system template.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from trajcore.data_models import ManeuverNode, SegmentKind
from trajcore.pipeline import Frame, TrajectoryPipeline
from trajcore.presets_loader import load_template
from trajcore.soi import future_position, soi_radius


@pytest.fixture
def scene(small_settings):
    arena, _, _ = load_template("solar_system.json")
    pipeline = TrajectoryPipeline(arena, small_settings)
    handles = {body.name: arena.find(body.name) for body in arena}
    return pipeline, handles


def test_frame_contains_every_orbiting_body(scene):
    pipeline, h = scene
    craft = pipeline.arena.get(h["Craft"])
    frame = pipeline.build_frame(craft.position, 1e-5)
    assert isinstance(frame, Frame)
    assert sorted(frame.orbits) == sorted([h["Earth"], h["Moon"], h["Mars"], h["Craft"]])
    for buffer in frame.orbits.values():
        assert buffer.dtype == np.float32
        assert buffer.shape[1] == 2
    assert frame.bodies.shape == (5, 2)
    assert frame.segments == []
    assert frame.unsupported_node is None


def test_followed_craft_sits_at_origin(scene):
    pipeline, h = scene
    craft = pipeline.arena.get(h["Craft"])
    frame = pipeline.build_frame(craft.position, 1e-5)
    assert_array_equal(frame.bodies[h["Craft"]], [0.0, 0.0])
    # a 6771 km orbit around Earth, 1 AU from the Sun, still projects as a clean ellipse
    radii = np.hypot(*(frame.orbits[h["Craft"]] - frame.bodies[h["Earth"]]).T)
    assert_allclose(radii, 6.771e6 * 1e-5, rtol=2e-3)


def test_flight_plan_segments_and_soi(scene):
    pipeline, h = scene
    craft = pipeline.arena.get(h["Craft"])
    plan = pipeline.new_flight_plan()
    plan.add(ManeuverNode(time_offset=1000.0, delta_v=(100.0, 0.0)))
    frame = pipeline.build_frame(craft.position, 1e-5, h["Craft"], plan)
    assert [s.kind for s in frame.segments] == [SegmentKind.PRE_BURN, SegmentKind.POST_BURN]
    assert all(s.points.dtype == np.float32 for s in frame.segments)
    earth = [o for o in frame.soi if o.body == h["Earth"]]
    assert len(earth) == 1
    assert earth[0].relevant
    assert earth[0].opacity == 0.8
    assert all(o.body != h["Mars"] for o in frame.soi)


def test_craft_orbit_drives_soi_without_plan(scene):
    pipeline, h = scene
    craft = pipeline.arena.get(h["Craft"])
    frame = pipeline.build_frame(craft.position, 1e-5, h["Craft"])
    assert [o.body for o in frame.soi] == [h["Earth"]]


def test_unsupported_node_reported(scene):
    pipeline, h = scene
    craft = pipeline.arena.get(h["Craft"])
    plan = pipeline.new_flight_plan()
    node = plan.add(ManeuverNode(time_offset=500.0, delta_v=(5000.0, 0.0)))
    frame = pipeline.build_frame(craft.position, 1e-5, h["Craft"], plan)
    assert frame.unsupported_node == node.id
    assert len(frame.segments) == 1


def test_removed_segments_release_buffers(scene):
    pipeline, h = scene
    craft = pipeline.arena.get(h["Craft"])
    plan = pipeline.new_flight_plan()
    node = plan.add(ManeuverNode(time_offset=1000.0, delta_v=(10.0, 0.0)))
    pipeline.build_frame(craft.position, 1e-5, h["Craft"], plan)
    assert pipeline.projector.capacity(("segment", 1)) > 0
    plan.remove(node.id)
    pipeline.build_frame(craft.position, 1e-5, h["Craft"], plan)
    assert pipeline.projector.capacity(("segment", 1)) == 0


def test_show_all_soi(scene):
    pipeline, h = scene
    pipeline.settings.show_all_soi = True
    frame = pipeline.build_frame((0.0, 0.0), 1e-9)
    assert sorted(o.body for o in frame.soi) == sorted([h["Earth"], h["Moon"], h["Mars"]])


def test_step_advances_time_and_keeps_parent(scene):
    pipeline, h = scene
    start = pipeline.arena.get(h["Earth"]).position
    pipeline.step(86400.0)
    assert pipeline.time == 86400.0
    assert pipeline.arena.get(h["Earth"]).position != start
    assert pipeline.arena.get(h["Craft"]).parent == h["Earth"]


def test_craft_captured_by_new_soi(scene):
    pipeline, h = scene
    arena = pipeline.arena
    mars = arena.get(h["Mars"])
    craft = arena.get(h["Craft"])
    craft.orbit = None
    craft.position = (mars.position[0] + 1.0e7, mars.position[1])
    craft.velocity = (mars.velocity[0], mars.velocity[1] + 1500.0)
    pipeline.step(1.0)
    assert craft.parent == h["Mars"]
    assert craft.orbit is not None
    assert craft.orbit.parent == h["Mars"]


def test_orbit_cache_survives_frames(scene):
    pipeline, h = scene
    pipeline.build_frame((0.0, 0.0), 1e-9)
    entry = pipeline.sampler.sample(h["Mars"], pipeline.arena.get(h["Mars"]))
    pipeline.step(3600.0)
    pipeline.build_frame((0.0, 0.0), 1e-9)
    assert pipeline.sampler.sample(h["Mars"], pipeline.arena.get(h["Mars"])) is entry


def test_future_soi_at_node_times(scene):
    pipeline, h = scene
    arena = pipeline.arena
    pipeline.settings.future_path_samples = 8
    craft = arena.get(h["Craft"])
    plan = pipeline.new_flight_plan()
    node = plan.add(ManeuverNode(time_offset=1000.0, delta_v=(100.0, 0.0)))
    frame = pipeline.build_frame(craft.position, 1e-5, h["Craft"], plan)

    assert [(f.body, f.node_id) for f in frame.future_soi] == [(h["Earth"], node.id)]
    entry = frame.future_soi[0]
    assert entry.radius == soi_radius(h["Earth"], arena)
    assert entry.path.dtype == np.float32
    assert entry.path.shape == (9, 2)
    expected = future_position(h["Earth"], arena, 1000.0)
    assert entry.center == expected

    pipeline.step(1000.0)
    assert_allclose(arena.get(h["Earth"]).position, expected, atol=1.0)


def test_future_soi_buffers_released_with_nodes(scene):
    pipeline, h = scene
    craft = pipeline.arena.get(h["Craft"])
    plan = pipeline.new_flight_plan()
    node = plan.add(ManeuverNode(time_offset=1000.0, delta_v=(10.0, 0.0)))
    frame = pipeline.build_frame(craft.position, 1e-5, h["Craft"], plan)
    assert len(frame.future_soi) == 1
    assert pipeline.projector.capacity(("future", 0)) > 0
    plan.remove(node.id)
    frame = pipeline.build_frame(craft.position, 1e-5, h["Craft"], plan)
    assert frame.future_soi == []
    assert pipeline.projector.capacity(("future", 0)) == 0


def test_no_future_soi_without_plan(scene):
    pipeline, h = scene
    craft = pipeline.arena.get(h["Craft"])
    assert pipeline.build_frame(craft.position, 1e-5, h["Craft"]).future_soi == []
