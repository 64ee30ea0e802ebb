"""
Maneuver node application, segment chaining and flight plan reuse tests.
"""

import math

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from trajcore.constants import EARTH_MASS, G
from trajcore.data_models import DeltaVFrame, ManeuverNode, SegmentKind
from trajcore.errors import UnsupportedOrbitError
from trajcore.maneuver import (
    FlightPlan,
    ManeuverPredictor,
    apply_node,
    closest_point,
    delta_v_vector,
)
from trajcore.orbit import OrbitModel
from trajcore.physics import KeplerPropagator

from conftest import CRAFT_MASS, LEO_RADIUS

MU = G * EARTH_MASS


@pytest.fixture
def predictor(small_settings):
    return ManeuverPredictor(small_settings)


@pytest.fixture
def orbit():
    return OrbitModel.from_elements(8.0e6, 0.1, 0.4, 0, mean_anomaly=0.2)


def _three_nodes():
    return [
        ManeuverNode(time_offset=1000.0, delta_v=(50.0, 0.0)),
        ManeuverNode(time_offset=5000.0, delta_v=(0.0, 30.0)),
        ManeuverNode(time_offset=9000.0, delta_v=(-20.0, 0.0)),
    ]


# =============================================================================
# Delta-v frames and single burns
# =============================================================================

class TestDeltaV:

    def test_prograde_frame(self):
        node = ManeuverNode(time_offset=0.0, delta_v=(10.0, 0.0))
        assert_allclose(delta_v_vector(node, (0.0, 5.0)), (0.0, 10.0))

    def test_normal_is_prograde_rotated_left(self):
        node = ManeuverNode(time_offset=0.0, delta_v=(0.0, 10.0))
        assert_allclose(delta_v_vector(node, (3.0, 0.0)), (0.0, 10.0), atol=1e-12)

    def test_parent_frame_is_passed_through(self):
        node = ManeuverNode(time_offset=0.0, delta_v=(1.0, -2.0), frame=DeltaVFrame.PARENT)
        assert delta_v_vector(node, (7000.0, 0.0)) == (1.0, -2.0)

    def test_radial_points_away_from_parent(self):
        node = ManeuverNode(time_offset=0.0, radial=10.0)
        assert_allclose(delta_v_vector(node, (0.0, 5.0), (3.0, 4.0)), (6.0, 8.0))

    def test_radial_adds_to_parent_frame(self):
        node = ManeuverNode(time_offset=0.0, delta_v=(1.0, -2.0), frame=DeltaVFrame.PARENT,
                            radial=10.0)
        assert_allclose(delta_v_vector(node, (7000.0, 0.0), (0.0, -7.0e6)), (1.0, -12.0))

    def test_total_delta_v_includes_radial(self):
        node = ManeuverNode(time_offset=0.0, delta_v=(2.0, 3.0), radial=6.0)
        assert node.total_delta_v == pytest.approx(7.0)

    def test_pure_radial_burn_keeps_angular_momentum(self):
        circular = OrbitModel.from_elements(LEO_RADIUS, 0.0, 0.0, 0)
        after = apply_node(circular, ManeuverNode(time_offset=0.0, radial=100.0), MU)
        r, v = after.state_at_time(MU, 0.0)
        r_hat = np.array(r) / np.hypot(*r)
        assert float(np.dot(v, r_hat)) == pytest.approx(100.0, abs=1e-3)
        assert_allclose(r, circular.position_at_time(MU, 0.0), atol=1e-3)
        # a radial burn leaves h = r x v, and so the semi-latus rectum, unchanged
        p = after.semi_major_axis * (1.0 - after.eccentricity ** 2)
        assert p == pytest.approx(LEO_RADIUS, rel=1e-9)
        assert after.eccentricity == pytest.approx(100.0 / math.sqrt(MU / LEO_RADIUS), rel=1e-3)

    def test_negative_time_rejected(self):
        with pytest.raises(ValueError):
            ManeuverNode(time_offset=-1.0)
        with pytest.raises(ValueError):
            ManeuverNode(time_offset=float("nan"))

    def test_zero_delta_v_is_identity(self, orbit):
        node = ManeuverNode(time_offset=1234.0)
        after = apply_node(orbit, node, MU)
        assert after.semi_major_axis == pytest.approx(orbit.semi_major_axis, rel=1e-9)
        assert after.eccentricity == pytest.approx(orbit.eccentricity, rel=1e-9)
        assert after.argument_of_periapsis == pytest.approx(orbit.argument_of_periapsis, abs=1e-9)
        assert after.epoch == 1234.0
        assert_allclose(after.position_at_time(MU, 500.0),
                        orbit.position_at_time(MU, 1234.0 + 500.0), atol=1e-2)

    def test_prograde_burn_raises_apoapsis(self, orbit):
        after = apply_node(orbit, ManeuverNode(time_offset=0.0, delta_v=(100.0, 0.0)), MU)
        assert after.semi_major_axis > orbit.semi_major_axis

    def test_escape_burn_rejected(self, orbit):
        with pytest.raises(UnsupportedOrbitError):
            apply_node(orbit, ManeuverNode(time_offset=0.0, delta_v=(5000.0, 0.0)), MU)


# =============================================================================
# Segment chains
# =============================================================================

class TestPredictSegments:

    def test_no_nodes_gives_one_period(self, predictor, orbit):
        segments = predictor.predict_segments(orbit, [], MU)
        assert len(segments) == 1
        assert segments[0].kind is SegmentKind.PRE_BURN
        assert segments[0].duration == pytest.approx(orbit.period(MU))

    def test_segment_times_and_kinds(self, predictor, orbit):
        nodes = _three_nodes()
        segments = predictor.predict_segments(orbit, list(reversed(nodes)), MU)
        assert [s.kind for s in segments] == [SegmentKind.PRE_BURN] + [SegmentKind.POST_BURN] * 3
        assert [(s.t_start, s.t_end) for s in segments[:3]] == [
            (0.0, 1000.0), (1000.0, 5000.0), (5000.0, 9000.0)]
        assert segments[3].t_start == 9000.0
        assert segments[3].duration == pytest.approx(segments[3].orbit.period(MU))
        assert [s.node_id for s in segments] == [None] + [n.id for n in nodes]

    def test_segments_are_continuous(self, predictor, orbit):
        segments = predictor.predict_segments(orbit, _three_nodes(), MU)
        for before, after in zip(segments, segments[1:]):
            assert_allclose(before.points[-1], after.points[0], atol=1e-2)

    def test_parent_position_offsets_points(self, predictor, orbit):
        at_origin = predictor.predict_segments(orbit, [], MU)
        moved = predictor.predict_segments(orbit, [], MU, parent_position=(1.0e9, -2.0e9))
        offset = np.broadcast_to([1.0e9, -2.0e9], moved[0].points.shape)
        assert_allclose(moved[0].points - at_origin[0].points, offset, atol=1e-3)

    def test_chain_independence(self, predictor, orbit):
        """Editing node k leaves segments 0..k bit-identical."""
        nodes = _three_nodes()
        before = predictor.predict_segments(orbit, nodes, MU)
        k = 1
        nodes[k].delta_v = (0.0, 60.0)
        after = predictor.predict_segments(orbit, nodes, MU)
        for i in range(k + 1):
            assert_array_equal(before[i].points, after[i].points)
        assert not np.array_equal(before[k + 1].points, after[k + 1].points)

    def test_prefix_reuse_matches_full_prediction(self, predictor, orbit):
        nodes = _three_nodes()
        full = predictor.predict_segments(orbit, nodes, MU)
        resumed = predictor.predict_segments(orbit, nodes, MU, prefix=full[:2])
        assert resumed[0] is full[0] and resumed[1] is full[1]
        for a, b in zip(full, resumed):
            assert_array_equal(a.points, b.points)

    def test_unbound_burn_carries_partial_segments(self, predictor, orbit):
        nodes = _three_nodes()
        nodes[1].delta_v = (5000.0, 0.0)
        with pytest.raises(UnsupportedOrbitError) as info:
            predictor.predict_segments(orbit, nodes, MU)
        assert info.value.node_id == nodes[1].id
        assert len(info.value.segments) == 2

    def test_predict_for_body_starts_at_body(self, predictor, earth_arena):
        segments = predictor.predict_for_body(1, earth_arena, [])
        assert_allclose(segments[0].points[0], earth_arena.get(1).position, atol=1e-3)
        assert predictor.predict_for_body(0, earth_arena, []) == []

    def test_closest_point(self):
        points = np.array([[0.0, 0.0], [10.0, 0.0], [20.0, 0.0]])
        index, point, distance = closest_point(points, (11.0, 1.0))
        assert index == 1
        assert point == (10.0, 0.0)
        assert distance == pytest.approx(math.sqrt(2.0))
        assert closest_point(np.empty((0, 2)), (0.0, 0.0)) is None


# =============================================================================
# Flight plan
# =============================================================================

class TestFlightPlan:

    @pytest.fixture
    def plan(self, predictor):
        plan = FlightPlan(predictor)
        for node in _three_nodes():
            plan.add(node)
        return plan

    def test_nodes_kept_sorted(self, predictor):
        plan = FlightPlan(predictor)
        late = plan.add(ManeuverNode(time_offset=900.0))
        early = plan.add(ManeuverNode(time_offset=100.0))
        assert [n.id for n in plan.nodes] == [early.id, late.id]
        assert plan.next_node() is early
        assert len(plan) == 2

    def test_unchanged_plan_returns_cached_segments(self, plan, earth_arena):
        first = plan.segments(1, earth_arena)
        assert plan.segments(1, earth_arena) is first
        assert len(first) == 4

    def test_delta_v_edit_reuses_earlier_segments(self, plan, earth_arena):
        before = plan.segments(1, earth_arena)
        plan.update(plan.nodes[1].id, delta_v=(0.0, 45.0))
        after = plan.segments(1, earth_arena)
        assert after[0] is before[0] and after[1] is before[1]
        assert after[2] is not before[2]

    def test_radial_edit_reuses_earlier_segments(self, plan, earth_arena):
        before = plan.segments(1, earth_arena)
        plan.update(plan.nodes[0].id, radial=25.0)
        after = plan.segments(1, earth_arena)
        assert plan.nodes[0].radial == 25.0
        assert after[0] is before[0]
        assert after[1] is not before[1]

    def test_duplicate_id_rejected(self, plan):
        existing = plan.nodes[1]
        with pytest.raises(ValueError):
            plan.add(ManeuverNode(time_offset=200.0, id=existing.id))
        assert len(plan) == 3
        assert plan.get(existing.id) is existing

    def test_time_edit_reuses_segments_before_node(self, plan, earth_arena):
        before = plan.segments(1, earth_arena)
        plan.update(plan.nodes[2].id, time_offset=7000.0)
        after = plan.segments(1, earth_arena)
        assert after[0] is before[0] and after[1] is before[1]
        assert after[2].t_end == 7000.0

    def test_time_edit_can_reorder(self, plan, earth_arena):
        plan.segments(1, earth_arena)
        last = plan.nodes[2]
        plan.update(last.id, time_offset=10.0)
        assert plan.nodes[0] is last
        segments = plan.segments(1, earth_arena)
        assert segments[0].t_end == 10.0

    def test_remove_node(self, plan, earth_arena):
        before = plan.segments(1, earth_arena)
        plan.remove(plan.nodes[1].id)
        after = plan.segments(1, earth_arena)
        assert len(after) == 3
        assert after[0] is before[0]
        with pytest.raises(KeyError):
            plan.remove("missing")

    def test_base_state_change_recomputes_everything(self, plan, earth_arena):
        before = plan.segments(1, earth_arena)
        KeplerPropagator(earth_arena).step(60.0)
        after = plan.segments(1, earth_arena)
        assert after[0] is not before[0]
        assert_allclose(after[0].points[0], earth_arena.get(1).position, atol=1e-3)

    def test_unbound_node_stops_prediction(self, plan, earth_arena):
        bad = plan.nodes[1]
        plan.update(bad.id, delta_v=(5000.0, 0.0))
        segments = plan.segments(1, earth_arena)
        assert len(segments) == 2
        assert plan.unsupported_node == bad.id
        plan.update(bad.id, delta_v=(10.0, 0.0))
        assert len(plan.segments(1, earth_arena)) == 4
        assert plan.unsupported_node is None

    def test_body_without_orbit_has_no_segments(self, plan, earth_arena):
        assert plan.segments(0, earth_arena) == []

    def test_clear(self, plan, earth_arena):
        plan.segments(1, earth_arena)
        plan.clear()
        assert plan.next_node() is None
        assert len(plan.segments(1, earth_arena)) == 1

    def test_craft_mass_enters_mu(self, earth_arena):
        assert earth_arena.mu_of(1) == pytest.approx(G * (EARTH_MASS + CRAFT_MASS))
        assert LEO_RADIUS == pytest.approx(earth_arena.get(1).orbit.semi_major_axis)
