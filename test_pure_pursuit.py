import logging

import numpy as np
import pytest

import path_tracking.PurePursuit as pure_pursuit_module
from path_tracking.Errors import (
    DegenerateSegmentError,
    FailureKind,
    GeometryInconsistencyError,
    IntersectionOffSegmentError,
    NoIntersectionError,
)
from path_tracking.Geometry import Point, Pose, waypoints_from_xy
from path_tracking.PurePursuit import (
    KAPPA_MIN,
    CurvatureResult,
    PurePursuit,
    calc_curvature,
    compute_curvature,
    find_next_waypoint,
    interpolate_target,
)
from path_tracking.PurePursuitConfig import PurePursuitConfig

ORIGIN = Pose.from_xy_yaw(0.0, 0.0, 0.0)


# ---------------------------------------------------------------------------
# Curvature estimator


@pytest.mark.parametrize(
    "pose", [ORIGIN, Pose.from_xy_yaw(3, -2, 0.8), Pose.from_xy_yaw(-1, 4, -2.2)]
)
def test_curvature_zero_for_target_straight_ahead(pose):
    yaw = pose.orientation.yaw()
    target = Point(
        pose.position.x + 4 * np.cos(yaw), pose.position.y + 4 * np.sin(yaw)
    )
    assert calc_curvature(target, pose) == pytest.approx(0.0, abs=1e-12)


@pytest.mark.parametrize("local", [(2.0, 1.0), (5.0, -3.0), (-4.0, 2.0), (0.5, 0.1)])
def test_curvature_matches_parabola(local):
    x, y = local
    assert calc_curvature(Point(x, y), ORIGIN) == pytest.approx(2 * y / x**2)


def test_curvature_in_rotated_frame():
    # Facing +y from (1, 1): world (3, 5) is 4 ahead and 2 to the right
    pose = Pose.from_xy_yaw(1, 1, np.pi / 2)
    assert calc_curvature(Point(3, 5), pose) == pytest.approx(2 * -2 / 16)


def test_curvature_for_target_abeam_is_clamped():
    assert calc_curvature(Point(0, 3), ORIGIN) == KAPPA_MIN
    assert calc_curvature(Point(0, -3), ORIGIN) == -KAPPA_MIN
    assert calc_curvature(Point(0, 0), ORIGIN) == -KAPPA_MIN
    assert calc_curvature(Point(0, 3), ORIGIN, kappa_min=0.25) == 0.25


# ---------------------------------------------------------------------------
# Waypoint search


def test_find_next_waypoint_empty_path():
    assert find_next_waypoint([], ORIGIN, 5.0) == -1


def test_find_next_waypoint_all_within_lookahead_returns_last():
    path = waypoints_from_xy([(0, 0), (1, 0), (2, 0)])
    assert find_next_waypoint(path, ORIGIN, 5.0) == 2


def test_find_next_waypoint_first_beyond_lookahead():
    path = waypoints_from_xy([(0, 0), (3, 0), (6, 0), (9, 0)])
    assert find_next_waypoint(path, ORIGIN, 5.0) == 2


def test_find_next_waypoint_restarts_from_start():
    # A waypoint behind the vehicle is picked if it is beyond the radius
    path = waypoints_from_xy([(-10, 0), (0, 0), (10, 0)])
    assert find_next_waypoint(path, ORIGIN, 5.0) == 0


def test_find_next_waypoint_uses_strict_comparison():
    path = waypoints_from_xy([(0, 0), (5, 0), (6, 0), (7, 0)])
    assert find_next_waypoint(path, ORIGIN, 5.0) == 2


# ---------------------------------------------------------------------------
# Lookahead-circle intersector


def test_interpolate_last_index_returns_waypoint():
    path = waypoints_from_xy([(0, 0), (10, 0)])
    assert interpolate_target(path, 1, ORIGIN, 5.0) == Point(10, 0)


def test_interpolate_along_straight_segment():
    path = waypoints_from_xy([(0, 0), (10, 0), (10, 10)])
    target = interpolate_target(path, 1, ORIGIN, 5.0)
    assert (target.x, target.y) == pytest.approx((5.0, 0.0))


def test_interpolate_diagonal_segment():
    path = waypoints_from_xy([(0, 0), (2, 2), (4, 4), (6, 6)])
    target = interpolate_target(path, 2, ORIGIN, 3.0)
    expected = 3.0 / np.sqrt(2)
    assert (target.x, target.y) == pytest.approx((expected, expected))


def test_interpolate_keeps_vehicle_height():
    path = waypoints_from_xy([(0, 0), (10, 0), (10, 10)])
    pose = Pose(Point(0, 0, 1.5))
    assert interpolate_target(path, 1, pose, 5.0).z == 1.5


def test_interpolate_degenerate_segment():
    path = waypoints_from_xy([(0, 0), (5, 0), (5, 0), (20, 0)])
    with pytest.raises(DegenerateSegmentError):
        interpolate_target(path, 2, ORIGIN, 5.0)


def test_interpolate_no_intersection():
    path = waypoints_from_xy([(0, 10), (10, 10), (20, 10)])
    with pytest.raises(NoIntersectionError):
        interpolate_target(path, 1, ORIGIN, 5.0)


def test_interpolate_tangent_returns_perpendicular_foot():
    path = waypoints_from_xy([(0, 0), (10, 0), (20, 0)])
    pose = Pose.from_xy_yaw(0, 5, 0)
    target = interpolate_target(path, 1, pose, 5.0)
    assert (target.x, target.y) == pytest.approx((0.0, 0.0), abs=1e-12)


def test_interpolate_forward_candidate_wins():
    path = waypoints_from_xy([(0, 0), (10, 0), (20, 0)])
    target = interpolate_target(path, 1, Pose.from_xy_yaw(5, 0, 0), 3.0)
    assert (target.x, target.y) == pytest.approx((8.0, 0.0))


def test_interpolate_falls_back_to_backward_candidate():
    # Vehicle past the end of the segment: the forward crossing (21, 0) is
    # off the segment, the backward one (5, 0) is on it
    path = waypoints_from_xy([(0, 0), (10, 0), (20, 0)])
    target = interpolate_target(path, 1, Pose.from_xy_yaw(13, 0, 0), 8.0)
    assert (target.x, target.y) == pytest.approx((5.0, 0.0))


def test_interpolate_intersection_off_segment():
    path = waypoints_from_xy([(0, 0), (1, 0), (2, 0)])
    with pytest.raises(IntersectionOffSegmentError):
        interpolate_target(path, 1, Pose.from_xy_yaw(10, 0, 0), 3.0)


def test_interpolate_circle_through_segment_start_is_off_segment():
    # The forward crossing lands on the segment start, exactly one interval
    # from the segment end, which the strict bound rejects
    path = waypoints_from_xy([(i * 0.2, 0.0) for i in range(10)])
    with pytest.raises(IntersectionOffSegmentError):
        interpolate_target(path, 5, ORIGIN, 0.8)


def test_interpolate_no_perpendicular_foot(monkeypatch):
    monkeypatch.setattr(pure_pursuit_module, "PERPENDICULAR_FOOT_TOLERANCE", 0.0)
    path = waypoints_from_xy([(0, 0), (10, 0), (10, 10)])
    with pytest.raises(GeometryInconsistencyError):
        interpolate_target(path, 1, ORIGIN, 5.0)


@pytest.mark.parametrize("index", [0, 3, -1])
def test_interpolate_rejects_out_of_range_index(index):
    path = waypoints_from_xy([(0, 0), (10, 0), (20, 0)])
    with pytest.raises(ValueError):
        interpolate_target(path, index, ORIGIN, 5.0)


# ---------------------------------------------------------------------------
# Controller


def test_scenario_short_path_targets_last_waypoint():
    path = waypoints_from_xy([(0, 0), (10, 0)])
    result = compute_curvature(ORIGIN, path, 5.0, 1.0, True)
    assert result.success
    assert result.target == Point(10, 0)
    assert result.curvature == 0.0
    assert result.failure is None


def test_scenario_interpolated_target():
    path = waypoints_from_xy([(0, 0), (10, 0), (10, 10)])
    result = compute_curvature(ORIGIN, path, 5.0, 1.0, True)
    assert result.success
    assert (result.target.x, result.target.y) == pytest.approx((5.0, 0.0))
    assert result.curvature == pytest.approx(0.0)


def test_scenario_empty_path():
    result = compute_curvature(ORIGIN, [], 5.0, 1.0, True)
    assert result == CurvatureResult(success=False, failure=FailureKind.EMPTY_PATH)
    assert result.curvature is None
    assert result.target is None


def test_scenario_path_too_short():
    path = waypoints_from_xy([(0.1, 0), (0.5, 0.2), (0.9, 0)])
    result = compute_curvature(ORIGIN, path, 5.0, 1.0, True)
    assert not result.success
    assert result.failure == FailureKind.PATH_TOO_SHORT


def test_scenario_degenerate_segment_reported_as_failure(monkeypatch):
    # Selecting a duplicated waypoint requires a search that does not stop at
    # the first waypoint beyond the radius
    monkeypatch.setattr(pure_pursuit_module, "find_next_waypoint", lambda *args: 2)
    path = waypoints_from_xy([(0, 0), (8, 0), (8, 0), (20, 0)])
    result = compute_curvature(ORIGIN, path, 5.0, 1.0, True)
    assert not result.success
    assert result.failure == FailureKind.DEGENERATE_SEGMENT
    assert result.failure.is_path_lost


def test_circle_through_segment_start_reported_as_failure():
    path = waypoints_from_xy([(i * 0.2, 0.0) for i in range(10)])
    result = compute_curvature(ORIGIN, path, 0.8, 0.4, True)
    assert not result.success
    assert result.failure == FailureKind.INTERSECTION_OFF_SEGMENT
    assert result.curvature is None


def test_geometry_inconsistency_reported_as_failure(monkeypatch):
    monkeypatch.setattr(pure_pursuit_module, "PERPENDICULAR_FOOT_TOLERANCE", 0.0)
    path = waypoints_from_xy([(0, 0), (10, 0), (10, 10)])
    result = compute_curvature(ORIGIN, path, 5.0, 1.0, True)
    assert result.failure == FailureKind.GEOMETRY_INCONSISTENCY


def test_interpolation_disabled_snaps_to_waypoint():
    path = waypoints_from_xy([(0, 0), (10, 0), (10, 10)])
    result = compute_curvature(ORIGIN, path, 5.0, 1.0, False)
    assert result.success
    assert result.target == Point(10, 0)


def test_first_waypoint_is_not_interpolated():
    path = waypoints_from_xy([(10, 2), (20, 0), (30, 0)])
    result = compute_curvature(ORIGIN, path, 5.0, 1.0, True)
    assert result.target == Point(10, 2)
    assert result.curvature == pytest.approx(2 * 2 / 100)


def test_left_turn_has_positive_curvature():
    path = waypoints_from_xy([(0, 0), (2, 2), (4, 4), (6, 6)])
    result = compute_curvature(ORIGIN, path, 3.0, 1.0, True)
    assert result.success
    assert result.curvature == pytest.approx(2 * np.sqrt(2) / 3)


def test_path_is_not_modified():
    points = [(0, 0), (10, 0), (10, 10)]
    path = waypoints_from_xy(points)
    compute_curvature(ORIGIN, path, 5.0, 1.0, True)
    assert path == waypoints_from_xy(points)


@pytest.mark.parametrize("lookahead, minimum", [(1.0, 2.0), (5.0, -1.0)])
def test_invalid_distances_raise(lookahead, minimum):
    path = waypoints_from_xy([(0, 0), (10, 0)])
    with pytest.raises(ValueError):
        compute_curvature(ORIGIN, path, lookahead, minimum, True)


def test_failures_are_logged(caplog):
    with caplog.at_level(logging.INFO, logger="path_tracking.PurePursuit"):
        compute_curvature(ORIGIN, [], 5.0, 1.0, True)
    assert "No waypoints" in caplog.text


def test_failure_kinds_path_lost():
    assert FailureKind.NO_INTERSECTION.is_path_lost
    assert FailureKind.PATH_LOST.is_path_lost
    assert not FailureKind.PATH_TOO_SHORT.is_path_lost
    assert not FailureKind.EMPTY_PATH.is_path_lost


def test_controller_uses_speed_dependent_lookahead():
    controller = PurePursuit(
        PurePursuitConfig(lookahead_ratio=1.0, minimum_lookahead_distance=1.0)
    )
    path = waypoints_from_xy([(0, 0), (10, 0), (10, 10)])

    result = controller.compute(ORIGIN, path, velocity=5.0)
    assert (result.target.x, result.target.y) == pytest.approx((5.0, 0.0))

    # Slow: lookahead falls back to the minimum
    result = controller.compute(ORIGIN, path, velocity=0.2)
    assert (result.target.x, result.target.y) == pytest.approx((1.0, 0.0))


def test_controller_rejects_invalid_config():
    with pytest.raises(ValueError):
        PurePursuit(PurePursuitConfig(kappa_min=0.0))
