import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from path_tracking.Errors import (
    FailureKind,
    GeometryInconsistencyError,
    IntersectionOffSegmentError,
    NoIntersectionError,
    PurePursuitError,
)
from path_tracking.Geometry import (
    Point,
    Pose,
    Waypoint,
    line_equation,
    plane_distance,
    point_line_distance,
    relative_coordinate,
    rotate_unit_vector,
)
from path_tracking.PurePursuitConfig import KAPPA_MIN, PurePursuitConfig

logger = logging.getLogger(__name__)

# Maximum residual of a*x + b*y + c for a perpendicular foot to count as on the line
PERPENDICULAR_FOOT_TOLERANCE: float = 1e-5


@dataclass(frozen=True)
class CurvatureResult:
    """
    Outcome of one controller cycle

    curvature and target are None unless success is True, in which case
    failure is None.
    """

    success: bool
    curvature: Optional[float] = None
    target: Optional[Point] = None
    failure: Optional[FailureKind] = None

    @staticmethod
    def failed(kind: FailureKind) -> "CurvatureResult":
        return CurvatureResult(success=False, failure=kind)


def find_next_waypoint(
    path: Sequence[Waypoint], pose: Pose, lookahead_distance: float
) -> int:
    """
    Index of the first waypoint farther than lookahead_distance from the vehicle

    The scan starts at index 0 on every call. When no waypoint qualifies the
    last index is returned so the vehicle aims at the end of the path.

    Parameters:
    path: Ordered waypoints
    pose: Current vehicle pose
    lookahead_distance: Lookahead radius

    Returns:
    Waypoint index, or -1 if the path is empty
    """
    path_size = len(path)
    if path_size == 0:
        return -1

    for i, waypoint in enumerate(path):
        if i == path_size - 1:
            return i
        if plane_distance(waypoint.position, pose.position) > lookahead_distance:
            return i

    return -1


def interpolate_target(
    path: Sequence[Waypoint],
    segment_index: int,
    pose: Pose,
    lookahead_distance: float,
) -> Point:
    """
    Intersect the lookahead circle with the segment ending at segment_index

    The circle is centered at the vehicle with radius lookahead_distance. The
    segment runs from path[segment_index - 1] to path[segment_index]. Of the
    two crossings the one reached by moving forward along the segment is
    checked first.

    Parameters:
    path: Ordered waypoints
    segment_index: Index of the segment's end waypoint (>= 1)
    pose: Current vehicle pose
    lookahead_distance: Lookahead radius

    Returns:
    The target point in the world frame

    Raises:
    DegenerateSegmentError: segment endpoints coincide
    NoIntersectionError: the circle does not reach the segment's line
    GeometryInconsistencyError: no perpendicular foot lies on the line
    IntersectionOffSegmentError: both crossings lie outside the segment
    """
    path_size = len(path)
    if segment_index < 1 or segment_index >= path_size:
        raise ValueError(
            f"segment_index {segment_index} out of range for path of size {path_size}"
        )

    if segment_index == path_size - 1:
        return path[segment_index].position

    start = path[segment_index - 1].position
    end = path[segment_index].position
    center = pose.position

    a, b, c = line_equation(start, end)

    d = point_line_distance(center, a, b, c)
    if d > lookahead_distance:
        raise NoIntersectionError(
            f"Line is {d:.3f} from the vehicle, beyond lookahead {lookahead_distance:.3f}"
        )

    direction = np.array([end.x - start.x, end.y - start.y], dtype=np.float64)
    unit_v = direction / np.linalg.norm(direction)

    # Normals on both sides of the segment
    unit_w1 = rotate_unit_vector(unit_v, 90)
    unit_w2 = rotate_unit_vector(unit_v, -90)

    h1 = Point(center.x + d * unit_w1[0], center.y + d * unit_w1[1], center.z)
    h2 = Point(center.x + d * unit_w2[0], center.y + d * unit_w2[1], center.z)

    if abs(a * h1.x + b * h1.y + c) < PERPENDICULAR_FOOT_TOLERANCE:
        foot = h1
    elif abs(a * h2.x + b * h2.y + c) < PERPENDICULAR_FOOT_TOLERANCE:
        foot = h2
    else:
        raise GeometryInconsistencyError(
            "Neither perpendicular foot satisfies the line equation"
        )

    # Tangent: the foot is the only intersection
    if d == lookahead_distance:
        return foot

    s = float(np.sqrt(lookahead_distance**2 - d**2))
    target1 = Point(foot.x + s * unit_v[0], foot.y + s * unit_v[1], center.z)
    target2 = Point(foot.x - s * unit_v[0], foot.y - s * unit_v[1], center.z)

    interval = plane_distance(end, start)
    if plane_distance(target1, end) < interval:
        return target1
    if plane_distance(target2, end) < interval:
        return target2

    raise IntersectionOffSegmentError(
        f"Both intersections fall outside segment {segment_index - 1}->{segment_index}"
    )


def calc_curvature(target: Point, pose: Pose, kappa_min: float = KAPPA_MIN) -> float:
    """
    Curvature of the parabola y = k*x^2 through the vehicle and the target

    With the vehicle at the vertex (so the arc starts along the heading) the
    curvature at the vehicle is 2*y / x^2 in local coordinates. A target
    directly abeam yields +/- kappa_min depending on the side.

    Parameters:
    target: Target point in the world frame
    pose: Current vehicle pose
    kappa_min: Magnitude returned when x == 0

    Returns:
    Signed curvature (1/m)
    """
    local = relative_coordinate(target, pose)
    denominator = local.x * local.x
    numerator = 2.0 * local.y

    if denominator != 0.0:
        return numerator / denominator
    return kappa_min if numerator > 0.0 else -kappa_min


def compute_curvature(
    pose: Pose,
    path: Sequence[Waypoint],
    lookahead_distance: float,
    minimum_lookahead_distance: float,
    linear_interpolation: bool = True,
    kappa_min: float = KAPPA_MIN,
) -> CurvatureResult:
    """
    Run one pure pursuit cycle: pick a target on the path and return its curvature

    Target selection failures never raise; they are reported through the
    result's failure field.

    Parameters:
    pose: Current vehicle pose
    path: Ordered waypoints, not modified
    lookahead_distance: Lookahead radius
    minimum_lookahead_distance: Path is considered exhausted when no waypoint
        is farther than this
    linear_interpolation: Interpolate a target between waypoints instead of
        snapping to the selected waypoint
    kappa_min: Curvature magnitude used for a target directly abeam

    Returns:
    CurvatureResult
    """
    if minimum_lookahead_distance < 0:
        raise ValueError("minimum_lookahead_distance must be non-negative")
    if lookahead_distance < minimum_lookahead_distance:
        raise ValueError(
            f"lookahead_distance {lookahead_distance} is below "
            f"minimum_lookahead_distance {minimum_lookahead_distance}"
        )

    next_waypoint = find_next_waypoint(path, pose, lookahead_distance)
    logger.debug(
        "Next waypoint %d of %d (lookahead %.3f)",
        next_waypoint,
        len(path),
        lookahead_distance,
    )

    if next_waypoint == -1:
        logger.info("No waypoints to follow")
        return CurvatureResult.failed(FailureKind.EMPTY_PATH)

    if not any(
        plane_distance(waypoint.position, pose.position) > minimum_lookahead_distance
        for waypoint in path
    ):
        logger.info(
            "All waypoints within minimum lookahead %.3f", minimum_lookahead_distance
        )
        return CurvatureResult.failed(FailureKind.PATH_TOO_SHORT)

    if (
        not linear_interpolation
        or next_waypoint == 0
        or next_waypoint == len(path) - 1
    ):
        target = path[next_waypoint].position
    else:
        try:
            target = interpolate_target(path, next_waypoint, pose, lookahead_distance)
        except PurePursuitError as e:
            logger.info("Lost target (%s): %s", e.kind.value, e)
            return CurvatureResult.failed(e.kind)

    kappa = calc_curvature(target, pose, kappa_min)
    logger.debug("Target (%.3f, %.3f), kappa %.6f", target.x, target.y, kappa)

    return CurvatureResult(success=True, curvature=kappa, target=target)


class PurePursuit:
    """
    Pure Pursuit curvature controller bound to a configuration

    Holds only parameters. Pose and path are passed in on every call, so one
    instance can be shared between callers.
    """

    def __init__(self, config: Optional[PurePursuitConfig] = None) -> None:
        """
        Initialize the controller

        Parameters:
        config: Controller parameters (default: PurePursuitConfig())
        """
        self.config: PurePursuitConfig = config or PurePursuitConfig()
        self.config.validate()

    def compute(
        self, pose: Pose, path: Sequence[Waypoint], velocity: float
    ) -> CurvatureResult:
        """
        Compute the curvature command for the current speed

        Parameters:
        pose: Current vehicle pose
        path: Ordered waypoints
        velocity: Current linear velocity (m/s), scales the lookahead distance

        Returns:
        CurvatureResult
        """
        return compute_curvature(
            pose,
            path,
            lookahead_distance=self.config.lookahead_distance(velocity),
            minimum_lookahead_distance=self.config.minimum_lookahead_distance,
            linear_interpolation=self.config.linear_interpolation,
            kappa_min=self.config.kappa_min,
        )
