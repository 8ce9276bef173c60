from dataclasses import dataclass
import numpy as np
import numpy.typing as npt
from typing import List, Tuple

from path_tracking.Errors import DegenerateSegmentError


@dataclass(frozen=True)
class Point:
    """A position in either the world frame or the vehicle-local frame"""

    x: float
    y: float
    z: float = 0.0

    def as_array(self) -> npt.NDArray[np.float64]:
        return np.array([self.x, self.y, self.z], dtype=np.float64)


@dataclass(frozen=True)
class Quaternion:
    """Orientation as a unit quaternion (x, y, z, w)"""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0

    @staticmethod
    def from_yaw(yaw: float) -> "Quaternion":
        """
        Build the quaternion of a pure rotation about the z axis

        Parameters:
        yaw: Heading angle (radians), counter-clockwise from the world x axis
        """
        return Quaternion(0.0, 0.0, float(np.sin(yaw / 2)), float(np.cos(yaw / 2)))

    def yaw(self) -> float:
        """Heading about the z axis (radians)"""
        return float(
            np.arctan2(
                2.0 * (self.w * self.z + self.x * self.y),
                1.0 - 2.0 * (self.y * self.y + self.z * self.z),
            )
        )

    def rotation_matrix(self) -> npt.NDArray[np.float64]:
        """
        3x3 rotation matrix of this orientation

        The quaternion is normalized first so slightly drifted inputs from a
        pose source still produce a proper rotation.
        """
        q = np.array([self.x, self.y, self.z, self.w], dtype=np.float64)
        norm = np.linalg.norm(q)
        if norm == 0.0:
            raise ValueError("Quaternion has zero length")
        x, y, z, w = q / norm

        return np.array(
            [
                [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
                [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
                [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
            ],
            dtype=np.float64,
        )


@dataclass(frozen=True)
class Pose:
    """Vehicle position and facing in the world frame"""

    position: Point
    orientation: Quaternion = Quaternion()

    @staticmethod
    def from_xy_yaw(x: float, y: float, yaw: float, z: float = 0.0) -> "Pose":
        return Pose(Point(x, y, z), Quaternion.from_yaw(yaw))


@dataclass(frozen=True)
class Waypoint:
    """A single reference position of the path. Velocity is carried, not used."""

    position: Point
    velocity: float = 0.0

    @staticmethod
    def from_xy(x: float, y: float, velocity: float = 0.0) -> "Waypoint":
        return Waypoint(Point(x, y), velocity)


def waypoints_from_xy(points: List[Tuple[float, float]]) -> List[Waypoint]:
    """
    Convert a list of (x, y) tuples into waypoints

    Parameters:
    points: List of (x, y) points defining the path

    Returns:
    List of waypoints in the same order
    """
    return [Waypoint.from_xy(float(x), float(y)) for x, y in points]


def relative_coordinate(target: Point, origin_pose: Pose) -> Point:
    """
    Express a world frame point in the frame of origin_pose

    In the resulting frame x points along the pose's heading and y to its left.

    Parameters:
    target: Point in the world frame
    origin_pose: Pose that defines the local frame

    Returns:
    The same point in local coordinates
    """
    rotation = origin_pose.orientation.rotation_matrix()
    offset = target.as_array() - origin_pose.position.as_array()
    local = rotation.T @ offset
    return Point(float(local[0]), float(local[1]), float(local[2]))


def absolute_coordinate(local: Point, origin_pose: Pose) -> Point:
    """Inverse of relative_coordinate: local frame point back into the world frame"""
    rotation = origin_pose.orientation.rotation_matrix()
    world = rotation @ local.as_array() + origin_pose.position.as_array()
    return Point(float(world[0]), float(world[1]), float(world[2]))


def plane_distance(a: Point, b: Point) -> float:
    """Euclidean distance between two points, ignoring z"""
    return float(np.hypot(a.x - b.x, a.y - b.y))


def line_equation(p1: Point, p2: Point) -> Tuple[float, float, float]:
    """
    Coefficients of the line a*x + b*y + c = 0 through p1 and p2

    Raises:
    DegenerateSegmentError: if p1 and p2 share the same planar position
    """
    if p1.x == p2.x and p1.y == p2.y:
        raise DegenerateSegmentError(
            f"Segment endpoints coincide at ({p1.x}, {p1.y})"
        )

    a = p2.y - p1.y
    b = -(p2.x - p1.x)
    c = -a * p1.x - b * p1.y
    return a, b, c


def point_line_distance(p: Point, a: float, b: float, c: float) -> float:
    """Perpendicular distance from p to the line a*x + b*y + c = 0"""
    return float(abs(a * p.x + b * p.y + c) / np.sqrt(a * a + b * b))


def rotate_unit_vector(
    v: npt.NDArray[np.float64], angle_degrees: float
) -> npt.NDArray[np.float64]:
    """
    Rotate a 2D vector counter-clockwise

    Parameters:
    v: Vector (x, y); only the first two components are used
    angle_degrees: Rotation angle in degrees

    Returns:
    The rotated (x, y) vector
    """
    theta = np.radians(angle_degrees)
    cos_theta = np.cos(theta)
    sin_theta = np.sin(theta)
    return np.array(
        [
            cos_theta * v[0] - sin_theta * v[1],
            sin_theta * v[0] + cos_theta * v[1],
        ],
        dtype=np.float64,
    )


def lookahead_circle(
    pose: Pose, radius: float, n_points: int = 64
) -> List[Tuple[float, float]]:
    """
    Sample the lookahead circle around the vehicle for plotting

    Parameters:
    pose: Vehicle pose (circle center)
    radius: Lookahead distance
    n_points: Number of samples along the circle

    Returns:
    List of (x, y) points, first point repeated at the end to close the loop
    """
    angles = np.linspace(0, 2 * np.pi, n_points + 1, dtype=np.float64)
    xs = pose.position.x + radius * np.cos(angles)
    ys = pose.position.y + radius * np.sin(angles)
    return [(float(x), float(y)) for x, y in zip(xs, ys)]
