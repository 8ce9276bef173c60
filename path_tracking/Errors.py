from enum import Enum


class FailureKind(Enum):
    """Reasons a curvature cycle can fail. All of them are recoverable."""

    EMPTY_PATH = "empty_path"
    PATH_LOST = "path_lost"
    PATH_TOO_SHORT = "path_too_short"
    DEGENERATE_SEGMENT = "degenerate_segment"
    NO_INTERSECTION = "no_intersection"
    INTERSECTION_OFF_SEGMENT = "intersection_off_segment"
    GEOMETRY_INCONSISTENCY = "geometry_inconsistency"

    @property
    def is_path_lost(self) -> bool:
        """True when the failure means no target could be resolved on the path"""
        return self in (
            FailureKind.PATH_LOST,
            FailureKind.DEGENERATE_SEGMENT,
            FailureKind.NO_INTERSECTION,
            FailureKind.INTERSECTION_OFF_SEGMENT,
            FailureKind.GEOMETRY_INCONSISTENCY,
        )


class PurePursuitError(Exception):
    """Base class for target selection failures"""

    kind: FailureKind = FailureKind.PATH_LOST


class DegenerateSegmentError(PurePursuitError):
    """The two endpoints of a path segment coincide, so no line passes through them"""

    kind = FailureKind.DEGENERATE_SEGMENT


class NoIntersectionError(PurePursuitError):
    """The lookahead circle does not reach the segment's line"""

    kind = FailureKind.NO_INTERSECTION


class IntersectionOffSegmentError(PurePursuitError):
    """Both circle/line intersections lie outside the segment"""

    kind = FailureKind.INTERSECTION_OFF_SEGMENT


class GeometryInconsistencyError(PurePursuitError):
    """Neither perpendicular foot candidate lies on the segment's line"""

    kind = FailureKind.GEOMETRY_INCONSISTENCY
