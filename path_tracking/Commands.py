from dataclasses import dataclass
from typing import Optional

import numpy as np

from path_tracking.PurePursuit import CurvatureResult


@dataclass(frozen=True)
class TwistCommand:
    """Planar velocity command: linear (m/s) and angular (rad/s)"""

    linear: float = 0.0
    angular: float = 0.0


def curvature_to_angular_velocity(kappa: float, velocity: float) -> float:
    """Yaw rate that follows an arc of curvature kappa at the given speed"""
    return kappa * velocity


def curvature_to_steering_angle(
    kappa: float, wheel_base: float, max_steering_angle: Optional[float] = None
) -> float:
    """
    Front wheel angle of a bicycle model driving an arc of curvature kappa

    Parameters:
    kappa: Signed curvature (1/m)
    wheel_base: Distance between front and rear axles (m)
    max_steering_angle: Optional symmetric limit (rad)

    Returns:
    Steering angle (rad)
    """
    steering = float(np.arctan(wheel_base * kappa))
    if max_steering_angle is not None:
        steering = float(np.clip(steering, -max_steering_angle, max_steering_angle))
    return steering


def make_twist_command(result: CurvatureResult, velocity: float) -> TwistCommand:
    """
    Turn a controller result into a velocity command

    A failed cycle produces a zero twist so the vehicle stops.
    """
    if not result.success or result.curvature is None:
        return TwistCommand()
    return TwistCommand(
        linear=velocity,
        angular=curvature_to_angular_velocity(result.curvature, velocity),
    )
