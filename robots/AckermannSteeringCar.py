import numpy as np
from typing import Any, Dict, List, Tuple

from path_tracking.Geometry import Pose


class AckermannSteeringCar:
    """
    Models a car with Ackermann steering (front-wheel steering)

    Kinematic bicycle model referenced at the rear axle, which is where the
    Pure Pursuit curvature is defined.

    Key Kinematic Equations:
    - ẋ = v * cos(θ)
    - ẏ = v * sin(θ)
    - θ̇ = v * tan(φ) / L

    Where:
    - v is the linear velocity
    - θ is the orientation
    - φ is the steering angle
    - L is the wheelbase (distance between front and rear axles)
    """

    def __init__(
        self,
        x: float = 0.0,
        y: float = 0.0,
        theta: float = 0.0,
        wheel_base: float = 0.25,
        max_wheel_steering_angle: float = np.radians(35),
        length: float = 0.3,
        width: float = 0.2,
    ) -> None:
        # Physical parameters
        self.length: float = length  # Car length (meters)
        self.width: float = width  # Car width (meters)
        self.wheel_base: float = wheel_base  # Distance between front and rear axles (meters)

        # Physical constraints
        self.max_wheel_steering_angle: float = max_wheel_steering_angle  # (rad)

        # State variables
        self.x: float = x
        self.y: float = y
        self.theta: float = theta
        self.wheel_steering_angle: float = 0.0  # Front wheel steering angle (radians)
        self.linear_velocity: float = 0.0  # Linear velocity (m/s)
        self.car_angular_velocity: float = 0.0  # Angular velocity (rad/s) (ω = v*tan(φ)/L)

    def pose(self) -> Pose:
        """Current rear axle pose in the world frame"""
        return Pose.from_xy_yaw(self.x, self.y, self.theta)

    def set_control_inputs(self, v: float, steering_angle: float) -> None:
        """
        Set the linear velocity and steering angle

        The steering angle is clipped to the physical limit of the vehicle.

        Parameters:
        v: Desired linear velocity (m/s)
        steering_angle: Desired steering angle (radians)
        """
        self.linear_velocity = v
        self.wheel_steering_angle = float(
            np.clip(
                steering_angle,
                -self.max_wheel_steering_angle,
                self.max_wheel_steering_angle,
            )
        )

    def update_state(self, dt: float) -> None:
        """
        Update car state based on velocity and steering angle over time dt

        Parameters:
        dt: Time step in seconds
        """
        # θ̇ = v * tan(φ) / L, only while moving
        if abs(self.linear_velocity) > 1e-5:
            self.car_angular_velocity = (
                self.linear_velocity * np.tan(self.wheel_steering_angle) / self.wheel_base
            )
        else:
            self.car_angular_velocity = 0.0

        self.x += self.linear_velocity * np.cos(self.theta) * dt
        self.y += self.linear_velocity * np.sin(self.theta) * dt
        self.theta = get_principal_value(self.theta + self.car_angular_velocity * dt)

    def get_corners(self) -> List[Tuple[float, float]]:
        """
        Get the four corners of the car body for visualization

        Returns a list of (x,y) coordinates for the four corners of the car,
        taking into account its position, orientation, length, and width
        """
        cos_theta = np.cos(self.theta)
        sin_theta = np.sin(self.theta)
        half_length, half_width = self.length / 2, self.width / 2

        corners = []
        for dl, dw in (
            (half_length, -half_width),
            (half_length, half_width),
            (-half_length, half_width),
            (-half_length, -half_width),
        ):
            corners.append(
                (
                    float(self.x + dl * cos_theta - dw * sin_theta),
                    float(self.y + dl * sin_theta + dw * cos_theta),
                )
            )
        return corners

    def report_parameters(self) -> Dict[str, Any]:
        """
        Report the physical parameters of the car, angles in radians
        """
        return {
            "Type": type(self).__name__,
            "wheel_base": self.wheel_base,
            "max_wheel_steering_angle": self.max_wheel_steering_angle,
            "length": self.length,
            "width": self.width,
        }


def get_principal_value(angle: float) -> float:
    """
    Normalize theta to [-π, π] to prevent growing continuously
    """
    return float(np.arctan2(np.sin(angle), np.cos(angle)))
