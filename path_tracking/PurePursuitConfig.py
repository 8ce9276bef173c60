from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

import numpy as np
import yaml

# Curvature magnitude returned when the target is directly abeam (local x == 0)
KAPPA_MIN: float = 1 / 9e10


def compute_lookahead_distance(
    velocity: float,
    lookahead_ratio: float,
    minimum_lookahead_distance: float,
    maximum_lookahead_distance: Optional[float] = None,
) -> float:
    """
    Speed dependent lookahead distance

    Parameters:
    velocity: Current linear velocity (m/s), sign ignored
    lookahead_ratio: Seconds of travel to look ahead
    minimum_lookahead_distance: Lower bound (m)
    maximum_lookahead_distance: Optional upper bound (m)

    Returns:
    max(lookahead_ratio * |velocity|, minimum), capped by the maximum if given
    """
    if (
        maximum_lookahead_distance is not None
        and maximum_lookahead_distance < minimum_lookahead_distance
    ):
        raise ValueError(
            "maximum_lookahead_distance must not be below minimum_lookahead_distance"
        )

    distance = max(lookahead_ratio * abs(velocity), minimum_lookahead_distance)
    if maximum_lookahead_distance is not None:
        distance = min(distance, maximum_lookahead_distance)
    return float(distance)


@dataclass
class PurePursuitConfig:
    """
    Parameters of the Pure Pursuit controller

    lookahead_ratio: Lookahead distance per unit speed (s)
    minimum_lookahead_distance: Lookahead floor and path-exhausted threshold (m)
    maximum_lookahead_distance: Optional lookahead ceiling (m)
    linear_interpolation: Interpolate targets between waypoints
    kappa_min: Curvature magnitude for a target directly abeam (1/m)
    wheel_base: Distance between front and rear axles (m)
    max_steering_angle: Steering limit used when converting curvature (rad)
    """

    lookahead_ratio: float = 2.0
    minimum_lookahead_distance: float = 6.0
    maximum_lookahead_distance: Optional[float] = None
    linear_interpolation: bool = True
    kappa_min: float = KAPPA_MIN
    wheel_base: float = 2.7
    max_steering_angle: float = float(np.radians(35))

    def validate(self) -> None:
        """Raise ValueError if any parameter is out of range"""
        if self.lookahead_ratio < 0:
            raise ValueError("lookahead_ratio must be non-negative")
        if self.minimum_lookahead_distance < 0:
            raise ValueError("minimum_lookahead_distance must be non-negative")
        if (
            self.maximum_lookahead_distance is not None
            and self.maximum_lookahead_distance < self.minimum_lookahead_distance
        ):
            raise ValueError(
                "maximum_lookahead_distance must not be below minimum_lookahead_distance"
            )
        if self.kappa_min <= 0:
            raise ValueError("kappa_min must be positive")
        if self.wheel_base <= 0:
            raise ValueError("wheel_base must be positive")
        if self.max_steering_angle <= 0:
            raise ValueError("max_steering_angle must be positive")

    def lookahead_distance(self, velocity: float) -> float:
        return compute_lookahead_distance(
            velocity,
            self.lookahead_ratio,
            self.minimum_lookahead_distance,
            self.maximum_lookahead_distance,
        )

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "PurePursuitConfig":
        """
        Build a config from a mapping, e.g. a parsed YAML document

        Keys may be nested under a top-level "pure_pursuit" section. Missing
        keys keep their defaults; unknown keys raise ValueError.
        """
        if "pure_pursuit" in data:
            siblings = set(data) - {"pure_pursuit"}
            if siblings:
                raise ValueError(
                    f"Unknown keys next to the pure_pursuit section: {sorted(siblings)}"
                )
            data = data["pure_pursuit"] or {}

        known = {f.name for f in fields(PurePursuitConfig)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown pure pursuit parameters: {sorted(unknown)}")

        config = PurePursuitConfig(**data)
        config.validate()
        return config

    @staticmethod
    def from_yaml(config_file: str) -> "PurePursuitConfig":
        """
        Load the config from a YAML file

        Parameters:
        config_file: Path to the YAML file
        """
        with open(config_file, "r") as f:
            data = yaml.safe_load(f)
        return PurePursuitConfig.from_dict(data or {})
