import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
import numpy.typing as npt
import pandas as pd

from path_tracking.Commands import (
    TwistCommand,
    curvature_to_steering_angle,
    make_twist_command,
)
from path_tracking.Errors import FailureKind
from path_tracking.Geometry import Waypoint, lookahead_circle, waypoints_from_xy
from path_tracking.PurePursuit import CurvatureResult, PurePursuit
from robots.AckermannSteeringCar import AckermannSteeringCar

logger = logging.getLogger(__name__)


def generate_path(path_type: str = "oval") -> List[Tuple[float, float]]:
    """
    Generate a test path for the controller

    Parameters:
    path_type: Type of path to generate (straight, oval, figure8, zigzag)

    Returns:
    list: List of (x, y) points defining the path
    """
    path: List[Tuple[float, float]]
    if path_type == "oval":
        t: npt.NDArray[np.float64] = np.linspace(0, 2 * np.pi, 100, dtype=np.float64)
        x: npt.NDArray[np.float64] = 5 + 3 * np.cos(t)
        y: npt.NDArray[np.float64] = 5 + 2 * np.sin(t)
        path = [(float(px), float(py)) for px, py in zip(x, y)]

    elif path_type == "figure8":
        t = np.linspace(0, 2 * np.pi, 100, dtype=np.float64)
        x = 5 + 3 * np.sin(t)
        y = 5 + 2 * np.sin(2 * t)
        path = [(float(px), float(py)) for px, py in zip(x, y)]

    elif path_type == "zigzag":
        start_x, start_y = 1.0, 1.0
        path = [(start_x, start_y)]

        for i in range(10):
            next_x_val: float = start_x + (i + 1) * 0.8
            next_y_val: float = start_y + (i % 2) * 1.5  # Alternate up and down

            # Add points along the segment
            last_x, last_y = path[-1]
            steps: int = 15
            for j in range(1, steps + 1):
                path.append(
                    (
                        float(last_x + (next_x_val - last_x) * j / steps),
                        float(last_y + (next_y_val - last_y) * j / steps),
                    )
                )

    elif path_type == "straight":
        path = [(float(i * 0.2), 5.0) for i in range(50)]

    else:
        raise ValueError(f"Unknown path type: {path_type}")

    # Remove last few points to ensure we have a clear goal
    return path[:-10]


@dataclass
class SimulationConfig:
    """
    Configuration for the Pure Pursuit Simulation

    dt: Simulation time step (seconds)
    max_steps: Maximum simulation steps
    velocity: Cruise speed commanded while the controller has a target (m/s)
    goal_distance: Distance to the last waypoint that counts as arrival (m)
    max_consecutive_failures: Failed cycles in a row before giving up
    hold_cycles: Path-lost cycles in a row during which the last command is
        held before the car is stopped
    record_history: Record state history
    """

    dt: float = 0.05
    max_steps: int = 2000
    velocity: float = 1.0
    goal_distance: float = 0.2
    max_consecutive_failures: int = 20
    hold_cycles: int = 5
    record_history: bool = True


class SimulationState:
    """
    State history of the simulation, one entry per step
    """

    def __init__(self) -> None:
        self.positions: List[Tuple[float, float]] = []
        self.headings: List[float] = []
        self.velocities: List[float] = []
        self.angular_velocities: List[float] = []
        self.steering_angles: List[float] = []
        self.curvatures: List[Optional[float]] = []
        self.target_points: List[Optional[Tuple[float, float]]] = []
        self.lookahead_distances: List[float] = []
        self.timestamps: List[float] = []
        self.failures: List[Optional[FailureKind]] = []

        # Reference path
        self.path: List[Tuple[float, float]] = []

    def record_state(
        self,
        car: AckermannSteeringCar,
        result: CurvatureResult,
        command: TwistCommand,
        lookahead_distance: float,
        timestamp: float,
    ) -> None:
        """
        Record current state of the simulation

        Parameters:
        car: The car model after the step
        result: Controller output of the step
        command: Velocity command applied during the step
        lookahead_distance: Lookahead radius used for the step
        timestamp: Current simulation time
        """
        self.positions.append((car.x, car.y))
        self.headings.append(car.theta)
        self.velocities.append(car.linear_velocity)
        self.angular_velocities.append(command.angular)
        self.steering_angles.append(car.wheel_steering_angle)
        self.curvatures.append(result.curvature)
        if result.target is not None:
            self.target_points.append((result.target.x, result.target.y))
        else:
            self.target_points.append(None)
        self.lookahead_distances.append(lookahead_distance)
        self.timestamps.append(timestamp)
        self.failures.append(result.failure)

    def set_path(self, path: List[Tuple[float, float]]) -> None:
        """Set the reference path"""
        self.path = list(path)

    def clear(self) -> None:
        """Clear all state history. The reference path is kept."""
        self.positions.clear()
        self.headings.clear()
        self.velocities.clear()
        self.angular_velocities.clear()
        self.steering_angles.clear()
        self.curvatures.clear()
        self.target_points.clear()
        self.lookahead_distances.clear()
        self.timestamps.clear()
        self.failures.clear()

    def get_metrics(self) -> Dict[str, Any]:
        """
        Calculate and return performance metrics

        Returns:
        dict: Dictionary of performance metrics
        """
        metrics: Dict[str, Any] = {}

        if not self.positions or not self.path:
            return metrics

        # Distance from each recorded position to the closest path point
        path_points = np.array(self.path, dtype=np.float64)
        positions = np.array(self.positions, dtype=np.float64)
        deltas = positions[:, None, :] - path_points[None, :, :]
        path_errors = np.min(np.hypot(deltas[..., 0], deltas[..., 1]), axis=1)

        metrics["mean_path_error"] = float(np.mean(path_errors))
        metrics["max_path_error"] = float(np.max(path_errors))
        metrics["path_error_std"] = float(np.std(path_errors))

        metrics["total_time"] = self.timestamps[-1] - self.timestamps[0]
        metrics["steps"] = len(self.timestamps)

        metrics["mean_velocity"] = float(np.mean(self.velocities))
        metrics["mean_steering"] = float(np.mean(np.abs(self.steering_angles)))
        metrics["max_steering"] = float(np.max(np.abs(self.steering_angles)))

        failure_counts: Dict[str, int] = {}
        for failure in self.failures:
            if failure is not None:
                failure_counts[failure.value] = failure_counts.get(failure.value, 0) + 1
        metrics["failed_cycles"] = sum(failure_counts.values())
        metrics["failures"] = failure_counts

        return metrics


class PurePursuitSimulation:
    """
    Closed loop simulation of the Pure Pursuit curvature controller

    Each step the controller computes a curvature for the car's current pose,
    the curvature is turned into a steering angle for the car model, and the
    car is advanced by one time step. When the controller loses the path the
    last command is held for a few cycles, so the car can move past the spot
    where no target was found. Any other failed cycle stops the car.
    """

    def __init__(
        self,
        car: AckermannSteeringCar,
        controller: PurePursuit,
        config: Optional[SimulationConfig] = None,
    ) -> None:
        """
        Initialize the simulation

        Parameters:
        car: The car model object
        controller: The Pure Pursuit controller
        config: Optional configuration object (default: SimulationConfig())
        """
        self.car = car
        self.controller = controller
        self.config = config or SimulationConfig()

        self.state_history = SimulationState()
        self.current_time = 0.0
        self.step_count = 0
        self.consecutive_failures = 0
        self.simulation_complete = False
        self.completion_reason = ""

        # The car enters the path at cruise speed, steering straight
        self.last_command = TwistCommand(self.config.velocity, 0.0)
        self.last_steering_angle = 0.0

        self.path: List[Tuple[float, float]] = []
        self.waypoints: List[Waypoint] = []
        self.closest_index = 0

    def set_reference_path(self, path: Sequence[Tuple[float, float]]) -> None:
        """
        Set the reference path and place the car at its start, facing along it

        Parameters:
        path: List of (x, y) points defining the path
        """
        self.path = list(path)
        self.waypoints = waypoints_from_xy(self.path)
        self.closest_index = 0
        self.state_history.set_path(self.path)

        if self.path:
            self.car.x, self.car.y = self.path[0]
            if len(self.path) > 1:
                self.car.theta = float(
                    np.arctan2(
                        self.path[1][1] - self.path[0][1],
                        self.path[1][0] - self.path[0][0],
                    )
                )

    def reset_simulation(self) -> None:
        """Reset time, counters and history, and move the car back to the start"""
        self.current_time = 0.0
        self.step_count = 0
        self.consecutive_failures = 0
        self.simulation_complete = False
        self.completion_reason = ""
        self.state_history.clear()
        self.last_command = TwistCommand(self.config.velocity, 0.0)
        self.last_steering_angle = 0.0
        self.car.set_control_inputs(0.0, 0.0)
        self.set_reference_path(self.path)

    def remaining_waypoints(self) -> List[Waypoint]:
        """
        Waypoints from the closest one onward

        This plays the role of the planner that feeds the controller: the
        controller scans from index 0 every cycle, so waypoints already passed
        must not be handed to it. The closest index only moves forward.
        """
        i = self.closest_index
        while i + 1 < len(self.path) and np.hypot(
            self.path[i + 1][0] - self.car.x, self.path[i + 1][1] - self.car.y
        ) <= np.hypot(self.path[i][0] - self.car.x, self.path[i][1] - self.car.y):
            i += 1
        self.closest_index = i
        return self.waypoints[i:]

    def _complete(self, reason: str) -> bool:
        self.simulation_complete = True
        self.completion_reason = reason
        logger.info(reason)
        return True

    def run_simulation_step(self) -> bool:
        """
        Run a single simulation step

        Returns:
        bool: True if simulation is complete, False otherwise
        """
        lookahead_distance = self.controller.config.lookahead_distance(
            self.config.velocity
        )
        result = self.controller.compute(
            self.car.pose(), self.remaining_waypoints(), self.config.velocity
        )

        if result.success and result.curvature is not None:
            self.consecutive_failures = 0
            command = make_twist_command(result, self.config.velocity)
            steering_angle = curvature_to_steering_angle(
                result.curvature,
                self.car.wheel_base,
                self.controller.config.max_steering_angle,
            )
            self.last_command = command
            self.last_steering_angle = steering_angle
        else:
            self.consecutive_failures += 1
            if (
                result.failure is not None
                and result.failure.is_path_lost
                and self.consecutive_failures <= self.config.hold_cycles
            ):
                command = self.last_command
                steering_angle = self.last_steering_angle
            else:
                command = make_twist_command(result, self.config.velocity)
                steering_angle = self.car.wheel_steering_angle

        self.car.set_control_inputs(command.linear, steering_angle)
        self.car.update_state(self.config.dt)

        self.current_time += self.config.dt
        self.step_count += 1

        if self.config.record_history:
            self.state_history.record_state(
                self.car, result, command, lookahead_distance, self.current_time
            )

        if not self.path:
            return self._complete("No path to follow")

        distance_to_goal = np.hypot(
            self.car.x - self.path[-1][0], self.car.y - self.path[-1][1]
        )
        if distance_to_goal < self.config.goal_distance:
            return self._complete(
                f"Goal reached after {self.step_count} steps, time {self.current_time:.2f}s"
            )

        if result.failure == FailureKind.PATH_TOO_SHORT:
            return self._complete(
                f"End of path reached after {self.step_count} steps, "
                f"{distance_to_goal:.2f}m from goal"
            )

        if self.consecutive_failures >= self.config.max_consecutive_failures:
            last = result.failure.value if result.failure else "unknown"
            return self._complete(
                f"Controller failed {self.consecutive_failures} cycles in a row ({last})"
            )

        if self.step_count >= self.config.max_steps:
            return self._complete(
                f"Maximum steps ({self.config.max_steps}) reached, time {self.current_time:.2f}s"
            )

        return False

    def run_simulation(
        self,
        path: Optional[Sequence[Tuple[float, float]]] = None,
        num_steps: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Run the complete simulation

        Parameters:
        path: Optional path to follow (if None, uses previously set path)
        num_steps: Optional maximum number of steps (overrides config.max_steps)

        Returns:
        dict: Simulation results
        """
        if path is not None:
            self.set_reference_path(path)

        max_steps = num_steps if num_steps is not None else self.config.max_steps

        for _ in range(max_steps):
            if self.run_simulation_step():
                break

        return self.get_results()

    def get_results(self) -> Dict[str, Any]:
        """
        Get simulation results

        Returns:
        dict: Simulation results including state history and metrics
        """
        return {
            "positions": self.state_history.positions,
            "headings": self.state_history.headings,
            "velocities": self.state_history.velocities,
            "angular_velocities": self.state_history.angular_velocities,
            "steering_angles": self.state_history.steering_angles,
            "curvatures": self.state_history.curvatures,
            "target_points": self.state_history.target_points,
            "lookahead_distances": self.state_history.lookahead_distances,
            "timestamps": self.state_history.timestamps,
            "steps": self.step_count,
            "completion_reason": self.completion_reason,
            "completed": self.simulation_complete,
            "car": self.car.report_parameters(),
            "metrics": self.state_history.get_metrics(),
        }

    def plot_results(
        self,
        results: Optional[Dict[str, Any]] = None,
        show_metrics: bool = True,
        save_path: Optional[str] = None,
        show: bool = True,
    ):
        """
        Plot simulation results

        Parameters:
        results: Optional results dictionary (if None, uses current results)
        show_metrics: Whether to show metrics in the plot
        save_path: Optional path to save the figure
        show: Whether to open a window
        """
        if results is None:
            results = self.get_results()

        fig = plt.figure(figsize=(15, 10))

        # Plot 1: Path following
        plt.subplot(2, 2, 1)
        if self.path:
            path_x = [p[0] for p in self.path]
            path_y = [p[1] for p in self.path]
            plt.plot(path_x, path_y, "b--", linewidth=2, label="Reference Path")

        pos_x = [p[0] for p in results["positions"]]
        pos_y = [p[1] for p in results["positions"]]
        plt.plot(pos_x, pos_y, "r-", linewidth=2, label="Actual Trajectory")

        targets = [p for p in results["target_points"] if p is not None]
        if targets:
            plt.scatter(
                [p[0] for p in targets],
                [p[1] for p in targets],
                c="g",
                s=10,
                label="Target Points",
            )

        # Car body and lookahead circle at the final pose
        corners = self.car.get_corners()
        corners.append(corners[0])
        plt.plot([c[0] for c in corners], [c[1] for c in corners], "k-", linewidth=1)
        if results["lookahead_distances"]:
            circle = lookahead_circle(
                self.car.pose(), results["lookahead_distances"][-1]
            )
            plt.plot(
                [c[0] for c in circle],
                [c[1] for c in circle],
                "m:",
                linewidth=1,
                label="Lookahead",
            )

        plt.title("Path Following")
        plt.xlabel("X (m)")
        plt.ylabel("Y (m)")
        plt.axis("equal")
        plt.grid(True)
        plt.legend()

        # Plot 2: Curvature commands
        plt.subplot(2, 2, 2)
        curvatures = [np.nan if k is None else k for k in results["curvatures"]]
        plt.plot(results["timestamps"], curvatures, "b-", linewidth=2)
        plt.title("Curvature")
        plt.xlabel("Time (s)")
        plt.ylabel("Curvature (1/m)")
        plt.grid(True)

        # Plot 3: Steering commands
        plt.subplot(2, 2, 3)
        plt.plot(results["timestamps"], results["steering_angles"], "r-", linewidth=2)
        plt.title("Steering Angle")
        plt.xlabel("Time (s)")
        plt.ylabel("Steering Angle (rad)")
        plt.grid(True)

        # Plot 4: Heading
        plt.subplot(2, 2, 4)
        plt.plot(
            results["timestamps"],
            [np.degrees(h) for h in results["headings"]],
            "g-",
            linewidth=2,
        )
        plt.title("Heading")
        plt.xlabel("Time (s)")
        plt.ylabel("Heading (degrees)")
        plt.grid(True)

        if show_metrics and "metrics" in results:
            metrics = results["metrics"]
            metrics_text = f"Steps: {results['steps']}\n"
            metrics_text += f"Completion: {results['completion_reason']}\n"
            if "car" in results:
                car = results["car"]
                metrics_text += (
                    f"Car: {car['Type']}, wheel base {car['wheel_base']:.2f}m\n"
                )

            if "mean_path_error" in metrics:
                metrics_text += f"Mean Path Error: {metrics['mean_path_error']:.3f}m\n"

            if "failed_cycles" in metrics:
                metrics_text += f"Failed Cycles: {metrics['failed_cycles']}\n"

            plt.figtext(
                0.5,
                0.01,
                metrics_text,
                ha="center",
                fontsize=10,
                bbox={"facecolor": "lightgray", "alpha": 0.5, "pad": 5},
            )

        plt.tight_layout()

        if save_path:
            plt.savefig(save_path, dpi=150, bbox_inches="tight")

        if show:
            plt.show()
        return fig

    def export_data(self, filename: str) -> None:
        """
        Export simulation data to a file

        Parameters:
        filename: Name of the file to export to (.csv, .npy or .npz)
        """
        results = self.get_results()
        ext = filename.split(".")[-1].lower()

        if ext == "csv":
            df = pd.DataFrame(
                {
                    "time": results["timestamps"],
                    "x": [p[0] for p in results["positions"]],
                    "y": [p[1] for p in results["positions"]],
                    "theta": results["headings"],
                    "velocity": results["velocities"],
                    "angular_velocity": results["angular_velocities"],
                    "steering_angle": results["steering_angles"],
                    "curvature": results["curvatures"],
                    "target_x": [
                        p[0] if p is not None else None
                        for p in results["target_points"]
                    ],
                    "target_y": [
                        p[1] if p is not None else None
                        for p in results["target_points"]
                    ],
                    "lookahead_distance": results["lookahead_distances"],
                    "failure": [
                        f.value if f is not None else None
                        for f in self.state_history.failures
                    ],
                }
            )
            df.to_csv(filename, index=False)

        elif ext in ["npy", "npz"]:
            np.savez(
                filename,
                timestamps=np.array(results["timestamps"]),
                positions=np.array(results["positions"]),
                headings=np.array(results["headings"]),
                velocities=np.array(results["velocities"]),
                angular_velocities=np.array(results["angular_velocities"]),
                steering_angles=np.array(results["steering_angles"]),
                curvatures=np.array(
                    [np.nan if k is None else k for k in results["curvatures"]]
                ),
                target_points=np.array(
                    [
                        p if p is not None else (np.nan, np.nan)
                        for p in results["target_points"]
                    ]
                ),
                path=np.array(self.path),
            )
        else:
            raise ValueError(f"Unsupported file format: {ext}")
