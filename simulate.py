import argparse
import logging

import numpy as np

from PurePursuitSimulation import PurePursuitSimulation, SimulationConfig, generate_path
from path_tracking.PurePursuit import PurePursuit
from path_tracking.PurePursuitConfig import PurePursuitConfig
from robots.AckermannSteeringCar import AckermannSteeringCar


def main():
    parser = argparse.ArgumentParser(
        description="Closed loop Pure Pursuit simulation on a generated path"
    )
    parser.add_argument(
        "path_type",
        nargs="?",
        default="figure8",
        choices=["straight", "oval", "figure8", "zigzag"],
    )
    parser.add_argument(
        "--config", default="config/rc_car.yaml", help="Pure Pursuit YAML config"
    )
    parser.add_argument("--velocity", type=float, default=1.0, help="Cruise speed (m/s)")
    parser.add_argument("--dt", type=float, default=0.05, help="Time step (s)")
    parser.add_argument("--max-steps", type=int, default=2000)
    parser.add_argument(
        "--no-interpolation",
        action="store_true",
        help="Snap to waypoints instead of intersecting the lookahead circle",
    )
    parser.add_argument("--no-plot", action="store_true")
    parser.add_argument("--save-plot", help="Save the result figure to this file")
    parser.add_argument("--export", help="Export state history (.csv or .npz)")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    config = PurePursuitConfig.from_yaml(args.config)
    if args.no_interpolation:
        config.linear_interpolation = False

    car = AckermannSteeringCar(
        wheel_base=config.wheel_base,
        max_wheel_steering_angle=config.max_steering_angle,
    )
    sim = PurePursuitSimulation(
        car,
        PurePursuit(config),
        SimulationConfig(dt=args.dt, max_steps=args.max_steps, velocity=args.velocity),
    )

    for key, value in car.report_parameters().items():
        print(f"{key}: {value}")
    print(f"Running simulation on '{args.path_type}' path...")
    results = sim.run_simulation(generate_path(args.path_type))

    print(results["completion_reason"])
    for key, value in results["metrics"].items():
        if isinstance(value, float):
            print(f"{key}: {value:.4f}")
        else:
            print(f"{key}: {value}")
    print(f"max steering: {np.degrees(results['metrics'].get('max_steering', 0.0)):.1f} deg")

    if args.export:
        sim.export_data(args.export)
        print(f"State history exported to {args.export}")

    if not args.no_plot or args.save_plot:
        sim.plot_results(results, save_path=args.save_plot, show=not args.no_plot)


if __name__ == "__main__":
    main()
