# main.py
import os
import sys
import math
import logging
import cProfile
import argparse # For command line arguments

import psutil # For memory monitoring

from config import config, ConfigurationError # Use the global config instance
from bodies import Body
from gravity import circular_orbit_velocity
from offload import create_executor
from simulation import SimulationSession
from thrust import ThrustDirection, thrust_vector


class OrbitSandbox:
    """Runs a small scripted scenario on a `SimulationSession` from the command line.

    The scene is a central body (Earth by default) with one satellite on a
    circular orbit 200 units (2000 km) above the surface. The runner steps the
    session, optionally fires a prograde burn, requests a background trajectory
    prediction and logs the resulting orbital elements.

    Attributes:
        session (SimulationSession): The simulation being driven.
        central (Body): The central body.
        satellite (Body): The orbiting body.
        process (psutil.Process): Current process, used for memory monitoring.
    """

    def __init__(self, executor_kind: str = None, satellite_altitude: float = 200.0):
        self.session = SimulationSession(executor=create_executor(executor_kind))
        self.central = Body.central()
        orbit_radius = self.central.radius + satellite_altitude
        speed = circular_orbit_velocity(self.central.mass, orbit_radius)
        self.satellite = Body(name="Satellite", mass=1000.0, radius=config.Bodies.DEFAULT_RADIUS,
                              position=(0.0, 0.0, orbit_radius), velocity=(speed, 0.0, 0.0))
        self.session.register_body(self.central)
        self.session.register_body(self.satellite)
        self.session.track(self.satellite)
        self.session.add_collision_listener(
            lambda event: logging.warning(f"'{event.removed.name}' was destroyed in a collision with '{event.survivor.name}'."))
        self.process = psutil.Process(os.getpid())
        logging.info(f"OrbitSandbox initialized: satellite at {orbit_radius:.1f} units, speed {speed:.4f} units/s.")

    def run(self, ticks: int, burn_ticks: int = 0, burn_magnitude: float = config.Thrust.DEFAULT_MAGNITUDE):
        """Steps the session, burning prograde for the first `burn_ticks` ticks."""
        for tick in range(ticks):
            if tick < burn_ticks and self.satellite in self.session.registry:
                force = thrust_vector(ThrustDirection.PROGRADE, burn_magnitude, self.satellite.position,
                                      self.satellite.velocity, self.central.position)
                self.session.apply_thrust(self.satellite, force)
            self.session.step()
            self.session.refresh_predictions()

            if tick % config.Monitoring.MEMORY_CHECK_INTERVAL_TICKS == 0:
                try:
                    memory_mb = self.process.memory_info().rss / (1024 * 1024)
                    if memory_mb > config.Monitoring.MEMORY_USAGE_WARN_MB:
                        logging.warning(f"High memory usage: {memory_mb:.2f} MB at tick {tick}")
                    else:
                        logging.debug(f"Memory usage: {memory_mb:.2f} MB at tick {tick}")
                except psutil.Error as e_psutil:
                    logging.error(f"Could not retrieve memory usage: {e_psutil}", exc_info=True)

    def report(self, predict: bool = True, timeout: float = 60.0):
        """Logs the satellite's current elements and, optionally, a fresh prediction."""
        if self.satellite not in self.session.registry:
            logging.info("Satellite no longer exists; nothing to report.")
            return
        elements = self.session.orbital_elements(self.satellite)
        if not elements.is_valid:
            logging.warning("Satellite state does not define a valid orbit.")
            return
        period = f"{elements.orbital_period:.1f}s" if math.isfinite(elements.orbital_period) else "unbound"
        logging.info(
            f"t={self.session.elapsed_time:.2f}s altitude={self.session.altitude(self.satellite):.2f} "
            f"a={elements.semi_major_axis:.2f} e={elements.eccentricity:.6f} period={period} "
            f"perigee={elements.perigee_distance:.2f} apogee={elements.apogee_distance:.2f} "
            f"i={elements.inclination:.2f}deg raan={elements.raan:.2f}deg"
        )
        if predict:
            trajectory = self.session.request_trajectory(self.satellite).result(timeout=timeout)
            if trajectory is None:
                logging.warning("Trajectory prediction produced no result.")
            else:
                logging.info(f"Predicted {len(trajectory)} points over {trajectory.duration:.1f}s "
                             f"(stride {trajectory.stride}), stopped by {trajectory.stop_reason.value}.")

    def close(self):
        self.session.close()
        self.session.executor.shutdown()


def main(argv=None):
    """Entry point for the command line sandbox.

    Options:
        --ticks: number of fixed ticks to run.
        --time-scale: multiplier on the fixed tick length.
        --burn-ticks / --burn: prograde burn length and magnitude.
        --executor: "thread" or "process" prediction offload.
        --no-predict: skip the final trajectory prediction.
        --profile: enable cProfile, saving results to `simulation_profile.prof`.
    """
    parser = argparse.ArgumentParser(description="Run the N-body orbital sandbox.")
    parser.add_argument("--ticks", type=int, default=1000, help="Number of fixed ticks to simulate.")
    parser.add_argument("--time-scale", type=float, default=1.0, help="Multiplier applied to the fixed tick length.")
    parser.add_argument("--burn-ticks", type=int, default=0, help="Ticks of prograde thrust at the start of the run.")
    parser.add_argument("--burn", type=float, default=config.Thrust.DEFAULT_MAGNITUDE, help="Prograde thrust magnitude.")
    parser.add_argument("--executor", choices=("thread", "process"), default=config.Offload.EXECUTOR,
                        help="Where trajectory predictions run.")
    parser.add_argument("--no-predict", action="store_true", help="Skip the final trajectory prediction.")
    parser.add_argument(
        "--profile",
        action="store_true",
        help="Enable profiling for the simulation. Statistics will be saved to 'simulation_profile.prof'."
    )
    args = parser.parse_args(argv)

    profiler = None
    if args.profile:
        profiler = cProfile.Profile()
        profiler.enable()
        logging.info("cProfile profiling enabled. Output will be saved to simulation_profile.prof upon completion.")

    sandbox = None
    exit_code = 0
    try:
        sandbox = OrbitSandbox(executor_kind=args.executor)
        sandbox.session.set_time_scale(args.time_scale)
        sandbox.report(predict=False)
        logging.info(f"Running {args.ticks} ticks of {sandbox.session.fixed_delta_time:.3f}s.")
        sandbox.run(args.ticks, burn_ticks=args.burn_ticks, burn_magnitude=args.burn)
        sandbox.report(predict=not args.no_predict)
    except ConfigurationError as e_config_main:
        logging.critical(f"Sandbox could not be initialized or run due to a ConfigurationError: {e_config_main}", exc_info=True)
        exit_code = 2
    except Exception as e_main:
        logging.critical(f"An unexpected critical error occurred in the sandbox: {e_main}", exc_info=True)
        exit_code = 1
    finally:
        if sandbox is not None:
            sandbox.close()
        if profiler:
            profiler.disable()
            stats_file = "simulation_profile.prof"
            try:
                profiler.dump_stats(stats_file)
                logging.info(f"Profiling data successfully saved to {stats_file}")
            except OSError as e_profile_dump:
                logging.error(f"Failed to save profiling data to {stats_file}: {e_profile_dump}", exc_info=True)
        logging.info("Orbital sandbox terminated.")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
