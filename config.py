# config.py
import math
import logging

# Configure basic logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(module)s - %(message)s')

# Fundamental Physical Constants (used across different config sections)
UNIT_LENGTH_KM = 10.0  # One simulation length unit in kilometers
G_UNITS = 6.67430e-23  # G in unit^3 kg^-1 s^-2 (6.67430e-11 m^3 kg^-1 s^-2 rescaled to 10 km units)
SECONDS_PER_DAY = 86400.0

class ConfigurationError(Exception):
    """Custom exception for simulation configuration errors.

    Raised by `SimulationConfig.validate()` when settings are invalid or
    inconsistent, which would prevent the engine from stepping or predicting
    correctly.

    Attributes:
        message (str): A human-readable explanation of the configuration error.
                       This is the first argument passed to the exception constructor.
    """
    pass

class SimulationConfig:
    """Centralized, hierarchical configuration for the orbital sandbox engine.

    Parameters are grouped into nested static classes (e.g.,
    `SimulationConfig.Physics`, `SimulationConfig.Prediction`) for organized
    access. An instance of this class, named `config`, is created at the end of
    this module, making it globally available via `from config import config`.

    Components read their defaults from `config` but accept explicit overrides
    through their constructors, so tests can build isolated setups without
    touching the shared instance.

    Example Usage:
        >>> from config import config
        >>> print(f"Fixed tick (s): {config.Physics.FIXED_DELTA_TIME}")
        >>> print(f"Max prediction steps: {config.Prediction.MAX_STEPS}")
    """

    # --- Physics Configuration ---
    class Physics:
        """Configuration for the force model and the real-time integrator.

        Attributes:
            GRAVITATIONAL_CONSTANT (float): G expressed in simulation units.
            FIXED_DELTA_TIME (float): Base duration of one real-time tick in seconds,
                                      before time scaling.
            MIN_DISTANCE (float): Softening distance. Squared separations below
                                  `MIN_DISTANCE_SQ` are clamped to it.
            MIN_DISTANCE_SQ (float): Derived, `MIN_DISTANCE ** 2`.
            MAX_FORCE (Optional[float]): Optional clamp on the per-pair force magnitude,
                                         None disables clamping.
            MASS_EPSILON (float): Bodies at or below this mass are excluded from the
                                  force pass and skipped by the integrator.
            INTEGRATION_METHOD (str): Stepper used for real-time ticks.
                                      Supported: "rk4", "midpoint", "dormand_prince".
            MAX_TIME_SCALE (float): Upper bound for the session's time scale.
        """
        GRAVITATIONAL_CONSTANT = G_UNITS
        FIXED_DELTA_TIME = 0.02
        MIN_DISTANCE = 0.001
        MIN_DISTANCE_SQ = MIN_DISTANCE ** 2
        MAX_FORCE = None
        MASS_EPSILON = 1e-6
        INTEGRATION_METHOD = "rk4"
        MAX_TIME_SCALE = 1000.0

    # --- Body Defaults ---
    class Bodies:
        """Default physical properties for newly created bodies.

        Attributes:
            DEFAULT_MASS_KG (float): Mass assigned to a body created without one.
            DEFAULT_RADIUS (float): Radius (sim units) assigned to a body created without one (10 km).
            CENTRAL_MASS_KG (float): Mass of the default central body (Earth).
            CENTRAL_RADIUS (float): Radius of the default central body in sim units (6371 km).
            CENTRAL_ROTATION_DEG_PER_S (float): Spin rate of central bodies, one turn per day.
        """
        DEFAULT_MASS_KG = 5.0e21
        DEFAULT_RADIUS = 1.0
        CENTRAL_MASS_KG = 5.972e24
        CENTRAL_RADIUS = 637.1
        CENTRAL_ROTATION_DEG_PER_S = 360.0 / SECONDS_PER_DAY

    # --- Thrust Configuration ---
    class Thrust:
        """Configuration for thrust impulses.

        Attributes:
            UNIT_SCALE (float): Factor converting a requested thrust magnitude into
                                simulation force units.
            DEFAULT_MAGNITUDE (float): Thrust magnitude used when none is given.
        """
        UNIT_SCALE = 0.1
        DEFAULT_MAGNITUDE = 1.0

    # --- Trajectory Prediction ---
    class Prediction:
        """Configuration for the trajectory predictor and its step budget policy.

        Attributes:
            DELTA_TIME (float): Prediction step size in seconds.
            MAX_STEPS (int): Upper clamp of the elliptical step budget.
            UNBOUND_STEPS (int): Budget for hyperbolic/parabolic or invalid orbits.
            THRUST_STEPS (int): Budget cap while the body is thrusting.
            LOOP_DISTANCE (float): Closed-loop radius around the start position (sim units).
            LOOP_ANGLE_DEG (float): Max angle between current and initial velocity for
                                    a closed loop.
            LOOP_MIN_FRACTION (float): Fraction of the budget that must elapse before
                                       the closed-loop check is armed.
            MAX_OUTPUT_POINTS (int): LOD cap on the number of published points.
            CANCEL_CHECK_INTERVAL (int): Steps between cooperative cancellation checks.
            RECOMPUTE_INTERVAL_S (float): Simulated seconds between automatic refreshes
                                          of tracked bodies.
            METHOD (str): Stepper used by the predictor.
        """
        DELTA_TIME = 0.5
        MAX_STEPS = 30000
        UNBOUND_STEPS = 5000
        THRUST_STEPS = 3000
        LOOP_DISTANCE = 5.0
        LOOP_ANGLE_DEG = 30.0
        LOOP_MIN_FRACTION = 0.25
        MAX_OUTPUT_POINTS = 2500
        CANCEL_CHECK_INTERVAL = 500
        RECOMPUTE_INTERVAL_S = 2.0
        METHOD = "rk4"

    # --- Orbital Elements ---
    class Orbit:
        """Thresholds for the orbital elements calculator.

        Attributes:
            MIN_RADIUS (float): Relative positions shorter than this are invalid input.
            MIN_SPEED (float): Relative speeds below this are invalid input.
            MIN_ANGULAR_MOMENTUM (float): |h| below this (radial motion) is invalid input.
            CIRCULAR_ECCENTRICITY (float): Eccentricities below this report `is_circular`.
        """
        MIN_RADIUS = 1.0
        MIN_SPEED = 1e-6
        MIN_ANGULAR_MOMENTUM = 1e-6
        CIRCULAR_ECCENTRICITY = 1e-4

    # --- Offload Configuration ---
    class Offload:
        """Configuration for background prediction executors.

        Attributes:
            EXECUTOR (str): Default strategy, "thread" or "process".
            MAX_WORKERS (int): Worker count for the pool.
        """
        EXECUTOR = "thread"
        MAX_WORKERS = 2

    # --- Monitoring ---
    class Monitoring:
        """Configuration for runtime monitoring.

        Attributes:
            MEMORY_CHECK_INTERVAL_TICKS (int): Ticks between process memory checks.
            MEMORY_USAGE_WARN_MB (float): Resident memory above which a warning is logged.
            ENERGY_CHECK_INTERVAL_TICKS (int): Ticks between total-energy samples.
            ENERGY_DRIFT_WARN_FRACTION (float): Relative energy drift that triggers a warning.
        """
        MEMORY_CHECK_INTERVAL_TICKS = 500
        MEMORY_USAGE_WARN_MB = 1024.0
        ENERGY_CHECK_INTERVAL_TICKS = 250
        ENERGY_DRIFT_WARN_FRACTION = 0.01

    # --- Debugging ---
    class Debug:
        """Debug switches.

        Attributes:
            LOG_TICKS (bool): Log every tick at debug level.
            LOG_PREDICTIONS (bool): Log every prediction request and its outcome.
            MONITOR_ENERGY_CONSERVATION (bool): Sample total energy during stepping.
        """
        LOG_TICKS = False
        LOG_PREDICTIONS = False
        MONITOR_ENERGY_CONSERVATION = True

    def __init__(self):
        # Derived values that depend on other sections
        self.Physics.MIN_DISTANCE_SQ = self.Physics.MIN_DISTANCE ** 2
        self.validate()

    def validate(self):
        """Checks ranges and cross-section consistency of every setting.

        Raises:
            ConfigurationError: If any value is out of range or inconsistent.
        """
        # Physics
        if self.Physics.GRAVITATIONAL_CONSTANT <= 0:
            raise ConfigurationError("Physics.GRAVITATIONAL_CONSTANT must be positive.")
        if self.Physics.FIXED_DELTA_TIME <= 0:
            raise ConfigurationError(f"Physics.FIXED_DELTA_TIME ({self.Physics.FIXED_DELTA_TIME}) must be positive.")
        if self.Physics.MIN_DISTANCE <= 0:
            raise ConfigurationError("Physics.MIN_DISTANCE must be positive.")
        if not math.isclose(self.Physics.MIN_DISTANCE_SQ, self.Physics.MIN_DISTANCE ** 2):
            raise ConfigurationError("Physics.MIN_DISTANCE_SQ is inconsistent with Physics.MIN_DISTANCE.")
        if self.Physics.MAX_FORCE is not None and self.Physics.MAX_FORCE <= 0:
            raise ConfigurationError(f"Physics.MAX_FORCE ({self.Physics.MAX_FORCE}) must be positive or None.")
        if self.Physics.MASS_EPSILON < 0:
            raise ConfigurationError("Physics.MASS_EPSILON cannot be negative.")
        if self.Physics.INTEGRATION_METHOD not in ("rk4", "midpoint", "dormand_prince"):
            raise ConfigurationError(f"Unsupported Physics.INTEGRATION_METHOD: '{self.Physics.INTEGRATION_METHOD}'.")
        if self.Physics.MAX_TIME_SCALE <= 0:
            raise ConfigurationError("Physics.MAX_TIME_SCALE must be positive.")

        # Bodies
        if self.Bodies.DEFAULT_MASS_KG <= self.Physics.MASS_EPSILON:
            raise ConfigurationError("Bodies.DEFAULT_MASS_KG must exceed Physics.MASS_EPSILON.")
        if self.Bodies.CENTRAL_MASS_KG <= self.Physics.MASS_EPSILON:
            raise ConfigurationError("Bodies.CENTRAL_MASS_KG must exceed Physics.MASS_EPSILON.")
        if self.Bodies.DEFAULT_RADIUS < 0 or self.Bodies.CENTRAL_RADIUS < 0:
            raise ConfigurationError("Body radii cannot be negative.")

        # Thrust
        if self.Thrust.UNIT_SCALE <= 0:
            raise ConfigurationError("Thrust.UNIT_SCALE must be positive.")
        if self.Thrust.DEFAULT_MAGNITUDE < 0:
            raise ConfigurationError("Thrust.DEFAULT_MAGNITUDE cannot be negative.")

        # Prediction
        if self.Prediction.DELTA_TIME <= 0:
            raise ConfigurationError(f"Prediction.DELTA_TIME ({self.Prediction.DELTA_TIME}) must be positive.")
        for name in ("MAX_STEPS", "UNBOUND_STEPS", "THRUST_STEPS",
                     "MAX_OUTPUT_POINTS", "CANCEL_CHECK_INTERVAL"):
            value = getattr(self.Prediction, name)
            if not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"Prediction.{name} must be a positive integer, got {value!r}.")
        if self.Prediction.UNBOUND_STEPS > self.Prediction.MAX_STEPS:
            raise ConfigurationError("Prediction.UNBOUND_STEPS cannot exceed Prediction.MAX_STEPS.")
        if self.Prediction.THRUST_STEPS > self.Prediction.MAX_STEPS:
            raise ConfigurationError("Prediction.THRUST_STEPS cannot exceed Prediction.MAX_STEPS.")
        if self.Prediction.LOOP_DISTANCE <= 0:
            raise ConfigurationError("Prediction.LOOP_DISTANCE must be positive.")
        if not (0.0 < self.Prediction.LOOP_ANGLE_DEG < 180.0):
            raise ConfigurationError(f"Prediction.LOOP_ANGLE_DEG ({self.Prediction.LOOP_ANGLE_DEG}) must be in (0, 180).")
        if not (0.0 <= self.Prediction.LOOP_MIN_FRACTION < 1.0):
            raise ConfigurationError("Prediction.LOOP_MIN_FRACTION must be in [0, 1).")
        if self.Prediction.RECOMPUTE_INTERVAL_S <= 0:
            raise ConfigurationError("Prediction.RECOMPUTE_INTERVAL_S must be positive.")
        if self.Prediction.METHOD not in ("rk4", "midpoint", "dormand_prince"):
            raise ConfigurationError(f"Unsupported Prediction.METHOD: '{self.Prediction.METHOD}'.")

        # Orbit
        if self.Orbit.MIN_RADIUS <= 0 or self.Orbit.MIN_SPEED <= 0 or self.Orbit.MIN_ANGULAR_MOMENTUM <= 0:
            raise ConfigurationError("Orbit validity thresholds must be positive.")
        if not (0.0 < self.Orbit.CIRCULAR_ECCENTRICITY < 1.0):
            raise ConfigurationError("Orbit.CIRCULAR_ECCENTRICITY must be in (0, 1).")

        # Offload
        if self.Offload.EXECUTOR not in ("thread", "process"):
            raise ConfigurationError(f"Offload.EXECUTOR must be 'thread' or 'process', got '{self.Offload.EXECUTOR}'.")
        if self.Offload.MAX_WORKERS <= 0:
            raise ConfigurationError("Offload.MAX_WORKERS must be positive.")

        # Monitoring
        if self.Monitoring.MEMORY_CHECK_INTERVAL_TICKS <= 0 or self.Monitoring.ENERGY_CHECK_INTERVAL_TICKS <= 0:
            raise ConfigurationError("Monitoring intervals must be positive.")
        if self.Monitoring.ENERGY_DRIFT_WARN_FRACTION <= 0:
            raise ConfigurationError("Monitoring.ENERGY_DRIFT_WARN_FRACTION must be positive.")

        logging.info("Configuration validated successfully.")


# --- Instantiate the configuration ---
# This makes the config object available for import and runs validation.
# e.g., from config import config
try:
    config = SimulationConfig()
except ConfigurationError as e:
    logging.error(f"FATAL CONFIGURATION ERROR: {e}", exc_info=True)
    raise
