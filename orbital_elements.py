# orbital_elements.py
import math
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from config import config
from physics_utils import as_vector3, is_finite_vector, normalize_vector

REFERENCE_AXIS = np.array([0.0, 1.0, 0.0], dtype=np.float64)  # +Y is "up"; the XZ plane is the reference plane
REFERENCE_DIRECTION = np.array([1.0, 0.0, 0.0], dtype=np.float64)  # RAAN is measured from +X


@dataclass(frozen=True)
class OrbitalElements:
    """Classical elements of a two-body orbit about a central body.

    Apsis positions are world positions. Distances are measured from the
    central body's center. For unbound orbits (e >= 1) `apogee_position` is
    None and `apogee_distance`/`orbital_period` are infinite.

    Attributes:
        semi_major_axis (float): a, negative for hyperbolic orbits.
        eccentricity (float): e >= 0.
        apogee_position (Optional[np.ndarray]): Farthest point, None if unbound.
        perigee_position (Optional[np.ndarray]): Closest point.
        apogee_distance (float): a(1 + e).
        perigee_distance (float): a(1 - e), or h^2 / (mu (1 + e)) when unbound.
        orbital_period (float): 2 pi sqrt(a^3 / mu) in seconds.
        inclination (float): Degrees between the orbit normal -h (h = r x v) and +Y.
        raan (float): Right ascension of the ascending node in degrees, [0, 360).
        is_circular (bool): Eccentricity below `config.Orbit.CIRCULAR_ECCENTRICITY`.
        is_valid (bool): False when the input state could not define an orbit.
        specific_energy (float): v^2 / 2 - mu / r.
        angular_momentum (float): |r x v|.
    """
    semi_major_axis: float = 0.0
    eccentricity: float = 0.0
    apogee_position: Optional[np.ndarray] = None
    perigee_position: Optional[np.ndarray] = None
    apogee_distance: float = 0.0
    perigee_distance: float = 0.0
    orbital_period: float = 0.0
    inclination: float = 0.0
    raan: float = 0.0
    is_circular: bool = False
    is_valid: bool = False
    specific_energy: float = 0.0
    angular_momentum: float = 0.0

    @property
    def is_bound(self) -> bool:
        return self.is_valid and self.eccentricity < 1.0 and self.specific_energy < 0.0

    @classmethod
    def invalid(cls) -> "OrbitalElements":
        return cls()


def compute_elements(position, velocity, central_mass: float, central_position=None, central_velocity=None,
                     gravitational_constant: Optional[float] = None) -> OrbitalElements:
    """
    Derives orbital elements from a state vector relative to a central body.

    Args:
        position: Body position (world).
        velocity: Body velocity (world).
        central_mass (float): Mass of the central body in kg.
        central_position: Central body position, origin if omitted.
        central_velocity: Central body velocity, zero if omitted.
        gravitational_constant (Optional[float]): G, from config if omitted.

    Returns:
        OrbitalElements: The elements, or an invalid set (`is_valid=False`) for
                         degenerate input. Never raises for numeric input.
    """
    G = config.Physics.GRAVITATIONAL_CONSTANT if gravitational_constant is None else gravitational_constant
    center = np.zeros(3) if central_position is None else as_vector3(central_position, "central_position")
    center_velocity = np.zeros(3) if central_velocity is None else as_vector3(central_velocity, "central_velocity")
    r_vec = as_vector3(position, "position") - center
    v_vec = as_vector3(velocity, "velocity") - center_velocity

    if not (is_finite_vector(r_vec) and is_finite_vector(v_vec)) or not math.isfinite(central_mass) or central_mass <= 0:
        return OrbitalElements.invalid()

    r = float(np.linalg.norm(r_vec))
    v = float(np.linalg.norm(v_vec))
    if r < config.Orbit.MIN_RADIUS or v < config.Orbit.MIN_SPEED:
        return OrbitalElements.invalid()

    h_vec = np.cross(r_vec, v_vec)
    h = float(np.linalg.norm(h_vec))
    if h < config.Orbit.MIN_ANGULAR_MOMENTUM:
        # Purely radial motion has no orbital plane
        return OrbitalElements.invalid()

    mu = G * central_mass
    energy = 0.5 * v * v - mu / r
    eccentricity = math.sqrt(max(0.0, 1.0 + 2.0 * energy * h * h / (mu * mu)))
    is_circular = eccentricity < config.Orbit.CIRCULAR_ECCENTRICITY

    r_hat = r_vec / r
    e_vec = np.cross(v_vec, h_vec) / mu - r_hat
    apsis_dir = normalize_vector(e_vec, epsilon=1e-9)
    if not np.any(apsis_dir):
        apsis_dir = r_hat

    # Orbit normal is taken as -h, so an orbit counter-clockwise seen from +Y is 180 degrees
    inclination = math.degrees(math.acos(min(1.0, max(-1.0, float(np.dot(-h_vec, REFERENCE_AXIS)) / h))))
    raan = _right_ascension_of_ascending_node(h_vec)

    if energy < 0.0 and eccentricity < 1.0:
        semi_major_axis = -mu / (2.0 * energy)
        period = 2.0 * math.pi * math.sqrt(semi_major_axis ** 3 / mu)
        if is_circular:
            perigee_distance = apogee_distance = r
            perigee_position = center + r_hat * r
            apogee_position = center - r_hat * r
        else:
            perigee_distance = semi_major_axis * (1.0 - eccentricity)
            apogee_distance = semi_major_axis * (1.0 + eccentricity)
            perigee_position = center + apsis_dir * perigee_distance
            apogee_position = center - apsis_dir * apogee_distance
    else:
        semi_major_axis = math.inf if energy == 0.0 else -mu / (2.0 * energy)
        period = math.inf
        perigee_distance = h * h / (mu * (1.0 + eccentricity))
        perigee_position = center + apsis_dir * perigee_distance
        apogee_distance = math.inf
        apogee_position = None
        if config.Debug.LOG_PREDICTIONS:
            logging.warning(f"Unbound orbit (e={eccentricity:.4f}, energy={energy:.4e}); no apogee.")

    return OrbitalElements(
        semi_major_axis=semi_major_axis,
        eccentricity=eccentricity,
        apogee_position=apogee_position,
        perigee_position=perigee_position,
        apogee_distance=apogee_distance,
        perigee_distance=perigee_distance,
        orbital_period=period,
        inclination=inclination,
        raan=raan,
        is_circular=is_circular,
        is_valid=True,
        specific_energy=energy,
        angular_momentum=h,
    )


def _right_ascension_of_ascending_node(h_vec: np.ndarray) -> float:
    node = np.cross(REFERENCE_AXIS, h_vec)
    node_norm = float(np.linalg.norm(node))
    if node_norm < 1e-9 * max(1.0, float(np.linalg.norm(h_vec))):
        # Equatorial orbit, the node is undefined
        return 0.0
    raan = math.degrees(math.acos(min(1.0, max(-1.0, float(np.dot(node, REFERENCE_DIRECTION)) / node_norm))))
    if node[2] < 0.0:
        raan = 360.0 - raan
    return raan % 360.0


def altitude(position, central_position=None, central_radius: float = config.Bodies.CENTRAL_RADIUS) -> float:
    """Height above the central body's surface in simulation units."""
    center = np.zeros(3) if central_position is None else as_vector3(central_position, "central_position")
    return float(np.linalg.norm(as_vector3(position, "position") - center)) - central_radius
