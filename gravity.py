# gravity.py
import math
import logging
from typing import Callable, Optional

import numpy as np

from config import config
from physics_utils import safe_divide
from registry import GravitySources, RegistrySnapshot

AccelerationFunction = Callable[[np.ndarray], np.ndarray]


class GravityModel:
    """Newtonian pairwise gravity with distance softening and an optional force clamp.

    Args:
        gravitational_constant (float): G in simulation units.
        min_distance_sq (float): Squared separations below this are clamped to it.
        max_force (Optional[float]): Clamp on each pair's force magnitude. None disables it.
        mass_epsilon (float): Receivers at or below this mass feel no acceleration.
    """

    def __init__(self, gravitational_constant: Optional[float] = None, min_distance_sq: Optional[float] = None,
                 max_force: Optional[float] = config.Physics.MAX_FORCE, mass_epsilon: Optional[float] = None):
        self.G = config.Physics.GRAVITATIONAL_CONSTANT if gravitational_constant is None else gravitational_constant
        self.min_distance_sq = config.Physics.MIN_DISTANCE_SQ if min_distance_sq is None else min_distance_sq
        self.max_force = max_force
        self.mass_epsilon = config.Physics.MASS_EPSILON if mass_epsilon is None else mass_epsilon

    def acceleration(self, position: np.ndarray, body_mass: float, sources: GravitySources,
                     external_acceleration: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Calculates the acceleration of a receiver at `position` due to `sources`.

        The receiver must already be excluded from `sources`. For each source the
        force is G * m_self * m_source / max(d^2, min_distance_sq) along the unit
        direction to the source; the summed force is divided by the receiver's mass.

        Args:
            position (np.ndarray): Receiver position.
            body_mass (float): Receiver mass in kg.
            sources (GravitySources): Attracting bodies.
            external_acceleration (Optional[np.ndarray]): Thrust or other external
                term, already expressed as acceleration.

        Returns:
            np.ndarray: Acceleration in sim units / s^2.
        """
        total = np.zeros(3, dtype=np.float64)
        if body_mass <= self.mass_epsilon:
            return total

        if len(sources) > 0:
            direction = sources.positions - position
            raw_dist_sq = np.einsum('ij,ij->i', direction, direction)
            dist_sq = np.maximum(raw_dist_sq, self.min_distance_sq)
            force_mag = self.G * body_mass * sources.masses / dist_sq
            if self.max_force is not None:
                force_mag = np.minimum(force_mag, self.max_force)
            # Coincident bodies have no direction and contribute nothing
            unit = direction * safe_divide(1.0, np.sqrt(raw_dist_sq))[:, np.newaxis]
            total = (unit * force_mag[:, np.newaxis]).sum(axis=0) / body_mass

        if external_acceleration is not None:
            total = total + external_acceleration
        return total

    def acceleration_function(self, body_mass: float, sources: GravitySources,
                              external_acceleration: Optional[np.ndarray] = None) -> AccelerationFunction:
        """Binds everything but the position, giving the callback the integrator expects."""
        def accel_fn(position: np.ndarray) -> np.ndarray:
            return self.acceleration(position, body_mass, sources, external_acceleration)
        return accel_fn

    def total_system_energy(self, snapshot: RegistrySnapshot) -> float:
        """
        Calculates the total mechanical energy (kinetic + potential) of the system.

        Massless placeholders are ignored. Central bodies contribute potential
        energy but no kinetic energy since they never translate. Pair separations
        are softened the same way as in the force pass.

        Returns:
            float: Energy in kg * unit^2 / s^2.
        """
        massive = snapshot.masses > self.mass_epsilon
        masses = snapshot.masses[massive]
        positions = snapshot.positions[massive]
        velocities = snapshot.velocities[massive]
        movable = ~snapshot.central[massive]

        speed_sq = np.einsum('ij,ij->i', velocities, velocities)
        kinetic = 0.5 * float(np.sum(masses[movable] * speed_sq[movable]))

        potential = 0.0
        count = len(masses)
        for i in range(count):
            for j in range(i + 1, count):
                separation = positions[j] - positions[i]
                dist_sq = max(float(np.dot(separation, separation)), self.min_distance_sq)
                potential -= self.G * masses[i] * masses[j] / math.sqrt(dist_sq)
        return kinetic + potential


def circular_orbit_velocity(central_mass: float, radius: float,
                            gravitational_constant: float = config.Physics.GRAVITATIONAL_CONSTANT) -> float:
    """Speed of a circular orbit of the given radius, sqrt(G M / r)."""
    if radius <= 0:
        logging.warning(f"circular_orbit_velocity called with non-positive radius {radius}.")
        return 0.0
    return math.sqrt(gravitational_constant * central_mass / radius)


def escape_velocity(central_mass: float, radius: float,
                    gravitational_constant: float = config.Physics.GRAVITATIONAL_CONSTANT) -> float:
    """Escape speed at the given radius, sqrt(2 G M / r)."""
    if radius <= 0:
        logging.warning(f"escape_velocity called with non-positive radius {radius}.")
        return 0.0
    return math.sqrt(2.0 * gravitational_constant * central_mass / radius)
