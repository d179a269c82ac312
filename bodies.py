# bodies.py
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional

import numpy as np

from config import config
from physics_utils import PhysicsError, as_vector3, is_finite_vector

_body_ids = itertools.count(1)

def _next_body_id() -> int:
    return next(_body_ids)


class BodyRole(Enum):
    """How a body takes part in a tick. Resolved once per tick by the session."""
    CENTRAL = "central"  # gravity source only, spins but never translates
    FREE = "free"  # coasting under gravity
    THRUSTING = "thrusting"  # coasting plus a pending thrust force


class OrbitalState(NamedTuple):
    """Immutable position/velocity pair consumed and produced by the integrator."""
    position: np.ndarray
    velocity: np.ndarray


@dataclass(eq=False)
class Body:
    """A massive body in the simulation.

    Bodies compare by identity. `body_id` is unique per process and is what the
    registry, collision tie-breaks and prediction bookkeeping key on.

    Attributes:
        name (str): Display name.
        mass (float): Mass in kilograms. Bodies at or below
                      `config.Physics.MASS_EPSILON` are massless placeholders.
        position (np.ndarray): Position in simulation units.
        velocity (np.ndarray): Velocity in simulation units per second.
        radius (float): Collision radius in simulation units.
        is_central (bool): Central bodies attract others but are never moved by gravity.
        force (np.ndarray): External force accumulated for the next tick (thrust).
        rotation_deg (float): Spin angle of a central body, in [0, 360).
        body_id (int): Unique identifier, auto-assigned.
    """
    name: str = "Body"
    mass: float = config.Bodies.DEFAULT_MASS_KG
    position: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))
    radius: float = config.Bodies.DEFAULT_RADIUS
    is_central: bool = False
    force: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64), repr=False)
    rotation_deg: float = 0.0
    body_id: int = field(default_factory=_next_body_id)

    def __post_init__(self):
        self.position = as_vector3(self.position, "position")
        self.velocity = as_vector3(self.velocity, "velocity")
        self.force = as_vector3(self.force, "force")
        self.mass = float(self.mass)
        self.radius = float(self.radius)
        if self.radius < 0:
            raise PhysicsError(f"Body '{self.name}' has negative radius {self.radius}.")
        if self.mass < 0:
            raise PhysicsError(f"Body '{self.name}' has negative mass {self.mass}.")
        if not (is_finite_vector(self.position) and is_finite_vector(self.velocity)):
            raise PhysicsError(f"Body '{self.name}' was given a non-finite position or velocity.")
        if self.is_central:
            self.velocity = np.zeros(3, dtype=np.float64)

    @classmethod
    def central(cls, name: str = "Earth", mass: float = config.Bodies.CENTRAL_MASS_KG,
                position=(0.0, 0.0, 0.0), radius: float = config.Bodies.CENTRAL_RADIUS) -> "Body":
        """Creates a central body at rest."""
        return cls(name=name, mass=mass, position=position, radius=radius, is_central=True)

    @property
    def has_mass(self) -> bool:
        return self.mass > config.Physics.MASS_EPSILON

    @property
    def state(self) -> OrbitalState:
        return OrbitalState(self.position.copy(), self.velocity.copy())

    @property
    def role(self) -> BodyRole:
        if self.is_central:
            return BodyRole.CENTRAL
        if np.any(self.force != 0.0):
            return BodyRole.THRUSTING
        return BodyRole.FREE

    def apply_state(self, state: OrbitalState):
        """Writes an integrated state back onto the body. Central bodies ignore it."""
        if self.is_central:
            return
        self.position = np.array(state.position, dtype=np.float64)
        self.velocity = np.array(state.velocity, dtype=np.float64)

    def add_force(self, force):
        """Accumulates an external force for the next tick."""
        self.force = self.force + as_vector3(force, "force")

    def thrust_acceleration(self) -> Optional[np.ndarray]:
        """Accumulated force converted to acceleration, or None when nothing is pending."""
        if not self.has_mass or not np.any(self.force != 0.0):
            return None
        return self.force / self.mass

    def clear_forces(self):
        self.force = np.zeros(3, dtype=np.float64)

    def rotate(self, delta_time: float, rate_deg_per_s: float = config.Bodies.CENTRAL_ROTATION_DEG_PER_S):
        """Advances the spin angle of a central body."""
        self.rotation_deg = (self.rotation_deg + rate_deg_per_s * delta_time) % 360.0

    def set_mass(self, mass: float):
        """Assigns a mass, turning a placeholder into a gravitating body (or back)."""
        if mass < 0:
            raise PhysicsError(f"Body '{self.name}' cannot take negative mass {mass}.")
        was_massive = self.has_mass
        self.mass = float(mass)
        if was_massive != self.has_mass:
            logging.info(f"Body '{self.name}' (id {self.body_id}) is now {'massive' if self.has_mass else 'a massless placeholder'}.")
