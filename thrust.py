# thrust.py
from enum import Enum

import numpy as np

from config import config
from physics_utils import as_vector3, normalize_vector


class ThrustDirection(Enum):
    """Burn directions in the orbit's local frame."""
    PROGRADE = "prograde"  # along velocity
    RETROGRADE = "retrograde"
    NORMAL = "normal"  # along the orbit normal r x v
    ANTINORMAL = "antinormal"
    RADIAL_OUT = "radial_out"  # away from the central body
    RADIAL_IN = "radial_in"


def thrust_vector(direction: ThrustDirection, magnitude: float, position, velocity, central_position=None,
                  unit_scale: float = config.Thrust.UNIT_SCALE) -> np.ndarray:
    """
    Builds a thrust force for `apply_thrust`.

    Args:
        direction (ThrustDirection): Burn direction.
        magnitude (float): Requested thrust, scaled by `unit_scale` into simulation force units.
        position: Body position.
        velocity: Body velocity relative to the central body.
        central_position: Central body position, origin if omitted.

    Returns:
        np.ndarray: Force vector. Zero if the frame is undefined (e.g. prograde at rest).
    """
    center = np.zeros(3) if central_position is None else as_vector3(central_position, "central_position")
    radial = normalize_vector(as_vector3(position, "position") - center)
    along = normalize_vector(as_vector3(velocity, "velocity"))
    normal = normalize_vector(np.cross(radial, along))

    axes = {
        ThrustDirection.PROGRADE: along,
        ThrustDirection.RETROGRADE: -along,
        ThrustDirection.NORMAL: normal,
        ThrustDirection.ANTINORMAL: -normal,
        ThrustDirection.RADIAL_OUT: radial,
        ThrustDirection.RADIAL_IN: -radial,
    }
    return axes[direction] * (magnitude * unit_scale)
