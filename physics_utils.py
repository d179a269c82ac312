# physics_utils.py

import math
import numpy as np

class PhysicsError(Exception):
    """Custom exception for physics-related errors, such as invalid body parameters."""
    pass

def safe_divide(numerator, denominator, epsilon=1e-12, default_on_zero_denom=0.0):
    """
    Divides two numbers, returning a default when the denominator is effectively zero.

    Args:
        numerator (float or np.ndarray): The number(s) to be divided.
        denominator (float or np.ndarray): The number(s) to divide by.
        epsilon (float): Threshold below which the denominator is considered zero.
        default_on_zero_denom (float): Value used wherever the denominator is near zero.

    Returns:
        float or np.ndarray: The quotient, with `default_on_zero_denom` in place of
                             divisions by (near) zero.
    """
    if isinstance(denominator, np.ndarray):
        numerator = np.broadcast_to(np.asarray(numerator, dtype=np.float64), denominator.shape)
        is_zero = np.abs(denominator) < epsilon
        result = np.full(denominator.shape, default_on_zero_denom, dtype=np.float64)
        np.divide(numerator, denominator, out=result, where=~is_zero)
        return result
    if abs(denominator) < epsilon:
        return default_on_zero_denom
    return numerator / denominator

def normalize_vector(vector, epsilon=1e-12):
    """
    Normalizes a vector to unit length.

    Args:
        vector (np.ndarray): The vector to normalize.
        epsilon (float): Threshold below which the vector's magnitude is considered zero.

    Returns:
        np.ndarray: The unit vector, or a zero vector of the same shape if the
                    magnitude is close to zero.
    """
    if not isinstance(vector, np.ndarray):
        vector = np.array(vector, dtype=np.float64)

    norm = np.linalg.norm(vector)
    if norm < epsilon:
        return np.zeros_like(vector, dtype=np.float64)
    return vector / norm

def as_vector3(value, name="vector"):
    """Coerces a sequence into a float64 3-vector copy.

    Raises:
        PhysicsError: If the value does not have exactly three components.
    """
    vector = np.array(value, dtype=np.float64).reshape(-1)
    if vector.shape != (3,):
        raise PhysicsError(f"{name} must have exactly 3 components, got shape {vector.shape}.")
    return vector

def is_finite_vector(vector) -> bool:
    """True when every component is a finite number."""
    return bool(np.all(np.isfinite(vector)))

def angle_between_deg(a, b, epsilon=1e-12) -> float:
    """Angle between two vectors in degrees. Returns 0.0 if either is (near) zero."""
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a < epsilon or norm_b < epsilon:
        return 0.0
    cos_angle = float(np.dot(a, b) / (norm_a * norm_b))
    # Rounding can push the cosine just outside [-1, 1]
    return math.degrees(math.acos(min(1.0, max(-1.0, cos_angle))))
