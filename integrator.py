# integrator.py
"""Fixed-step integrators over (position, velocity) states.

Every stepper shares `derivatives` and takes the force model as a callback
`accel_fn(position) -> acceleration`, so the real-time tick and the trajectory
predictor run exactly the same arithmetic.
"""
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from bodies import OrbitalState
from config import config
from gravity import AccelerationFunction, GravityModel
from registry import GravitySources

# Dormand-Prince 5(4) tableau. Only the 5th order solution is used.
_DP_C = (0.0, 1.0 / 5.0, 3.0 / 10.0, 4.0 / 5.0, 8.0 / 9.0, 1.0)
_DP_A = (
    (),
    (1.0 / 5.0,),
    (3.0 / 40.0, 9.0 / 40.0),
    (44.0 / 45.0, -56.0 / 15.0, 32.0 / 9.0),
    (19372.0 / 6561.0, -25360.0 / 2187.0, 64448.0 / 6561.0, -212.0 / 729.0),
    (9017.0 / 3168.0, -355.0 / 33.0, 46732.0 / 5247.0, 49.0 / 176.0, -5103.0 / 18656.0),
)
_DP_B = (35.0 / 384.0, 0.0, 500.0 / 1113.0, 125.0 / 192.0, -2187.0 / 6784.0, 11.0 / 84.0)


def derivatives(position: np.ndarray, velocity: np.ndarray,
                accel_fn: AccelerationFunction) -> Tuple[np.ndarray, np.ndarray]:
    """d(position)/dt and d(velocity)/dt at one point of state space."""
    return velocity, accel_fn(position)


def rk4_step(state: OrbitalState, dt: float, accel_fn: AccelerationFunction) -> OrbitalState:
    """Classical 4th order Runge-Kutta step with weights (1, 2, 2, 1) / 6."""
    p0, v0 = state
    dp1, dv1 = derivatives(p0, v0, accel_fn)
    dp2, dv2 = derivatives(p0 + dp1 * (dt * 0.5), v0 + dv1 * (dt * 0.5), accel_fn)
    dp3, dv3 = derivatives(p0 + dp2 * (dt * 0.5), v0 + dv2 * (dt * 0.5), accel_fn)
    dp4, dv4 = derivatives(p0 + dp3 * dt, v0 + dv3 * dt, accel_fn)

    position = p0 + (dp1 + 2.0 * dp2 + 2.0 * dp3 + dp4) * (dt / 6.0)
    velocity = v0 + (dv1 + 2.0 * dv2 + 2.0 * dv3 + dv4) * (dt / 6.0)
    return OrbitalState(position, velocity)


def midpoint_step(state: OrbitalState, dt: float, accel_fn: AccelerationFunction) -> OrbitalState:
    """Two-stage step: the derivative sampled at the half-step midpoint advances the full step."""
    p0, v0 = state
    dp1, dv1 = derivatives(p0, v0, accel_fn)
    dp2, dv2 = derivatives(p0 + dp1 * (dt * 0.5), v0 + dv1 * (dt * 0.5), accel_fn)
    return OrbitalState(p0 + dp2 * dt, v0 + dv2 * dt)


def dormand_prince_step(state: OrbitalState, dt: float, accel_fn: AccelerationFunction) -> OrbitalState:
    """Fixed-step Dormand-Prince update (5th order solution, six derivative samples)."""
    p0, v0 = state
    k_pos = []
    k_vel = []
    for stage in range(6):
        p = p0.copy()
        v = v0.copy()
        for coeff, kp, kv in zip(_DP_A[stage], k_pos, k_vel):
            p += kp * (coeff * dt)
            v += kv * (coeff * dt)
        dp, dv = derivatives(p, v, accel_fn)
        k_pos.append(dp)
        k_vel.append(dv)

    position = p0.copy()
    velocity = v0.copy()
    for weight, kp, kv in zip(_DP_B, k_pos, k_vel):
        if weight != 0.0:
            position += kp * (weight * dt)
            velocity += kv * (weight * dt)
    return OrbitalState(position, velocity)


STEPPERS: Dict[str, Callable[[OrbitalState, float, AccelerationFunction], OrbitalState]] = {
    "rk4": rk4_step,
    "midpoint": midpoint_step,
    "dormand_prince": dormand_prince_step,
}


def get_stepper(method: str):
    """Looks up a stepper by name.

    Raises:
        ValueError: If the method is unknown.
    """
    try:
        return STEPPERS[method]
    except KeyError:
        raise ValueError(f"Unknown integration method '{method}'. Supported: {sorted(STEPPERS)}") from None


def integrate(state: OrbitalState, dt: float, body_mass: float, sources: GravitySources,
              thrust: Optional[np.ndarray] = None, method: str = "rk4",
              gravity: Optional[GravityModel] = None) -> OrbitalState:
    """
    Advances one body by one step against a frozen set of gravity sources.

    Pure: nothing outside the returned state is modified.

    Args:
        state (OrbitalState): Current position and velocity.
        dt (float): Step in seconds. Negative values integrate backwards.
        body_mass (float): Mass of the integrated body.
        sources (GravitySources): Snapshot of the attracting bodies.
        thrust (Optional[np.ndarray]): Extra acceleration held constant over the step.
        method (str): "rk4", "midpoint" or "dormand_prince".
        gravity (Optional[GravityModel]): Force model, a default one if omitted.

    Returns:
        OrbitalState: The new state, or the input state if the body is (near) massless.
    """
    stepper = get_stepper(method)
    gravity = gravity or GravityModel()
    if body_mass <= gravity.mass_epsilon:
        return state
    position = np.asarray(state.position, dtype=np.float64)
    velocity = np.asarray(state.velocity, dtype=np.float64)
    accel_fn = gravity.acceleration_function(body_mass, sources, thrust)
    return stepper(OrbitalState(position, velocity), dt, accel_fn)
