# trajectory.py
import math
import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

import numpy as np

from bodies import OrbitalState
from config import config
from gravity import GravityModel
from integrator import get_stepper
from orbital_elements import OrbitalElements
from physics_utils import angle_between_deg, is_finite_vector
from registry import GravitySources


class StopReason(Enum):
    """Why a prediction ended."""
    HORIZON = "horizon"  # ran the whole step budget
    COLLISION = "collision"  # touched a source body, output truncated at contact
    CLOSED_LOOP = "closed_loop"  # came back around to the start
    INVALID = "invalid"  # state went NaN/Inf, or the body cannot be integrated


@dataclass(frozen=True)
class PredictedTrajectory:
    """An ordered, evenly time-stepped run of predicted positions.

    `positions[i]` is the position `(i + 1) * stride * delta_time` seconds after
    the prediction started, except the final point of a decimated trajectory,
    which is always the last computed point and lies at `duration`. Each new
    prediction for a body replaces the last one as a whole.
    """
    positions: np.ndarray
    delta_time: float
    stop_reason: StopReason = StopReason.HORIZON
    body_id: Optional[int] = None
    collided_with: Optional[int] = None
    stride: int = 1
    generation: int = 0
    steps_computed: int = 0

    def __len__(self):
        return len(self.positions)

    @property
    def is_empty(self) -> bool:
        return len(self.positions) == 0

    @property
    def duration(self) -> float:
        return self.steps_computed * self.delta_time

    @classmethod
    def empty(cls, delta_time: float, body_id: Optional[int] = None,
              stop_reason: StopReason = StopReason.INVALID) -> "PredictedTrajectory":
        return cls(positions=np.zeros((0, 3), dtype=np.float64), delta_time=delta_time,
                   stop_reason=stop_reason, body_id=body_id)

    def decimated(self, max_points: int) -> "PredictedTrajectory":
        """Keeps every n-th point so that at most about `max_points` remain. The final point is always kept."""
        if max_points <= 0 or len(self.positions) <= max_points:
            return self
        factor = math.ceil(len(self.positions) / max_points)
        kept = self.positions[factor - 1::factor]
        if len(kept) == 0 or not np.array_equal(kept[-1], self.positions[-1]):
            kept = np.vstack([kept, self.positions[-1:]])
        return replace(self, positions=kept, stride=self.stride * factor)


def choose_step_budget(elements: Optional[OrbitalElements], delta_time: float, thrusting: bool = False,
                       max_steps: int = config.Prediction.MAX_STEPS,
                       unbound_steps: int = config.Prediction.UNBOUND_STEPS,
                       thrust_steps: int = config.Prediction.THRUST_STEPS) -> int:
    """
    Chooses how many steps to predict.

    Bound orbits get one period: clamp(ceil(period / dt), 1, max_steps).
    Unbound or undefined orbits get a fixed `unbound_steps`. While thrusting
    the budget is capped at `thrust_steps` since the orbit is about to change.

    Args:
        elements (Optional[OrbitalElements]): Current elements, None if unknown.
        delta_time (float): Prediction step in seconds.
        thrusting (bool): Whether the body is under thrust.

    Returns:
        int: Number of steps, at least 1.
    """
    if elements is not None and elements.is_bound and math.isfinite(elements.orbital_period) and delta_time > 0:
        steps = min(max(math.ceil(elements.orbital_period / delta_time), 1), max_steps)
    else:
        steps = unbound_steps
    if thrusting:
        steps = min(steps, thrust_steps)
    return max(int(steps), 1)


@dataclass
class TrajectoryPredictor:
    """Rolls a body forward against a frozen snapshot of the other bodies.

    The sources are treated as stationary for the whole horizon. Nothing
    passed in is mutated.
    """
    gravity: GravityModel = field(default_factory=GravityModel)
    method: str = config.Prediction.METHOD
    loop_distance: float = config.Prediction.LOOP_DISTANCE
    loop_angle_deg: float = config.Prediction.LOOP_ANGLE_DEG
    loop_min_fraction: float = config.Prediction.LOOP_MIN_FRACTION
    cancel_check_interval: int = config.Prediction.CANCEL_CHECK_INTERVAL

    def predict(self, state: OrbitalState, body_mass: float, body_radius: float, sources: GravitySources,
                steps: int, delta_time: float, thrust: Optional[np.ndarray] = None,
                cancel_event: Optional[threading.Event] = None,
                body_id: Optional[int] = None) -> Optional[PredictedTrajectory]:
        """
        Predicts up to `steps` future positions.

        Stops early, checked after every step in this order: contact with a
        source (the contact point is kept), a closed loop back to the start,
        or a non-finite state (the bad point is dropped).

        Args:
            state (OrbitalState): Starting position and velocity.
            body_mass (float): Mass of the predicted body.
            body_radius (float): Its collision radius.
            sources (GravitySources): Frozen attracting bodies.
            steps (int): Step budget.
            delta_time (float): Step size in seconds.
            thrust (Optional[np.ndarray]): Acceleration applied during the first step only.
            cancel_event (Optional[threading.Event]): Polled every
                `cancel_check_interval` steps.
            body_id (Optional[int]): Recorded on the result.

        Returns:
            Optional[PredictedTrajectory]: The prediction, or None if cancelled.
        """
        stepper = get_stepper(self.method)
        if steps <= 0 or body_mass <= self.gravity.mass_epsilon:
            return PredictedTrajectory.empty(delta_time, body_id)

        start_position = np.array(state.position, dtype=np.float64)
        start_velocity = np.array(state.velocity, dtype=np.float64)
        current = OrbitalState(start_position, start_velocity)

        coast_fn = self.gravity.acceleration_function(body_mass, sources)
        first_fn = coast_fn if thrust is None else self.gravity.acceleration_function(body_mass, sources, thrust)
        contact_radii = sources.radii + body_radius
        loop_armed_at = int(steps * self.loop_min_fraction)

        output = np.empty((steps, 3), dtype=np.float64)
        count = 0
        reason = StopReason.HORIZON
        collided_with = None
        steps_run = 0

        for i in range(steps):
            if cancel_event is not None and i % self.cancel_check_interval == 0 and cancel_event.is_set():
                if config.Debug.LOG_PREDICTIONS:
                    logging.info(f"Prediction for body {body_id} cancelled at step {i}.")
                return None

            current = stepper(current, delta_time, first_fn if i == 0 else coast_fn)
            steps_run = i + 1
            position, velocity = current

            hit = self._first_contact(position, sources, contact_radii)
            if hit is not None:
                output[count] = position
                count += 1
                reason = StopReason.COLLISION
                collided_with = sources.ids[hit]
                break

            if (i >= loop_armed_at
                    and np.linalg.norm(position - start_position) < self.loop_distance
                    and angle_between_deg(velocity, start_velocity) < self.loop_angle_deg):
                output[count] = position
                count += 1
                reason = StopReason.CLOSED_LOOP
                break

            if not (is_finite_vector(position) and is_finite_vector(velocity)):
                reason = StopReason.INVALID
                break

            output[count] = position
            count += 1

        if config.Debug.LOG_PREDICTIONS:
            logging.info(f"Prediction for body {body_id}: {count} points, stopped by {reason.value}.")
        return PredictedTrajectory(
            positions=output[:count].copy(),
            delta_time=delta_time,
            stop_reason=reason,
            body_id=body_id,
            collided_with=collided_with,
            steps_computed=steps_run,
        )

    @staticmethod
    def _first_contact(position: np.ndarray, sources: GravitySources, contact_radii: np.ndarray) -> Optional[int]:
        if len(sources) == 0:
            return None
        offsets = sources.positions - position
        dist_sq = np.einsum('ij,ij->i', offsets, offsets)
        touching = np.nonzero(dist_sq <= contact_radii * contact_radii)[0]
        return int(touching[0]) if len(touching) else None
