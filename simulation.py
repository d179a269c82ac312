# simulation.py
import math
import logging
import threading
from typing import Dict, List, Optional, Set, Tuple

import numpy as np

from bodies import Body, BodyRole
from collisions import CollisionEvent, CollisionListener, CollisionResolver, detect_collisions
from config import config
from gravity import GravityModel
from integrator import get_stepper, integrate
from offload import CompletionCallback, PredictionExecutor, PredictionHandle, PredictionRequest, create_executor
from orbital_elements import OrbitalElements, altitude, compute_elements
from physics_utils import as_vector3, is_finite_vector
from registry import BodyRegistry
from trajectory import PredictedTrajectory, choose_step_budget


class SimulationSession:
    """
    Owns one simulation: its bodies, the real-time tick and background predictions.

    All registry mutation happens on the caller's thread, in `step` and the
    register/deregister/thrust calls. Prediction workers only read copied
    snapshots; their results are published back under a small lock.

    Args:
        gravity (Optional[GravityModel]): Force model, default from config.
        executor (Optional[PredictionExecutor]): Prediction offload. If omitted one
            is created from config and shut down by `close()`.
        fixed_delta_time (Optional[float]): Base tick length before time scaling.
        integration_method (Optional[str]): Stepper used by `step`.
        prediction_delta_time (Optional[float]): Default prediction step.
        max_output_points (Optional[int]): LOD cap applied to published predictions.
    """

    def __init__(self, gravity: Optional[GravityModel] = None, executor: Optional[PredictionExecutor] = None,
                 fixed_delta_time: Optional[float] = None, integration_method: Optional[str] = None,
                 prediction_delta_time: Optional[float] = None, max_output_points: Optional[int] = None):
        self.registry = BodyRegistry()
        self.gravity = gravity or GravityModel()
        self.collisions = CollisionResolver()
        self._owns_executor = executor is None
        self.executor = executor or create_executor()

        self.base_delta_time = fixed_delta_time or config.Physics.FIXED_DELTA_TIME
        self.integration_method = integration_method or config.Physics.INTEGRATION_METHOD
        get_stepper(self.integration_method)  # fail fast on a bad name
        self.prediction_delta_time = prediction_delta_time or config.Prediction.DELTA_TIME
        self.max_output_points = max_output_points or config.Prediction.MAX_OUTPUT_POINTS

        self.time_scale = 1.0
        self.paused = False
        self.elapsed_time = 0.0
        self.tick_count = 0

        self._lock = threading.Lock()
        self._generations: Dict[int, int] = {}
        self._in_flight: Dict[int, Tuple[int, PredictionHandle]] = {}
        self._trajectories: Dict[int, PredictedTrajectory] = {}
        self._tracked: Dict[int, float] = {}  # body id -> simulated time of the last request
        self._dirty: Set[int] = set()
        self._reference_energy: Optional[float] = None

        self.collisions.add_listener(self._on_body_removed)

    # --- Bodies ---

    def register_body(self, body: Body) -> bool:
        added = self.registry.register(body)
        if added:
            self._dirty.add(body.body_id)
            self._reference_energy = None
        return added

    def deregister_body(self, body: Body) -> bool:
        removed = self.registry.deregister(body)
        if removed is None:
            return False
        self._forget(removed.body_id)
        self._reference_energy = None
        return True

    def apply_thrust(self, body: Body, impulse) -> bool:
        """Queues a thrust force on a body for the next tick.

        Returns:
            bool: False if the body is not registered, is a central body, or
                  the impulse is not finite.
        """
        if body not in self.registry:
            logging.warning(f"Thrust ignored: body '{body.name}' (id {body.body_id}) is not registered.")
            return False
        if body.is_central:
            logging.warning(f"Thrust ignored: central body '{body.name}' does not translate.")
            return False
        impulse = as_vector3(impulse, "impulse")
        if not is_finite_vector(impulse):
            logging.warning(f"Thrust ignored: non-finite impulse {impulse} for '{body.name}'.")
            return False
        body.add_force(impulse)
        self._dirty.add(body.body_id)
        self._reference_energy = None
        return True

    def add_collision_listener(self, listener: CollisionListener):
        """Registers an `onCollision` callback, called with each `CollisionEvent`."""
        self.collisions.add_listener(listener)

    on_collision = add_collision_listener

    # --- Time control ---

    @property
    def fixed_delta_time(self) -> float:
        return self.base_delta_time * self.time_scale

    def set_time_scale(self, scale: float):
        if math.isnan(scale):
            logging.warning(f"Time scale {scale} rejected; keeping {self.time_scale}.")
            return
        clamped = min(max(float(scale), 0.0), config.Physics.MAX_TIME_SCALE)
        if clamped != scale:
            logging.warning(f"Time scale {scale} clamped to {clamped}.")
        self.time_scale = clamped

    def pause(self):
        self.paused = True

    def resume(self):
        self.paused = False

    # --- Stepping ---

    def step(self, dt: Optional[float] = None) -> List[CollisionEvent]:
        """
        Advances the simulation by one tick.

        Every free body is integrated against the same snapshot, taken once at
        the start of the tick. Thrust forces are consumed and cleared. Contacts
        are resolved after all bodies have moved.

        Args:
            dt (Optional[float]): Tick length, `fixed_delta_time` if omitted.

        Returns:
            List[CollisionEvent]: Contacts resolved during this tick.
        """
        if self.paused:
            return []
        dt = self.fixed_delta_time if dt is None else dt
        if dt == 0.0:
            return []
        if not math.isfinite(dt):
            logging.warning(f"Tick skipped: non-finite dt {dt}.")
            return []

        bodies = self.registry.bodies()
        snapshot = self.registry.snapshot()
        roles = {body.body_id: body.role for body in bodies}

        new_states = {}
        for body in bodies:
            role = roles[body.body_id]
            if role is BodyRole.CENTRAL:
                continue
            if not body.has_mass:
                continue
            thrust = body.thrust_acceleration() if role is BodyRole.THRUSTING else None
            new_state = integrate(
                body.state, dt, body.mass, snapshot.sources(exclude_id=body.body_id),
                thrust=thrust, method=self.integration_method, gravity=self.gravity,
            )
            if not (is_finite_vector(new_state.position) and is_finite_vector(new_state.velocity)):
                logging.error(f"Non-finite state for '{body.name}' (id {body.body_id}) at t={self.elapsed_time:.2f}s; "
                              f"keeping its previous state.")
                continue
            new_states[body.body_id] = new_state

        for body in bodies:
            if roles[body.body_id] is BodyRole.CENTRAL:
                body.velocity = np.zeros(3, dtype=np.float64)
                body.rotate(dt)
            elif body.body_id in new_states:
                body.apply_state(new_states[body.body_id])
            body.clear_forces()

        events = self.collisions.resolve(self.registry, detect_collisions(self.registry.snapshot()))
        if events:
            self._reference_energy = None

        self.elapsed_time += dt
        self.tick_count += 1
        if config.Debug.LOG_TICKS:
            logging.debug(f"Tick {self.tick_count}: t={self.elapsed_time:.2f}s, {len(self.registry)} bodies, {len(events)} collisions.")
        if config.Debug.MONITOR_ENERGY_CONSERVATION and self.tick_count % config.Monitoring.ENERGY_CHECK_INTERVAL_TICKS == 0:
            self._check_energy()
        return events

    def run(self, ticks: int) -> List[CollisionEvent]:
        """Runs several fixed ticks and returns every contact they produced."""
        events = []
        for _ in range(ticks):
            events.extend(self.step())
        return events

    def total_energy(self) -> float:
        return self.gravity.total_system_energy(self.registry.snapshot())

    def _check_energy(self):
        energy = self.total_energy()
        if self._reference_energy is None:
            self._reference_energy = energy
            return
        if self._reference_energy == 0.0:
            return
        drift = abs((energy - self._reference_energy) / self._reference_energy)
        if drift > config.Monitoring.ENERGY_DRIFT_WARN_FRACTION:
            logging.warning(f"Total energy drifted {drift:.2%} from {self._reference_energy:.6e} to {energy:.6e}.")

    # --- Orbit queries ---

    def orbital_elements(self, body: Body) -> OrbitalElements:
        """Elements of `body` about the central body. Invalid if there is none."""
        central = self.registry.central_body
        if central is None or central is body:
            return OrbitalElements.invalid()
        return compute_elements(body.position, body.velocity, central.mass, central.position, central.velocity,
                                gravitational_constant=self.gravity.G)

    def altitude(self, body: Body) -> Optional[float]:
        central = self.registry.central_body
        if central is None or central is body:
            return None
        return altitude(body.position, central.position, central.radius)

    # --- Predictions ---

    def request_trajectory(self, body: Body, steps: Optional[int] = None, delta_time: Optional[float] = None,
                           callback: Optional[CompletionCallback] = None,
                           method: Optional[str] = None) -> PredictionHandle:
        """
        Starts a background prediction for a body.

        Any prediction still in flight for the same body is cancelled, and a
        late result from it is discarded. Accepted results replace
        `latest_trajectory(body)` as a whole.

        Args:
            body (Body): A registered, non-central body.
            steps (Optional[int]): Step budget, chosen from the current orbit if omitted.
            delta_time (Optional[float]): Prediction step, session default if omitted.
            callback (Optional[CompletionCallback]): Called with the accepted
                trajectory, or None if the worker failed. Not called for
                cancelled or superseded requests.
            method (Optional[str]): Stepper name.

        Returns:
            PredictionHandle: Handle for the request. Already complete with no
                              result if the body cannot be predicted.
        """
        if body not in self.registry or body.is_central:
            logging.warning(f"Trajectory request ignored for '{body.name}' (id {body.body_id}).")
            return PredictionHandle.failed()

        dt = delta_time or self.prediction_delta_time
        thrusting = body.role is BodyRole.THRUSTING
        if steps is None:
            steps = choose_step_budget(self.orbital_elements(body), dt, thrusting)

        body_id = body.body_id
        with self._lock:
            generation = self._generations.get(body_id, 0) + 1
            self._generations[body_id] = generation
            previous = self._in_flight.pop(body_id, None)
        if previous is not None:
            previous[1].cancel()

        request = PredictionRequest(
            body_id=body_id,
            state=body.state,
            body_mass=body.mass,
            body_radius=body.radius,
            sources=self.registry.snapshot().sources(exclude_id=body_id),
            steps=steps,
            delta_time=dt,
            method=method or config.Prediction.METHOD,
            thrust=body.thrust_acceleration(),
            generation=generation,
        )
        if config.Debug.LOG_PREDICTIONS:
            logging.info(f"Requesting {steps}-step prediction for '{body.name}' (generation {generation}).")

        handle = self.executor.submit(request)
        with self._lock:
            if self._generations.get(body_id) == generation and not handle.done():
                self._in_flight[body_id] = (generation, handle)
        if body_id in self._tracked:
            self._tracked[body_id] = self.elapsed_time
        self._dirty.discard(body_id)
        handle.on_complete(lambda trajectory: self._accept(body_id, generation, trajectory, callback))
        return handle

    def _accept(self, body_id: int, generation: int, trajectory: Optional[PredictedTrajectory],
                callback: Optional[CompletionCallback]):
        with self._lock:
            if self._generations.get(body_id) != generation:
                logging.debug(f"Discarding stale prediction for body {body_id} (generation {generation}).")
                return
            in_flight = self._in_flight.get(body_id)
            if in_flight is not None and in_flight[0] == generation:
                del self._in_flight[body_id]
            if body_id not in self.registry:
                return
            if trajectory is None:
                self._trajectories.pop(body_id, None)
            else:
                trajectory = trajectory.decimated(self.max_output_points)
                self._trajectories[body_id] = trajectory
        if callback is not None:
            callback(trajectory)

    def latest_trajectory(self, body: Body) -> Optional[PredictedTrajectory]:
        with self._lock:
            return self._trajectories.get(body.body_id)

    def has_prediction_in_flight(self, body: Body) -> bool:
        with self._lock:
            return body.body_id in self._in_flight

    def track(self, body: Body):
        """Keeps a body's prediction refreshed by `refresh_predictions`."""
        self._tracked.setdefault(body.body_id, -float('inf'))

    def untrack(self, body: Body):
        self._tracked.pop(body.body_id, None)

    def refresh_predictions(self) -> List[PredictionHandle]:
        """
        Re-requests predictions for tracked bodies that need one.

        A body needs one when thrust or registration marked it dirty, or when
        `config.Prediction.RECOMPUTE_INTERVAL_S` of simulated time has passed
        and it has nothing in flight.
        """
        handles = []
        for body_id, last_requested in list(self._tracked.items()):
            body = self.registry.get(body_id)
            if body is None:
                continue
            dirty = body_id in self._dirty
            due = self.elapsed_time - last_requested >= config.Prediction.RECOMPUTE_INTERVAL_S
            with self._lock:
                busy = body_id in self._in_flight
            if dirty or (due and not busy):
                handles.append(self.request_trajectory(body))
        return handles

    def _forget(self, body_id: int):
        with self._lock:
            in_flight = self._in_flight.pop(body_id, None)
            self._generations.pop(body_id, None)
            self._trajectories.pop(body_id, None)
        if in_flight is not None:
            in_flight[1].cancel()
        self._tracked.pop(body_id, None)
        self._dirty.discard(body_id)

    def _on_body_removed(self, event: CollisionEvent):
        self._forget(event.removed.body_id)

    # --- Lifecycle ---

    def close(self):
        with self._lock:
            handles = [handle for _, handle in self._in_flight.values()]
            self._in_flight.clear()
        for handle in handles:
            handle.cancel()
        if self._owns_executor:
            self.executor.shutdown()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False
