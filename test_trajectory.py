import math
import threading
import unittest
import numpy as np

from bodies import OrbitalState
from config import config
from gravity import circular_orbit_velocity
from orbital_elements import OrbitalElements, compute_elements
from registry import GravitySources
from trajectory import PredictedTrajectory, StopReason, TrajectoryPredictor, choose_step_budget

EARTH_MASS = 5.972e24
EARTH_ID = 1


def earth_sources():
    return GravitySources((EARTH_ID,), np.zeros((1, 3)), np.array([EARTH_MASS]), np.array([637.1]))


def elliptical_state():
    # Perigee of an orbit with a period of roughly 10300 s
    return OrbitalState(np.array([0.0, 0.0, 837.1]), np.array([0.75, 0.0, 0.0]))


class TestTrajectoryPredictor(unittest.TestCase):

    def setUp(self):
        self.predictor = TrajectoryPredictor()
        self.sources = earth_sources()

    def test_closed_loop_stops_before_maximum(self):
        steps = config.Prediction.MAX_STEPS
        trajectory = self.predictor.predict(elliptical_state(), 1000.0, 1.0, self.sources,
                                            steps, config.Prediction.DELTA_TIME)
        self.assertIs(trajectory.stop_reason, StopReason.CLOSED_LOOP)
        self.assertLess(len(trajectory), steps)
        elements = compute_elements(elliptical_state().position, elliptical_state().velocity, EARTH_MASS)
        # Stopped about one period in
        self.assertAlmostEqual(trajectory.duration / elements.orbital_period, 1.0, delta=0.01)
        self.assertLess(np.linalg.norm(trajectory.positions[-1] - elliptical_state().position),
                        config.Prediction.LOOP_DISTANCE)

    def test_one_period_budget_still_closes_early(self):
        state = elliptical_state()
        elements = compute_elements(state.position, state.velocity, EARTH_MASS)
        steps = choose_step_budget(elements, config.Prediction.DELTA_TIME)
        trajectory = self.predictor.predict(state, 1000.0, 1.0, self.sources, steps, config.Prediction.DELTA_TIME)
        self.assertIs(trajectory.stop_reason, StopReason.CLOSED_LOOP)
        self.assertLess(len(trajectory), steps)

    def test_points_are_evenly_time_stepped(self):
        speed = circular_orbit_velocity(EARTH_MASS, 837.1)
        state = OrbitalState(np.array([0.0, 0.0, 837.1]), np.array([speed, 0.0, 0.0]))
        trajectory = self.predictor.predict(state, 1000.0, 1.0, self.sources, 200, 0.5)
        self.assertIs(trajectory.stop_reason, StopReason.HORIZON)
        self.assertEqual(len(trajectory), 200)
        spacing = np.linalg.norm(np.diff(trajectory.positions, axis=0), axis=1)
        np.testing.assert_allclose(spacing, speed * 0.5, rtol=1e-6)

    def test_collision_truncates_at_contact(self):
        # Dropped from rest, falls straight onto the surface
        state = OrbitalState(np.array([0.0, 0.0, 837.1]), np.zeros(3))
        trajectory = self.predictor.predict(state, 1000.0, 1.0, self.sources, 5000, 0.5)
        self.assertIs(trajectory.stop_reason, StopReason.COLLISION)
        self.assertEqual(trajectory.collided_with, EARTH_ID)
        self.assertLess(len(trajectory), 5000)
        self.assertLessEqual(np.linalg.norm(trajectory.positions[-1]), 637.1 + 1.0)
        self.assertTrue(np.all(np.linalg.norm(trajectory.positions[:-1], axis=1) > 637.1 + 1.0))

    def test_non_finite_state_discards_bad_points(self):
        state = OrbitalState(np.array([0.0, 0.0, 837.1]), np.array([np.inf, 0.0, 0.0]))
        trajectory = self.predictor.predict(state, 1000.0, 1.0, self.sources, 100, 0.5)
        self.assertIs(trajectory.stop_reason, StopReason.INVALID)
        self.assertEqual(len(trajectory), 0)
        self.assertTrue(trajectory.is_empty)

    def test_massless_body_yields_empty_prediction(self):
        trajectory = self.predictor.predict(elliptical_state(), 0.0, 1.0, self.sources, 100, 0.5)
        self.assertTrue(trajectory.is_empty)

    def test_does_not_mutate_inputs(self):
        state = elliptical_state()
        self.predictor.predict(state, 1000.0, 1.0, self.sources, 50, 0.5)
        np.testing.assert_array_equal(state.position, [0.0, 0.0, 837.1])
        np.testing.assert_array_equal(self.sources.positions, np.zeros((1, 3)))

    def test_thrust_applies_to_first_step_only(self):
        state = elliptical_state()
        coast = self.predictor.predict(state, 1000.0, 1.0, self.sources, 10, 0.5)
        burn = self.predictor.predict(state, 1000.0, 1.0, self.sources, 10, 0.5,
                                      thrust=np.array([0.1, 0.0, 0.0]))
        first_gap = np.linalg.norm(burn.positions[0] - coast.positions[0])
        self.assertAlmostEqual(first_gap, 0.5 * 0.1 * 0.25, places=6)
        # Afterwards the paths separate at the extra 0.05 units/s, not accelerating further
        gaps = np.linalg.norm(burn.positions - coast.positions, axis=1)
        np.testing.assert_allclose(np.diff(gaps), 0.1 * 0.5 * 0.5, rtol=1e-3)

    def test_cancelled_prediction_returns_none(self):
        cancel = threading.Event()
        cancel.set()
        self.assertIsNone(self.predictor.predict(elliptical_state(), 1000.0, 1.0, self.sources, 100, 0.5,
                                                 cancel_event=cancel))

    def test_midpoint_predictor(self):
        predictor = TrajectoryPredictor(method="midpoint")
        trajectory = predictor.predict(elliptical_state(), 1000.0, 1.0, self.sources, 100, 0.5)
        self.assertEqual(len(trajectory), 100)
        reference = self.predictor.predict(elliptical_state(), 1000.0, 1.0, self.sources, 100, 0.5)
        np.testing.assert_allclose(trajectory.positions, reference.positions, atol=1e-2)


class TestStepBudget(unittest.TestCase):

    def test_bound_orbit_covers_one_period(self):
        state = elliptical_state()
        elements = compute_elements(state.position, state.velocity, EARTH_MASS)
        self.assertEqual(choose_step_budget(elements, 0.5), math.ceil(elements.orbital_period / 0.5))

    def test_long_period_is_clamped(self):
        elements = OrbitalElements(eccentricity=0.1, orbital_period=1e9, is_valid=True, specific_energy=-1.0)
        self.assertEqual(choose_step_budget(elements, 0.5), config.Prediction.MAX_STEPS)

    def test_short_period_is_at_least_one(self):
        elements = OrbitalElements(eccentricity=0.1, orbital_period=0.01, is_valid=True, specific_energy=-1.0)
        self.assertEqual(choose_step_budget(elements, 0.5), 1)

    def test_unbound_and_unknown(self):
        hyperbolic = OrbitalElements(eccentricity=1.5, orbital_period=math.inf, is_valid=True, specific_energy=1.0)
        self.assertEqual(choose_step_budget(hyperbolic, 0.5), config.Prediction.UNBOUND_STEPS)
        self.assertEqual(choose_step_budget(OrbitalElements.invalid(), 0.5), config.Prediction.UNBOUND_STEPS)
        self.assertEqual(choose_step_budget(None, 0.5), config.Prediction.UNBOUND_STEPS)

    def test_thrust_caps_budget(self):
        elements = OrbitalElements(eccentricity=0.1, orbital_period=1e9, is_valid=True, specific_energy=-1.0)
        self.assertEqual(choose_step_budget(elements, 0.5, thrusting=True), config.Prediction.THRUST_STEPS)
        short = OrbitalElements(eccentricity=0.1, orbital_period=100.0, is_valid=True, specific_energy=-1.0)
        self.assertEqual(choose_step_budget(short, 0.5, thrusting=True), 200)


class TestDecimation(unittest.TestCase):

    def make(self, count):
        positions = np.column_stack([np.arange(count, dtype=np.float64), np.zeros(count), np.zeros(count)])
        return PredictedTrajectory(positions=positions, delta_time=0.5, steps_computed=count)

    def test_short_trajectories_untouched(self):
        trajectory = self.make(100)
        self.assertIs(trajectory.decimated(2500), trajectory)

    def test_stride_and_last_point(self):
        decimated = self.make(5000).decimated(2500)
        self.assertEqual(decimated.stride, 2)
        self.assertEqual(len(decimated), 2500)
        self.assertEqual(decimated.positions[0, 0], 1.0)
        self.assertEqual(decimated.positions[-1, 0], 4999.0)
        self.assertEqual(decimated.duration, 5000 * 0.5)

    def test_uneven_length_keeps_final_point(self):
        decimated = self.make(5001).decimated(2500)
        self.assertEqual(decimated.stride, 3)
        self.assertEqual(decimated.positions[-1, 0], 5000.0)
        self.assertLessEqual(len(decimated), 2501)
        # Points before the last sit on the stride; the last one sits at the end of the run
        self.assertEqual(decimated.positions[-2, 0], 4997.0)
        self.assertEqual((decimated.positions[-1, 0] + 1) * decimated.delta_time, decimated.duration)


if __name__ == '__main__':
    unittest.main(argv=['first-arg-is-ignored'], exit=False)
