import math
import unittest
import numpy as np

from config import config
from gravity import circular_orbit_velocity, escape_velocity
from orbital_elements import OrbitalElements, altitude, compute_elements

EARTH_MASS = 5.972e24
MU = config.Physics.GRAVITATIONAL_CONSTANT * EARTH_MASS


class TestCircularOrbit(unittest.TestCase):

    def setUp(self):
        self.radius = 837.1
        self.speed = circular_orbit_velocity(EARTH_MASS, self.radius)
        self.elements = compute_elements([0.0, 0.0, self.radius], [self.speed, 0.0, 0.0], EARTH_MASS)

    def test_is_circular(self):
        self.assertTrue(self.elements.is_valid)
        self.assertTrue(self.elements.is_circular)
        self.assertLess(self.elements.eccentricity, 1e-6)

    def test_semi_major_axis_and_period(self):
        self.assertAlmostEqual(self.elements.semi_major_axis / self.radius, 1.0, places=9)
        expected_period = 2.0 * math.pi * math.sqrt(self.radius ** 3 / MU)
        self.assertAlmostEqual(self.elements.orbital_period / expected_period, 1.0, places=9)

    def test_apsides_collapse(self):
        self.assertAlmostEqual(self.elements.apogee_distance, self.radius)
        self.assertAlmostEqual(self.elements.perigee_distance, self.radius)
        np.testing.assert_array_almost_equal(self.elements.perigee_position, [0.0, 0.0, self.radius])
        np.testing.assert_array_almost_equal(self.elements.apogee_position, [0.0, 0.0, -self.radius])

    def test_energy_and_angular_momentum(self):
        self.assertAlmostEqual(self.elements.specific_energy / (-MU / (2.0 * self.radius)), 1.0, places=9)
        self.assertAlmostEqual(self.elements.angular_momentum, self.radius * self.speed)
        self.assertTrue(self.elements.is_bound)


class TestEllipticalOrbit(unittest.TestCase):

    def setUp(self):
        # Started at perigee, faster than circular
        self.radius = 837.1
        self.speed = 0.75
        self.elements = compute_elements([0.0, 0.0, self.radius], [self.speed, 0.0, 0.0], EARTH_MASS)

    def test_vis_viva(self):
        expected_a = 1.0 / (2.0 / self.radius - self.speed ** 2 / MU)
        self.assertAlmostEqual(self.elements.semi_major_axis / expected_a, 1.0, places=9)
        self.assertFalse(self.elements.is_circular)
        self.assertGreater(self.elements.eccentricity, 0.1)
        self.assertLess(self.elements.eccentricity, 1.0)

    def test_start_point_is_perigee(self):
        self.assertAlmostEqual(self.elements.perigee_distance, self.radius, places=6)
        np.testing.assert_allclose(self.elements.perigee_position, [0.0, 0.0, self.radius], atol=1e-6)
        a = self.elements.semi_major_axis
        e = self.elements.eccentricity
        self.assertAlmostEqual(self.elements.apogee_distance, a * (1.0 + e))
        self.assertAlmostEqual(self.elements.perigee_distance, a * (1.0 - e), places=6)
        np.testing.assert_allclose(self.elements.apogee_position, [0.0, 0.0, -a * (1.0 + e)], atol=1e-6)

    def test_apsides_relative_to_moving_central_body(self):
        center = np.array([100.0, -50.0, 20.0])
        center_velocity = np.array([0.1, 0.0, 0.0])
        shifted = compute_elements(center + [0.0, 0.0, self.radius], center_velocity + [self.speed, 0.0, 0.0],
                                   EARTH_MASS, center, center_velocity)
        self.assertAlmostEqual(shifted.eccentricity, self.elements.eccentricity)
        np.testing.assert_allclose(shifted.perigee_position, center + self.elements.perigee_position, atol=1e-6)


class TestUnboundOrbit(unittest.TestCase):

    def test_hyperbolic(self):
        radius = 837.1
        speed = escape_velocity(EARTH_MASS, radius) * 1.2
        elements = compute_elements([0.0, 0.0, radius], [speed, 0.0, 0.0], EARTH_MASS)
        self.assertTrue(elements.is_valid)
        self.assertFalse(elements.is_bound)
        self.assertGreater(elements.eccentricity, 1.0)
        self.assertIsNone(elements.apogee_position)
        self.assertEqual(elements.apogee_distance, math.inf)
        self.assertEqual(elements.orbital_period, math.inf)
        self.assertLess(elements.semi_major_axis, 0.0)
        self.assertAlmostEqual(elements.perigee_distance, radius, places=6)


class TestInvalidInput(unittest.TestCase):

    def test_degenerate_states(self):
        cases = [
            ([0.0, 0.0, 0.0], [1.0, 0.0, 0.0], EARTH_MASS),  # at the center
            ([0.0, 0.0, 837.1], [0.0, 0.0, 0.0], EARTH_MASS),  # at rest
            ([0.0, 0.0, 837.1], [0.0, 0.0, -0.5], EARTH_MASS),  # purely radial
            ([0.0, 0.0, 837.1], [0.7, 0.0, 0.0], 0.0),  # no central mass
            ([np.nan, 0.0, 837.1], [0.7, 0.0, 0.0], EARTH_MASS),
        ]
        for position, velocity, mass in cases:
            elements = compute_elements(position, velocity, mass)
            self.assertFalse(elements.is_valid, msg=f"{position} {velocity} {mass}")

    def test_invalid_default(self):
        self.assertFalse(OrbitalElements.invalid().is_valid)
        self.assertFalse(OrbitalElements.invalid().is_bound)


class TestOrientation(unittest.TestCase):

    def setUp(self):
        self.speed = circular_orbit_velocity(EARTH_MASS, 837.1)

    def test_equatorial_prograde(self):
        # h = r x v points along +Y; the orbit normal is -h
        elements = compute_elements([0.0, 0.0, 837.1], [self.speed, 0.0, 0.0], EARTH_MASS)
        self.assertAlmostEqual(elements.inclination, 180.0)
        self.assertAlmostEqual(elements.raan, 0.0)

    def test_equatorial_retrograde(self):
        elements = compute_elements([0.0, 0.0, 837.1], [-self.speed, 0.0, 0.0], EARTH_MASS)
        self.assertAlmostEqual(elements.inclination, 0.0)
        self.assertAlmostEqual(elements.raan, 0.0)

    def test_polar_orbits(self):
        elements = compute_elements([837.1, 0.0, 0.0], [0.0, self.speed, 0.0], EARTH_MASS)
        self.assertAlmostEqual(elements.inclination, 90.0)
        self.assertAlmostEqual(elements.raan, 0.0)

        elements = compute_elements([0.0, 0.0, 837.1], [0.0, self.speed, 0.0], EARTH_MASS)
        self.assertAlmostEqual(elements.inclination, 90.0)
        self.assertAlmostEqual(elements.raan, 90.0)

        elements = compute_elements([0.0, 0.0, -837.1], [0.0, self.speed, 0.0], EARTH_MASS)
        self.assertAlmostEqual(elements.raan, 270.0)

    def test_inclined_orbit(self):
        angle = math.radians(30.0)
        velocity = [self.speed * math.cos(angle), self.speed * math.sin(angle), 0.0]
        elements = compute_elements([0.0, 0.0, 837.1], velocity, EARTH_MASS)
        self.assertAlmostEqual(elements.inclination, 150.0)
        self.assertTrue(elements.is_circular)

        mirrored = [-velocity[0], -velocity[1], 0.0]
        self.assertAlmostEqual(compute_elements([0.0, 0.0, 837.1], mirrored, EARTH_MASS).inclination, 30.0)


class TestAltitude(unittest.TestCase):

    def test_altitude_above_surface(self):
        self.assertAlmostEqual(altitude([0.0, 0.0, 837.1]), 200.0)
        self.assertAlmostEqual(altitude([10.0, 0.0, 0.0], central_position=[5.0, 0.0, 0.0], central_radius=2.0), 3.0)


if __name__ == '__main__':
    unittest.main(argv=['first-arg-is-ignored'], exit=False)
