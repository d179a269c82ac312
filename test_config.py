import unittest

from config import ConfigurationError, config


class TestConfigValidation(unittest.TestCase):

    def test_defaults_are_valid(self):
        config.validate()
        self.assertAlmostEqual(config.Physics.MIN_DISTANCE_SQ, config.Physics.MIN_DISTANCE ** 2)

    def assertRejected(self, section, name, value):
        original = getattr(section, name)
        setattr(section, name, value)
        try:
            with self.assertRaises(ConfigurationError):
                config.validate()
        finally:
            setattr(section, name, original)

    def test_rejects_bad_physics(self):
        self.assertRejected(config.Physics, "FIXED_DELTA_TIME", 0.0)
        self.assertRejected(config.Physics, "INTEGRATION_METHOD", "euler")
        self.assertRejected(config.Physics, "MAX_FORCE", -1.0)

    def test_rejects_bad_prediction(self):
        self.assertRejected(config.Prediction, "MAX_STEPS", 0)
        self.assertRejected(config.Prediction, "UNBOUND_STEPS", config.Prediction.MAX_STEPS + 1)
        self.assertRejected(config.Prediction, "LOOP_ANGLE_DEG", 180.0)

    def test_rejects_bad_offload(self):
        self.assertRejected(config.Offload, "EXECUTOR", "gpu")
        self.assertRejected(config.Offload, "MAX_WORKERS", 0)

    def test_stale_derived_value_is_caught(self):
        self.assertRejected(config.Physics, "MIN_DISTANCE_SQ", 1.0)


if __name__ == '__main__':
    unittest.main(argv=['first-arg-is-ignored'], exit=False)
