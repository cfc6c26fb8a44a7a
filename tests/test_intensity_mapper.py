import unittest

from config import MapperConfig
from intensity_mapper import IntensityMapper, clamp_intensity


class TestClampIntensity(unittest.TestCase):
    def test_clamps_out_of_range(self):
        self.assertEqual(clamp_intensity(-5), 0.0)
        self.assertEqual(clamp_intensity(150), 100.0)
        self.assertEqual(clamp_intensity(42.5), 42.5)

    def test_nan_and_garbage_read_as_zero(self):
        self.assertEqual(clamp_intensity(float("nan")), 0.0)
        self.assertEqual(clamp_intensity(None), 0.0)
        self.assertEqual(clamp_intensity("loud"), 0.0)


class TestIntensityMapper(unittest.TestCase):
    def setUp(self):
        self.mapper = IntensityMapper()
        self.grid = [i * 0.5 for i in range(201)]

    def test_idle_rate_at_zero(self):
        self.assertEqual(self.mapper.map_rate(0), 0.5)
        self.assertEqual(self.mapper.map_rate(-20), 0.5)

    def test_rate_formula(self):
        self.assertAlmostEqual(self.mapper.map_rate(10), 0.5 + 10 ** 2.6 / 300, places=9)
        self.assertAlmostEqual(self.mapper.map_rate(100), 0.5 + 100 ** 2.6 / 300, places=6)
        # Out-of-range input is clamped, not extrapolated
        self.assertEqual(self.mapper.map_rate(250), self.mapper.map_rate(100))

    def test_rate_monotonic(self):
        rates = [self.mapper.map_rate(i) for i in self.grid]
        for lower, higher in zip(rates, rates[1:]):
            self.assertLessEqual(lower, higher)

    def test_undertone_bounds_and_monotonic(self):
        levels = [self.mapper.map_undertone_level(i) for i in self.grid]
        self.assertEqual(levels[0], 0.0)
        self.assertAlmostEqual(levels[-1], 0.4, places=9)
        for level in levels:
            self.assertGreaterEqual(level, 0.0)
            self.assertLessEqual(level, 0.4)
        for lower, higher in zip(levels, levels[1:]):
            self.assertLessEqual(lower, higher)

    def test_undertone_quiet_below_thirty_percent(self):
        self.assertLess(self.mapper.map_undertone_level(30), 0.07)
        self.assertGreater(self.mapper.map_undertone_level(90), 0.3)

    def test_custom_config(self):
        mapper = IntensityMapper(MapperConfig(idle_rate_hz=1.0, undertone_max=0.2))
        self.assertEqual(mapper.map_rate(0), 1.0)
        self.assertAlmostEqual(mapper.map_undertone_level(100), 0.2, places=9)


if __name__ == "__main__":
    unittest.main()
