import math
import unittest
from dataclasses import dataclass

from sippsearcher.geo import EARTH_RADIUS_KM, haversine_km, stores_within


@dataclass
class Point:
    name: str
    latitude: float
    longitude: float


class HaversineTests(unittest.TestCase):
    def test_same_point_is_zero(self):
        self.assertEqual(haversine_km(40.7128, -74.0060, 40.7128, -74.0060), 0.0)

    def test_lower_to_midtown_manhattan(self):
        distance = haversine_km(40.7128, -74.0060, 40.7580, -73.9855)
        self.assertAlmostEqual(distance, 5.3, delta=0.1)

    def test_symmetric(self):
        a = haversine_km(51.5074, -0.1278, 48.8566, 2.3522)
        b = haversine_km(48.8566, 2.3522, 51.5074, -0.1278)
        self.assertAlmostEqual(a, b, places=9)
        self.assertAlmostEqual(a, 343.5, delta=1.0)

    def test_antipodal_points_are_half_circumference(self):
        distance = haversine_km(0.0, 0.0, 0.0, 180.0)
        self.assertAlmostEqual(distance, 3.141592653589793 * EARTH_RADIUS_KM, places=6)

    def test_nan_coordinates_give_nan_distance(self):
        self.assertTrue(math.isnan(haversine_km(float("nan"), -74.0, 40.7128, -74.0060)))


class StoresWithinTests(unittest.TestCase):
    def setUp(self):
        self.origin = Point("origin", 40.7128, -74.0060)
        self.midtown = Point("midtown", 40.7580, -73.9855)
        self.jersey = Point("jersey", 40.7282, -74.0776)
        self.philly = Point("philly", 39.9526, -75.1652)

    def test_filters_and_sorts_by_distance(self):
        stores = [self.philly, self.midtown, self.origin, self.jersey]
        matches = stores_within(stores, 40.7128, -74.0060, 10)
        self.assertEqual(
            [store.name for store, _ in matches], ["origin", "midtown", "jersey"]
        )
        distances = [distance for _, distance in matches]
        self.assertEqual(distances, sorted(distances))
        self.assertEqual(distances[0], 0.0)

    def test_radius_boundary_is_exclusive(self):
        exact = haversine_km(40.7128, -74.0060, 40.7580, -73.9855)
        matches = stores_within([self.midtown], 40.7128, -74.0060, exact)
        self.assertEqual(matches, [])
        matches = stores_within([self.midtown], 40.7128, -74.0060, exact + 1e-6)
        self.assertEqual(len(matches), 1)

    def test_zero_radius_returns_nothing(self):
        self.assertEqual(stores_within([self.origin], 40.7128, -74.0060, 0), [])

    def test_nan_origin_matches_nothing(self):
        nan = float("nan")
        stores = [self.origin, self.midtown]
        self.assertEqual(stores_within(stores, nan, nan, 0.5), [])
        self.assertEqual(stores_within(stores, nan, -74.0060, 20000), [])


if __name__ == "__main__":
    unittest.main()
