"""Tests for route ordering and search."""

import sys
import unittest
from pathlib import Path

# Add src to path so we can import bustrack
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bustrack.models import Route
from bustrack.route_sort import compare_routes, natural_key, route_priority, search_routes, sort_routes


def routes(*short_names):
    return [Route(id=name, short_name=name, long_name=f"Line {name}") for name in short_names]


class TestRoutePriority(unittest.TestCase):
    def test_buckets(self):
        self.assertEqual(route_priority("10"), 0)
        self.assertEqual(route_priority("199"), 0)
        self.assertEqual(route_priority("200"), 1)
        self.assertEqual(route_priority("299"), 1)
        self.assertEqual(route_priority("999"), 8)
        self.assertEqual(route_priority("1000"), 9)

    def test_special_services(self):
        self.assertGreater(route_priority("900M"), route_priority("999"))
        self.assertGreater(route_priority("Z3"), route_priority("900M"))
        self.assertGreater(route_priority("ZZ"), route_priority("1M"))
        self.assertGreater(route_priority("Aeroporto"), route_priority("Z3"))


class TestSortRoutes(unittest.TestCase):
    def test_group_order(self):
        ordered = sort_routes(routes("250", "Z3", "900M", "10", "999"))
        self.assertEqual([r.short_name for r in ordered], ["10", "250", "999", "900M", "Z3"])

    def test_natural_order_within_bucket(self):
        ordered = sort_routes(routes("11", "2", "100", "1"))
        self.assertEqual([r.short_name for r in ordered], ["1", "2", "11", "100"])

    def test_stable_and_deterministic(self):
        items = routes("205", "Z4", "1M", "3M", "Z10", "Z2", "12", "ZA")
        first = sort_routes(items)
        self.assertEqual(first, sort_routes(list(reversed(items))))
        self.assertEqual([r.short_name for r in first], ["12", "205", "1M", "3M", "Z2", "Z4", "Z10", "ZA"])

    def test_compare_routes(self):
        a, b = routes("10", "250")
        self.assertLess(compare_routes(a, b), 0)
        self.assertGreater(compare_routes(b, a), 0)
        self.assertEqual(compare_routes(a, a), 0)

    def test_natural_key_is_case_insensitive(self):
        self.assertEqual(natural_key("z4"), natural_key("Z4"))


class TestSearchRoutes(unittest.TestCase):
    def setUp(self):
        self.routes = [
            Route("200", "200", "Bolhão - Castelo do Queijo"),
            Route("20", "20", "Boavista - Hospital S. João"),
            Route("502", "502", "Bolhão - Matosinhos"),
            Route("Z4", "Z4", "Zona Industrial"),
        ]
        self.stop_names = {"502": {"serralves", "matosinhos mercado"}, "Z4": {"boavista"}}

    def test_blank_search_sorts_everything(self):
        self.assertEqual([r.id for r in search_routes(self.routes)], ["20", "200", "502", "Z4"])

    def test_exact_then_prefix(self):
        result = search_routes(self.routes, "20")
        self.assertEqual([r.id for r in result], ["20", "200"])

    def test_long_name_matches(self):
        result = search_routes(self.routes, "bolhão")
        self.assertEqual([r.id for r in result], ["200", "502"])
        result = search_routes(self.routes, "queijo")
        self.assertEqual([r.id for r in result], ["200"])

    def test_long_name_prefix_beats_substring(self):
        candidates = [Route("1", "1", "Foz - Trindade"), Route("900", "900", "Trindade - Foz")]
        self.assertEqual([r.id for r in search_routes(candidates, "trindade")], ["900", "1"])

    def test_stop_name_match(self):
        result = search_routes(self.routes, "Serralves", route_stop_names=self.stop_names)
        self.assertEqual([r.id for r in result], ["502"])
        result = search_routes(self.routes, "boavista", route_stop_names=self.stop_names)
        self.assertEqual([r.id for r in result], ["20", "Z4"])

    def test_selected_lines_filter(self):
        result = search_routes(self.routes, "", selected_lines=["502", "Z4"])
        self.assertEqual([r.id for r in result], ["502", "Z4"])

    def test_no_match(self):
        self.assertEqual(search_routes(self.routes, "xyz"), [])


if __name__ == "__main__":
    unittest.main()
