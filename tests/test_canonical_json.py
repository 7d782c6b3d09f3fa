import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from catalog.canonical_json import CanonicalJsonTypeError, canonical_dumps, same_content


class TestCanonicalJson(unittest.TestCase):
    def test_field_order_does_not_matter(self) -> None:
        self.assertTrue(same_content({"kingdom": "Fungi", "endangered": True}, {"endangered": True, "kingdom": "Fungi"}))

    def test_compact_sorted_output(self) -> None:
        self.assertEqual(canonical_dumps({"b": None, "a": [2, 1]}), '{"a":[2,1],"b":null}')

    def test_value_change_is_detected(self) -> None:
        self.assertFalse(same_content({"common_name": None}, {"common_name": ""}))

    def test_non_ascii_kept(self) -> None:
        out = canonical_dumps({"common_name": "Hérisson"})
        self.assertIn("Hérisson", out)

    def test_unsupported_type_raises(self) -> None:
        with self.assertRaises(CanonicalJsonTypeError):
            canonical_dumps({"bad": {1, 2}})

    def test_non_finite_float_raises(self) -> None:
        for value in (float("nan"), float("inf")):
            with self.assertRaises(ValueError):
                canonical_dumps({"total_population": value})

    def test_same_content_falls_back_for_unserializable_values(self) -> None:
        self.assertFalse(same_content({"total_population": float("inf")}, {"total_population": 5}))
        self.assertTrue(same_content({"tags": {1}}, {"tags": {1}}))


if __name__ == "__main__":
    unittest.main()
