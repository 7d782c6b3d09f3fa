import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from catalog.errors import StoreError
from catalog.profile_list import BIOGRAPHY_PLACEHOLDER, build_profile_table, load_profile_table


class TestProfileList(unittest.TestCase):
    def test_rows_keep_order_and_columns(self) -> None:
        table = build_profile_table(
            [
                {"id": "u2", "email": "b@example.com", "display_name": "Bea", "biography": "Botanist"},
                {"id": "u1", "email": "a@example.com", "display_name": "Ada", "biography": None},
            ]
        )
        self.assertEqual(table.status, "ok")
        self.assertEqual([r["email"] for r in table.rows], ["b@example.com", "a@example.com"])
        self.assertEqual(table.rows[1]["biography"], BIOGRAPHY_PLACEHOLDER)
        self.assertEqual(table.columns, ("Email", "Display Name", "Biography"))

    def test_empty_biography_string_is_kept(self) -> None:
        table = build_profile_table([{"id": "u1", "email": "a@example.com", "display_name": "Ada", "biography": ""}])
        self.assertEqual(table.rows[0]["biography"], "")

    def test_empty_result_is_not_an_error(self) -> None:
        for rows in ([], None):
            table = build_profile_table(rows)
            self.assertEqual(table.status, "empty")
            self.assertEqual(table.message, "No profiles found.")

    def test_fetch_failure_is_distinct(self) -> None:
        def fetch():
            raise StoreError("relation \"profiles\" does not exist")

        table = load_profile_table(fetch)
        self.assertEqual(table.status, "error")
        self.assertEqual(table.message, 'relation "profiles" does not exist')
        self.assertEqual(table.rows, [])


if __name__ == "__main__":
    unittest.main()
