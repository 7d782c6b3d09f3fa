import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from catalog.errors import FormStateError, StoreError
from catalog.species_form import DELETE_PROMPT, Editing, SpeciesForm, Viewing


class FakeStore:
    def __init__(self, fail_with: str | None = None) -> None:
        self.fail_with = fail_with
        self.updates: list[tuple[str, dict]] = []
        self.deletes: list[str] = []

    def update(self, species_id: str, fields: dict) -> dict:
        if self.fail_with:
            raise StoreError(self.fail_with)
        self.updates.append((species_id, dict(fields)))
        return {"id": species_id, **fields}

    def delete(self, species_id: str) -> None:
        if self.fail_with:
            raise StoreError(self.fail_with)
        self.deletes.append(species_id)


def _species(**overrides) -> dict:
    record = {
        "id": "sp-1",
        "author": "u1",
        "scientific_name": "Cavia porcellus",
        "common_name": "Guinea pig",
        "kingdom": "Animalia",
        "total_population": 1000,
        "description": None,
        "endangered": False,
        "image": None,
    }
    record.update(overrides)
    return record


class TestSpeciesForm(unittest.TestCase):
    def setUp(self) -> None:
        self.store = FakeStore()
        self.toasts: list[tuple] = []
        self.refreshes = 0
        self.closed = 0
        self.form = self._form()

    def _form(self, **overrides) -> SpeciesForm:
        def notify(title, description=None, severity="default"):
            self.toasts.append((title, description, severity))

        def refresh():
            self.refreshes += 1

        def on_close():
            self.closed += 1

        return SpeciesForm(
            _species(**overrides),
            self.store,
            notify,
            refresh=refresh,
            on_close=on_close,
            author_name="Ada",
        )

    def test_starts_viewing(self) -> None:
        self.assertIsInstance(self.form.state, Viewing)
        self.assertEqual(self.form.mode, "viewing")
        self.assertFalse(self.form.dirty)

    def test_author_can_start_editing(self) -> None:
        self.assertTrue(self.form.start_editing("u1"))
        self.assertIsInstance(self.form.state, Editing)
        self.assertEqual(self.toasts, [])

    def test_other_actor_cannot_start_editing(self) -> None:
        self.assertFalse(self.form.start_editing("u2"))
        self.assertIsInstance(self.form.state, Viewing)
        self.assertEqual(len(self.toasts), 1)
        self.assertEqual(self.toasts[0][0], "Permission Denied")
        self.assertEqual(self.toasts[0][2], "destructive")
        self.assertEqual(self.store.updates, [])

    def test_missing_actor_is_denied(self) -> None:
        self.assertFalse(self.form.start_editing(None))
        self.assertEqual(len(self.toasts), 1)

    def test_submit_trims_and_writes(self) -> None:
        self.form.start_editing("u1")
        self.form.change({"scientific_name": " Cavia porcellus ", "total_population": 300000})
        outcome = self.form.submit("u1")
        self.assertEqual(outcome, "updated")
        self.assertEqual(len(self.store.updates), 1)
        species_id, fields = self.store.updates[0]
        self.assertEqual(species_id, "sp-1")
        self.assertEqual(fields["scientific_name"], "Cavia porcellus")
        self.assertEqual(fields["total_population"], 300000)
        self.assertNotIn("id", fields)
        self.assertNotIn("author", fields)
        self.assertEqual(self.form.mode, "viewing")
        self.assertIn("updated successfully", self.toasts[-1][0])
        self.assertEqual(self.refreshes, 1)

    def test_submit_replaces_baseline_with_normalized_draft(self) -> None:
        self.form.start_editing("u1")
        self.form.change({"common_name": "   ", "description": "  Small rodent "})
        self.form.submit("u1")
        baseline = self.form.baseline
        self.assertIsNone(baseline["common_name"])
        self.assertEqual(baseline["description"], "Small rodent")
        self.assertEqual(baseline["author"], "u1")
        before = self.form.draft
        self.form.cancel()
        self.assertEqual(self.form.draft, before)
        self.assertFalse(self.form.dirty)

    def test_invalid_submit_stays_editing_without_store_call(self) -> None:
        self.form.start_editing("u1")
        self.form.change({"total_population": 0})
        outcome = self.form.submit("u1")
        self.assertEqual(outcome, "invalid")
        self.assertEqual(self.form.mode, "editing")
        self.assertIn("total_population", self.form.errors)
        self.assertEqual(self.store.updates, [])
        self.assertEqual(self.refreshes, 0)

    def test_store_error_keeps_draft_and_reports_message(self) -> None:
        self.store.fail_with = "permission denied for table species"
        self.form.start_editing("u1")
        self.form.change({"common_name": "Cavy"})
        outcome = self.form.submit("u1")
        self.assertEqual(outcome, "failed")
        self.assertEqual(self.form.mode, "editing")
        self.assertEqual(self.form.draft["common_name"], "Cavy")
        self.assertEqual(self.form.baseline["common_name"], "Guinea pig")
        self.assertEqual(self.toasts[-1], ("Something went wrong.", "permission denied for table species", "destructive"))
        self.assertFalse(self.form.busy)

    def test_submit_while_viewing_is_rejected(self) -> None:
        with self.assertRaises(FormStateError) as ctx:
            self.form.submit("u1")
        self.assertEqual(ctx.exception.code, "NOT_EDITING")

    def test_change_while_viewing_is_rejected(self) -> None:
        with self.assertRaises(FormStateError):
            self.form.change({"common_name": "x"})

    def test_change_validates_on_each_edit(self) -> None:
        self.form.start_editing("u1")
        errors = self.form.change({"kingdom": "Rocks"})
        self.assertIn("kingdom", errors)
        errors = self.form.change({"kingdom": "Fungi"})
        self.assertEqual(errors, {})
        self.assertTrue(self.form.dirty)

    def test_change_reports_non_editable_fields(self) -> None:
        self.form.start_editing("u1")
        errors = self.form.change({"author": "u2"})
        self.assertIn("author", errors)
        self.assertEqual(self.form.baseline["author"], "u1")
        self.assertNotIn("author", self.form.draft)

    def test_change_rejects_non_finite_numbers(self) -> None:
        self.form.start_editing("u1")
        for value in (float("nan"), float("inf")):
            with self.assertRaises(FormStateError) as ctx:
                self.form.change({"total_population": value})
            self.assertEqual(ctx.exception.code, "INVALID_PAYLOAD")
        self.assertEqual(self.form.draft["total_population"], 1000)
        self.assertFalse(self.form.dirty)
        self.assertEqual(self.form.snapshot("u1")["mode"], "editing")

    def test_cancel_is_idempotent(self) -> None:
        self.form.start_editing("u1")
        self.form.change({"common_name": "Cavy"})
        self.form.cancel()
        once = (self.form.mode, self.form.draft)
        self.form.cancel()
        self.assertEqual((self.form.mode, self.form.draft), once)
        self.assertEqual(self.form.mode, "viewing")
        self.assertEqual(self.form.draft["common_name"], "Guinea pig")

    def test_delete_requires_confirmation(self) -> None:
        outcome = self.form.delete("u1")
        self.assertEqual(outcome, "cancelled")
        self.assertEqual(self.store.deletes, [])

    def test_delete_confirmed(self) -> None:
        prompts = []
        outcome = self.form.delete("u1", confirm=lambda prompt: prompts.append(prompt) or True)
        self.assertEqual(outcome, "deleted")
        self.assertEqual(prompts, [DELETE_PROMPT])
        self.assertEqual(self.store.deletes, ["sp-1"])
        self.assertTrue(self.form.closed)
        self.assertEqual(self.closed, 1)
        self.assertEqual(self.refreshes, 1)
        self.assertEqual(self.toasts[-1][0], "Species deleted successfully!")
        with self.assertRaises(FormStateError) as ctx:
            self.form.start_editing("u1")
        self.assertEqual(ctx.exception.code, "VIEW_CLOSED")

    def test_delete_by_other_actor_is_denied_without_prompt(self) -> None:
        prompts = []
        outcome = self.form.delete("u2", confirm=lambda prompt: prompts.append(prompt) or True)
        self.assertEqual(outcome, "denied")
        self.assertEqual(prompts, [])
        self.assertEqual(self.store.deletes, [])
        self.assertEqual(len(self.toasts), 1)
        self.assertEqual(self.toasts[0][0], "Permission Denied")
        self.assertFalse(self.form.closed)

    def test_delete_store_error_leaves_view_open(self) -> None:
        self.store.fail_with = "row is referenced"
        outcome = self.form.delete("u1", confirm=lambda prompt: True)
        self.assertEqual(outcome, "failed")
        self.assertFalse(self.form.closed)
        self.assertEqual(self.toasts[-1], ("Error deleting species", "row is referenced", "destructive"))
        self.assertEqual(self.refreshes, 0)

    def test_unauthorized_actors_never_mutate(self) -> None:
        for actor in ("u2", "U1", "", None):
            self.toasts.clear()
            form = self._form()
            before = (form.mode, form.baseline, form.draft)
            form.start_editing(actor)
            form.delete(actor, confirm=lambda prompt: True)
            self.assertEqual((form.mode, form.baseline, form.draft), before)
            self.assertEqual(len(self.toasts), 2)
        self.assertEqual(self.store.deletes, [])

    def test_reentrant_submit_is_refused(self) -> None:
        form = self.form

        class ReentrantStore(FakeStore):
            def update(inner, species_id, fields):
                form.submit("u1")

        form._store = ReentrantStore()
        form.start_editing("u1")
        with self.assertRaises(FormStateError) as ctx:
            form.submit("u1")
        self.assertEqual(ctx.exception.code, "BUSY")
        self.assertFalse(form.busy)

    def test_snapshot_shows_blank_for_null(self) -> None:
        snap = self.form.snapshot("u2")
        self.assertEqual(snap["fields"]["description"], "")
        self.assertEqual(snap["author_name"], "Ada")
        self.assertFalse(snap["can_edit"])
        self.assertTrue(self.form.snapshot("u1")["can_edit"])

    def test_requires_record_id(self) -> None:
        with self.assertRaises(ValueError):
            SpeciesForm({"author": "u1"}, self.store, lambda *a, **k: None)


if __name__ == "__main__":
    unittest.main()
