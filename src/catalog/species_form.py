"""Detail-view form controller for a single species record.

The controller owns a baseline (last server-confirmed record) and, while
editing, a draft of the editable fields. Mutations are gated on the actor
being the record's author.

    Viewing --start_editing(author)--> Editing
    Viewing --start_editing(other)---> Viewing (+ permission toast)
    Editing --cancel-----------------> Viewing
    Editing --submit(invalid)--------> Editing (+ field errors)
    Editing --submit(store ok)-------> Viewing (+ success toast, refresh)
    Editing --submit(store error)----> Editing (+ error toast)

Collaborators are injected:

- ``store``: ``update(species_id, fields) -> dict`` and ``delete(species_id)``,
  raising :class:`StoreError` on failure.
- ``notify(title, description=None, severity="default")``: fire-and-forget toast.
- ``refresh()``: invalidate any cached page showing this record.
- ``confirm(prompt) -> bool``: blocking confirmation before a delete.
- ``on_close()``: the detail view should close (after a delete).
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import Any, Callable

from .canonical_json import same_content
from .errors import FormStateError, StoreError
from .species_schema import EDITABLE_FIELDS, display_projection, editable_projection, errors_by_field, validate_species

SEVERITY_DEFAULT = "default"
SEVERITY_DESTRUCTIVE = "destructive"

DELETE_PROMPT = "Are you sure you want to delete this species?"

Notify = Callable[..., None]


@dataclass(frozen=True)
class Viewing:
    mode = "viewing"


@dataclass
class Editing:
    draft: dict
    errors: dict = field(default_factory=dict)
    mode = "editing"


def _never_confirm(prompt: str) -> bool:
    return False


def _noop() -> None:
    return None


class SpeciesForm:
    def __init__(
        self,
        species: dict,
        store: Any,
        notify: Notify,
        refresh: Callable[[], None] = _noop,
        confirm: Callable[[str], bool] = _never_confirm,
        on_close: Callable[[], None] = _noop,
        author_name: str | None = None,
    ) -> None:
        if not isinstance(species, dict) or not species.get("id"):
            raise ValueError("species must be a record with an id")
        self._baseline = copy.deepcopy(species)
        self._store = store
        self._notify = notify
        self._refresh = refresh
        self._confirm = confirm
        self._on_close = on_close
        self.author_name = author_name
        self.state: Viewing | Editing = Viewing()
        self.closed = False
        self._busy = False

    @property
    def species_id(self) -> str:
        return self._baseline["id"]

    @property
    def author(self) -> str | None:
        return self._baseline.get("author")

    @property
    def baseline(self) -> dict:
        return copy.deepcopy(self._baseline)

    @property
    def mode(self) -> str:
        return self.state.mode

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def draft(self) -> dict:
        if isinstance(self.state, Editing):
            return copy.deepcopy(self.state.draft)
        return editable_projection(self._baseline)

    @property
    def errors(self) -> dict:
        if isinstance(self.state, Editing):
            return dict(self.state.errors)
        return {}

    @property
    def dirty(self) -> bool:
        return not same_content(self.draft, editable_projection(self._baseline))

    def can_edit(self, actor: str | None) -> bool:
        return actor is not None and actor == self.author

    def _guard(self) -> None:
        if self.closed:
            raise FormStateError("VIEW_CLOSED", "Detail view is closed")
        if self._busy:
            raise FormStateError("BUSY", "A request is already in progress")

    def _deny(self, verb: str) -> None:
        self._notify(
            "Permission Denied",
            f"You do not have permission to {verb} this species.",
            SEVERITY_DESTRUCTIVE,
        )

    def start_editing(self, actor: str | None) -> bool:
        self._guard()
        if not self.can_edit(actor):
            self._deny("edit")
            return False
        if not isinstance(self.state, Editing):
            self.state = Editing(draft=editable_projection(self._baseline))
        return True

    def change(self, changes: dict) -> dict:
        """Apply raw field values to the draft and re-validate it."""
        self._guard()
        if not isinstance(self.state, Editing):
            raise FormStateError("NOT_EDITING", "Start editing before changing fields")
        if not isinstance(changes, dict):
            raise FormStateError("INVALID_PAYLOAD", "Field changes must be an object")
        for key, value in changes.items():
            if isinstance(value, float) and not math.isfinite(value):
                raise FormStateError("INVALID_PAYLOAD", f"{key} must be a finite number")
        draft = dict(self.state.draft)
        unknown = [key for key in changes if key not in EDITABLE_FIELDS]
        for key, value in changes.items():
            if key in EDITABLE_FIELDS:
                draft[key] = value
        errors, _ = validate_species(draft)
        field_errors = errors_by_field(errors)
        for key in unknown:
            field_errors.setdefault(key, f"{key} cannot be edited")
        self.state = Editing(draft=draft, errors=field_errors)
        return dict(field_errors)

    def cancel(self) -> None:
        self._guard()
        self.state = Viewing()

    def submit(self, actor: str | None) -> str:
        """Validate the draft and write it. Returns updated/invalid/failed/denied."""
        self._guard()
        if not isinstance(self.state, Editing):
            raise FormStateError("NOT_EDITING", "Only a record being edited can be submitted")
        if not self.can_edit(actor):
            self._deny("edit")
            return "denied"
        draft = self.state.draft
        errors, clean = validate_species(draft)
        if errors:
            self.state = Editing(draft=draft, errors=errors_by_field(errors))
            return "invalid"
        self._busy = True
        try:
            self._store.update(self.species_id, clean)
        except StoreError as exc:
            self.state = Editing(draft=draft, errors={})
            self._notify("Something went wrong.", exc.message, SEVERITY_DESTRUCTIVE)
            return "failed"
        finally:
            self._busy = False
        self._baseline = {**self._baseline, **clean}
        self.state = Viewing()
        self._refresh()
        self._notify("Species information updated successfully!", None, SEVERITY_DEFAULT)
        return "updated"

    def delete(self, actor: str | None, confirm: Callable[[str], bool] | None = None) -> str:
        """Delete after confirmation. Returns deleted/cancelled/failed/denied.

        ``confirm`` overrides the prompt collaborator for this call only.
        """
        self._guard()
        if not self.can_edit(actor):
            self._deny("delete")
            return "denied"
        ask = confirm or self._confirm
        if not ask(DELETE_PROMPT):
            return "cancelled"
        self._busy = True
        try:
            self._store.delete(self.species_id)
        except StoreError as exc:
            self._notify("Error deleting species", exc.message, SEVERITY_DESTRUCTIVE)
            return "failed"
        finally:
            self._busy = False
        self._notify("Species deleted successfully!", None, SEVERITY_DEFAULT)
        self.closed = True
        self._on_close()
        self._refresh()
        return "deleted"

    def snapshot(self, actor: str | None = None) -> dict:
        """Render-ready state. Read-only values show ``None`` as an empty string."""
        fields = display_projection(self.draft)
        return {
            "species_id": self.species_id,
            "mode": self.mode,
            "fields": fields,
            "errors": self.errors,
            "dirty": self.dirty,
            "author_name": self.author_name or "",
            "can_edit": self.can_edit(actor),
            "closed": self.closed,
        }
