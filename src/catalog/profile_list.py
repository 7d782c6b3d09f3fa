"""Read-only projection of user profiles into table rows."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from .errors import StoreError

BIOGRAPHY_PLACEHOLDER = "N/A"
EMPTY_MESSAGE = "No profiles found."
COLUMNS = ("Email", "Display Name", "Biography")


@dataclass
class ProfileTable:
    status: str  # "ok" | "empty" | "error"
    rows: list[dict] = field(default_factory=list)
    message: str | None = None

    @property
    def columns(self) -> tuple[str, ...]:
        return COLUMNS


def profile_row(profile: dict) -> dict:
    biography = profile.get("biography")
    return {
        "id": profile.get("id"),
        "email": profile.get("email") or "",
        "display_name": profile.get("display_name") or "",
        "biography": BIOGRAPHY_PLACEHOLDER if biography is None else biography,
    }


def build_profile_table(rows: Iterable[dict] | None) -> ProfileTable:
    items = [profile_row(r) for r in (rows or []) if isinstance(r, dict)]
    if not items:
        return ProfileTable(status="empty", message=EMPTY_MESSAGE)
    return ProfileTable(status="ok", rows=items)


def load_profile_table(fetch: Callable[[], Any]) -> ProfileTable:
    """Run ``fetch`` and keep "no data" apart from "could not retrieve data"."""
    try:
        rows = fetch()
    except StoreError as exc:
        return ProfileTable(status="error", message=exc.message)
    return build_profile_table(rows)
