"""In-memory stores used when USE_DB is off and in tests."""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone
from typing import Dict, List

from catalog.errors import StoreError
from catalog.species_schema import IMMUTABLE_FIELDS


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class MemorySpeciesStore:
    def __init__(self) -> None:
        self._records: Dict[str, dict] = {}

    def create(self, data: dict) -> dict:
        record = copy.deepcopy(data)
        record.setdefault("id", str(uuid.uuid4()))
        record.setdefault("created_at", _now())
        self._records[str(record["id"])] = record
        return copy.deepcopy(record)

    def list(self) -> list[dict]:
        items = sorted(self._records.values(), key=lambda r: (r.get("scientific_name") or "").lower())
        return [copy.deepcopy(r) for r in items]

    def get(self, species_id: str) -> dict | None:
        record = self._records.get(str(species_id))
        return copy.deepcopy(record) if record else None

    def update(self, species_id: str, fields: dict) -> dict:
        record = self._records.get(str(species_id))
        if record is None:
            raise StoreError("Species not found")
        for key, value in fields.items():
            if key in IMMUTABLE_FIELDS:
                continue
            record[key] = copy.deepcopy(value)
        return copy.deepcopy(record)

    def delete(self, species_id: str) -> None:
        if str(species_id) not in self._records:
            raise StoreError("Species not found")
        del self._records[str(species_id)]


class MemoryProfileStore:
    def __init__(self) -> None:
        self._profiles: Dict[str, dict] = {}

    def create(self, data: dict) -> dict:
        profile = copy.deepcopy(data)
        profile.setdefault("id", str(uuid.uuid4()))
        self._profiles[str(profile["id"])] = profile
        return copy.deepcopy(profile)

    def list(self) -> list[dict]:
        return [copy.deepcopy(p) for p in self._profiles.values()]

    def get_display_name(self, user_id: str) -> str | None:
        profile = self._profiles.get(str(user_id))
        if profile is None:
            raise StoreError("Profile not found")
        return profile.get("display_name")


class MemoryToastStore:
    """Per-user queue of toasts waiting to be shown."""

    def __init__(self) -> None:
        self._items: Dict[str, List[dict]] = {}

    def push(self, user_id: str, title: str, description: str | None = None, severity: str = "default") -> dict:
        toast = {
            "id": str(uuid.uuid4()),
            "title": title,
            "description": description,
            "severity": severity,
            "created_at": _now(),
        }
        self._items.setdefault(user_id, []).append(toast)
        return copy.deepcopy(toast)

    def drain(self, user_id: str) -> list[dict]:
        return self._items.pop(user_id, [])
