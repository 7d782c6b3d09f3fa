"""Deterministic JSON for comparing form snapshots and event payloads."""

from __future__ import annotations

import json
from typing import Any


class CanonicalJsonTypeError(TypeError):
    """Raised when a value has no canonical JSON form."""


def canonical_dumps(value: Any) -> str:
    """Serialize with sorted keys, no whitespace and non-ASCII kept as-is.

    Non-finite floats raise ``ValueError``.
    """
    try:
        return json.dumps(value, sort_keys=True, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except TypeError as exc:
        raise CanonicalJsonTypeError(str(exc)) from exc


def same_content(left: Any, right: Any) -> bool:
    try:
        return canonical_dumps(left) == canonical_dumps(right)
    except (ValueError, CanonicalJsonTypeError):
        return left == right
