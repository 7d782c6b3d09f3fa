"""Validation schema for species records.

Every rule is per field; there are no cross-field rules, so the order in which
fields are checked does not matter. Validation never raises: it returns a list
of issues (``{code, message, path, detail}``) and the normalized values for the
fields that passed.
"""

from __future__ import annotations

import math
from typing import Any
from urllib.parse import urlparse

KINGDOMS = ("Animalia", "Plantae", "Fungi", "Protista", "Archaea", "Bacteria")

# Fields a detail view may change. id and author are fixed at creation.
EDITABLE_FIELDS = (
    "scientific_name",
    "common_name",
    "kingdom",
    "total_population",
    "description",
    "endangered",
    "image",
)
IMMUTABLE_FIELDS = ("id", "author")

_NULLABLE_TEXT_FIELDS = ("common_name", "description")
_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> dict:
    return {"code": code, "message": message, "path": path, "detail": detail}


def blank_to_null(value: Any) -> Any:
    """Collapse None, empty and whitespace-only strings to None; trim other strings."""
    if value is None:
        return None
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    return value


def check_required_text(field_id: str, value: Any) -> tuple[dict | None, Any]:
    if value is not None and not isinstance(value, str):
        return _issue("TYPE_MISMATCH", f"{field_id} must be a string", field_id), None
    cleaned = blank_to_null(value)
    if cleaned is None:
        return _issue("REQUIRED_FIELD", f"{field_id} is required", field_id), None
    return None, cleaned


def check_nullable_text(field_id: str, value: Any) -> tuple[dict | None, Any]:
    if value is not None and not isinstance(value, str):
        return _issue("TYPE_MISMATCH", f"{field_id} must be a string", field_id), None
    return None, blank_to_null(value)


def check_population(field_id: str, value: Any) -> tuple[dict | None, Any]:
    # Form posts arrive as strings; an empty box means "unknown".
    if isinstance(value, str):
        value = blank_to_null(value)
        if value is None:
            return None, None
        try:
            value = int(value)
        except ValueError:
            try:
                as_float = float(value)
            except ValueError:
                return _issue("TYPE_MISMATCH", f"{field_id} must be a number", field_id), None
            if not math.isfinite(as_float) or not as_float.is_integer():
                return _issue("NOT_AN_INTEGER", f"{field_id} must be an integer", field_id), None
            value = int(as_float)
    if value is None:
        return None, None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return _issue("TYPE_MISMATCH", f"{field_id} must be a number", field_id), None
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return _issue("NOT_AN_INTEGER", f"{field_id} must be an integer", field_id), None
        value = int(value)
    if value < 1:
        return _issue("OUT_OF_RANGE", f"{field_id} must be at least 1", field_id, {"min": 1}), None
    return None, value


def check_kingdom(field_id: str, value: Any) -> tuple[dict | None, Any]:
    if value not in KINGDOMS:
        return (
            _issue("INVALID_ENUM", f"{field_id} must be one of {list(KINGDOMS)}", field_id, {"allowed": list(KINGDOMS)}),
            None,
        )
    return None, value


def check_endangered(field_id: str, value: Any) -> tuple[dict | None, Any]:
    if isinstance(value, bool):
        return None, value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return None, True
        if lowered in _FALSE_STRINGS:
            return None, False
    return _issue("TYPE_MISMATCH", f"{field_id} must be a boolean", field_id), None


def is_absolute_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc) and " " not in value


def check_image(field_id: str, value: Any) -> tuple[dict | None, Any]:
    if value is not None and not isinstance(value, str):
        return _issue("TYPE_MISMATCH", f"{field_id} must be a string", field_id), None
    cleaned = blank_to_null(value)
    if cleaned is not None and not is_absolute_url(cleaned):
        return _issue("INVALID_URL", f"{field_id} must be a valid URL", field_id), None
    return None, cleaned


FIELD_RULES = {
    "scientific_name": check_required_text,
    "common_name": check_nullable_text,
    "description": check_nullable_text,
    "kingdom": check_kingdom,
    "total_population": check_population,
    "endangered": check_endangered,
    "image": check_image,
}


def validate_species(data: Any, fields: tuple[str, ...] = EDITABLE_FIELDS) -> tuple[list[dict], dict]:
    """Validate and normalize the given species fields.

    Fields missing from ``data`` are checked as ``None``. Keys outside the
    editable set are reported as ``UNKNOWN_FIELD``; ``id`` and ``author`` are
    reported as ``IMMUTABLE_FIELD``.
    """
    if not isinstance(data, dict):
        return [_issue("INVALID_PAYLOAD", "Species data must be an object")], {}
    errors: list[dict] = []
    clean: dict = {}
    for key in data.keys():
        if key in IMMUTABLE_FIELDS:
            errors.append(_issue("IMMUTABLE_FIELD", f"{key} cannot be changed", key))
        elif key not in FIELD_RULES:
            errors.append(_issue("UNKNOWN_FIELD", f"Unknown field: {key}", key))
    for field_id in fields:
        issue, value = FIELD_RULES[field_id](field_id, data.get(field_id))
        if issue:
            errors.append(issue)
        else:
            clean[field_id] = value
    return errors, clean


def errors_by_field(errors: list[dict]) -> dict[str, str]:
    """First message per field, for rendering next to form inputs."""
    by_field: dict[str, str] = {}
    for err in errors:
        path = err.get("path") or "_form"
        by_field.setdefault(path, err.get("message") or "")
    return by_field


def editable_projection(record: dict) -> dict:
    return {field_id: record.get(field_id) for field_id in EDITABLE_FIELDS}


def display_value(value: Any) -> Any:
    return "" if value is None else value


def display_projection(record: dict) -> dict:
    return {field_id: display_value(value) for field_id, value in record.items()}
