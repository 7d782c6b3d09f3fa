"""Catalog kernel: species validation, detail-view form state, profile listing."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps, same_content
from .species_schema import KINGDOMS, blank_to_null, validate_species

__all__ = [
    "CanonicalJsonTypeError",
    "KINGDOMS",
    "blank_to_null",
    "canonical_dumps",
    "same_content",
    "validate_species",
]
