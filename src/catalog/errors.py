"""Errors shared by the catalog kernel and its stores."""

from __future__ import annotations

from dataclasses import dataclass


class StoreError(RuntimeError):
    """A remote store call failed. ``message`` is shown to the user verbatim."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass
class FormStateError(Exception):
    code: str
    message: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message}"
