"""Postgres-backed species and profile stores (USE_DB=1)."""

from __future__ import annotations

import logging
from contextlib import contextmanager

import psycopg2

from app.db import execute, fetch_all, fetch_one, get_conn
from catalog.errors import StoreError
from catalog.species_schema import EDITABLE_FIELDS

logger = logging.getLogger("catalog.stores")

_SPECIES_COLUMNS = "id, scientific_name, common_name, kingdom, total_population, description, endangered, image, author"


def _error_message(exc: psycopg2.Error) -> str:
    diag = getattr(exc, "diag", None)
    primary = getattr(diag, "message_primary", None) if diag is not None else None
    return primary or (exc.pgerror or str(exc)).strip() or "Database error"


@contextmanager
def _store_errors(op: str):
    try:
        yield
    except psycopg2.Error as exc:
        message = _error_message(exc)
        logger.warning("db_store_failed op=%s error=%s", op, message)
        raise StoreError(message) from exc


def _row(row: dict | None) -> dict | None:
    if row is None:
        return None
    record = dict(row)
    for key in ("id", "author"):
        if record.get(key) is not None:
            record[key] = str(record[key])
    return record


class DbSpeciesStore:
    def list(self) -> list[dict]:
        with _store_errors("species.list"), get_conn() as conn:
            rows = fetch_all(
                conn,
                f"select {_SPECIES_COLUMNS} from species order by lower(scientific_name), id",
                query_name="species.list",
            )
        return [_row(r) for r in rows]

    def get(self, species_id: str) -> dict | None:
        with _store_errors("species.get"), get_conn() as conn:
            row = fetch_one(
                conn,
                f"select {_SPECIES_COLUMNS} from species where id=%s",
                [species_id],
                query_name="species.get",
            )
        return _row(row)

    def update(self, species_id: str, fields: dict) -> dict:
        columns = [key for key in EDITABLE_FIELDS if key in fields]
        if not columns:
            current = self.get(species_id)
            if current is None:
                raise StoreError("Species not found")
            return current
        assignments = ", ".join(f"{col}=%s" for col in columns)
        params = [fields[col] for col in columns] + [species_id]
        with _store_errors("species.update"), get_conn() as conn:
            row = fetch_one(
                conn,
                f"update species set {assignments} where id=%s returning {_SPECIES_COLUMNS}",
                params,
                query_name="species.update",
            )
        if row is None:
            raise StoreError("Species not found")
        return _row(row)

    def delete(self, species_id: str) -> None:
        with _store_errors("species.delete"), get_conn() as conn:
            count = execute(conn, "delete from species where id=%s", [species_id], query_name="species.delete")
        if count == 0:
            raise StoreError("Species not found")


class DbProfileStore:
    def list(self) -> list[dict]:
        with _store_errors("profiles.list"), get_conn() as conn:
            rows = fetch_all(
                conn,
                "select id, email, display_name, biography from profiles order by email",
                query_name="profiles.list",
            )
        return [_row(r) for r in rows]

    def get_display_name(self, user_id: str) -> str | None:
        with _store_errors("profiles.display_name"), get_conn() as conn:
            row = fetch_one(
                conn,
                "select display_name from profiles where id=%s",
                [user_id],
                query_name="profiles.display_name",
            )
        if row is None:
            raise StoreError("Profile not found")
        return row.get("display_name")
