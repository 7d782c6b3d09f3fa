"""Species and profile stores over the Supabase PostgREST API."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from catalog.errors import StoreError
from catalog.species_schema import EDITABLE_FIELDS

logger = logging.getLogger("catalog.supabase")

_SPECIES_COLUMNS = "id,scientific_name,common_name,kingdom,total_population,description,endangered,image,author"


def supabase_url() -> str:
    return (os.getenv("SUPABASE_URL") or "").strip().rstrip("/")


def supabase_key() -> str:
    return (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY") or "").strip()


def rest_enabled() -> bool:
    return bool(supabase_url() and supabase_key())


def _error_message(res: httpx.Response) -> str:
    try:
        body = res.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return res.text.strip() or f"HTTP {res.status_code}"


class SupabaseRestClient:
    def __init__(self, base_url: str, api_key: str, timeout: float = 30.0, transport: httpx.BaseTransport | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _headers(self, prefer: str | None = None) -> dict:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "apikey": self._api_key,
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(self, method: str, table: str, params: dict, json: Any = None, prefer: str | None = None) -> Any:
        url = f"{self._base_url}/rest/v1/{table}"
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                res = client.request(method, url, params=params, json=json, headers=self._headers(prefer))
        except httpx.HTTPError as exc:
            logger.warning("supabase_request_failed method=%s table=%s error=%s", method, table, exc)
            raise StoreError(str(exc) or "Could not reach the database") from exc
        if res.status_code >= 400:
            message = _error_message(res)
            logger.warning("supabase_error method=%s table=%s status=%s message=%s", method, table, res.status_code, message)
            raise StoreError(message)
        if not res.content:
            return None
        return res.json()

    def select(self, table: str, columns: str = "*", filters: dict | None = None, order: str | None = None) -> list[dict]:
        params = {"select": columns, **(filters or {})}
        if order:
            params["order"] = order
        rows = self._request("GET", table, params)
        return rows if isinstance(rows, list) else []

    def update(self, table: str, record_id: str, fields: dict, columns: str = "*") -> list[dict]:
        params = {"id": f"eq.{record_id}", "select": columns}
        rows = self._request("PATCH", table, params, json=fields, prefer="return=representation")
        return rows if isinstance(rows, list) else []

    def delete(self, table: str, record_id: str) -> list[dict]:
        rows = self._request("DELETE", table, {"id": f"eq.{record_id}"}, prefer="return=representation")
        return rows if isinstance(rows, list) else []


def default_client() -> SupabaseRestClient:
    return SupabaseRestClient(supabase_url(), supabase_key())


class RestSpeciesStore:
    def __init__(self, client: SupabaseRestClient | None = None) -> None:
        self._client = client or default_client()

    def list(self) -> list[dict]:
        return self._client.select("species", _SPECIES_COLUMNS, order="scientific_name.asc")

    def get(self, species_id: str) -> dict | None:
        rows = self._client.select("species", _SPECIES_COLUMNS, {"id": f"eq.{species_id}"})
        return rows[0] if rows else None

    def update(self, species_id: str, fields: dict) -> dict:
        payload = {key: fields[key] for key in EDITABLE_FIELDS if key in fields}
        rows = self._client.update("species", species_id, payload, _SPECIES_COLUMNS)
        if not rows:
            raise StoreError("Species not found")
        return rows[0]

    def delete(self, species_id: str) -> None:
        if not self._client.delete("species", species_id):
            raise StoreError("Species not found")


class RestProfileStore:
    def __init__(self, client: SupabaseRestClient | None = None) -> None:
        self._client = client or default_client()

    def list(self) -> list[dict]:
        return self._client.select("profiles", "id,email,display_name,biography")

    def get_display_name(self, user_id: str) -> str | None:
        rows = self._client.select("profiles", "display_name", {"id": f"eq.{user_id}"})
        if not rows:
            raise StoreError("Profile not found")
        return rows[0].get("display_name")
