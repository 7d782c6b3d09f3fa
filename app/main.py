"""FastAPI app for the species catalog."""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import json
import logging
import time

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from app.auth import SupabaseAuthMiddleware
from app.db import get_db_stats, reset_db_stats
from app.pages import render_species_page, render_users_page
from app.stores import MemoryProfileStore, MemorySpeciesStore, MemoryToastStore
from app.views import DetailViewRegistry, OpenView
from catalog.errors import FormStateError, StoreError
from catalog.profile_list import load_profile_table
from catalog.species_form import SEVERITY_DESTRUCTIVE, SpeciesForm
from catalog.species_schema import errors_by_field, validate_species
from event_bus import SPECIES_DELETED, SPECIES_UPDATED, VIEW_INVALIDATED, EventBus, make_event

app = FastAPI(title="Species Catalog")
logger = logging.getLogger("catalog")
logging.basicConfig(level=logging.INFO)

SUPABASE_URL = os.getenv("SUPABASE_URL", "").strip()
SUPABASE_AUD = os.getenv("SUPABASE_JWT_AUD", "").strip() or None
DISABLE_AUTH = os.getenv("CATALOG_DISABLE_AUTH", "").strip().lower() in ("1", "true", "yes")
USE_DB = os.getenv("USE_DB", "").strip() == "1"
STORE_BACKEND = os.getenv("CATALOG_STORE", "").strip().lower() or ("db" if USE_DB else "memory")
APP_ENV = os.getenv("APP_ENV", os.getenv("ENV", "dev")).strip().lower() or "dev"
IS_DEV = APP_ENV == "dev"
REQ_SLOW_MS = float(os.getenv("CATALOG_REQ_SLOW_MS", "250"))
CACHE_TTL_S = float(os.getenv("CATALOG_CACHE_TTL_S", "60"))
VIEW_IDLE_TTL_S = float(os.getenv("CATALOG_VIEW_IDLE_TTL_S", "1800"))
VIEWS_PER_OWNER = int(os.getenv("CATALOG_VIEWS_PER_OWNER", "20"))
TEST_ACTOR = {"user_id": "test-user", "email": "test@example.com", "claims": {}}
logger.info("auth_disabled=%s supabase_url=%s store=%s", DISABLE_AUTH, SUPABASE_URL, STORE_BACKEND)

if STORE_BACKEND == "db":
    from app.stores_db import DbProfileStore, DbSpeciesStore

    species_store = DbSpeciesStore()
    profile_store = DbProfileStore()
elif STORE_BACKEND == "rest":
    from app.supabase_rest import RestProfileStore, RestSpeciesStore, rest_enabled

    if not rest_enabled():
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY or SUPABASE_ANON_KEY are required for CATALOG_STORE=rest")
    species_store = RestSpeciesStore()
    profile_store = RestProfileStore()
else:
    species_store = MemorySpeciesStore()
    profile_store = MemoryProfileStore()

toast_store = MemoryToastStore()
views = DetailViewRegistry(idle_ttl_s=VIEW_IDLE_TTL_S, max_per_owner=VIEWS_PER_OWNER)
event_bus = EventBus()
_response_cache: dict[str, dict] = {}

_LOCAL_CORS_REGEX = re.compile(r"^http://(localhost|127\.0\.0\.1):\d+$")
_CORS_ORIGINS = sorted(
    {origin.strip().rstrip("/") for origin in os.getenv("CATALOG_CORS_ORIGINS", "").split(",") if origin.strip()}
)


def _cache_get(key: str):
    entry = _response_cache.get(key)
    if not entry or time.time() - entry["ts"] > CACHE_TTL_S:
        return None
    return entry["value"]


def _cache_set(key: str, value) -> None:
    _response_cache[key] = {"value": value, "ts": time.time()}


def _cache_invalidate(prefix: str = "") -> None:
    for key in [k for k in _response_cache if k.startswith(prefix)]:
        _response_cache.pop(key, None)


def _on_view_invalidated(event: dict) -> None:
    _cache_invalidate("species:")
    logger.info("cache_invalidated species_id=%s", event["payload"].get("species_id"))


event_bus.subscribe(VIEW_INVALIDATED, _on_view_invalidated)


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    reset_db_stats()
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    auth_ms = getattr(request.state, "auth_ms", 0.0)
    db_stats = get_db_stats()
    route = request.scope.get("route")
    route_name = getattr(route, "name", None) or "unknown"
    logger.info(
        "%s %s %s route=%s total_ms=%.1f auth_ms=%.1f db_ms=%.1f db_q=%s",
        request.method,
        request.url.path,
        response.status_code,
        route_name,
        total_ms,
        auth_ms,
        db_stats.get("total_ms", 0.0),
        db_stats.get("queries", 0),
    )
    if total_ms >= REQ_SLOW_MS:
        logger.warning(
            "slow_request method=%s path=%s route=%s total_ms=%.1f status=%s",
            request.method,
            request.url.path,
            route_name,
            total_ms,
            response.status_code,
        )
    if IS_DEV:
        response.headers["X-Req-MS"] = f"{total_ms:.1f}"
        response.headers["X-Queries"] = str(db_stats.get("queries", 0))
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ORIGINS,
    allow_origin_regex=_LOCAL_CORS_REGEX.pattern,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
if not DISABLE_AUTH:
    if not SUPABASE_URL:
        raise RuntimeError("SUPABASE_URL is required for auth")
    app.add_middleware(SupabaseAuthMiddleware, supabase_url=SUPABASE_URL, audience=SUPABASE_AUD)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _validation_response(errors: list, view: dict | None = None, status: int = 400) -> JSONResponse:
    body = {"ok": False, "view": view, "errors": errors, "warnings": []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _form_state_response(exc: FormStateError) -> JSONResponse:
    status = {"VIEW_CLOSED": 410, "INVALID_PAYLOAD": 400}.get(exc.code, 409)
    return _error_response(exc.code, exc.message, "view_id", status=status)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return _error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


def _reject_constant(name: str):
    raise ValueError(f"{name} is not a valid JSON number")


async def _safe_json(request: Request) -> dict | None:
    """Parse a JSON object body; None when it is malformed or uses NaN/Infinity."""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw, parse_constant=_reject_constant)
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _resolve_actor(request: Request) -> dict | JSONResponse:
    user = getattr(request.state, "user", None)
    if not user or not user.get("id"):
        if DISABLE_AUTH:
            return dict(TEST_ACTOR)
        return _error_response("AUTH_REQUIRED", "Authenticated user required", status=401)
    return {"user_id": user.get("id"), "email": user.get("email"), "claims": user.get("claims") or {}}


def _toast_sink(user_id: str):
    def notify(title: str, description: str | None = None, severity: str = "default") -> None:
        toast_store.push(user_id, title, description, severity)
        if severity == SEVERITY_DESTRUCTIVE:
            logger.info("toast user_id=%s title=%s description=%s", user_id, title, description)

    return notify


def _refresh_signal(species_id: str, user_id: str):
    def refresh() -> None:
        event_bus.publish(make_event(VIEW_INVALIDATED, {"species_id": species_id}, actor=user_id))

    return refresh


def _author_name(species: dict, notify) -> str | None:
    author = species.get("author")
    if not author:
        return None
    try:
        return profile_store.get_display_name(author)
    except StoreError as exc:
        logger.warning("author_lookup_failed species_id=%s author=%s error=%s", species.get("id"), author, exc.message)
        notify("Error fetching author information", None, SEVERITY_DESTRUCTIVE)
        return None


def _lookup_view(request: Request, view_id: str) -> tuple[dict, OpenView] | JSONResponse:
    actor = _resolve_actor(request)
    if isinstance(actor, JSONResponse):
        return actor
    view = views.get(view_id, actor["user_id"])
    if view is None:
        return _error_response("VIEW_NOT_FOUND", "Detail view not found", "view_id", status=404)
    return actor, view


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/")
async def index() -> dict:
    return _ok_response({"service": "species-catalog"})


@app.get("/species")
async def list_species(request: Request):
    actor = _resolve_actor(request)
    if isinstance(actor, JSONResponse):
        return actor
    cached = _cache_get("species:list")
    if cached is not None:
        logger.info("cache_hit=species_list")
        return _ok_response({"species": cached})
    try:
        items = species_store.list()
    except StoreError as exc:
        logger.warning("species_list_failed error=%s", exc.message)
        return _error_response("STORE_ERROR", exc.message, status=502)
    _cache_set("species:list", items)
    return _ok_response({"species": items})


@app.get("/species/page", response_class=HTMLResponse)
async def species_page(request: Request):
    actor = _resolve_actor(request)
    if isinstance(actor, JSONResponse):
        return RedirectResponse("/", status_code=303)
    try:
        items = species_store.list()
    except StoreError as exc:
        return HTMLResponse(render_species_page([], error=exc.message))
    return HTMLResponse(render_species_page(items))


@app.post("/species/{species_id}/views")
async def open_species_view(request: Request, species_id: str):
    actor = _resolve_actor(request)
    if isinstance(actor, JSONResponse):
        return actor
    user_id = actor["user_id"]
    try:
        species = species_store.get(species_id)
    except StoreError as exc:
        logger.warning("species_get_failed species_id=%s error=%s", species_id, exc.message)
        return _error_response("STORE_ERROR", exc.message, "species_id", status=502)
    if not species:
        return _error_response("SPECIES_NOT_FOUND", "Species not found", "species_id", status=404)
    notify = _toast_sink(user_id)
    author_name = _author_name(species, notify)

    def build_form(view_id: str) -> SpeciesForm:
        return SpeciesForm(
            species,
            species_store,
            notify,
            refresh=_refresh_signal(species["id"], user_id),
            on_close=lambda: views.close(view_id),
            author_name=author_name,
        )

    view = views.open(user_id, build_form)
    return _ok_response({"view_id": view.view_id, "view": view.form.snapshot(user_id)}, status=201)


@app.get("/views/{view_id}")
async def get_view(request: Request, view_id: str):
    found = _lookup_view(request, view_id)
    if isinstance(found, JSONResponse):
        return found
    actor, view = found
    return _ok_response({"view": view.form.snapshot(actor["user_id"])})


@app.delete("/views/{view_id}")
async def close_view(request: Request, view_id: str):
    found = _lookup_view(request, view_id)
    if isinstance(found, JSONResponse):
        return found
    views.close(view_id)
    return _ok_response({"closed": True})


@app.post("/views/{view_id}/edit")
async def start_editing(request: Request, view_id: str):
    found = _lookup_view(request, view_id)
    if isinstance(found, JSONResponse):
        return found
    actor, view = found
    try:
        with views.hold(view) as form:
            editing = form.start_editing(actor["user_id"])
    except FormStateError as exc:
        return _form_state_response(exc)
    if not editing:
        logger.info("edit_denied species_id=%s user_id=%s", view.form.species_id, actor["user_id"])
    return _ok_response({"editing": editing, "view": view.form.snapshot(actor["user_id"])})


@app.patch("/views/{view_id}/draft")
async def change_draft(request: Request, view_id: str):
    found = _lookup_view(request, view_id)
    if isinstance(found, JSONResponse):
        return found
    actor, view = found
    body = await _safe_json(request)
    if body is None:
        return _error_response("INVALID_PAYLOAD", "Body must be a JSON object with finite numbers", "body")
    changes = body.get("fields") if isinstance(body.get("fields"), dict) else body
    try:
        with views.hold(view) as form:
            form.change(changes)
    except FormStateError as exc:
        return _form_state_response(exc)
    return _ok_response({"view": view.form.snapshot(actor["user_id"])})


@app.post("/views/{view_id}/cancel")
async def cancel_editing(request: Request, view_id: str):
    found = _lookup_view(request, view_id)
    if isinstance(found, JSONResponse):
        return found
    actor, view = found
    try:
        with views.hold(view) as form:
            form.cancel()
    except FormStateError as exc:
        return _form_state_response(exc)
    return _ok_response({"view": view.form.snapshot(actor["user_id"])})


@app.post("/views/{view_id}/submit")
async def submit_species(request: Request, view_id: str):
    found = _lookup_view(request, view_id)
    if isinstance(found, JSONResponse):
        return found
    actor, view = found
    user_id = actor["user_id"]
    try:
        with views.hold(view) as form:
            outcome = form.submit(user_id)
    except FormStateError as exc:
        return _form_state_response(exc)
    snapshot = view.form.snapshot(user_id)
    if outcome == "invalid":
        errors, _ = validate_species(view.form.draft)
        logger.info("species_validation_failed species_id=%s fields=%s", view.form.species_id, sorted(errors_by_field(errors)))
        return _validation_response(errors, snapshot)
    if outcome == "updated":
        logger.info("species_updated species_id=%s user_id=%s", view.form.species_id, user_id)
        event_bus.publish(make_event(SPECIES_UPDATED, {"species_id": view.form.species_id}, actor=user_id))
    elif outcome == "failed":
        logger.warning("species_update_failed species_id=%s user_id=%s", view.form.species_id, user_id)
    return _ok_response({"outcome": outcome, "view": snapshot})


@app.delete("/views/{view_id}/species")
async def delete_species(request: Request, view_id: str, confirm: int = 0):
    found = _lookup_view(request, view_id)
    if isinstance(found, JSONResponse):
        return found
    actor, view = found
    user_id = actor["user_id"]
    prompts: list[str] = []

    def answer(prompt: str) -> bool:
        prompts.append(prompt)
        return bool(confirm)

    try:
        with views.hold(view) as form:
            outcome = form.delete(user_id, confirm=answer)
    except FormStateError as exc:
        return _form_state_response(exc)
    if outcome == "deleted":
        logger.info("species_deleted species_id=%s user_id=%s", view.form.species_id, user_id)
        event_bus.publish(make_event(SPECIES_DELETED, {"species_id": view.form.species_id}, actor=user_id))
    elif outcome == "failed":
        logger.warning("species_delete_failed species_id=%s user_id=%s", view.form.species_id, user_id)
    payload = {"outcome": outcome, "view": view.form.snapshot(user_id)}
    if outcome == "cancelled":
        payload["confirm_required"] = True
        payload["prompt"] = prompts[0] if prompts else None
    return _ok_response(payload)


@app.get("/notifications")
async def list_notifications(request: Request):
    actor = _resolve_actor(request)
    if isinstance(actor, JSONResponse):
        return actor
    return _ok_response({"notifications": toast_store.drain(actor["user_id"])})


@app.get("/users", response_class=HTMLResponse)
async def users_page(request: Request):
    actor = _resolve_actor(request)
    if isinstance(actor, JSONResponse):
        return RedirectResponse("/", status_code=303)
    table = load_profile_table(profile_store.list)
    if table.status == "error":
        logger.warning("profiles_list_failed error=%s", table.message)
    return HTMLResponse(render_users_page(table))
