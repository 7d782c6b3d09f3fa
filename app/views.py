"""Registry of open species detail views."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict

from catalog.errors import FormStateError
from catalog.species_form import SpeciesForm

logger = logging.getLogger("catalog.views")


@dataclass
class OpenView:
    view_id: str
    owner: str
    form: SpeciesForm
    last_used: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock)


class DetailViewRegistry:
    """Open views expire after ``idle_ttl_s`` without use; each owner keeps at most ``max_per_owner``."""

    def __init__(self, idle_ttl_s: float = 1800.0, max_per_owner: int = 20, clock: Callable[[], float] = time.monotonic) -> None:
        self._views: Dict[str, OpenView] = {}
        self._lock = threading.Lock()
        self.idle_ttl_s = idle_ttl_s
        self.max_per_owner = max_per_owner
        self._clock = clock

    def _evict_idle(self, now: float) -> None:
        # caller holds self._lock
        stale = [
            view_id
            for view_id, view in self._views.items()
            if now - view.last_used > self.idle_ttl_s and not view.lock.locked()
        ]
        for view_id in stale:
            del self._views[view_id]
        if stale:
            logger.info("views_evicted count=%s", len(stale))

    def _trim_owner(self, owner: str) -> None:
        # caller holds self._lock; drops the least recently used views beyond the cap
        owned = sorted(
            (view for view in self._views.values() if view.owner == owner),
            key=lambda view: view.last_used,
        )
        excess = len(owned) - self.max_per_owner
        for view in owned[: max(excess, 0)]:
            del self._views[view.view_id]
            logger.info("view_dropped owner=%s view_id=%s", owner, view.view_id)

    def open(self, owner: str, build_form: Callable[[str], SpeciesForm]) -> OpenView:
        """Register a view; ``build_form`` receives the new view id."""
        view_id = str(uuid.uuid4())
        view = OpenView(view_id=view_id, owner=owner, form=build_form(view_id))
        with self._lock:
            now = self._clock()
            view.last_used = now
            self._evict_idle(now)
            self._views[view.view_id] = view
            self._trim_owner(owner)
        return view

    def get(self, view_id: str, owner: str) -> OpenView | None:
        with self._lock:
            now = self._clock()
            self._evict_idle(now)
            view = self._views.get(view_id)
            if view is None or view.owner != owner:
                return None
            view.last_used = now
        return view

    def close(self, view_id: str) -> bool:
        with self._lock:
            return self._views.pop(view_id, None) is not None

    def count(self) -> int:
        with self._lock:
            return len(self._views)

    @contextmanager
    def hold(self, view: OpenView):
        """One request at a time per view; a second concurrent request is refused."""
        if not view.lock.acquire(blocking=False):
            raise FormStateError("BUSY", "A request is already in progress")
        try:
            yield view.form
        finally:
            view.lock.release()
