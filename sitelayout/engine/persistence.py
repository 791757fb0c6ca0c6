"""Snapshot persistence through a thin, fallible document-store accessor.

The engine never owns durable storage. It hands partial site snapshots
(``{"terrain": ...}`` or ``{"placed_elements": [...]}``) to a ``SiteStore``
supplied by the host application and moves on:

  * **Fire-and-forget** — saves run on a single-worker executor, so the
    interaction thread never waits on storage latency and saves land in
    submission order.
  * **Degraded mode** — with no store (``store=None``) the repository keeps
    the latest snapshots in memory only. A missing store or a failing save
    is reported once through ``on_unavailable`` as
    ``PersistenceUnavailable``; editing continues either way.
  * **No retries** — a failed save is logged and reported, never repeated.

``SiteData`` is the full site record exchanged with stores and site files.
``InMemoryStore`` is a reference ``SiteStore`` used by tests and headless
tools.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Protocol

from .errors import PersistenceUnavailable
from .terrain import Terrain
from .types import PlacedElement, SiteSettings

logger = logging.getLogger(__name__)


@dataclass
class SiteData:
    id: str
    project_id: str
    terrain: Terrain | None = None
    elements: list[PlacedElement] = field(default_factory=list)
    settings: SiteSettings = field(default_factory=SiteSettings)

    @staticmethod
    def from_dict(d: dict) -> SiteData:
        t = d.get("terrain")
        return SiteData(
            id=d["id"],
            project_id=d.get("project_id", ""),
            terrain=Terrain.from_dict(t) if t else None,
            elements=[
                PlacedElement.from_dict(e)
                for e in d.get("placed_elements", [])
            ],
            settings=SiteSettings.from_dict(d.get("settings")),
        )

    def to_dict(self) -> dict:
        d: dict = {
            "id": self.id,
            "project_id": self.project_id,
            "placed_elements": [e.to_dict() for e in self.elements],
            "settings": self.settings.to_dict(),
        }
        if self.terrain is not None:
            d["terrain"] = self.terrain.to_dict()
        return d


class SiteStore(Protocol):
    def update_site(
        self, site_id: str, project_id: str, partial: dict
    ) -> None:
        """Merge a partial site snapshot into the stored document."""
        ...

    def load_site(self, project_id: str) -> dict | None:
        """Return the site document for a project, or None."""
        ...


class InMemoryStore:
    def __init__(self) -> None:
        self.sites: dict[str, dict] = {}

    def update_site(
        self, site_id: str, project_id: str, partial: dict
    ) -> None:
        doc = self.sites.setdefault(
            site_id, {"id": site_id, "project_id": project_id}
        )
        doc.update(copy.deepcopy(partial))

    def load_site(self, project_id: str) -> dict | None:
        for doc in self.sites.values():
            if doc.get("project_id") == project_id:
                return copy.deepcopy(doc)
        return None


class SiteRepository:
    def __init__(
        self,
        store: SiteStore | None,
        site_id: str,
        project_id: str,
        executor: Executor | None = None,
        on_unavailable: Callable[[PersistenceUnavailable], None] | None = None,
    ) -> None:
        self._store = store
        self.site_id = site_id
        self.project_id = project_id
        self._owns_executor = executor is None and store is not None
        if self._owns_executor:
            executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="sitelayout-persist"
            )
        self._executor = executor
        self._on_unavailable = on_unavailable
        self._lock = threading.Lock()
        self._pending: set[Future] = set()
        self._notified = False
        self.latest: dict = {}

    @property
    def in_memory_only(self) -> bool:
        return self._store is None

    def save_terrain(self, terrain: Terrain) -> Future | None:
        return self._submit({"terrain": terrain.to_dict()})

    def save_elements(self, elements: list[PlacedElement]) -> Future | None:
        return self._submit(
            {"placed_elements": [e.to_dict() for e in elements]}
        )

    def save_settings(self, settings: SiteSettings) -> Future | None:
        return self._submit({"settings": settings.to_dict()})

    def load(self) -> SiteData | None:
        """Synchronously load this project's site, or None."""
        if self._store is None:
            self._report("no document store configured")
            return None
        try:
            doc = self._store.load_site(self.project_id)
        except Exception as e:
            logger.error(
                f"Loading site for project {self.project_id} failed: {e}"
            )
            self._report(str(e))
            return None
        if doc is None:
            return None
        return SiteData.from_dict(doc)

    def flush(self, timeout: float | None = None) -> None:
        """Block until every submitted save has finished."""
        with self._lock:
            pending = list(self._pending)
        wait(pending, timeout=timeout)

    def close(self) -> None:
        self.flush()
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)

    def _submit(self, partial: dict) -> Future | None:
        self.latest.update(partial)
        if self._store is None:
            self._report("no document store configured")
            return None
        future = self._executor.submit(self._save, partial)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def _save(self, partial: dict) -> bool:
        try:
            self._store.update_site(self.site_id, self.project_id, partial)
        except Exception as e:
            logger.error(f"Saving site {self.site_id} failed: {e}")
            self._report(str(e))
            return False
        return True

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _report(self, reason: str) -> None:
        with self._lock:
            if self._notified:
                return
            self._notified = True
        logger.warning(
            f"Persistence unavailable for site {self.site_id} ({reason}); "
            f"continuing in memory"
        )
        if self._on_unavailable is not None:
            self._on_unavailable(PersistenceUnavailable(reason))
