"""Storage contract used by the optimizer plus an in-process implementation."""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

from ..db.supabase import get_supabase_client
from ..models.domain import RouteHistoryEntry, RouteRecord, TimeWindow, Visit
from ..services.clustering.models import ClusterSet


class RouteStore(Protocol):
    """Read/write operations the engine needs from the backing store."""

    def get_visits(self, tenant_id: str, visit_ids: Sequence[str]) -> list[Visit]: ...

    def get_visit_history(self, tenant_id: str, limit: int) -> list[Visit]: ...

    def get_time_windows(self, tenant_id: str, customer_ids: Sequence[str]) -> list[TimeWindow]: ...

    def get_preferences(self, tenant_id: str, salesman_id: str) -> Optional[Mapping[str, Any]]: ...

    def save_route(self, record: RouteRecord) -> str: ...

    def get_route(self, tenant_id: str, route_id: str) -> Optional[RouteRecord]: ...

    def update_route(self, record: RouteRecord) -> None: ...

    def append_history(self, entry: RouteHistoryEntry) -> None: ...

    def list_history(self, tenant_id: str, route_id: str) -> list[RouteHistoryEntry]: ...

    def replace_clusters(self, tenant_id: str, cluster_set: ClusterSet) -> list[str]: ...

    def get_clusters(self, tenant_id: str) -> Optional[ClusterSet]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRouteStore:
    """Thread-safe dictionary-backed store for local runs and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._visits: dict[str, dict[str, Visit]] = {}
        self._windows: dict[str, list[TimeWindow]] = {}
        self._preferences: dict[tuple[str, str], dict[str, Any]] = {}
        self._routes: dict[str, RouteRecord] = {}
        self._history: list[RouteHistoryEntry] = []
        self._clusters: dict[str, ClusterSet] = {}

    # Seeding helpers
    def add_visits(self, tenant_id: str, visits: Iterable[Visit]) -> None:
        with self._lock:
            bucket = self._visits.setdefault(tenant_id, {})
            for visit in visits:
                bucket[visit.visit_id] = visit

    def add_time_windows(self, tenant_id: str, windows: Iterable[TimeWindow]) -> None:
        with self._lock:
            self._windows.setdefault(tenant_id, []).extend(windows)

    def set_preferences(self, tenant_id: str, salesman_id: str, preferences: Mapping[str, Any]) -> None:
        with self._lock:
            self._preferences[(tenant_id, salesman_id)] = dict(preferences)

    # Readers
    def get_visits(self, tenant_id: str, visit_ids: Sequence[str]) -> list[Visit]:
        bucket = self._visits.get(tenant_id, {})
        return [bucket[visit_id] for visit_id in dict.fromkeys(visit_ids) if visit_id in bucket]

    def get_visit_history(self, tenant_id: str, limit: int) -> list[Visit]:
        visits = list(self._visits.get(tenant_id, {}).values())
        # Stable sort keeps insertion order for undated visits.
        visits.sort(key=lambda visit: visit.visit_date.toordinal() if visit.visit_date else 0, reverse=True)
        return visits[:limit]

    def get_time_windows(self, tenant_id: str, customer_ids: Sequence[str]) -> list[TimeWindow]:
        wanted = set(customer_ids)
        return [
            window
            for window in self._windows.get(tenant_id, [])
            if window.customer_id in wanted and window.is_active
        ]

    def get_preferences(self, tenant_id: str, salesman_id: str) -> Optional[Mapping[str, Any]]:
        return self._preferences.get((tenant_id, salesman_id))

    # Writers
    def save_route(self, record: RouteRecord) -> str:
        with self._lock:
            stored = copy.deepcopy(record)
            stored.route_id = stored.route_id or uuid.uuid4().hex
            stored.created_at = stored.created_at or _utcnow()
            stored.updated_at = stored.created_at
            self._routes[stored.route_id] = stored
            return stored.route_id

    def get_route(self, tenant_id: str, route_id: str) -> Optional[RouteRecord]:
        record = self._routes.get(route_id)
        if record is None or record.tenant_id != tenant_id:
            return None
        return copy.deepcopy(record)

    def update_route(self, record: RouteRecord) -> None:
        if not record.route_id:
            raise ValueError("Cannot update a route without an id.")
        with self._lock:
            stored = copy.deepcopy(record)
            stored.updated_at = _utcnow()
            self._routes[stored.route_id] = stored

    def append_history(self, entry: RouteHistoryEntry) -> None:
        with self._lock:
            stored = copy.deepcopy(entry)
            stored.recorded_at = stored.recorded_at or _utcnow()
            self._history.append(stored)

    def list_history(self, tenant_id: str, route_id: str) -> list[RouteHistoryEntry]:
        return [
            copy.deepcopy(entry)
            for entry in self._history
            if entry.tenant_id == tenant_id and entry.route_id == route_id
        ]

    def replace_clusters(self, tenant_id: str, cluster_set: ClusterSet) -> list[str]:
        with self._lock:
            stored = copy.deepcopy(cluster_set)
            stored.generation_id = uuid.uuid4().hex
            for cluster in stored.clusters:
                cluster.cluster_id = uuid.uuid4().hex
            self._clusters[tenant_id] = stored
            cluster_set.generation_id = stored.generation_id
            return [cluster.cluster_id for cluster in stored.clusters]

    def get_clusters(self, tenant_id: str) -> Optional[ClusterSet]:
        stored = self._clusters.get(tenant_id)
        return copy.deepcopy(stored) if stored else None


@lru_cache()
def get_store() -> RouteStore:
    """Return the process-wide store: Supabase when configured, otherwise in-memory."""

    client = get_supabase_client()
    if client is None:
        logging.warning("Supabase not configured - routes and clusters are kept in memory only")
        return InMemoryRouteStore()
    from .database import SupabaseRouteStore

    return SupabaseRouteStore(client)
