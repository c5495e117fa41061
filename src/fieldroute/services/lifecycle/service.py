"""Route status transitions and planned-vs-actual reconciliation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ...errors import InvalidTransitionError, NotFoundError
from ...models.domain import RouteHistoryEntry, RouteRecord, RouteStatus, Visit
from ...persistence.store import RouteStore, get_store

ALLOWED_TRANSITIONS: dict[RouteStatus, set[RouteStatus]] = {
    RouteStatus.PLANNED: {RouteStatus.IN_PROGRESS, RouteStatus.CANCELLED},
    RouteStatus.IN_PROGRESS: {RouteStatus.COMPLETED, RouteStatus.CANCELLED},
    RouteStatus.COMPLETED: set(),
    RouteStatus.CANCELLED: set(),
}


@dataclass(slots=True)
class RouteDetails:
    route: RouteRecord
    visits: list[Visit]


def efficiency_score(planned_distance_km: float, actual_distance_km: float) -> float:
    """Planned over actual distance as a percentage, capped at 100."""

    return min(100.0, planned_distance_km / actual_distance_km * 100)


def _load(store: RouteStore, tenant_id: str, route_id: str) -> RouteRecord:
    record = store.get_route(tenant_id, route_id)
    if record is None:
        raise NotFoundError(f"Route '{route_id}' not found for tenant '{tenant_id}'.")
    return record


def _transition(store: RouteStore, record: RouteRecord, target: RouteStatus) -> RouteRecord:
    if record.status == target:
        return record
    if target not in ALLOWED_TRANSITIONS[record.status]:
        raise InvalidTransitionError(record.route_id or "", record.status.value, target.value)
    record.status = target
    store.update_route(record)
    logging.info(f"Route {record.route_id} moved to '{target.value}'")
    return record


def start_route(tenant_id: str, route_id: str, *, store: RouteStore | None = None) -> RouteRecord:
    store = store or get_store()
    return _transition(store, _load(store, tenant_id, route_id), RouteStatus.IN_PROGRESS)


def cancel_route(tenant_id: str, route_id: str, *, store: RouteStore | None = None) -> RouteRecord:
    store = store or get_store()
    return _transition(store, _load(store, tenant_id, route_id), RouteStatus.CANCELLED)


def complete_route(
    tenant_id: str,
    route_id: str,
    *,
    actual_distance_km: Optional[float] = None,
    actual_time_minutes: Optional[float] = None,
    store: RouteStore | None = None,
) -> RouteRecord:
    """Mark a route completed and reconcile it against the supplied actuals.

    Retrying with the same actuals is a no-op. Different actuals overwrite the
    stored values and append another history entry.
    """

    store = store or get_store()
    record = _load(store, tenant_id, route_id)

    if record.status == RouteStatus.COMPLETED:
        unchanged = (
            record.actual_distance_km == actual_distance_km
            and record.actual_time_minutes == actual_time_minutes
        )
        if unchanged or (actual_distance_km is None and actual_time_minutes is None):
            return record
    elif RouteStatus.COMPLETED not in ALLOWED_TRANSITIONS[record.status]:
        raise InvalidTransitionError(route_id, record.status.value, RouteStatus.COMPLETED.value)

    record.status = RouteStatus.COMPLETED
    record.actual_distance_km = actual_distance_km
    record.actual_time_minutes = actual_time_minutes

    entry = None
    if actual_distance_km:
        record.efficiency_score = efficiency_score(record.total_distance_km, actual_distance_km)
        time_saved = (
            record.estimated_travel_time_minutes - actual_time_minutes
            if actual_time_minutes is not None
            else None
        )
        entry = RouteHistoryEntry(
            tenant_id=tenant_id,
            salesman_id=record.salesman_id,
            route_id=route_id,
            event_type="route_completed",
            planned_distance_km=record.total_distance_km,
            actual_distance_km=actual_distance_km,
            planned_time_minutes=record.estimated_travel_time_minutes,
            actual_time_minutes=actual_time_minutes,
            efficiency_score=record.efficiency_score,
            time_saved_minutes=time_saved,
        )
    else:
        record.efficiency_score = None

    store.update_route(record)
    if entry is not None:
        store.append_history(entry)
        logging.info(f"Route {route_id} completed with efficiency score {entry.efficiency_score:.1f}")
    return record


def get_route_details(tenant_id: str, route_id: str, *, store: RouteStore | None = None) -> RouteDetails:
    """Return the stored route together with its visits in sequence order."""

    store = store or get_store()
    record = _load(store, tenant_id, route_id)
    visits = store.get_visits(tenant_id, record.visit_ids)
    return RouteDetails(route=record, visits=visits)


def list_route_history(tenant_id: str, route_id: str, *, store: RouteStore | None = None) -> list[RouteHistoryEntry]:
    store = store or get_store()
    _load(store, tenant_id, route_id)
    return store.list_history(tenant_id, route_id)
