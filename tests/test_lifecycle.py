from datetime import date

import pytest

from fieldroute.errors import InvalidTransitionError, NotFoundError
from fieldroute.models.domain import RouteRecord, RouteStatus, Visit
from fieldroute.persistence.store import InMemoryRouteStore
from fieldroute.services.lifecycle import service as lifecycle


def _record(tenant_id: str = "t1") -> RouteRecord:
    return RouteRecord(
        tenant_id=tenant_id,
        salesman_id="s1",
        route_date=date(2024, 1, 1),
        visit_sequence=["START", "v2", "v1", "END"],
        total_visits=2,
        total_distance_km=10.0,
        estimated_travel_time_minutes=60.0,
        estimated_fuel_cost=1.5,
        start_latitude=12.91,
        start_longitude=77.52,
        route_start_time="09:00",
        route_end_time="11:30",
    )


@pytest.fixture
def saved():
    store = InMemoryRouteStore()
    route_id = store.save_route(_record())
    return store, route_id


def test_full_lifecycle_records_efficiency(saved):
    store, route_id = saved

    started = lifecycle.start_route("t1", route_id, store=store)
    assert started.status == RouteStatus.IN_PROGRESS

    completed = lifecycle.complete_route(
        "t1", route_id, actual_distance_km=12.5, actual_time_minutes=70.0, store=store
    )

    assert completed.status == RouteStatus.COMPLETED
    assert completed.efficiency_score == pytest.approx(80.0)
    history = lifecycle.list_route_history("t1", route_id, store=store)
    assert len(history) == 1
    assert history[0].time_saved_minutes == pytest.approx(-10.0)
    assert history[0].planned_distance_km == 10.0
    assert store.get_route("t1", route_id).actual_distance_km == 12.5


def test_efficiency_is_capped_at_100(saved):
    store, route_id = saved
    lifecycle.start_route("t1", route_id, store=store)

    completed = lifecycle.complete_route("t1", route_id, actual_distance_km=8.0, store=store)

    assert completed.efficiency_score == 100.0
    assert lifecycle.list_route_history("t1", route_id, store=store)[0].time_saved_minutes is None


def test_completion_retry_with_same_actuals_is_idempotent(saved):
    store, route_id = saved
    lifecycle.start_route("t1", route_id, store=store)
    first = lifecycle.complete_route("t1", route_id, actual_distance_km=12.5, actual_time_minutes=70.0, store=store)

    again = lifecycle.complete_route("t1", route_id, actual_distance_km=12.5, actual_time_minutes=70.0, store=store)

    assert again.efficiency_score == first.efficiency_score
    assert len(lifecycle.list_route_history("t1", route_id, store=store)) == 1


def test_completion_with_new_actuals_overwrites_and_appends(saved):
    store, route_id = saved
    lifecycle.start_route("t1", route_id, store=store)
    lifecycle.complete_route("t1", route_id, actual_distance_km=12.5, actual_time_minutes=70.0, store=store)

    updated = lifecycle.complete_route("t1", route_id, actual_distance_km=20.0, actual_time_minutes=90.0, store=store)

    assert updated.efficiency_score == pytest.approx(50.0)
    assert store.get_route("t1", route_id).actual_distance_km == 20.0
    history = lifecycle.list_route_history("t1", route_id, store=store)
    assert [entry.actual_distance_km for entry in history] == [12.5, 20.0]


def test_completion_without_actuals_writes_no_history(saved):
    store, route_id = saved
    lifecycle.start_route("t1", route_id, store=store)

    completed = lifecycle.complete_route("t1", route_id, store=store)

    assert completed.status == RouteStatus.COMPLETED
    assert completed.efficiency_score is None
    assert lifecycle.list_route_history("t1", route_id, store=store) == []


def test_cannot_complete_a_planned_route(saved):
    store, route_id = saved

    with pytest.raises(InvalidTransitionError):
        lifecycle.complete_route("t1", route_id, actual_distance_km=10.0, store=store)


def test_cancel_and_terminal_states(saved):
    store, route_id = saved

    cancelled = lifecycle.cancel_route("t1", route_id, store=store)
    assert cancelled.status == RouteStatus.CANCELLED
    assert lifecycle.cancel_route("t1", route_id, store=store).status == RouteStatus.CANCELLED

    with pytest.raises(InvalidTransitionError):
        lifecycle.start_route("t1", route_id, store=store)


def test_start_is_idempotent(saved):
    store, route_id = saved

    lifecycle.start_route("t1", route_id, store=store)
    again = lifecycle.start_route("t1", route_id, store=store)

    assert again.status == RouteStatus.IN_PROGRESS


def test_unknown_route_and_foreign_tenant_are_not_found(saved):
    store, route_id = saved

    with pytest.raises(NotFoundError):
        lifecycle.start_route("t1", "missing", store=store)
    with pytest.raises(NotFoundError):
        lifecycle.complete_route("t2", route_id, actual_distance_km=5.0, store=store)
    with pytest.raises(NotFoundError):
        lifecycle.list_route_history("t1", "missing", store=store)


def test_route_details_lists_visits_in_sequence(saved):
    store, route_id = saved
    store.add_visits(
        "t1",
        [
            Visit("v1", "c1", "One", 12.90, 77.50, "High"),
            Visit("v2", "c2", "Two", 12.95, 77.55, "Low"),
        ],
    )

    details = lifecycle.get_route_details("t1", route_id, store=store)

    assert details.route.route_id == route_id
    assert [visit.visit_id for visit in details.visits] == ["v2", "v1"]


def test_efficiency_score_formula():
    assert lifecycle.efficiency_score(10.0, 20.0) == 50.0
    assert lifecycle.efficiency_score(10.0, 5.0) == 100.0
