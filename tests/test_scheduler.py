from datetime import date

from fieldroute.models.domain import Location, TimeWindow
from fieldroute.services.routing.scheduler import apply_time_windows, attach_time_windows, select_time_windows


def _stop(vid: str, customer_id: str | None = None, window: TimeWindow | None = None) -> Location:
    return Location(
        location_id=vid,
        latitude=12.9,
        longitude=77.5,
        customer_id=customer_id or f"cust-{vid}",
        time_window=window,
    )


def _window(customer_id: str, start: str, strict: bool = True, priority: int = 0, day: str | None = None, active: bool = True):
    return TimeWindow(
        customer_id=customer_id,
        start_time=start,
        end_time="18:00",
        is_strict=strict,
        priority_level=priority,
        day_of_week=day,
        is_active=active,
    )


def test_select_time_windows_prefers_highest_priority_active_window():
    windows = [
        _window("c1", "10:00", priority=1),
        _window("c1", "11:00", priority=5),
        _window("c1", "08:00", priority=9, active=False),
        _window("c2", "09:30"),
    ]

    selected = select_time_windows(windows)

    assert selected["c1"].start_time == "11:00"
    assert selected["c2"].start_time == "09:30"


def test_select_time_windows_filters_by_route_weekday():
    monday = date(2024, 1, 1)
    windows = [
        _window("c1", "10:00", priority=9, day="TUE"),
        _window("c1", "14:00", priority=1, day="MON"),
        _window("c2", "09:00", day="Tuesday"),
    ]

    selected = select_time_windows(windows, monday)

    assert selected["c1"].start_time == "14:00"
    assert "c2" not in selected


def test_attach_time_windows_matches_by_customer():
    stops = [_stop("v1", "c1"), _stop("v2", "c2"), Location("START", 12.9, 77.5)]
    windows = {"c1": _window("c1", "10:00")}

    attached = attach_time_windows(stops, windows)

    assert attached[0].time_window is windows["c1"]
    assert attached[1].time_window is None
    assert attached[2].time_window is None


def test_strict_stops_move_first_in_window_order():
    route = [
        Location("START", 12.9, 77.5),
        _stop("flex1"),
        _stop("late", window=_window("cust-late", "15:00")),
        _stop("soft", window=_window("cust-soft", "08:00", strict=False)),
        _stop("early", window=_window("cust-early", "09:30")),
        _stop("flex2"),
        Location("END", 12.9, 77.5),
    ]

    scheduled = apply_time_windows(route)

    assert [location.location_id for location in scheduled] == [
        "START",
        "early",
        "late",
        "flex1",
        "soft",
        "flex2",
        "END",
    ]


def test_equal_window_starts_keep_route_order():
    route = [
        Location("START", 12.9, 77.5),
        _stop("b", window=_window("cust-b", "10:00")),
        _stop("a", window=_window("cust-a", "10:00")),
    ]

    scheduled = apply_time_windows(route)

    assert [location.location_id for location in scheduled] == ["START", "b", "a"]


def test_without_windows_order_is_unchanged():
    route = [Location("START", 12.9, 77.5), _stop("x"), _stop("y"), _stop("z")]

    assert apply_time_windows(route) == route
