"""Time-window ordering applied after distance optimisation."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Iterable, Mapping, Optional, Sequence

from ...models.domain import Location, TimeWindow


def select_time_windows(
    windows: Iterable[TimeWindow],
    route_date: Optional[date] = None,
) -> dict[str, TimeWindow]:
    """Pick the highest-priority active window per customer for the route's day."""

    selected: dict[str, TimeWindow] = {}
    for window in windows:
        if not window.applies_on(route_date):
            continue
        existing = selected.get(window.customer_id)
        if existing is None or window.priority_level > existing.priority_level:
            selected[window.customer_id] = window
    return selected


def attach_time_windows(
    locations: Sequence[Location],
    windows: Mapping[str, TimeWindow],
) -> list[Location]:
    attached = []
    for location in locations:
        window = windows.get(location.customer_id) if location.customer_id else None
        attached.append(replace(location, time_window=window) if window else location)
    return attached


def apply_time_windows(route: Sequence[Location]) -> list[Location]:
    """Move strict-window stops to the front, ordered by window start.

    Flexible stops keep their relative order. Window compliance takes priority
    over the distance gained by 2-opt, so the reordering may lengthen the route.
    """

    start = [location for location in route if location.is_start]
    end = [location for location in route if location.is_end]
    stops = [location for location in route if location.is_stop]

    strict = sorted(
        (location for location in stops if location.has_strict_window),
        key=lambda location: location.time_window.start_minutes,
    )
    flexible = [location for location in stops if not location.has_strict_window]
    return start + strict + flexible + end
