"""Greedy nearest-neighbor route construction."""

from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from ...errors import InvalidInputError
from ...models.domain import END_ID, Location, RoutePreferences
from ..geospatial import DistanceMatrix

POTENTIAL_DISCOUNT_DIVISOR = 1000.0


def weighted_distance(distance_km: float, candidate: Location) -> float:
    """Discount a candidate's distance by up to 10% according to its potential."""

    return distance_km * (1 - candidate.potential_score / POTENTIAL_DISCOUNT_DIVISOR)


def end_location_for(start: Location) -> Location:
    return replace(start, location_id=END_ID)


def nearest_neighbor_route(
    locations: Sequence[Location],
    matrix: DistanceMatrix,
    preferences: RoutePreferences,
) -> list[Location]:
    """Build the initial visiting order starting from the ``START`` location.

    The first element of ``locations`` must be the start. Each step moves to the
    unvisited stop with the smallest potential-weighted distance; ties keep the
    candidate that appears first. When ``return_to_start`` is set a synthetic
    ``END`` stop with the start's coordinates closes the route.
    """

    if not locations or not locations[0].is_start:
        raise InvalidInputError("Route construction requires the START location first.")

    start = locations[0]
    unvisited = [location for location in locations[1:] if location.is_stop]
    route = [start]
    current = start

    while unvisited:
        best_index = 0
        best_score = float("inf")
        for index, candidate in enumerate(unvisited):
            score = weighted_distance(matrix.between(current.location_id, candidate.location_id), candidate)
            if score < best_score:
                best_score = score
                best_index = index
        current = unvisited.pop(best_index)
        route.append(current)

    if preferences.return_to_start:
        route.append(end_location_for(start))
    return route
