"""2-opt local search over a constructed route."""

from __future__ import annotations

import logging
from typing import Sequence

from ...config import settings
from ...errors import InvalidInputError
from ...models.domain import Location
from ..geospatial import DistanceMatrix
from .models import ImprovementResult


def route_distance(route: Sequence[Location], matrix: DistanceMatrix) -> float:
    """Sum of consecutive leg distances along the route."""

    return matrix.path_length(location.location_id for location in route)


def two_opt_improve(
    route: Sequence[Location],
    matrix: DistanceMatrix,
    max_iterations: int | None = None,
) -> ImprovementResult:
    """Reverse route segments while doing so strictly shortens the route.

    Each pass evaluates every reversal of ``route[i..j]`` with
    ``1 <= i < j < len(route) - 1``: the first and last positions never move,
    whether the last one is ``END`` or the final visit. The best reversal
    found during a pass replaces the current route once the pass finishes. The
    search stops after a pass without improvement or after ``max_iterations``
    passes; the latter is reported through ``converged=False``.
    """

    limit = settings.two_opt_max_iterations if max_iterations is None else max_iterations
    if limit < 1:
        raise InvalidInputError(f"max_iterations must be >= 1, got {limit}.")

    current = list(route)
    initial_distance = route_distance(current, matrix)
    best = current
    best_distance = initial_distance
    last = len(current) - 1

    iterations = 0
    improved = True
    while improved and iterations < limit:
        improved = False
        iterations += 1
        for i in range(1, last - 1):
            for j in range(i + 1, last):
                candidate = current[:i] + current[i : j + 1][::-1] + current[j + 1 :]
                candidate_distance = route_distance(candidate, matrix)
                if candidate_distance < best_distance:
                    best = candidate
                    best_distance = candidate_distance
                    improved = True
        current = best

    converged = not improved
    if not converged:
        logging.info(
            f"2-opt stopped after {iterations} passes without converging "
            f"({initial_distance:.3f} km -> {best_distance:.3f} km)"
        )
    return ImprovementResult(
        route=best,
        initial_distance_km=initial_distance,
        final_distance_km=best_distance,
        iterations=iterations,
        converged=converged,
    )
