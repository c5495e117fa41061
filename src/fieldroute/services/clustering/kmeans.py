"""K-means over latitude/longitude using geodesic assignment."""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from ...config import settings
from ...errors import InvalidInputError
from ..geospatial import haversine_many
from .models import KMeansOutcome


def distinct_location_count(latitudes: Sequence[float], longitudes: Sequence[float]) -> int:
    if len(latitudes) == 0:
        return 0
    return len(np.unique(np.column_stack([latitudes, longitudes]), axis=0))


def draw_seed() -> int:
    return int(np.random.SeedSequence().entropy % (2**32))


def kmeans_haversine(
    latitudes: Sequence[float],
    longitudes: Sequence[float],
    k: int,
    *,
    seed: int | None = None,
    max_iterations: int | None = None,
    tolerance: float | None = None,
) -> KMeansOutcome:
    """Partition points into ``k`` groups by nearest centroid.

    Initial centroids are ``k`` distinct input coordinates drawn with ``seed``.
    Each pass assigns every point to its nearest centroid by haversine distance
    and moves centroids to the arithmetic mean of their members. The loop ends
    when no centroid moves by more than ``tolerance`` degrees, or after
    ``max_iterations`` passes (reported as ``converged=False``). A centroid that
    loses all of its members keeps its previous position.
    """

    limit = settings.kmeans_max_iterations if max_iterations is None else max_iterations
    tol = settings.kmeans_tolerance_degrees if tolerance is None else tolerance
    if k < 1:
        raise InvalidInputError(f"Cluster count must be >= 1, got {k}.")
    if limit < 1:
        raise InvalidInputError(f"max_iterations must be >= 1, got {limit}.")

    lats = np.asarray(latitudes, dtype=float)
    lons = np.asarray(longitudes, dtype=float)
    coords = np.column_stack([lats, lons]) if len(lats) else np.empty((0, 2))
    distinct = np.unique(coords, axis=0)
    if len(distinct) < k:
        raise InvalidInputError(
            f"Insufficient data: requested {k} clusters, only {len(distinct)} distinct valid locations."
        )

    seed = draw_seed() if seed is None else seed
    rng = np.random.default_rng(seed)
    centroids = distinct[rng.choice(len(distinct), size=k, replace=False)].copy()

    labels = np.zeros(len(coords), dtype=int)
    iterations = 0
    converged = False
    while iterations < limit:
        iterations += 1
        distances = np.column_stack(
            [haversine_many(centroid[0], centroid[1], lats, lons) for centroid in centroids]
        )
        labels = distances.argmin(axis=1)

        moved = False
        for cluster_index in range(k):
            mask = labels == cluster_index
            if not mask.any():
                continue
            updated = coords[mask].mean(axis=0)
            if np.abs(updated - centroids[cluster_index]).max() > tol:
                centroids[cluster_index] = updated
                moved = True
        if not moved:
            converged = True
            break

    if not converged:
        logging.info(f"k-means stopped after {iterations} iterations without converging (k={k}, seed={seed})")

    return KMeansOutcome(
        labels=[int(label) for label in labels],
        centroids=[(float(lat), float(lon)) for lat, lon in centroids],
        iterations=iterations,
        converged=converged,
        seed=seed,
    )
