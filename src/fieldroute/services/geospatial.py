"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence

import numpy as np
from shapely.geometry import MultiPoint

from ..models.domain import Location

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def haversine_many(lat: float, lon: float, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Vectorised haversine distance from one point to arrays of points (km)."""

    phi1 = np.radians(lat)
    phi2 = np.radians(lats)
    d_phi = phi2 - phi1
    d_lambda = np.radians(lons - lon)

    a = np.sin(d_phi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(d_lambda / 2) ** 2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(np.clip(1 - a, 0.0, None)))
    return EARTH_RADIUS_KM * c


def is_valid_coordinate(lat: Optional[float], lon: Optional[float]) -> bool:
    """Return True for finite, non-zero, in-range latitude/longitude pairs."""

    if lat is None or lon is None:
        return False
    try:
        lat_value, lon_value = float(lat), float(lon)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat_value) and math.isfinite(lon_value)):
        return False
    if lat_value == 0 or lon_value == 0:
        return False
    return -90.0 <= lat_value <= 90.0 and -180.0 <= lon_value <= 180.0


def convex_hull(latitudes: Sequence[float], longitudes: Sequence[float]) -> list[tuple[float, float]]:
    """Convex hull of the points as (lat, lon) pairs; degenerate hulls keep their points."""

    if len(latitudes) == 0:
        return []
    hull = MultiPoint([(lon, lat) for lat, lon in zip(latitudes, longitudes)]).convex_hull
    if hull.geom_type == "Polygon":
        coords = hull.exterior.coords
    else:
        coords = hull.coords
    return [(float(lat), float(lon)) for lon, lat in coords]


class DistanceMatrix:
    """Symmetric pairwise distance table (km) keyed by location id."""

    def __init__(self, ids: Sequence[str], values: np.ndarray) -> None:
        if values.shape != (len(ids), len(ids)):
            raise ValueError("Distance matrix must be square and match the id list.")
        self.ids = list(ids)
        self.values = values
        self._index = {location_id: position for position, location_id in enumerate(self.ids)}
        if len(self._index) != len(self.ids):
            raise ValueError("Location ids in a distance matrix must be unique.")

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, location_id: object) -> bool:
        return location_id in self._index

    def index_of(self, location_id: str) -> int:
        return self._index[location_id]

    def between(self, a: str, b: str) -> float:
        return float(self.values[self._index[a], self._index[b]])

    def path_length(self, ids: Iterable[str]) -> float:
        positions = [self._index[location_id] for location_id in ids]
        if len(positions) < 2:
            return 0.0
        return float(self.values[positions[:-1], positions[1:]].sum())


def build_distance_matrix(locations: Sequence[Location]) -> DistanceMatrix:
    """Compute haversine distances for every pair of locations."""

    count = len(locations)
    values = np.zeros((count, count), dtype=float)
    for i in range(count):
        for j in range(i + 1, count):
            distance = haversine_km(
                locations[i].latitude,
                locations[i].longitude,
                locations[j].latitude,
                locations[j].longitude,
            )
            values[i, j] = distance
            values[j, i] = distance
    return DistanceMatrix([location.location_id for location in locations], values)
