"""Geospatial utilities (no external dependencies)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Final

EARTH_RADIUS_M: Final[float] = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute Haversine distance in meters between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        Distance in meters on a spherical Earth.
    """

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    # clamp: rounding can push a slightly above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


@dataclass(frozen=True, slots=True)
class RegionBounds:
    """A lat/lon bounding box for the region a fleet is expected to operate in."""

    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, lat: float, lon: float) -> bool:
        """Check whether a point is inside or on the edge of the box."""

        return self.min_lat <= lat <= self.max_lat and self.min_lon <= lon <= self.max_lon


# Approximate box around mainland India.
INDIA_BOUNDS: Final[RegionBounds] = RegionBounds(min_lat=6.0, max_lat=37.0, min_lon=68.0, max_lon=97.0)
