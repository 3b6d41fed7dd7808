"""Great-circle distance helpers."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from services.geocoding.base import Coordinates

EARTH_RADIUS_MILES = 3959.0
EARTH_RADIUS_KM = 6371.0
MILES_TO_KM = 1.60934
KM_TO_MILES = 0.621371

COMPASS_DIRECTIONS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


class DistanceUnit(str, Enum):
    """Unit for distances."""

    MILES = "miles"
    KILOMETERS = "kilometers"

    @property
    def label(self) -> str:
        """Short label used when formatting."""
        return "miles" if self is DistanceUnit.MILES else "km"


@dataclass(frozen=True, slots=True)
class DistanceMatch:
    """A candidate point with its distance from a reference point."""

    coordinates: Coordinates
    distance: float


def calculate_distance(
    origin: Coordinates,
    destination: Coordinates,
    unit: DistanceUnit = DistanceUnit.MILES,
) -> float:
    """
    Haversine distance between two points, rounded to two decimals.

    Example:
        >>> from services.geocoding.base import Coordinates
        >>> calculate_distance(Coordinates(40.7128, -74.0060), Coordinates(40.7128, -74.0060))
        0.0
    """
    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(destination.latitude)
    delta_lat = lat2 - lat1
    delta_lon = math.radians(destination.longitude - origin.longitude)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    radius = EARTH_RADIUS_MILES if unit is DistanceUnit.MILES else EARTH_RADIUS_KM
    return round(radius * c, 2)


def calculate_distances(
    origin: Coordinates,
    destinations: Iterable[Coordinates],
    unit: DistanceUnit = DistanceUnit.MILES,
) -> list[float]:
    """Distances from ``origin`` to each destination, in the same order."""
    return [calculate_distance(origin, destination, unit) for destination in destinations]


def find_closest(
    origin: Coordinates,
    candidates: Iterable[Coordinates],
    unit: DistanceUnit = DistanceUnit.MILES,
) -> DistanceMatch | None:
    """Return the candidate nearest to ``origin``, or None if there are none."""
    closest: DistanceMatch | None = None
    for candidate in candidates:
        distance = calculate_distance(origin, candidate, unit)
        if closest is None or distance < closest.distance:
            closest = DistanceMatch(coordinates=candidate, distance=distance)
    return closest


def filter_within_radius(
    center: Coordinates,
    candidates: Iterable[Coordinates],
    radius: float,
    unit: DistanceUnit = DistanceUnit.MILES,
) -> list[DistanceMatch]:
    """
    Keep the candidates within ``radius`` of ``center``, closest first.

    Raises:
        ValueError: If radius is not positive.
    """
    if radius <= 0:
        msg = "radius must be greater than 0"
        raise ValueError(msg)

    matches = [
        DistanceMatch(coordinates=candidate, distance=calculate_distance(center, candidate, unit))
        for candidate in candidates
    ]
    return sorted(
        (match for match in matches if match.distance <= radius),
        key=lambda match: match.distance,
    )


def miles_to_kilometers(miles: float) -> float:
    """Convert miles to kilometres, rounded to two decimals."""
    if miles < 0:
        msg = "distance cannot be negative"
        raise ValueError(msg)
    return round(miles * MILES_TO_KM, 2)


def kilometers_to_miles(kilometers: float) -> float:
    """Convert kilometres to miles, rounded to two decimals."""
    if kilometers < 0:
        msg = "distance cannot be negative"
        raise ValueError(msg)
    return round(kilometers * KM_TO_MILES, 2)


def format_distance(distance: float, unit: DistanceUnit = DistanceUnit.MILES) -> str:
    """
    Human-readable distance.

    Example:
        >>> format_distance(3.456)
        '3.5 miles'
        >>> format_distance(0.05, DistanceUnit.KILOMETERS)
        '< 0.1 km'
    """
    if distance < 0:
        return "Invalid distance"
    if distance == 0:
        return f"0 {unit.label}"
    if distance < 0.1:
        return f"< 0.1 {unit.label}"
    return f"{distance:.1f} {unit.label}"


def calculate_bearing(origin: Coordinates, destination: Coordinates) -> float:
    """Initial bearing from ``origin`` to ``destination`` in degrees [0, 360)."""
    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(destination.latitude)
    delta_lon = math.radians(destination.longitude - origin.longitude)

    y = math.sin(delta_lon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(delta_lon)
    return (math.degrees(math.atan2(y, x)) + 360) % 360


def compass_direction(bearing: float) -> str:
    """Eight-point compass direction for a bearing in degrees."""
    return COMPASS_DIRECTIONS[round(bearing / 45) % 8]
