"""Location types and the geocoding collaborator protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class Coordinates:
    """
    A latitude/longitude pair in decimal degrees.

    Attributes:
        latitude: Latitude in [-90, 90].
        longitude: Longitude in [-180, 180].
    """

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        """Validate coordinate ranges."""
        if self.latitude != self.latitude or self.longitude != self.longitude:
            msg = "coordinates cannot be NaN"
            raise ValueError(msg)
        if not -90 <= self.latitude <= 90:
            msg = "latitude must be between -90 and 90 degrees"
            raise ValueError(msg)
        if not -180 <= self.longitude <= 180:
            msg = "longitude must be between -180 and 180 degrees"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class LocationInfo:
    """
    Human-readable description of a place.

    Attributes:
        city: City, town or village name.
        country: Country name.
        formatted_address: Full display address.
        state: State, region or province (optional).
    """

    city: str
    country: str
    formatted_address: str
    state: str | None = None

    @classmethod
    def from_coordinates(cls, coordinates: Coordinates) -> LocationInfo:
        """Build a placeholder location for coordinates without a known address."""
        return cls(
            city="Unknown",
            country="Unknown",
            formatted_address=f"{coordinates.latitude}, {coordinates.longitude}",
        )


@dataclass(frozen=True, slots=True)
class LocationSuggestion:
    """An autocomplete candidate returned by the geocoder."""

    display_name: str
    coordinates: Coordinates
    details: LocationInfo


class GeocodingError(Exception):
    """Raised when a location cannot be geocoded."""

    def __init__(self, message: str, details: str | None = None) -> None:
        """Initialize error."""
        super().__init__(message)
        self.message = message
        self.details = details


@runtime_checkable
class GeocodingClient(Protocol):
    """
    Protocol for the geocoding collaborator.

    Implementations own their request throttling and result caching.
    """

    async def geocode_location(self, address: str) -> Coordinates:
        """
        Resolve an address to coordinates.

        Raises:
            GeocodingError: If the address cannot be resolved.
        """
        ...

    async def reverse_geocode(self, coordinates: Coordinates) -> LocationInfo:
        """
        Resolve coordinates to a location description.

        Raises:
            GeocodingError: If no address is known for the coordinates.
        """
        ...

    async def get_suggestions(self, query: str, limit: int = 5) -> list[LocationSuggestion]:
        """Return autocomplete suggestions for a partial location."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
