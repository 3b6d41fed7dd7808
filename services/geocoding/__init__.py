"""Geocoding, geolocation and distance helpers package."""

from services.geocoding.base import (
    Coordinates,
    GeocodingClient,
    GeocodingError,
    LocationInfo,
    LocationSuggestion,
)
from services.geocoding.nominatim import NominatimGeocoder

__all__ = [
    "Coordinates",
    "GeocodingClient",
    "GeocodingError",
    "LocationInfo",
    "LocationSuggestion",
    "NominatimGeocoder",
]
