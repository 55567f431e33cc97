"""
Mapbox geocoding client (Places API v5).

Turns a free-form address into a WGS84 point. Results are biased towards
Portugal and the service area.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote

import requests
from django.conf import settings  # type: ignore

logger = logging.getLogger(__name__)

MAPBOX_PLACES_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"
GEOCODE_TIMEOUT = 10


class GeocodingError(Exception):
    """The geocoder could not be queried."""


@dataclass(frozen=True)
class GeocodeHit:
    lat: float
    lng: float
    place_name: str


def geocode_address(
    query: str,
    *,
    country: str | None = "pt",
    language: str | None = "pt",
    proximity: dict | None = None,
    limit: int = 1,
) -> GeocodeHit | None:
    """
    Resolve an address to its best match.

    Returns None when nothing matches. Raises GeocodingError when the token
    is missing or the HTTP call fails.
    """
    token = settings.MAPBOX_ACCESS_TOKEN
    if not token:
        raise GeocodingError("Missing MAPBOX_ACCESS_TOKEN")

    params = {
        "access_token": token,
        "autocomplete": "false",
        "limit": str(limit),
    }
    if language:
        params["language"] = language
    if country:
        params["country"] = country
    if proximity:
        params["proximity"] = f"{proximity['lng']},{proximity['lat']}"

    url = f"{MAPBOX_PLACES_URL}/{quote(query, safe='')}.json"
    try:
        response = requests.get(url, params=params, timeout=GEOCODE_TIMEOUT)
        response.raise_for_status()
        payload = response.json()
    except (requests.exceptions.RequestException, ValueError) as e:
        raise GeocodingError(f"Mapbox geocoding failed: {e}") from e

    features = payload.get("features") or []
    if not features:
        return None

    center = features[0].get("center") or []
    if len(center) != 2:
        return None
    lng, lat = center
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    return GeocodeHit(lat=float(lat), lng=float(lng), place_name=str(features[0].get("place_name") or query))
