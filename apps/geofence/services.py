"""Service-area validation for booking site addresses."""

from __future__ import annotations

import logging

from django.conf import settings  # type: ignore

from .geocoding import GeocodingError, geocode_address
from .service_area import SERVICE_AREA_CENTROID, is_inside_service_area

logger = logging.getLogger(__name__)

MISSING_ADDRESS_MESSAGE = "Please enter the site address so we can validate the service area."
LOOKUP_UNAVAILABLE_MESSAGE = "Address lookup is temporarily unavailable. Please try again or contact us."
NOT_FOUND_MESSAGE = "We could not locate this address in Portugal. Please check the spelling."
OUTSIDE_AREA_MESSAGE = (
    "We're sorry. Your location is outside our current service area. "
    "Please contact us for options."
)


def check_service_area(
    *,
    delivery_selected: bool,
    pickup_selected: bool,
    site_address: str | None,
    enabled: bool | None = None,
) -> str | None:
    """
    Return None when the address is serviceable, or a message for the customer.

    Skipped entirely when the geofence is disabled or the customer collects
    and returns the machine themselves.
    """
    if enabled is None:
        enabled = settings.ENABLE_GEOFENCE
    if not enabled:
        return None
    if not delivery_selected and not pickup_selected:
        return None
    if not site_address or not site_address.strip():
        return MISSING_ADDRESS_MESSAGE

    try:
        hit = geocode_address(
            site_address,
            country="pt",
            language="pt",
            proximity=SERVICE_AREA_CENTROID,
            limit=1,
        )
    except GeocodingError as e:
        logger.error(f"geo:geocode_error {e}")
        return LOOKUP_UNAVAILABLE_MESSAGE

    if hit is None:
        return NOT_FOUND_MESSAGE

    if not is_inside_service_area(hit.lat, hit.lng):
        logger.info(f"geo:outside lat={hit.lat} lng={hit.lng} place={hit.place_name}")
        return OUTSIDE_AREA_MESSAGE
    return None
