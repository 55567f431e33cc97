"""Fixed service area: the Algarve up to Faro plus the Alentejo coastal strip.

The Algarve east edge sits at -7.90 so Faro is in while Olhão and Tavira
are out. The Alentejo box stops at 38.10 north, below Setúbal.
"""

from __future__ import annotations

from .polygon import point_in_multipolygon

SERVICE_AREA_NAME = "Algarve up to Faro + Alentejo Litoral"

# GeoJSON MultiPolygon coordinates, [lng, lat]
SERVICE_AREA = (
    # Algarve: lng [-8.999, -7.90], lat [36.85, 37.50]
    (
        (
            (-8.999, 36.85),
            (-7.9, 36.85),
            (-7.9, 37.5),
            (-8.999, 37.5),
            (-8.999, 36.85),
        ),
    ),
    # Alentejo Litoral: lng [-9.35, -8.10], lat [37.50, 38.10]
    (
        (
            (-9.35, 37.5),
            (-8.1, 37.5),
            (-8.1, 38.1),
            (-9.35, 38.1),
            (-9.35, 37.5),
        ),
    ),
)

# Geocoding proximity hint
SERVICE_AREA_CENTROID = {"lat": 37.75, "lng": -8.4}


def is_inside_service_area(lat: float, lng: float) -> bool:
    return point_in_multipolygon(lng, lat, SERVICE_AREA)
