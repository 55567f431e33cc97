"""Point-in-polygon tests for GeoJSON-style coordinates ([lng, lat]).

A point lying on any boundary segment, outer ring or hole, counts as
inside. Rings may be given open or closed.
"""

from __future__ import annotations

from typing import Sequence

EPS = 1e-9

LngLat = Sequence[float]
Ring = Sequence[LngLat]
Polygon = Sequence[Ring]
MultiPolygon = Sequence[Polygon]


def point_on_segment(lng: float, lat: float, a: LngLat, b: LngLat) -> bool:
    ax, ay = a[0], a[1]
    bx, by = b[0], b[1]
    cross = (bx - ax) * (lat - ay) - (by - ay) * (lng - ax)
    if abs(cross) > EPS:
        return False
    dot = (lng - ax) * (lng - bx) + (lat - ay) * (lat - by)
    return dot <= EPS


def point_on_ring_edge(lng: float, lat: float, ring: Ring) -> bool:
    n = len(ring)
    return any(point_on_segment(lng, lat, ring[i - 1], ring[i]) for i in range(n))


def point_in_ring(lng: float, lat: float, ring: Ring) -> bool:
    """Ray casting towards +lng; edges and vertices are inside."""
    n = len(ring)
    if n == 0:
        return False

    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if point_on_segment(lng, lat, ring[j], ring[i]):
            return True
        if (yi > lat) != (yj > lat) and lng < (xj - xi) * (lat - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def point_in_polygon(lng: float, lat: float, polygon: Polygon) -> bool:
    if not polygon:
        return False
    outer, holes = polygon[0], polygon[1:]
    if not point_in_ring(lng, lat, outer):
        return False
    for hole in holes:
        if point_on_ring_edge(lng, lat, hole):
            continue
        if point_in_ring(lng, lat, hole):
            return False
    return True


def point_in_multipolygon(lng: float, lat: float, multipolygon: MultiPolygon) -> bool:
    return any(point_in_polygon(lng, lat, polygon) for polygon in multipolygon)
