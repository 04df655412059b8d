"""Great-circle distance helpers and the in-memory radius index."""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Tuple

from nudge.domain.proximity.models import Position

EARTH_RADIUS_M = 6_371_000


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the great-circle distance between two points in meters."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_m(a: Position, b: Position) -> float:
    return haversine(a.latitude, a.longitude, b.latitude, b.longitude)


class GeoIndex:
    """Brute-force spatial index over the currently present actors."""

    def __init__(self) -> None:
        self._positions: Dict[str, Position] = {}

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, actor_id: object) -> bool:
        return actor_id in self._positions

    def insert(self, actor_id: str, position: Position) -> None:
        self._positions[actor_id] = position

    def update(self, actor_id: str, position: Position) -> None:
        self._positions[actor_id] = position

    def remove(self, actor_id: str) -> None:
        self._positions.pop(actor_id, None)

    def position_of(self, actor_id: str) -> Optional[Position]:
        return self._positions.get(actor_id)

    def query_within_radius(self, center: Position, radius_m: float) -> List[Tuple[str, float]]:
        """Return ``(actor_id, distance_m)`` pairs within ``radius_m`` of ``center``.

        Ordered by ascending distance, ties broken by actor id.
        """
        hits: List[Tuple[str, float]] = []
        for actor_id, position in self._positions.items():
            dist = distance_m(center, position)
            if dist <= radius_m:
                hits.append((actor_id, dist))
        hits.sort(key=lambda item: (item[1], item[0]))
        return hits


__all__ = ["EARTH_RADIUS_M", "GeoIndex", "distance_m", "haversine"]
