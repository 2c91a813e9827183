"""
Display coordinates for map pins.

When a host hides the exact location, the pin is moved by a pseudo-random
offset of at most half of OFFSET_DEGREES on each axis. The offset is drawn
from a private random.Random seeded with the unit id, so a unit's pin stays
put across renders and no global RNG state is touched.
"""

from typing import Dict, Iterable, Optional
import hashlib
import random

OFFSET_DEGREES = 0.009  # ~1km


def _unit_rng(unit_id: str) -> random.Random:
    digest = hashlib.sha256(str(unit_id).encode('utf-8')).digest()
    return random.Random(int.from_bytes(digest[:8], 'big'))


def display_coordinates(
    latitude: Optional[float],
    longitude: Optional[float],
    show_exact_location: bool = True,
    unit_id: str = ''
) -> Optional[Dict]:
    if not isinstance(show_exact_location, bool):
        raise TypeError(f"show_exact_location must be a boolean, got {show_exact_location!r}")
    if latitude is None or longitude is None:
        return None

    if show_exact_location:
        return {'latitude': latitude, 'longitude': longitude, 'isApproximate': False}

    rng = _unit_rng(unit_id)
    return {
        'latitude': latitude + (rng.random() - 0.5) * OFFSET_DEGREES,
        'longitude': longitude + (rng.random() - 0.5) * OFFSET_DEGREES,
        'isApproximate': True,
    }


def map_bounds(points: Iterable[Dict]) -> Optional[Dict]:
    """
    South-west / north-east / center of the displayed pins.
    Each point: {id, latitude, longitude, show_exact_location}.
    """
    coords = []
    for point in points:
        coord = display_coordinates(
            point.get('latitude'),
            point.get('longitude'),
            point.get('show_exact_location', True),
            point.get('id', ''),
        )
        if coord is not None:
            coords.append(coord)

    if not coords:
        return None

    min_lat = min(c['latitude'] for c in coords)
    max_lat = max(c['latitude'] for c in coords)
    min_lng = min(c['longitude'] for c in coords)
    max_lng = max(c['longitude'] for c in coords)

    return {
        'southwest': {'latitude': min_lat, 'longitude': min_lng},
        'northeast': {'latitude': max_lat, 'longitude': max_lng},
        'center': {'latitude': (min_lat + max_lat) / 2, 'longitude': (min_lng + max_lng) / 2},
    }
