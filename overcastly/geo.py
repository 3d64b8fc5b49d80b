"""
Proximity search and map pins.

Distances are planar: latitude and longitude are treated as plain x/y
coordinates, so ``distance`` is in degrees and is not a geodesic length.
Every query scans all posts; there is no spatial index.
"""
import math
from numbers import Real
from typing import Dict, Iterable, List

from .errors import ValidationError


def _is_coordinate(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def has_coordinates(post: Dict) -> bool:
    return _is_coordinate(post.get('latitude')) and _is_coordinate(post.get('longitude'))


def planar_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return math.sqrt((lat1 - lat2) ** 2 + (lon1 - lon2) ** 2)


def validate_query(latitude, longitude, distance) -> None:
    if latitude is None or longitude is None or distance is None:
        raise ValidationError('latitude, longitude and distance are required')
    if not (_is_coordinate(latitude) and _is_coordinate(longitude)):
        raise ValidationError('latitude and longitude must be finite numbers')
    if not _is_coordinate(distance):
        raise ValidationError('distance must be a finite number')
    if distance < 0:
        raise ValidationError('distance must not be negative')


def filter_nearby(posts: Iterable[Dict], latitude: float, longitude: float, distance: float) -> List[Dict]:
    """Posts with both coordinates within ``distance`` of the query point, input order kept"""
    validate_query(latitude, longitude, distance)
    return [
        post for post in posts
        if has_coordinates(post)
        and planar_distance(post['latitude'], post['longitude'], latitude, longitude) <= distance
    ]


def to_feature(post: Dict) -> Dict:
    # GeoJSON positions are [longitude, latitude]
    return {
        'type': 'Feature',
        'geometry': {
            'type': 'Point',
            'coordinates': [post['longitude'], post['latitude']],
        },
        'properties': {
            'id': str(post['_id']),
            'title': post.get('title'),
            'body': post.get('body'),
            'author': post.get('authorId'),
        },
    }


def to_feature_collection(posts: Iterable[Dict]) -> Dict:
    return {
        'type': 'FeatureCollection',
        'features': [to_feature(post) for post in posts if has_coordinates(post)],
    }
