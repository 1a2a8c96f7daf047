import math

from neighborcare.config import Settings
from neighborcare.models.domain import Coordinate
from neighborcare.services.core import DispatchCore, build_core
from neighborcare.services.geospatial import EARTH_RADIUS_M

ORIGIN = Coordinate(12.9716, 77.5946)


def north_of(origin: Coordinate, meters: float) -> Coordinate:
    """A point ``meters`` due north of ``origin`` along the meridian."""
    return Coordinate(origin.latitude + math.degrees(meters / EARTH_RADIUS_M), origin.longitude)


class DummyRouting:
    def __init__(self, duration_seconds: float = 90.0):
        self.calls = []
        self.duration_seconds = duration_seconds

    def route(self, start_lng, start_lat, end_lng, end_lat):
        self.calls.append((start_lng, start_lat, end_lng, end_lat))
        mid = [(start_lng + end_lng) / 2, start_lat]
        return {
            "coordinates": [[start_lng, start_lat], mid, [end_lng, end_lat]],
            "distance_meters": 120.0,
            "duration_seconds": self.duration_seconds,
        }


class UnreachableRouting:
    def route(self, start_lng, start_lat, end_lng, end_lat):
        raise ConnectionError("Failed to connect to OSRM service")


def make_core(routing=None, **overrides) -> DispatchCore:
    config = Settings(osrm_base_url=None, storage_backend="memory", **overrides)
    return build_core(config, routing=routing)
