from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt

from fieldtrack.models import Client

EARTH_RADIUS_KM = 6371.0
FAR_FROM_CLIENT_THRESHOLD_KM = 0.5


@dataclass(frozen=True)
class DistanceCheck:
    # None means the client site has no coordinates, so the distance is unknown.
    distance_km: float | None
    warning: str | None = None

    @property
    def is_far(self) -> bool:
        return self.warning is not None


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad = radians(lat1)
    lon1_rad = radians(lon1)
    lat2_rad = radians(lat2)
    lon2_rad = radians(lon2)

    delta_lat = lat2_rad - lat1_rad
    delta_lon = lon2_rad - lon1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    c = 2 * asin(min(1.0, sqrt(a)))
    return round(EARTH_RADIUS_KM * c, 2)


def evaluate_client_distance(client: Client, lat: float, lon: float) -> DistanceCheck:
    if client.latitude is None or client.longitude is None:
        return DistanceCheck(distance_km=None)

    value = distance_km(lat, lon, client.latitude, client.longitude)
    if value > FAR_FROM_CLIENT_THRESHOLD_KM:
        return DistanceCheck(
            distance_km=value,
            warning=f"You are far from the client location ({value} km).",
        )
    return DistanceCheck(distance_km=value)
