import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

EARTH_RADIUS_M = 6371000
DEFAULT_RADIUS_M = 100


@dataclass(frozen=True)
class GeofencingPolicy:
    enabled: bool = False
    default_radius_m: int = DEFAULT_RADIUS_M

    @classmethod
    def from_setting(cls, value: Optional[dict], default_radius_m: int = DEFAULT_RADIUS_M) -> "GeofencingPolicy":
        """Build from the stored {'enabled': bool, 'default_radius': int} shape."""
        value = value or {}
        radius = value.get("default_radius") or default_radius_m
        return cls(enabled=bool(value.get("enabled", False)), default_radius_m=int(radius))


class GeofenceService:
    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Haversine great-circle distance in meters; inf when a coordinate is missing."""
        if None in (lat1, lon1, lat2, lon2):
            return float("inf")
        # Numeric columns may hand us Decimal
        phi1, lam1, phi2, lam2 = (math.radians(float(v)) for v in (lat1, lon1, lat2, lon2))
        h = (
            math.sin((phi2 - phi1) / 2) ** 2
            + math.cos(phi1) * math.cos(phi2) * math.sin((lam2 - lam1) / 2) ** 2
        )
        return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(h, 1.0)))

    @staticmethod
    def check_geofence(user_lat: float, user_lon: float, site_lat: float, site_lon: float, radius_m: int) -> Tuple[bool, float]:
        """(is_inside, distance_m); a point exactly on the radius is inside."""
        dist = GeofenceService.calculate_distance(user_lat, user_lon, site_lat, site_lon)
        return dist <= radius_m, dist

    @staticmethod
    def locate(lat: float, lng: float, locations: Iterable, default_radius_m: int = DEFAULT_RADIUS_M):
        """
        First active location whose radius contains the point, or None.
        Locations without coordinates are skipped. When radii overlap the
        winner is whichever comes first in `locations`.
        """
        if lat is None or lng is None:
            return None
        for loc in locations:
            if not getattr(loc, "is_active", True):
                continue
            if loc.latitude is None or loc.longitude is None:
                continue
            radius = loc.radius_meters or default_radius_m
            inside, _ = GeofenceService.check_geofence(lat, lng, loc.latitude, loc.longitude, radius)
            if inside:
                return loc
        return None
