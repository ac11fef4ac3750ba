import math
from typing import Dict, Optional, Set

from sqlalchemy.orm import Session

from foodrescue.config import settings
from foodrescue.repositories.merchant_repo import MerchantRepository

EARTH_RADIUS_KM = 6371.0


def great_circle_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Spherical law of cosines distance in km, inputs in degrees:

        R * acos(cos(lat1) cos(lat2) cos(lon2 - lon1) + sin(lat1) sin(lat2))
    """
    if lat1 == lat2 and lon1 == lon2:
        # cos^2 + sin^2 is not always exactly 1.0 in floating point
        return 0.0
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dlon = math.radians(lon2) - math.radians(lon1)
    cos_angle = math.cos(phi1) * math.cos(phi2) * math.cos(dlon) + math.sin(phi1) * math.sin(phi2)
    # rounding can push nearby points just past 1.0
    cos_angle = min(1.0, max(-1.0, cos_angle))
    return EARTH_RADIUS_KM * math.acos(cos_angle)


class GeoIndex:
    """
    Proximity filter over merchant coordinates.

    A full scan is enough at marketplace sizes; inclusion is decided by the
    exact formula above with an inclusive boundary.
    """

    def __init__(self, db: Session):
        self.db = db
        self.merchants = MerchantRepository(db)

    def distances(self, lat: float, lon: float, radius_km: Optional[float] = None) -> Dict[int, float]:
        radius_km = settings.DEFAULT_RADIUS_KM if radius_km is None else float(radius_km)
        if radius_km < 0:
            raise ValueError("radius_km must be >= 0")
        found = {}
        for merchant_id, m_lat, m_lon in self.merchants.coordinates():
            d = great_circle_km(lat, lon, m_lat, m_lon)
            if d <= radius_km:
                found[merchant_id] = d
        return found

    def nearby(self, lat: float, lon: float, radius_km: Optional[float] = None) -> Set[int]:
        return set(self.distances(lat, lon, radius_km))
