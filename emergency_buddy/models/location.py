"""Location snapshot and last-known location holder."""

from dataclasses import dataclass
from typing import Dict, Optional


MAP_LINK_TEMPLATE = "https://maps.google.com/?q={lat},{lng}"


@dataclass(frozen=True)
class Location:
    """A latitude/longitude pair."""

    lat: float
    lng: float

    def __post_init__(self):
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lng}")

    @property
    def map_link(self) -> str:
        return MAP_LINK_TEMPLATE.format(lat=self.lat, lng=self.lng)

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


class LocationTracker:
    """Holds the most recent position reported by the device."""

    def __init__(self, initial: Optional[Location] = None):
        self._last_known = initial

    def update(self, lat: float, lng: float) -> Location:
        self._last_known = Location(lat=lat, lng=lng)
        return self._last_known

    def clear(self) -> None:
        self._last_known = None

    def get_last_known_location(self) -> Optional[Location]:
        return self._last_known
