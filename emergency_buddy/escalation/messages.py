"""Alert message composition."""

from typing import Optional

from emergency_buddy.models.location import Location

ALERT_HEADLINE = "EMERGENCY ALERT: This person needs immediate help!"
LOCATION_UNAVAILABLE = "Location unavailable"


def compose_alert_message(location: Optional[Location]) -> str:
    """Build the text sent to each contact."""
    location_text = location.map_link if location else LOCATION_UNAVAILABLE
    return f"{ALERT_HEADLINE} Location: {location_text}"

# Fixed fallback destination; deliberately not configurable.
EMERGENCY_SERVICES_NUMBER = "112"
