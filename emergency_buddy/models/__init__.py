"""Domain models for Emergency Buddy."""

from .contact import Contact
from .location import Location, LocationTracker
from .escalation import (
    EscalationConfig,
    EscalationRun,
    EscalationState,
    Notice,
    NoticeLevel,
    RecordingArtifact,
    TransitionEvent,
)

__all__ = [
    "Contact",
    "Location",
    "LocationTracker",
    "EscalationConfig",
    "EscalationRun",
    "EscalationState",
    "Notice",
    "NoticeLevel",
    "RecordingArtifact",
    "TransitionEvent",
]
