"""Escalation models for tracking a live emergency run."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from emergency_buddy.exceptions import InvalidConfigurationError
from emergency_buddy.models.contact import Contact
from emergency_buddy.models.location import Location


class EscalationState(str, Enum):
    """Escalation state enumeration."""

    IDLE = "idle"
    COUNTDOWN = "countdown"
    RECORDING = "recording"
    ALERTING = "alerting"
    CANCELLED = "cancelled"
    FALLBACK_DIALING = "fallback_dialing"

    @property
    def is_terminal(self) -> bool:
        return self in (EscalationState.CANCELLED, EscalationState.FALLBACK_DIALING)


class NoticeLevel(str, Enum):
    """Advisory notice severity."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class EscalationConfig:
    """Resolved escalation durations, in whole seconds."""

    cancel_window_seconds: int
    contact_timeout_seconds: int
    recording_duration_seconds: int
    keep_partial_recording: bool = True

    def validate(self) -> None:
        """Check every duration is a positive integer.

        Raises:
            InvalidConfigurationError: Listing each offending field.
        """
        invalid = []
        for name in (
            "cancel_window_seconds",
            "contact_timeout_seconds",
            "recording_duration_seconds",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                invalid.append(name)

        if invalid:
            raise InvalidConfigurationError(
                "Escalation durations must be positive integers: " + ", ".join(invalid),
                fields=invalid,
            )


@dataclass(frozen=True)
class Notice:
    """Advisory message for the presentation layer."""

    level: NoticeLevel
    title: str
    description: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "title": self.title,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class RecordingArtifact:
    """Audio captured during the recording phase."""

    data: bytes
    duration_seconds: float
    content_type: str = "audio/wav"
    partial: bool = False
    reference: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_type": self.content_type,
            "duration_seconds": round(self.duration_seconds, 3),
            "size_bytes": len(self.data),
            "partial": self.partial,
            "reference": self.reference,
        }


@dataclass(frozen=True)
class TransitionEvent:
    """A single state change of the engine."""

    run_id: str
    previous: EscalationState
    current: EscalationState
    at: float
    contact: Optional[Contact] = None


@dataclass
class EscalationRun:
    """The live escalation instance.

    ``contact_queue`` and ``config`` are snapshots taken at trigger time and
    are never re-read while the run is active.
    """

    config: EscalationConfig
    contact_queue: Tuple[Contact, ...]
    location: Optional[Location] = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: EscalationState = EscalationState.IDLE
    current_contact_index: int = 0
    phase_deadline: Optional[float] = None
    recording_artifact: Optional[RecordingArtifact] = None
    notified_contacts: List[Contact] = field(default_factory=list)
    notices: List[Notice] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    def __repr__(self) -> str:
        return f"<EscalationRun(id={self.run_id}, state='{self.state.value}')>"

    @property
    def current_contact(self) -> Optional[Contact]:
        if self.current_contact_index < len(self.contact_queue):
            return self.contact_queue[self.current_contact_index]
        return None

    @property
    def next_contact(self) -> Optional[Contact]:
        index = self.current_contact_index + 1
        if index < len(self.contact_queue):
            return self.contact_queue[index]
        return None

    @property
    def contacts_exhausted(self) -> bool:
        return self.current_contact_index >= len(self.contact_queue)

    @property
    def is_finished(self) -> bool:
        return self.state.is_terminal
