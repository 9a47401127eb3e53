"""Collaborator protocols consumed by the escalation engine."""

from typing import Any, Callable, List, Optional, Protocol

from emergency_buddy.models.contact import Contact
from emergency_buddy.models.escalation import EscalationConfig, RecordingArtifact
from emergency_buddy.models.location import Location


class ContactSource(Protocol):
    """Storage collaborator; the engine sorts what it returns."""

    def get_contacts(self) -> List[Contact]:
        ...


class ConfigSource(Protocol):
    """Settings collaborator."""

    def get_config(self) -> EscalationConfig:
        ...


class LocationSource(Protocol):
    """Location collaborator."""

    def get_last_known_location(self) -> Optional[Location]:
        ...


class AudioCapture(Protocol):
    """Platform audio collaborator.

    ``begin_audio_capture`` raises ``AudioCaptureError`` when the device is
    unavailable or permission is denied.
    """

    def begin_audio_capture(self) -> Any:
        ...

    def stop_audio_capture(self, handle: Any) -> bytes:
        ...


class RecordingStore(Protocol):
    """Storage collaborator for captured audio; returns a reference."""

    def save(self, artifact: RecordingArtifact, run_id: str) -> str:
        ...


class Telephony(Protocol):
    """Fire-and-forget telephony collaborator."""

    def notify_contact(self, phone: str, message: str) -> None:
        ...

    def notify_emergency_services(self) -> None:
        ...


Clock = Callable[[], float]
