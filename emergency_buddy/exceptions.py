"""Custom exception classes for Emergency Buddy."""

from typing import Iterable


class EmergencyBuddyError(Exception):
    """Base exception for all Emergency Buddy errors."""

    pass


class InvalidConfigurationError(EmergencyBuddyError):
    """Raised when an escalation cannot start because of a bad configuration."""

    def __init__(self, message: str, fields: Iterable[str] = ()):
        super().__init__(message)
        self.fields = list(fields)


class AudioCaptureError(EmergencyBuddyError):
    """Raised when the audio device cannot be opened or stopped."""

    pass


class RecordingStorageError(EmergencyBuddyError):
    """Raised when a captured recording cannot be persisted."""

    pass


class ContactSourceError(EmergencyBuddyError):
    """Raised when the contact list cannot be read."""

    pass
