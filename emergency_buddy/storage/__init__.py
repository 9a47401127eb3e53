"""Local storage for Emergency Buddy artifacts."""

from .recordings import LocalRecordingStore

__all__ = ["LocalRecordingStore"]
