"""Pytest configuration and fixtures."""

from typing import List, Optional

import pytest

from emergency_buddy.escalation.engine import EscalationEngine
from emergency_buddy.escalation.scheduler import DeadlineScheduler, ManualClock
from emergency_buddy.exceptions import AudioCaptureError
from emergency_buddy.models.contact import Contact
from emergency_buddy.models.escalation import EscalationConfig, RecordingArtifact
from emergency_buddy.models.location import Location


class StaticContacts:
    """Contact source backed by a mutable in-memory list."""

    def __init__(self, contacts: Optional[List[Contact]] = None):
        self.contacts = list(contacts or [])

    def get_contacts(self) -> List[Contact]:
        return list(self.contacts)


class StaticConfig:
    def __init__(self, config: EscalationConfig):
        self.config = config

    def get_config(self) -> EscalationConfig:
        return self.config


class StaticLocation:
    def __init__(self, location: Optional[Location] = None):
        self.location = location

    def get_last_known_location(self) -> Optional[Location]:
        return self.location


class RecordingTelephony:
    """Telephony collaborator that records every call with the clock time."""

    def __init__(self, clock):
        self.clock = clock
        self.contact_calls = []
        self.emergency_calls = []
        self.fail_contacts = False

    def notify_contact(self, phone: str, message: str) -> None:
        self.contact_calls.append((self.clock(), phone, message))
        if self.fail_contacts:
            raise ConnectionError("telephony unreachable")

    def notify_emergency_services(self) -> None:
        self.emergency_calls.append(self.clock())

    @property
    def phones(self) -> List[str]:
        return [phone for _, phone, _ in self.contact_calls]


class FakeAudio:
    """Audio collaborator that can succeed or refuse to start."""

    def __init__(self, fail_on_start: bool = False, fail_on_stop: bool = False):
        self.fail_on_start = fail_on_start
        self.fail_on_stop = fail_on_stop
        self.started = 0
        self.stopped = 0
        self.open_handles = set()

    def begin_audio_capture(self):
        if self.fail_on_start:
            raise AudioCaptureError("Permission denied")
        self.started += 1
        handle = f"handle-{self.started}"
        self.open_handles.add(handle)
        return handle

    def stop_audio_capture(self, handle) -> bytes:
        self.open_handles.discard(handle)
        self.stopped += 1
        if self.fail_on_stop:
            raise AudioCaptureError("Device disappeared")
        return b"RIFF-fake-audio"

    @property
    def is_open(self) -> bool:
        return bool(self.open_handles)


class MemoryRecordingStore:
    def __init__(self):
        self.saved: List[RecordingArtifact] = []

    def save(self, artifact: RecordingArtifact, run_id: str) -> str:
        self.saved.append(artifact)
        return f"memory://{run_id}/{len(self.saved)}"


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return DeadlineScheduler(clock=clock)


@pytest.fixture
def escalation_config():
    """5s countdown, 15s per contact, 30s recording."""
    return EscalationConfig(
        cancel_window_seconds=5,
        contact_timeout_seconds=15,
        recording_duration_seconds=30,
    )


@pytest.fixture
def sample_contacts():
    return [
        Contact(id="a", name="Alice", phone="+15550000001", priority=2),
        Contact(id="b", name="Bob", phone="+15550000002", priority=1),
    ]


@pytest.fixture
def telephony(clock):
    return RecordingTelephony(clock)


@pytest.fixture
def audio():
    return FakeAudio()


@pytest.fixture
def recording_store():
    return MemoryRecordingStore()


@pytest.fixture
def make_engine(scheduler, telephony, audio, recording_store, escalation_config):
    """Build an engine wired to fakes; keyword arguments override defaults."""

    def _make(
        contacts=None,
        config=None,
        audio_capture=audio,
        location=None,
        store=recording_store,
    ):
        return EscalationEngine(
            contact_source=contacts if hasattr(contacts, "get_contacts") else StaticContacts(contacts),
            config_source=StaticConfig(config or escalation_config),
            telephony=telephony,
            audio=audio_capture,
            location_source=StaticLocation(location),
            recording_store=store,
            scheduler=scheduler,
        )

    return _make


@pytest.fixture
def transitions():
    """Collects (state, time) pairs from an engine listener."""

    class Recorder:
        def __init__(self):
            self.events = []

        def __call__(self, event):
            self.events.append(event)

        @property
        def states(self):
            return [event.current.value for event in self.events]

        def time_of(self, state):
            return next(event.at for event in self.events if event.current.value == state)

    return Recorder()
