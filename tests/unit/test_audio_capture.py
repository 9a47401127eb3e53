"""Unit tests for the sounddevice audio connector."""

import io
import sys
import wave
from types import SimpleNamespace

import pytest

from emergency_buddy.connectors import audio_capture
from emergency_buddy.connectors.audio_capture import SoundDeviceAudioCapture
from emergency_buddy.exceptions import AudioCaptureError


class PortAudioError(Exception):
    pass


class FakeInputStream:
    """Stands in for ``sounddevice.RawInputStream``."""

    def __init__(self, start_error=None, stop_error=None, **kwargs):
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.start_error = start_error
        self.stop_error = stop_error
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self):
        if self.start_error:
            raise self.start_error
        self.started = True

    def stop(self):
        if self.stop_error:
            raise self.stop_error
        self.stopped = True

    def close(self):
        self.closed = True


def fake_sounddevice(open_error=None, start_error=None, stop_error=None):
    """Build a fake sounddevice module recording the streams it opens."""
    streams = []

    def raw_input_stream(**kwargs):
        if open_error:
            raise open_error
        stream = FakeInputStream(start_error=start_error, stop_error=stop_error, **kwargs)
        streams.append(stream)
        return stream

    return SimpleNamespace(
        PortAudioError=PortAudioError,
        RawInputStream=raw_input_stream,
        streams=streams,
    )


@pytest.fixture
def use_sounddevice(monkeypatch):
    def _install(module):
        monkeypatch.setattr(audio_capture, "_load_sounddevice", lambda: module)
        return module

    return _install


class TestSoundDeviceAudioCapture:
    """Test capture start, stop and device failures."""

    def test_capture_returns_wav(self, use_sounddevice):
        """Test captured frames come back as a WAV container."""
        sd = use_sounddevice(fake_sounddevice())
        capture = SoundDeviceAudioCapture(sample_rate=8000, channels=1)

        handle = capture.begin_audio_capture()
        stream = sd.streams[0]
        stream.callback(b"\x01\x00" * 80, 80, None, None)
        stream.callback(b"\x02\x00" * 80, 80, None, None)
        data = capture.stop_audio_capture(handle)

        assert stream.kwargs["dtype"] == "int16"
        assert stream.kwargs["samplerate"] == 8000
        assert stream.stopped and stream.closed
        with wave.open(io.BytesIO(data), "rb") as wav:
            assert wav.getframerate() == 8000
            assert wav.getnframes() == 160

    def test_status_flags_recorded(self, use_sounddevice):
        """Test input overflow warnings are kept on the handle."""
        sd = use_sounddevice(fake_sounddevice())
        capture = SoundDeviceAudioCapture(sample_rate=8000, channels=1)

        handle = capture.begin_audio_capture()
        sd.streams[0].callback(b"\x00\x00", 1, None, "input overflow")
        capture.stop_audio_capture(handle)

        assert handle.status_flags == ["input overflow"]

    def test_missing_backend(self, monkeypatch):
        """Test a missing PortAudio library raises AudioCaptureError."""
        monkeypatch.setitem(sys.modules, "sounddevice", None)
        capture = SoundDeviceAudioCapture(sample_rate=8000, channels=1)

        with pytest.raises(AudioCaptureError, match="Audio backend unavailable"):
            capture.begin_audio_capture()

    def test_missing_device(self, use_sounddevice):
        """Test an unopenable device raises AudioCaptureError."""
        use_sounddevice(fake_sounddevice(open_error=PortAudioError("Error querying device -1")))
        capture = SoundDeviceAudioCapture(sample_rate=8000, channels=1)

        with pytest.raises(AudioCaptureError, match="Could not open audio input"):
            capture.begin_audio_capture()

    def test_invalid_device_setting(self, use_sounddevice):
        """Test a bad device argument raises AudioCaptureError."""
        use_sounddevice(fake_sounddevice(open_error=ValueError("No input device matching 'usb'")))
        capture = SoundDeviceAudioCapture(sample_rate=8000, channels=1, device="usb")

        with pytest.raises(AudioCaptureError):
            capture.begin_audio_capture()

    def test_permission_denied_on_start_closes_stream(self, use_sounddevice):
        """Test a stream that fails to start is closed before the error is raised."""
        sd = use_sounddevice(fake_sounddevice(start_error=PortAudioError("Permission denied")))
        capture = SoundDeviceAudioCapture(sample_rate=8000, channels=1)

        with pytest.raises(AudioCaptureError):
            capture.begin_audio_capture()

        assert sd.streams[0].closed

    def test_stop_failure_still_closes_stream(self, use_sounddevice):
        """Test the stream is closed even when stopping it fails."""
        sd = use_sounddevice(fake_sounddevice(stop_error=PortAudioError("Stream is not active")))
        capture = SoundDeviceAudioCapture(sample_rate=8000, channels=1)

        handle = capture.begin_audio_capture()
        sd.streams[0].callback(b"\x01\x00" * 4, 4, None, None)
        data = capture.stop_audio_capture(handle)

        assert sd.streams[0].closed
        assert data.startswith(b"RIFF")
