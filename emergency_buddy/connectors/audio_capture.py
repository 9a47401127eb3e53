"""Microphone capture through sounddevice."""

import io
import threading
import wave
from typing import List, Optional

from emergency_buddy.config import settings
from emergency_buddy.exceptions import AudioCaptureError
from emergency_buddy.utils.logging import get_logger

logger = get_logger(__name__)

SAMPLE_WIDTH_BYTES = 2  # int16


def _load_sounddevice():
    # PortAudio is loaded at import time; a missing library means no device.
    try:
        import sounddevice
    except (ImportError, OSError) as e:
        raise AudioCaptureError(f"Audio backend unavailable: {e}") from e
    return sounddevice


class CaptureHandle:
    """An open input stream and the frames captured so far."""

    def __init__(self, sample_rate: int, channels: int):
        self.stream = None
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames: List[bytes] = []
        self.status_flags: List[str] = []
        self._lock = threading.Lock()

    def append(self, data: bytes) -> None:
        with self._lock:
            self.frames.append(data)

    def audio_bytes(self) -> bytes:
        with self._lock:
            return b"".join(self.frames)


class SoundDeviceAudioCapture:
    """Platform audio collaborator recording 16-bit PCM to WAV."""

    def __init__(
        self,
        sample_rate: Optional[int] = None,
        channels: Optional[int] = None,
        device: Optional[str] = None
    ):
        self.sample_rate = sample_rate or settings.AUDIO_SAMPLE_RATE
        self.channels = channels or settings.AUDIO_CHANNELS
        self.device = device

    def begin_audio_capture(self) -> CaptureHandle:
        """Open the microphone and start buffering frames.

        Raises:
            AudioCaptureError: If the backend, device or permission is missing.
        """
        sd = _load_sounddevice()
        handle = CaptureHandle(self.sample_rate, self.channels)

        def audio_callback(indata, frame_count, time_info, status):
            if status:
                # non-fatal audio warnings
                handle.status_flags.append(str(status))
            handle.append(bytes(indata))

        try:
            handle.stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype='int16',
                device=self.device,
                callback=audio_callback
            )
            handle.stream.start()
        except (sd.PortAudioError, ValueError) as e:
            if handle.stream is not None:
                handle.stream.close()
            raise AudioCaptureError(f"Could not open audio input: {e}") from e

        logger.info(
            "Microphone opened",
            sample_rate=self.sample_rate,
            channels=self.channels,
            device=self.device
        )
        return handle

    def stop_audio_capture(self, handle: CaptureHandle) -> bytes:
        """Close the stream and return the capture as WAV bytes."""
        sd = _load_sounddevice()
        try:
            handle.stream.stop()
        except sd.PortAudioError as e:
            logger.warning("Error stopping audio stream", error=str(e))
        finally:
            handle.stream.close()

        if handle.status_flags:
            logger.warning(
                "Audio input reported problems during capture",
                events=len(handle.status_flags)
            )

        return encode_wav(handle.audio_bytes(), handle.sample_rate, handle.channels)


def encode_wav(pcm: bytes, sample_rate: int, channels: int) -> bytes:
    """Wrap raw int16 PCM frames in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(SAMPLE_WIDTH_BYTES)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buffer.getvalue()
