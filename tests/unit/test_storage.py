"""Unit tests for recording storage and WAV encoding."""

import io
import os
import wave

import pytest

from emergency_buddy.connectors.audio_capture import encode_wav
from emergency_buddy.exceptions import RecordingStorageError
from emergency_buddy.models.escalation import RecordingArtifact
from emergency_buddy.storage.recordings import LocalRecordingStore


class TestLocalRecordingStore:
    """Test writing recordings to disk."""

    def test_save_writes_file_and_latest(self, tmp_path):
        """Test saving writes the run file and the latest copy."""
        store = LocalRecordingStore(str(tmp_path / "recordings"))
        artifact = RecordingArtifact(data=b"RIFFdata", duration_seconds=30)

        path = store.save(artifact, "abc123")

        assert os.path.basename(path).startswith("emergency-abc123-")
        assert path.endswith(".wav")
        with open(path, "rb") as f:
            assert f.read() == b"RIFFdata"
        assert store.get_latest() == b"RIFFdata"

    def test_partial_suffix(self, tmp_path):
        """Test partial recordings are marked in the file name."""
        store = LocalRecordingStore(str(tmp_path))
        path = store.save(RecordingArtifact(data=b"x", duration_seconds=3, partial=True), "r")
        assert path.endswith("-partial.wav")

    def test_no_latest_yet(self, tmp_path):
        """Test no latest recording before the first save."""
        assert LocalRecordingStore(str(tmp_path)).get_latest() is None

    def test_write_failure(self, tmp_path):
        """Test write errors raise RecordingStorageError."""
        store = LocalRecordingStore(str(tmp_path))
        store.data_dir = str(tmp_path / "removed" / "nested")

        with pytest.raises(RecordingStorageError):
            store.save(RecordingArtifact(data=b"x", duration_seconds=1), "r")


class TestEncodeWav:
    """Test the WAV container."""

    def test_header_matches_parameters(self):
        """Test the WAV header matches the capture settings."""
        pcm = b"\x00\x01" * 1600
        data = encode_wav(pcm, sample_rate=16000, channels=1)

        with wave.open(io.BytesIO(data), "rb") as wav:
            assert wav.getnchannels() == 1
            assert wav.getsampwidth() == 2
            assert wav.getframerate() == 16000
            assert wav.getnframes() == 1600
