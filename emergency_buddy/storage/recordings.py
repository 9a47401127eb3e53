"""Filesystem storage for emergency recordings."""

import os
from datetime import datetime, timezone
from typing import Optional

from emergency_buddy.config import settings
from emergency_buddy.exceptions import RecordingStorageError
from emergency_buddy.models.escalation import RecordingArtifact
from emergency_buddy.utils.logging import get_logger

logger = get_logger(__name__)

LATEST_RECORDING_NAME = "latest.wav"


class LocalRecordingStore:
    """Writes each recording to its own WAV file.

    The most recent recording is also copied to ``latest.wav`` so it can be
    found without knowing the run id.
    """

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = data_dir or settings.RECORDINGS_DIR
        os.makedirs(self.data_dir, exist_ok=True)
        self.latest_file = os.path.join(self.data_dir, LATEST_RECORDING_NAME)

    def save(self, artifact: RecordingArtifact, run_id: str) -> str:
        """Persist the artifact and return its path.

        Raises:
            RecordingStorageError: If the file cannot be written.
        """
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        suffix = "-partial" if artifact.partial else ""
        path = os.path.join(self.data_dir, f"emergency-{run_id}-{timestamp}{suffix}.wav")

        try:
            with open(path, 'wb') as f:
                f.write(artifact.data)
            with open(self.latest_file, 'wb') as f:
                f.write(artifact.data)
        except OSError as e:
            raise RecordingStorageError(f"Could not write recording to {path}: {e}") from e

        logger.info(
            "Recording saved locally",
            run_id=run_id,
            path=path,
            size_bytes=len(artifact.data),
            partial=artifact.partial
        )
        return path

    def get_latest(self) -> Optional[bytes]:
        """Return the most recently saved recording, if any."""
        if not os.path.exists(self.latest_file):
            return None
        with open(self.latest_file, 'rb') as f:
            return f.read()
