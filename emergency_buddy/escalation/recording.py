"""Recording phase lifecycle.

A :class:`RecordingSession` owns the capture handle from ``start()`` until
``finish()`` or ``abort()``; after either, the device is released and the
session cannot be reused.
"""

from dataclasses import replace
from typing import Any, Optional

from emergency_buddy.exceptions import AudioCaptureError, RecordingStorageError
from emergency_buddy.escalation.ports import AudioCapture, Clock, RecordingStore
from emergency_buddy.models.escalation import RecordingArtifact
from emergency_buddy.utils.logging import get_logger

logger = get_logger(__name__)


class RecordingSession:
    """One best-effort audio capture for a single escalation run."""

    def __init__(
        self,
        audio: AudioCapture,
        clock: Clock,
        run_id: str,
        store: Optional[RecordingStore] = None,
    ):
        self.audio = audio
        self.store = store
        self.clock = clock
        self.run_id = run_id
        self._handle: Any = None
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self.storage_error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self._handle is not None

    @property
    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else self.clock()
        return max(0.0, end - self._started_at)

    def start(self) -> None:
        """Open the capture device.

        Raises:
            AudioCaptureError: If the device cannot be opened.
        """
        if self._started_at is not None:
            raise RuntimeError("Recording session already used")

        try:
            handle = self.audio.begin_audio_capture()
        except AudioCaptureError:
            raise
        except Exception as e:
            raise AudioCaptureError(f"Could not start audio recording: {e}") from e

        if handle is None:
            raise AudioCaptureError("Audio collaborator returned no capture handle")

        self._handle = handle
        self._started_at = self.clock()
        logger.info("Audio capture started", run_id=self.run_id)

    def finish(self) -> Optional[RecordingArtifact]:
        """Stop at the end of the recording window and persist the artifact."""
        artifact = self._stop(partial=False)
        if artifact is None:
            return None
        return self._persist(artifact)

    def abort(self, keep_partial: bool = True) -> Optional[RecordingArtifact]:
        """Stop early because the run was cancelled.

        The device is always released. The partial artifact is persisted only
        when ``keep_partial`` is set, otherwise it is dropped.
        """
        artifact = self._stop(partial=True)
        if artifact is None:
            return None

        if not keep_partial:
            logger.info("Partial recording discarded", run_id=self.run_id)
            return None

        return self._persist(artifact)

    def _stop(self, partial: bool) -> Optional[RecordingArtifact]:
        if self._handle is None:
            return None

        handle, self._handle = self._handle, None
        self._stopped_at = self.clock()

        try:
            data = self.audio.stop_audio_capture(handle)
        except Exception as e:
            logger.error(
                "Error stopping audio capture",
                run_id=self.run_id,
                error=str(e)
            )
            return None

        logger.info(
            "Audio capture stopped",
            run_id=self.run_id,
            duration_seconds=round(self.elapsed_seconds, 3),
            partial=partial
        )

        return RecordingArtifact(
            data=data or b"",
            duration_seconds=self.elapsed_seconds,
            partial=partial,
        )

    def _persist(self, artifact: RecordingArtifact) -> RecordingArtifact:
        if self.store is None:
            return artifact

        try:
            reference = self.store.save(artifact, self.run_id)
        except RecordingStorageError as e:
            self.storage_error = str(e)
            logger.error("Error saving recording", run_id=self.run_id, error=str(e))
            return artifact

        return replace(artifact, reference=reference)
