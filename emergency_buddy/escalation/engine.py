"""Escalation engine: countdown, recording, then contact-by-contact alerting.

Phases run strictly in sequence and each one arms a single deadline on
entry. The only way to move past a contact is that contact's timeout
expiring; there is no acknowledgement path. Cancel is accepted from every
non-terminal state and always beats a deadline due at the same instant.
"""

import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from emergency_buddy.exceptions import AudioCaptureError
from emergency_buddy.escalation.contacts import build_contact_queue
from emergency_buddy.escalation.messages import EMERGENCY_SERVICES_NUMBER, compose_alert_message
from emergency_buddy.escalation.ports import (
    AudioCapture,
    ConfigSource,
    ContactSource,
    LocationSource,
    RecordingStore,
    Telephony,
)
from emergency_buddy.escalation.recording import RecordingSession
from emergency_buddy.escalation.scheduler import Deadline, DeadlineScheduler
from emergency_buddy.models.contact import Contact
from emergency_buddy.models.escalation import (
    EscalationRun,
    EscalationState,
    Notice,
    NoticeLevel,
    TransitionEvent,
)
from emergency_buddy.models.location import Location
from emergency_buddy.utils.logging import get_logger, log_escalation_event
from emergency_buddy.utils.validation import mask_phone_number

logger = get_logger(__name__)


class EscalationEngine:
    """State machine for a single active emergency escalation."""

    def __init__(
        self,
        contact_source: ContactSource,
        config_source: ConfigSource,
        telephony: Telephony,
        scheduler: DeadlineScheduler,
        audio: Optional[AudioCapture] = None,
        location_source: Optional[LocationSource] = None,
        recording_store: Optional[RecordingStore] = None,
    ):
        self.contact_source = contact_source
        self.config_source = config_source
        self.telephony = telephony
        self.audio = audio
        self.location_source = location_source
        self.recording_store = recording_store
        self.scheduler = scheduler

        self._run: Optional[EscalationRun] = None
        self._last_run: Optional[EscalationRun] = None
        self._timer: Optional[Deadline] = None
        self._recording: Optional[RecordingSession] = None
        self._listeners: List[Callable[[TransitionEvent], None]] = []
        self._notice_handlers: List[Callable[[Notice], None]] = []
        self._log = logger

    # ------------------------------------------------------------------
    # Presentation-facing state
    # ------------------------------------------------------------------

    @property
    def state(self) -> EscalationState:
        return self._run.state if self._run else EscalationState.IDLE

    @property
    def is_active(self) -> bool:
        return self._run is not None

    @property
    def active_run(self) -> Optional[EscalationRun]:
        return self._run

    @property
    def last_run(self) -> Optional[EscalationRun]:
        """The most recently finished run, kept in memory only."""
        return self._last_run

    @property
    def remaining_seconds(self) -> int:
        if self._run is None or self._run.phase_deadline is None:
            return 0
        return math.ceil(max(0.0, self._run.phase_deadline - self.scheduler.now()))

    @property
    def current_contact(self) -> Optional[Contact]:
        if self.state is not EscalationState.ALERTING:
            return None
        return self._run.current_contact

    @property
    def is_recording(self) -> bool:
        return self._recording is not None and self._recording.is_active

    @property
    def recording_elapsed_seconds(self) -> float:
        if self._recording is not None:
            return self._recording.elapsed_seconds
        if self._run is not None and self._run.recording_artifact is not None:
            return self._run.recording_artifact.duration_seconds
        return 0.0

    def add_listener(self, callback: Callable[[TransitionEvent], None]) -> None:
        self._listeners.append(callback)

    def add_notice_handler(self, callback: Callable[[Notice], None]) -> None:
        self._notice_handlers.append(callback)

    def get_status(self) -> Dict[str, Any]:
        """Snapshot for the presentation layer."""
        run = self._run
        status: Dict[str, Any] = {
            "state": self.state.value,
            "trigger_enabled": run is None,
            "run_id": None,
            "remaining_seconds": self.remaining_seconds,
            "current_contact": None,
            "contact_position": None,
            "contact_count": 0,
            "next_contact": None,
            "is_recording": self.is_recording,
            "recording_elapsed_seconds": round(self.recording_elapsed_seconds, 1),
            "recording": None,
            "location": None,
            "map_link": None,
            "notices": [],
            "last_outcome": self._last_run.state.value if self._last_run else None,
        }

        if run is None:
            return status

        contact = self.current_contact
        next_contact = run.next_contact if contact else None
        status.update({
            "run_id": run.run_id,
            "current_contact": contact.to_dict() if contact else None,
            "contact_position": run.current_contact_index + 1 if contact else None,
            "contact_count": len(run.contact_queue),
            "next_contact": next_contact.name if next_contact else None,
            "recording": run.recording_artifact.to_dict() if run.recording_artifact else None,
            "location": run.location.to_dict() if run.location else None,
            "map_link": run.location.map_link if run.location else None,
            "notices": [notice.to_dict() for notice in run.notices],
        })
        return status

    # ------------------------------------------------------------------
    # Control entry points
    # ------------------------------------------------------------------

    def trigger(self) -> bool:
        """Start an escalation unless one is already active.

        Returns:
            True if a new run started, False if one was already active.

        Raises:
            InvalidConfigurationError: If any configured duration is not a
                positive integer. No run is started.
        """
        if self._run is not None:
            self._log.info("Trigger ignored, escalation already active", state=self.state.value)
            return False

        config = self.config_source.get_config()
        config.validate()

        run = EscalationRun(
            config=config,
            contact_queue=build_contact_queue(self._snapshot_contacts()),
            location=self._snapshot_location(),
        )

        # Cancels posted by listeners or handlers here run once the countdown is armed.
        with self.scheduler.transition():
            self._run = run
            self._log = logger.bind(run_id=run.run_id)
            self._log.info(
                "Escalation triggered",
                contact_count=len(run.contact_queue),
                has_location=run.location is not None,
                cancel_window_seconds=config.cancel_window_seconds,
                contact_timeout_seconds=config.contact_timeout_seconds,
                recording_duration_seconds=config.recording_duration_seconds
            )
            self._notice(NoticeLevel.CRITICAL, "EMERGENCY ACTIVATED", "Starting emergency protocol...")
            self._enter_countdown()

        return True

    def cancel(self) -> None:
        """Request cancellation of the active run; a no-op when idle."""
        self.scheduler.post(self._apply_cancel)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _enter_countdown(self) -> None:
        self._transition(EscalationState.COUNTDOWN)
        self._arm(
            self._run.config.cancel_window_seconds,
            self._on_countdown_elapsed,
            "countdown"
        )

    def _on_countdown_elapsed(self) -> None:
        if self.state is not EscalationState.COUNTDOWN:
            return
        self._clear_timer()
        self._enter_recording()

    def _enter_recording(self) -> None:
        run = self._run
        self._transition(EscalationState.RECORDING)

        if self.audio is None:
            self._log.warning("No audio collaborator configured, skipping recording")
            self._notice(NoticeLevel.WARNING, "Recording Error", "No audio device configured")
            self._enter_alerting()
            return

        session = RecordingSession(
            self.audio,
            self.scheduler.now,
            run.run_id,
            store=self.recording_store,
        )
        try:
            session.start()
        except AudioCaptureError as e:
            self._log.warning("Audio capture unavailable, continuing without recording", error=str(e))
            self._notice(NoticeLevel.WARNING, "Recording Error", "Could not start audio recording")
            self._enter_alerting()
            return

        self._recording = session
        self._arm(
            run.config.recording_duration_seconds,
            self._on_recording_elapsed,
            "recording"
        )

    def _on_recording_elapsed(self) -> None:
        if self.state is not EscalationState.RECORDING:
            return
        self._clear_timer()

        session, self._recording = self._recording, None
        artifact = session.finish()
        self._run.recording_artifact = artifact

        if artifact is None:
            self._notice(NoticeLevel.WARNING, "Recording Error", "Audio recording could not be completed")
        elif session.storage_error:
            self._notice(NoticeLevel.WARNING, "Recording Not Saved", session.storage_error)
        else:
            self._log.info("Recording saved", reference=artifact.reference)

        self._enter_alerting()

    def _enter_alerting(self) -> None:
        run = self._run
        contact = run.current_contact

        if contact is None:
            if not run.contact_queue:
                self._notice(
                    NoticeLevel.CRITICAL,
                    "No emergency contacts available",
                    "Calling emergency services directly..."
                )
            self._enter_fallback()
            return

        self._transition(EscalationState.ALERTING, contact=contact)
        self._notify_contact(contact)
        self._arm(
            run.config.contact_timeout_seconds,
            self._on_contact_timeout,
            f"contact:{contact.id}"
        )

    def _on_contact_timeout(self) -> None:
        if self.state is not EscalationState.ALERTING:
            return
        self._clear_timer()

        run = self._run
        self._log.info(
            "No response from contact, escalating",
            contact_id=run.current_contact.id,
            position=run.current_contact_index + 1
        )
        run.current_contact_index += 1
        self._enter_alerting()

    def _enter_fallback(self) -> None:
        self._clear_timer()
        self._transition(EscalationState.FALLBACK_DIALING)
        self._notice(
            NoticeLevel.CRITICAL,
            "CALLING EMERGENCY SERVICES",
            f"Dialing {EMERGENCY_SERVICES_NUMBER}..."
        )

        try:
            self.telephony.notify_emergency_services()
        except Exception as e:
            self._log.error("Error dispatching emergency services call", error=str(e))

        self._finish()

    def _apply_cancel(self) -> None:
        run = self._run
        if run is None or run.state is EscalationState.IDLE or run.state.is_terminal:
            logger.debug("Cancel ignored, no active escalation")
            return

        self._clear_timer()

        if self._recording is not None:
            session, self._recording = self._recording, None
            run.recording_artifact = session.abort(
                keep_partial=run.config.keep_partial_recording
            )

        self._transition(EscalationState.CANCELLED)
        self._notice(NoticeLevel.INFO, "Emergency Cancelled", "Emergency protocol stopped.")
        self._finish()

    def _finish(self) -> None:
        run = self._run
        self._clear_timer()
        run.finished_at = datetime.now(timezone.utc)

        self._last_run = run
        self._run = None
        self._recording = None

        self._log.info(
            "Escalation finished",
            outcome=run.state.value,
            contacts_notified=len(run.notified_contacts),
            has_recording=run.recording_artifact is not None
        )
        self._log = logger
        self._emit(TransitionEvent(
            run_id=run.run_id,
            previous=run.state,
            current=EscalationState.IDLE,
            at=self.scheduler.now(),
        ))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, state: EscalationState, contact: Optional[Contact] = None) -> None:
        run = self._run
        previous = run.state
        run.state = state

        log_escalation_event(
            self._log,
            run.run_id,
            state.value,
            previous_state=previous.value,
            contact_id=contact.id if contact else None
        )
        self._emit(TransitionEvent(
            run_id=run.run_id,
            previous=previous,
            current=state,
            at=self.scheduler.now(),
            contact=contact,
        ))

    def _arm(self, seconds: int, callback: Callable[[], None], name: str) -> None:
        self._clear_timer()
        self._timer = self.scheduler.call_later(seconds, callback, name)
        self._run.phase_deadline = self._timer.due

    def _clear_timer(self) -> None:
        if self._timer is not None:
            self.scheduler.cancel(self._timer)
            self._timer = None
        if self._run is not None:
            self._run.phase_deadline = None

    def _notify_contact(self, contact: Contact) -> None:
        run = self._run
        message = compose_alert_message(run.location)
        run.notified_contacts.append(contact)

        self._log.info(
            "Alerting contact",
            contact_id=contact.id,
            position=run.current_contact_index + 1,
            contact_count=len(run.contact_queue),
            phone=mask_phone_number(contact.phone)
        )
        self._notice(NoticeLevel.CRITICAL, f"Alerting {contact.name}", f"Calling {contact.phone}...")

        try:
            self.telephony.notify_contact(contact.phone, message)
        except Exception as e:
            self._log.error(
                "Error dispatching contact notification",
                contact_id=contact.id,
                error=str(e)
            )
            self._notice(
                NoticeLevel.WARNING,
                "Notification Error",
                f"Could not reach {contact.name}, waiting before trying the next contact"
            )

    def _snapshot_contacts(self) -> List[Contact]:
        try:
            return list(self.contact_source.get_contacts())
        except Exception as e:
            logger.error("Error reading emergency contacts", error=str(e))
            return []

    def _snapshot_location(self) -> Optional[Location]:
        if self.location_source is None:
            return None
        try:
            return self.location_source.get_last_known_location()
        except Exception as e:
            logger.warning("Error reading last known location", error=str(e))
            return None

    def _notice(self, level: NoticeLevel, title: str, description: str = "") -> None:
        notice = Notice(level=level, title=title, description=description)
        if self._run is not None:
            self._run.notices.append(notice)

        for handler in list(self._notice_handlers):
            try:
                handler(notice)
            except Exception as e:
                logger.error("Notice handler failed", error=str(e))

    def _emit(self, event: TransitionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error("Transition listener failed", error=str(e))
