"""Trigger-phrase detection on speech transcripts."""

from typing import Callable, Iterable, List, Optional

from emergency_buddy.utils.logging import get_logger
from emergency_buddy.utils.validation import sanitize_input

logger = get_logger(__name__)


def matches_trigger_phrase(transcript: str, phrases: Iterable[str]) -> Optional[str]:
    """Return the first phrase contained in the transcript, if any."""
    text = (transcript or "").lower()
    if not text.strip():
        return None

    for phrase in phrases:
        if phrase and phrase in text:
            return phrase
    return None


class VoiceTrigger:
    """Feeds recognised speech into the same entry point as the button.

    Speech recognition happens elsewhere; this only matches transcripts.
    """

    def __init__(self, phrases: Iterable[str], on_trigger: Callable[[], object]):
        self.phrases: List[str] = [p.strip().lower() for p in phrases if p and p.strip()]
        self.on_trigger = on_trigger
        self.last_transcript = ""

    def process_transcript(self, transcript: str) -> bool:
        """Fire ``on_trigger`` when a trigger phrase is heard.

        Returns True if the trigger fired.
        """
        self.last_transcript = sanitize_input(transcript, max_length=2000).lower()
        phrase = matches_trigger_phrase(self.last_transcript, self.phrases)
        if phrase is None:
            return False

        logger.info("Voice trigger detected", phrase=phrase)
        self.on_trigger()
        return True
