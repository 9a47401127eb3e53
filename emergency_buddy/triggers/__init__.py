"""External triggers that start an escalation."""

from .voice import VoiceTrigger, matches_trigger_phrase

__all__ = ["VoiceTrigger", "matches_trigger_phrase"]
