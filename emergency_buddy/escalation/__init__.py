"""Escalation engine components for Emergency Buddy."""

from .engine import EscalationEngine
from .contacts import ContactManager, build_contact_queue
from .scheduler import DeadlineScheduler, EscalationScheduler, ManualClock

__all__ = [
    "EscalationEngine",
    "ContactManager",
    "build_contact_queue",
    "DeadlineScheduler",
    "EscalationScheduler",
    "ManualClock",
]
