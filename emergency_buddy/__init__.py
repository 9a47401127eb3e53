"""Emergency Buddy - personal safety escalation service."""

__version__ = "0.1.0"
