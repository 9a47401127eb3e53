"""Utility modules for Emergency Buddy."""

from .logging import get_logger, setup_logging
from .validation import validate_phone, mask_phone_number, sanitize_input

__all__ = [
    "get_logger",
    "setup_logging",
    "validate_phone",
    "mask_phone_number",
    "sanitize_input",
]
