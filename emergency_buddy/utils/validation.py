"""Input validation utilities."""

import re


def validate_phone(phone: str) -> bool:
    """Validate phone number format (basic validation)."""
    # Remove common formatting characters
    cleaned = re.sub(r'[^\d+]', '', phone or "")

    # Emergency short codes such as 112 or 911
    if re.match(r'^\d{3}$', cleaned):
        return True

    # Basic validation: starts with + or digit, 7-15 digits total
    pattern = r'^(\+?\d{7,15})$'
    return bool(re.match(pattern, cleaned))


def mask_phone_number(phone: str) -> str:
    """Mask phone number for logging."""
    if len(phone) <= 4:
        return phone

    return phone[:2] + "*" * max(0, len(phone) - 4) + phone[-2:]


def sanitize_input(text: str, max_length: int = 1000) -> str:
    """Sanitize input text by removing potentially harmful content."""
    if not text:
        return ""

    # Remove potential script tags and other HTML
    text = re.sub(r'<[^>]*>', '', text)

    # Remove control characters except newlines and tabs
    text = re.sub(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]', '', text)

    # Limit length
    if len(text) > max_length:
        text = text[:max_length] + "..."

    return text.strip()
