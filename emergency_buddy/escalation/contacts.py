"""Emergency contact loading and ordering."""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from emergency_buddy.config import settings
from emergency_buddy.exceptions import ContactSourceError
from emergency_buddy.models.contact import Contact
from emergency_buddy.utils.logging import get_logger
from emergency_buddy.utils.validation import mask_phone_number, validate_phone

logger = get_logger(__name__)


def build_contact_queue(contacts: Iterable[Contact]) -> Tuple[Contact, ...]:
    """Order contacts by ascending priority.

    ``sorted`` is stable, so equal priorities keep their stored order.
    """
    return tuple(sorted(contacts, key=lambda contact: contact.priority))


class ContactManager:
    """Read-only view over the stored emergency contact list."""

    def __init__(self, contacts_file: Optional[str] = None):
        self.contacts_file = contacts_file or settings.CONTACTS_FILE

    def load_contacts(self) -> List[Contact]:
        """Read and validate the contact file.

        The file holds either a bare list or ``{"contacts": [...]}``. Entries
        without a usable name, phone or priority are skipped.

        Raises:
            ContactSourceError: If the file cannot be read or parsed.
        """
        contacts_path = Path(self.contacts_file)
        if not contacts_path.exists():
            logger.warning("Contacts file not found", file=self.contacts_file)
            return []

        try:
            with open(contacts_path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise ContactSourceError(
                f"Could not read contacts file {self.contacts_file}: {e}"
            ) from e

        if isinstance(raw, dict):
            raw = raw.get("contacts", [])

        if not isinstance(raw, list):
            raise ContactSourceError(
                f"Contacts file {self.contacts_file} must hold a list of contacts"
            )

        contacts = []
        for position, entry in enumerate(raw):
            contact = self._parse_contact(entry, position)
            if contact:
                contacts.append(contact)

        logger.info(
            "Loaded emergency contacts",
            file=self.contacts_file,
            contact_count=len(contacts),
            skipped=len(raw) - len(contacts)
        )
        return contacts

    def get_contacts(self) -> List[Contact]:
        """Return a fresh copy of the stored contacts, in stored order.

        An unreadable file yields an empty list so an escalation still falls
        back to emergency services.
        """
        try:
            return self.load_contacts()
        except ContactSourceError as e:
            logger.error("Error loading contacts file", file=self.contacts_file, error=str(e))
            return []

    def get_contacts_summary(self) -> Dict[str, Any]:
        """Get summary of the contact list."""
        queue = build_contact_queue(self.get_contacts())
        return {
            "total_contacts": len(queue),
            "first_contact": queue[0].name if queue else None,
            "priorities": [contact.priority for contact in queue],
        }

    def _parse_contact(self, entry: Any, position: int) -> Optional[Contact]:
        if not isinstance(entry, dict):
            logger.warning("Invalid contact definition", position=position)
            return None

        data = dict(entry)
        data.setdefault("id", str(position))

        try:
            contact = Contact.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping invalid contact", position=position, error=str(e))
            return None

        if not contact.name:
            logger.warning("Contact missing name", position=position)
            return None

        if not validate_phone(contact.phone):
            logger.warning(
                "Contact has invalid phone number",
                position=position,
                phone=mask_phone_number(contact.phone)
            )
            return None

        return contact
