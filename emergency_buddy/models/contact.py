"""Emergency contact model."""

from dataclasses import dataclass
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class Contact:
    """A person to alert during an escalation.

    Lower ``priority`` values are contacted first.
    """

    id: str
    name: str
    phone: str
    priority: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Contact":
        """Build a contact from a stored mapping.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If ``priority`` is not an integer.
        """
        return cls(
            id=str(data["id"]),
            name=str(data["name"]).strip(),
            phone=str(data["phone"]).strip(),
            priority=int(data["priority"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "priority": self.priority,
        }
