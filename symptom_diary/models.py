"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class AccessContext:
    """Represents the authenticated identity and its profile role."""
    user_id: str
    email: str
    display_name: str
    role: str                  # "patient" or "doctor"


@dataclass(frozen=True)
class SymptomInfo:
    """One entry of the reference symptom list."""
    name: str
    description: str
    keywords: List[str] = field(default_factory=list)

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match on name, description or keyword."""
        term = term.lower()
        return (
            term in self.name.lower()
            or term in self.description.lower()
            or any(term in kw.lower() for kw in self.keywords)
        )


@dataclass
class ChangeEvent:
    """A row change delivered by the event bus."""
    id: str
    table: str
    kind: str                  # "INSERT" / "UPDATE" / "DELETE"
    record: Dict[str, Any]
