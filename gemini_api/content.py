"""
Conversation content model.

Upstream history is made of turns whose parts are either text, inline
binary data (an attached PDF) or something this service does not
understand. Only the redacted form ever leaves the process.
"""

from dataclasses import dataclass, field
from typing import List, Union

from .models import HistoryEntry, HistoryPart

PDF_PLACEHOLDER = "[PDF Document]"
UNKNOWN_PLACEHOLDER = "[Unknown Content]"


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class BinaryPart:
    mime_type: str
    data: str  # base64

    def __repr__(self) -> str:
        return f"BinaryPart(mime_type={self.mime_type!r}, size={len(self.data)})"


@dataclass(frozen=True)
class UnknownPart:
    raw: object = None


Part = Union[TextPart, BinaryPart, UnknownPart]


@dataclass
class Turn:
    role: str
    parts: List[Part] = field(default_factory=list)


def redact_part(part: Part) -> HistoryPart:
    if isinstance(part, TextPart):
        return HistoryPart(text=part.text)
    if isinstance(part, BinaryPart):
        return HistoryPart(text=PDF_PLACEHOLDER)
    return HistoryPart(text=UNKNOWN_PLACEHOLDER)


def redact_history(history: List[Turn]) -> List[HistoryEntry]:
    """Convert upstream turns to the form safe to return to clients."""
    return [
        HistoryEntry(role=turn.role, parts=[redact_part(part) for part in turn.parts])
        for turn in history
    ]
