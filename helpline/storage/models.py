"""
Data models for conversation storage.
These define the shape of data flowing between the store, the service
layer and the HTTP handlers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

_SESSION_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def new_id() -> str:
    return str(uuid4())


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def is_session_id(value: str | None) -> bool:
    """True for a canonical 8-4-4-4-12 hex UUID string."""
    return bool(value) and bool(_SESSION_ID_RE.match(value))


class Sender(str, Enum):
    USER = "user"
    AI = "ai"


@dataclass(frozen=True)
class Message:
    """A single immutable message in a conversation."""
    conversation_id: str
    sender: Sender
    text: str
    id: str = field(default_factory=new_id)
    timestamp: str = field(default_factory=utcnow)

    @classmethod
    def from_row(cls, row) -> "Message":
        return cls(
            id=row["id"],
            conversation_id=row["conversation_id"],
            sender=Sender(row["sender"]),
            text=row["text"],
            timestamp=row["timestamp"],
        )

    def to_dict(self) -> dict:
        """Public shape used by the history endpoint."""
        return {
            "id": self.id,
            "sender": self.sender.value,
            "text": self.text,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class Conversation:
    """One conversation per client session id."""
    session_id: str
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utcnow)
    updated_at: str = field(default_factory=utcnow)

    @classmethod
    def from_row(cls, row) -> "Conversation":
        return cls(
            id=row["id"],
            session_id=row["session_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
