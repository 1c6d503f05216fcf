"""MessageRecord dataclass — metadata for one message in the sender index."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

# Persisted / wire field names
F_ID = "MessageId"
F_ID_ALT = "Id"
F_SUBJECT = "Subject"
F_RECEIVED = "ReceivedDateTime"
F_SENDER_NAME = "SenderName"
F_SENDER_ADDRESS = "SenderEmailAddress"
F_SIZE = "Size"
F_TO = "ToRecipients"
F_CATEGORIES = "Categories"


def resolve_message_id(data: Mapping[str, Any]) -> str:
    """Return the first non-empty of MessageId / Id, or '' when neither is set."""
    for key in (F_ID, F_ID_ALT):
        value = data.get(key)
        if value:
            return str(value)
    return ""


@dataclass
class MessageRecord:
    message_id: str = ""
    subject: str = ""
    received_at: datetime | None = None
    sender_name: str = ""
    sender_address: str = ""
    size_bytes: int | None = None
    recipients: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)

    @property
    def sender_display(self) -> str:
        if self.sender_name and self.sender_address:
            return f"{self.sender_name} <{self.sender_address}>"
        return self.sender_address or self.sender_name

    def to_cache_dict(self) -> dict[str, Any]:
        return {
            F_ID: self.message_id,
            F_SUBJECT: self.subject,
            F_RECEIVED: self.received_at.isoformat() if self.received_at else None,
            F_SENDER_NAME: self.sender_name,
            F_SENDER_ADDRESS: self.sender_address,
            F_SIZE: self.size_bytes,
            F_TO: list(self.recipients),
            F_CATEGORIES: list(self.categories),
        }

    @classmethod
    def from_cache_dict(cls, data: Mapping[str, Any]) -> "MessageRecord":
        """Build a record from its persisted form.

        Raises ValueError / TypeError on malformed input so the caller can
        reject the whole snapshot.
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"message entry is not a mapping: {type(data).__name__}")

        received = data.get(F_RECEIVED)
        if received is not None and not isinstance(received, str):
            raise TypeError(f"{F_RECEIVED} must be a string or null")

        size = data.get(F_SIZE)
        if size is not None and (isinstance(size, bool) or not isinstance(size, int)):
            raise TypeError(f"{F_SIZE} must be an integer or null")

        recipients = data.get(F_TO) or []
        categories = data.get(F_CATEGORIES) or []
        if not isinstance(recipients, list) or not all(isinstance(r, str) for r in recipients):
            raise TypeError(f"{F_TO} must be a list of strings")
        if not isinstance(categories, list) or not all(isinstance(c, str) for c in categories):
            raise TypeError(f"{F_CATEGORIES} must be a list of strings")

        return cls(
            message_id=resolve_message_id(data),
            subject=_str_field(data, F_SUBJECT),
            received_at=datetime.fromisoformat(received) if received else None,
            sender_name=_str_field(data, F_SENDER_NAME),
            sender_address=_str_field(data, F_SENDER_ADDRESS),
            size_bytes=size,
            recipients=list(recipients),
            categories=list(categories),
        )


def _str_field(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string")
    return value
