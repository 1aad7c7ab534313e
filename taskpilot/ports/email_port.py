"""Email port — abstract interface for the user's mailbox.

The dispatcher and mailer depend on this protocol, never on Gmail directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


class EmailError(Exception):
    """Raised when any email provider operation fails."""


@dataclass
class MessageDetail:
    """The parts of an inbound message needed to write a reply."""

    id: str
    thread_id: str
    subject: str = ""
    sender: str = ""
    reply_to: str | None = None
    message_id_header: str | None = None
    references: str | None = None
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)


class EmailPort(Protocol):
    """Abstract email interface used by core modules."""

    async def send_email(self, to: str, subject: str, body: str) -> str:
        """Send a new message; returns the provider message id."""
        ...

    async def get_message_detail(self, message_id: str) -> MessageDetail: ...

    async def send_reply(
        self,
        original: MessageDetail,
        to: str,
        subject: str,
        body: str,
    ) -> str:
        """Reply within the original thread; returns the provider message id."""
        ...
