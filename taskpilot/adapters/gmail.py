"""Gmail adapter — implements EmailPort for the Gmail API.

All Gmail-specific logic (MIME encoding, header lookup, body extraction)
lives here. Core modules depend on the EmailPort protocol.
"""

from __future__ import annotations

import base64
import logging
from email.message import EmailMessage

from taskpilot.integrations.google_auth import get_gmail_service
from taskpilot.ports.email_port import EmailError, MessageDetail

logger = logging.getLogger(__name__)


def _encode_message(to: str, subject: str, body: str, extra_headers: dict[str, str] | None = None) -> str:
    """Build a text/plain message and return it base64url-encoded for the API."""
    message = EmailMessage()
    message["To"] = to
    message["Subject"] = subject
    for name, value in (extra_headers or {}).items():
        message[name] = value
    message.set_content(body)
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


def _decode_body(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _extract_text(payload: dict | None) -> str:
    """Return the first text/plain part, falling back to text/html."""
    if not payload:
        return ""
    mime_type = payload.get("mimeType", "")
    data = payload.get("body", {}).get("data")
    if mime_type.startswith("text/plain") and data:
        return _decode_body(data)

    html = _decode_body(data) if mime_type.startswith("text/html") and data else ""
    for part in payload.get("parts", []) or []:
        text = _extract_text(part)
        if text and not part.get("mimeType", "").startswith("text/html"):
            return text
        html = html or text
    return html


class GmailAdapter:
    """Gmail implementation of EmailPort."""

    def __init__(self, service=None) -> None:
        self._service = service

    def _messages(self):
        if self._service is None:
            self._service = get_gmail_service()
        return self._service.users().messages()

    async def send_email(self, to: str, subject: str, body: str) -> str:
        if not to or "@" not in to:
            raise EmailError(f"Cannot send email without a valid address for {to!r}")
        raw = _encode_message(to, subject, body)
        try:
            sent = self._messages().send(userId="me", body={"raw": raw}).execute()
        except Exception as exc:
            logger.error("Gmail API error sending to %s: %s", to, exc)
            raise EmailError(f"Failed to send email: {exc}") from exc
        logger.info("Email sent to %s (%s)", to, sent.get("id"))
        return sent.get("id", "email_sent")

    async def get_message_detail(self, message_id: str) -> MessageDetail:
        try:
            full = self._messages().get(userId="me", id=message_id, format="full").execute()
        except Exception as exc:
            logger.error("Gmail API error fetching %s: %s", message_id, exc)
            raise EmailError(f"Failed to fetch message: {exc}") from exc

        if not full.get("id"):
            raise EmailError(f"Message {message_id} not found")

        payload = full.get("payload", {})
        headers = {h["name"].lower(): h.get("value", "") for h in payload.get("headers", [])}
        return MessageDetail(
            id=full["id"],
            thread_id=full.get("threadId", ""),
            subject=headers.get("subject", ""),
            sender=headers.get("from", ""),
            reply_to=headers.get("reply-to"),
            message_id_header=headers.get("message-id"),
            references=headers.get("references"),
            body=_extract_text(payload) or full.get("snippet", ""),
            headers=headers,
        )

    async def send_reply(self, original: MessageDetail, to: str, subject: str, body: str) -> str:
        threading: dict[str, str] = {}
        if original.message_id_header:
            threading["In-Reply-To"] = original.message_id_header
            references = " ".join(filter(None, [original.references, original.message_id_header]))
            threading["References"] = references
        raw = _encode_message(to, subject, body, threading)
        try:
            sent = (
                self._messages()
                .send(userId="me", body={"raw": raw, "threadId": original.thread_id})
                .execute()
            )
        except Exception as exc:
            logger.error("Gmail API error replying in thread %s: %s", original.thread_id, exc)
            raise EmailError(f"Failed to send reply: {exc}") from exc
        logger.info("Reply sent to %s in thread %s", to, original.thread_id)
        return sent.get("id", "")
