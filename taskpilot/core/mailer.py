"""
TaskPilot — Reply drafting.

Turns "reply to Dana and say I'll be late" into a sent email: fetch the
original message, let the LLM write the body, and reply in the same thread.
"""

from __future__ import annotations

import logging
import re

from taskpilot.core import llm
from taskpilot.core.actions import EmailInput
from taskpilot.ports.email_port import EmailError, EmailPort, MessageDetail

logger = logging.getLogger(__name__)

REPLY_SYSTEM_PROMPT = "You write clear and concise professional email replies."

_ANGLE_ADDRESS = re.compile(r"<([^>]+)>")


def build_reply_subject(subject: str | None) -> str:
    """Prefix 'Re: ' unless the subject already carries it."""
    if not subject:
        return "Re:"
    return subject if subject.lower().startswith("re:") else f"Re: {subject}"


def parse_recipient(original: MessageDetail) -> str:
    """Address to reply to: Reply-To when present, else From; angle brackets stripped."""
    header = original.reply_to or original.sender
    if not header:
        raise EmailError("Original message has no sender address")
    match = _ANGLE_ADDRESS.search(header)
    return (match.group(1) if match else header).strip()


async def draft_email_reply(email_port: EmailPort, email: EmailInput) -> str:
    """Compose and send a reply to `email.message_id`. Returns the reply body."""
    if not email.message_id:
        raise EmailError("message_id is required to draft a reply")
    if not email.instructions or not email.instructions.strip():
        raise EmailError("instructions are required to draft a reply")

    original = await email_port.get_message_detail(email.message_id)
    recipient = parse_recipient(original)
    subject = build_reply_subject(original.subject)
    context = original.body or "The original message content is unavailable."

    prompt = (
        "Compose an email reply.\n\n"
        f"Original email:\n{context}\n\n"
        f"User instructions:\n{email.instructions.strip()}"
    )
    body = (await llm.complete(REPLY_SYSTEM_PROMPT, prompt, max_tokens=800)).strip()

    await email_port.send_reply(original, to=recipient, subject=subject, body=body)
    logger.info("Sent drafted reply to %s in thread %s", recipient, original.thread_id)
    return body
