"""
Notification dispatcher contract and transport-free dispatchers.

Delivery (SMTP, mail APIs) plugs in behind ``NotificationDispatcher``.
The dispatchers here either log the message or keep it in an outbox.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from turnero.errors import DispatchError

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    """Sends one HTML email. Raises ``DispatchError`` on failure."""

    async def send(self, to: str, subject: str, html_body: str) -> None: ...


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    html_body: str


class LogDispatcher:
    """Writes each email to the log instead of sending it."""

    async def send(self, to: str, subject: str, html_body: str) -> None:
        logger.info("Email to %s: %s (%d chars)", to, subject, len(html_body))


class OutboxDispatcher:
    """Keeps sent emails in memory.

    ``fail_for`` lists recipients whose sends raise ``DispatchError``.
    """

    def __init__(self, fail_for: Optional[set[str]] = None) -> None:
        self.outbox: list[OutgoingEmail] = []
        self.fail_for: set[str] = set(fail_for or ())

    async def send(self, to: str, subject: str, html_body: str) -> None:
        if to in self.fail_for:
            raise DispatchError(f"delivery to {to} refused")
        self.outbox.append(OutgoingEmail(to=to, subject=subject, html_body=html_body))

    def sent_to(self, address: str) -> list[OutgoingEmail]:
        return [email for email in self.outbox if email.to == address]

    def reset(self) -> None:
        self.outbox.clear()
