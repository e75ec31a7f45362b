"""
Outbound notification channels: transactional email (Resend) and LINE push
messages, each with an in-memory double used when credentials are absent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import requests

from ttm_backend.errors import ExternalServiceError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds
RESEND_API_URL = "https://api.resend.com/emails"
LINE_PUSH_URL = "https://api.line.me/v2/bot/message/push"


class EmailSender(Protocol):
    def send(
        self,
        *,
        to: list[str],
        subject: str,
        html: str,
        reply_to: Optional[str] = None,
        sender: Optional[str] = None,
    ) -> None:
        ...


class LineMessenger(Protocol):
    def push(self, to: str, messages: list[dict]) -> None:
        ...


@dataclass
class InMemoryEmailSender:
    """Records emails instead of sending them."""

    default_sender: str = "noreply@example.test"
    sent: list[dict] = field(default_factory=list)

    def send(
        self,
        *,
        to: list[str],
        subject: str,
        html: str,
        reply_to: Optional[str] = None,
        sender: Optional[str] = None,
    ) -> None:
        self.sent.append(
            {
                "from": sender or self.default_sender,
                "to": list(to),
                "subject": subject,
                "html": html,
                "reply_to": reply_to,
            }
        )


@dataclass
class ResendEmailSender:
    api_key: str
    default_sender: str

    def send(
        self,
        *,
        to: list[str],
        subject: str,
        html: str,
        reply_to: Optional[str] = None,
        sender: Optional[str] = None,
    ) -> None:
        body = {
            "from": sender or self.default_sender,
            "to": to,
            "subject": subject,
            "html": html,
        }
        if reply_to:
            body["reply_to"] = reply_to
        try:
            response = requests.post(
                RESEND_API_URL,
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ExternalServiceError(f"Email delivery failed: {exc}") from exc
        logger.info("Sent email '%s' to %d recipient(s)", subject, len(to))


@dataclass
class InMemoryLineMessenger:
    """Records LINE pushes instead of calling the Messaging API."""

    pushed: list[dict] = field(default_factory=list)

    def push(self, to: str, messages: list[dict]) -> None:
        self.pushed.append({"to": to, "messages": messages})


@dataclass
class LineMessagingClient:
    channel_access_token: str

    def push(self, to: str, messages: list[dict]) -> None:
        try:
            response = requests.post(
                LINE_PUSH_URL,
                json={"to": to, "messages": messages},
                headers={"Authorization": f"Bearer {self.channel_access_token}"},
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ExternalServiceError(f"LINE push failed: {exc}") from exc
        logger.info("Pushed %d LINE message(s)", len(messages))
