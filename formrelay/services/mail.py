"""Outbound mail transport.

``ResendTransport`` posts to the Resend HTTP API. Timeouts, connection
errors and HTTP 429/5xx are retried with exponential backoff; anything
else fails fast. Every failure surfaces as ``DeliveryError``.
"""

from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from formrelay.core.config import get_settings
from formrelay.core.exceptions import DeliveryError

logger = structlog.get_logger(__name__)

RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})
MAX_BACKOFF_SECONDS = 4.0


def send_budget_seconds(timeout: float, max_attempts: int) -> float:
    """Upper bound on one ``ResendTransport.send`` call: every attempt timing out
    plus the longest backoff between each pair of attempts."""
    attempts = max(max_attempts, 1)
    return timeout * attempts + MAX_BACKOFF_SECONDS * (attempts - 1)


@dataclass(frozen=True)
class MailMessage:
    from_email: str
    to: str
    subject: str
    html: str
    reply_to: str | None = None


class MailTransport(Protocol):
    async def send(self, message: MailMessage) -> str | None:
        """Deliver a message; return the provider's message id.

        Raises:
            DeliveryError: the message was not accepted.
        """
        ...


class _RetryableResponse(Exception):
    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


class ResendTransport:
    """Mail transport backed by the Resend API."""

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 10.0,
        max_attempts: int = 3,
        wait=None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.wait = wait or wait_exponential(multiplier=0.5, min=0.5, max=MAX_BACKOFF_SECONDS)
        self._transport = transport

    def _payload(self, message: MailMessage) -> dict:
        payload = {
            "from": message.from_email,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        if message.reply_to:
            payload["reply_to"] = message.reply_to
        return payload

    async def send(self, message: MailMessage) -> str | None:
        if not self.api_key:
            raise DeliveryError("Mail transport is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = self._payload(message)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.max_attempts),
                    wait=self.wait,
                    retry=retry_if_exception_type((_RetryableResponse, httpx.TransportError)),
                    reraise=True,
                    before_sleep=lambda rs: logger.warning(
                        "mail_send_retrying",
                        attempt=rs.attempt_number,
                        error=str(rs.outcome.exception()),
                    ),
                ):
                    with attempt:
                        response = await client.post(self.api_url, headers=headers, json=payload)
                        if response.status_code in RETRY_STATUSES:
                            raise _RetryableResponse(response)
        except _RetryableResponse as exc:
            raise DeliveryError(
                f"Mail provider unavailable (HTTP {exc.response.status_code}) after {self.max_attempts} attempts"
            ) from exc
        except httpx.TimeoutException as exc:
            raise DeliveryError("Mail provider timed out") from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Mail provider request failed: {exc}") from exc

        if response.status_code >= 400:
            raise DeliveryError(
                f"Mail provider rejected message (HTTP {response.status_code}): {response.text[:200]}"
            )

        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("id") if isinstance(body, dict) else None


def get_mail_transport() -> MailTransport:
    settings = get_settings()
    return ResendTransport(
        api_key=settings.resend_api_key,
        api_url=settings.resend_api_url,
        timeout=settings.mail_send_timeout_seconds,
        max_attempts=settings.mail_max_attempts,
    )
