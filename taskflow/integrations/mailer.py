"""Mail gateway with stub and live modes."""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from taskflow.config import settings

logger = logging.getLogger(__name__)


class MailerMode(str, Enum):
    """Delivery mode."""

    STUB = "stub"
    LIVE = "live"


class MailerIntegration:
    """Send plain-text mail through an HTTP mail API.

    In stub mode messages are only logged and kept in ``outbox`` so tests and
    local setups can inspect what would have been sent.
    """

    def __init__(
        self,
        mode: Optional[str] = None,
        api_url: Optional[str] = None,
        api_token: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.mode = MailerMode((mode or settings.NOTIFICATION_MODE).lower())
        url = api_url if api_url is not None else settings.NOTIFICATION_API_URL
        self.api_url = url.rstrip("/") if url else None
        self.api_token = api_token if api_token is not None else settings.NOTIFICATION_API_TOKEN
        self.sender = sender or settings.MAIL_FROM
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS
        self.transport = transport
        self.outbox: List[Dict[str, Any]] = []

    def _build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def build_message(self, to: str, subject: str, text: str) -> Dict[str, Any]:
        return {"from": self.sender, "to": to, "subject": subject, "text": text}

    async def send(self, to: str, subject: str, text: str) -> Dict[str, Any]:
        """Send one message. Raises on delivery failure in live mode."""
        message = self.build_message(to, subject, text)
        if self.mode == MailerMode.STUB:
            self.outbox.append(message)
            logger.info("Stub mail to %s: %s", to, subject)
            return {"ok": True, "mode": self.mode.value, "message": message}
        return await self._send_live(message)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.HTTPError),
        reraise=True,
    )
    async def _send_live(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Send mail (live mode)."""
        if not self.api_url:
            raise ValueError("Notification API URL not configured")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(self.api_url, json=message, headers=self._build_headers())
            response.raise_for_status()
            data = response.json() if response.content else {}

        return {"ok": True, "mode": self.mode.value, "raw": data}


# Global instance
mailer = MailerIntegration()
