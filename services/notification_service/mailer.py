from typing import List, Optional

import httpx
import structlog

from shared.config.settings import Settings
from shared.exceptions import UpstreamUnavailable

logger = structlog.get_logger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class SendGridMailer:
    """Thin client over the SendGrid v3 mail/send endpoint."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "SendGridMailer":
        return cls(settings.sendgrid_api_key, settings.sendgrid_from_email)

    async def send(
        self,
        to: str,
        subject: str,
        text: str,
        html: str,
        attachments: Optional[List[dict]] = None,
    ) -> None:
        if not self.api_key:
            raise UpstreamUnavailable("SendGrid API key not configured")
        if not to:
            raise UpstreamUnavailable(f"No recipient for '{subject}'")

        message = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_email},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text},
                {"type": "text/html", "value": html},
            ],
        }
        if attachments:
            message["attachments"] = attachments

        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(SENDGRID_SEND_URL, json=message, headers=headers)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"SendGrid rejected '{subject}': {e}") from e

        logger.info("email_sent", to=to, subject=subject)
