"""
Resend transactional email client (REST, ``POST /emails``).
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from application.ports.email_sender import EmailMessage
from core.config import EmailSettings
from core.logging_config import get_logger
from domain.common.exceptions import UpstreamServiceException
from infrastructure.external.api_clients.base import APIError, BaseAPIClient


logger = get_logger(__name__)


class ResendEmailClient(BaseAPIClient):
    def __init__(self, config: EmailSettings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        super().__init__(
            base_url=config.api_url,
            timeout=config.timeout_seconds,
            max_retries=1,
            auth_token=config.api_key,
            transport=transport,
        )
        self._from = config.from_address

    async def aclose(self) -> None:
        await self.close()

    async def send(self, message: EmailMessage) -> str:
        payload: dict[str, Any] = {
            "from": self._from,
            "to": list(message.to),
            "subject": message.subject,
            "html": message.html,
        }
        if message.text:
            payload["text"] = message.text
        if message.bcc:
            payload["bcc"] = list(message.bcc)
        if message.reply_to:
            payload["reply_to"] = message.reply_to

        try:
            response = await self.post("/emails", json_data=payload)
        except APIError as exc:
            logger.warning("email_send_failed", subject=message.subject, status_code=exc.status_code)
            raise UpstreamServiceException("resend", "Email provider request failed", status_code=exc.status_code) from exc

        data = response.data if isinstance(response.data, dict) else {}
        message_id = str(data.get("id") or "")
        logger.info("email_sent", subject=message.subject, recipients=len(message.to), message_id=message_id)
        return message_id
