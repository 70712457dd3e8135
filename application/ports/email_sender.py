"""
Email sender port.

The notification and newsletter services only depend on this protocol; the
transactional email provider lives in infrastructure.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class EmailMessage:
    to: list[str]
    subject: str
    html: str
    text: Optional[str] = None
    bcc: list[str] = field(default_factory=list)
    reply_to: Optional[str] = None


@runtime_checkable
class EmailSender(Protocol):
    async def send(self, message: EmailMessage) -> str:
        """Send the message and return the provider message id; raises on failure."""
        ...

    async def aclose(self) -> None: ...
