"""
Newsletter signup: forwards the subscriber's details to the studio inbox.
"""
from __future__ import annotations

from application.dtos.newsletter import NewsletterResult, NewsletterSignup, SubscriptionReceipt
from application.ports.email_sender import EmailMessage, EmailSender
from application.services import email_templates
from core.config import EmailSettings
from core.logging_config import get_logger


logger = get_logger(__name__)


class NewsletterService:
    def __init__(self, sender: EmailSender, config: EmailSettings) -> None:
        self._sender = sender
        self._config = config

    async def subscribe(self, signup: NewsletterSignup) -> NewsletterResult:
        email = str(signup.email)
        subject, html, text = email_templates.newsletter_signup(
            nombre=signup.nombre,
            apellido=signup.apellido,
            telefono=signup.telefono,
            instagram=signup.instagram,
            email=email,
        )
        message_id = await self._sender.send(EmailMessage(
            to=[self._config.operator_address],
            subject=subject,
            html=html,
            text=text,
            reply_to=email,
        ))
        logger.info("newsletter_subscribed", message_id=message_id)
        return NewsletterResult(data=SubscriptionReceipt(id=message_id, email=email))
