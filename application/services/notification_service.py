"""
Notification dispatcher for confirmed payments.

Sends the customer confirmation and the studio notification independently:
one failing never prevents the other. Results are reported as booleans and
recorded on the order so a later sweep only re-sends what is missing.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from application.ports.email_sender import EmailMessage, EmailSender
from application.services import email_templates
from core.config import EmailSettings
from core.logging_config import get_logger
from core.metrics import NOTIFICATIONS
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order


logger = get_logger(__name__)

DEFAULT_RETRY_AGE = timedelta(minutes=10)


async def _skipped() -> bool:
    return False


@dataclass(frozen=True)
class NotificationResult:
    customer_sent: bool
    operator_sent: bool

    @property
    def complete(self) -> bool:
        return self.customer_sent and self.operator_sent


class NotificationService:
    def __init__(
        self,
        sender: EmailSender,
        config: EmailSettings,
        uow_factory: Callable[..., AbstractUnitOfWork],
    ) -> None:
        self._sender = sender
        self._config = config
        self._uow_factory = uow_factory

    def customer_message(self, order: Order) -> EmailMessage:
        subject, html = email_templates.customer_confirmation(order)
        return EmailMessage(
            to=[order.customer.email],
            subject=subject,
            html=html,
            bcc=list(self._config.bcc or []),
            reply_to=self._config.operator_address,
        )

    def operator_message(self, order: Order) -> EmailMessage:
        subject, html = email_templates.operator_notification(order)
        return EmailMessage(
            to=[self._config.operator_address],
            subject=subject,
            html=html,
            reply_to=order.customer.email,
        )

    async def _send(self, recipient: str, order: Order, message: EmailMessage) -> bool:
        try:
            message_id = await self._sender.send(message)
        except Exception:
            # 失败只记录，由调用方决定是否重试
            NOTIFICATIONS.labels(recipient=recipient, result="failed").inc()
            logger.exception("notification_failed", recipient=recipient, order_id=order.order_id)
            return False
        NOTIFICATIONS.labels(recipient=recipient, result="sent").inc()
        logger.info("notification_sent", recipient=recipient, order_id=order.order_id, message_id=message_id)
        return True

    async def notify(self, order: Order, *, customer: bool = True, operator: bool = True) -> NotificationResult:
        """Send the requested messages concurrently; a skipped message is reported as not sent."""
        customer_sent, operator_sent = await asyncio.gather(
            self._send("customer", order, self.customer_message(order)) if customer else _skipped(),
            self._send("operator", order, self.operator_message(order)) if operator else _skipped(),
        )
        return NotificationResult(customer_sent=customer_sent, operator_sent=operator_sent)

    async def dispatch(self, order: Order) -> NotificationResult:
        """Send whatever the order has not received yet and record the outcome.

        Messages already delivered for this order count as sent.
        """
        attempted = await self.notify(
            order,
            customer=not order.customer_notified,
            operator=not order.operator_notified,
        )
        result = NotificationResult(
            customer_sent=order.customer_notified or attempted.customer_sent,
            operator_sent=order.operator_notified or attempted.operator_sent,
        )
        async with self._uow_factory() as uow:
            updated = await uow.order_repository.record_notification(
                order.order_id,
                customer_sent=attempted.customer_sent,
                operator_sent=attempted.operator_sent,
                at=datetime.now(timezone.utc),
            )
        if updated is not None:
            order.metadata = updated.metadata
            order.notified_at = updated.notified_at
        if not result.complete:
            logger.warning(
                "notification_incomplete",
                order_id=order.order_id,
                customer_sent=result.customer_sent,
                operator_sent=result.operator_sent,
            )
        return result

    async def retry_pending(
        self,
        *,
        older_than: timedelta = DEFAULT_RETRY_AGE,
        limit: int = 100,
    ) -> dict[str, int]:
        """Re-send missing notifications for confirmed orders.

        Orders confirmed less than ``older_than`` ago are left alone: their
        confirmation callback may still be sending.
        """
        cutoff = datetime.now(timezone.utc) - older_than
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.list_unnotified_confirmed(
                confirmed_before=cutoff, limit=limit
            )

        summary = {"checked": len(orders), "completed": 0, "incomplete": 0}
        for order in orders:
            result = await self.dispatch(order)
            summary["completed" if result.complete else "incomplete"] += 1
        logger.info("notification_retry_finished", **summary)
        return summary
