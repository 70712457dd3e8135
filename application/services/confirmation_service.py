"""
Payment confirmation use-cases.

The gateway's confirmation callback only carries a token. The token is
authenticated with the shared-secret signature, the authoritative status is
fetched from the gateway, and the order moves to its terminal status through
a conditional update. Exactly one concurrent caller wins that update; the
others take the duplicate path and never notify.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional

from application.dtos.payments import PaymentStatus
from application.ports.payment_gateway import PaymentGateway
from application.services.notification_service import NotificationResult, NotificationService
from core.config import FlowSettings
from core.logging_config import fingerprint, get_logger
from core.metrics import CALLBACK_DUPLICATES, CALLBACK_SIGNATURE_FAILURES, ORDER_TRANSITIONS
from domain.common.exceptions import (
    BusinessException,
    DomainValidationException,
    OrderNotFoundException,
    SignatureMismatchException,
    UpstreamTimeoutException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderStatus, sources_for
from shared.codes.payment_codes import GATEWAY_STATUS_TO_ORDER


logger = get_logger(__name__)

SIGNATURE_FIELD = "s"


@dataclass
class CallbackResult:
    order_id: str
    status: OrderStatus
    transitioned: bool = False
    duplicate: bool = False
    notification: Optional[NotificationResult] = None


def _first(value: Any) -> Optional[str]:
    # 表单解析结果可能是列表
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    return str(value).strip() or None


class ConfirmationService:
    def __init__(
        self,
        gateway: PaymentGateway,
        notifications: NotificationService,
        uow_factory: Callable[..., AbstractUnitOfWork],
        config: FlowSettings,
    ) -> None:
        self._gateway = gateway
        self._notifications = notifications
        self._uow_factory = uow_factory
        self._config = config

    async def handle_callback(self, payload: Mapping[str, Any]) -> CallbackResult:
        """Authenticate and process a confirmation callback.

        Raises DomainValidationException (missing fields), SignatureMismatchException,
        OrderNotFoundException, gateway errors and UpstreamTimeoutException.
        """
        token = _first(payload.get("token"))
        signature = _first(payload.get(SIGNATURE_FIELD))
        missing = [name for name, value in (("token", token), (SIGNATURE_FIELD, signature)) if not value]
        if missing:
            raise DomainValidationException(
                f"Missing required fields: {', '.join(missing)}",
                field=missing[0],
            )

        if not self._gateway.verify_callback(token, signature or ""):
            CALLBACK_SIGNATURE_FAILURES.inc()
            logger.warning("callback_signature_invalid", token=fingerprint(token))
            raise SignatureMismatchException()

        # 超时只覆盖查询与状态更新；提交后的通知不受回调时限影响
        timeout = self._config.callback_timeout_seconds
        try:
            result, settled = await asyncio.wait_for(self._transition(token, source="callback"), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("callback_timeout", token=fingerprint(token), timeout=timeout)
            raise UpstreamTimeoutException("confirmation", timeout) from None
        return await self._finish(result, settled)

    async def poll(self, token: str) -> CallbackResult:
        """Query the gateway for ``token`` and settle the order (return page, sweep)."""
        if not token:
            raise DomainValidationException("Missing required fields: token", field="token")
        return await self._settle(token, source="poll")

    async def get_order(self, order_id: str) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id=order_id)
        return order

    async def reconcile_pending(self, *, older_than: timedelta, limit: int = 100) -> dict[str, int]:
        """Poll the gateway for orders stuck in PENDING.

        Errors on one order are logged and the sweep continues.
        """
        cutoff = datetime.now(timezone.utc) - older_than
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.list_by_status(
                OrderStatus.PENDING, created_before=cutoff, limit=limit
            )

        summary = {"checked": 0, "settled": 0, "pending": 0, "errors": 0}
        for order in orders:
            if not order.gateway_token:
                continue
            summary["checked"] += 1
            try:
                result = await self._settle(order.gateway_token, source="reconcile")
            except BusinessException as exc:
                summary["errors"] += 1
                logger.warning(
                    "reconcile_order_failed",
                    order_id=order.order_id,
                    error_type=exc.error_type,
                    code=int(exc.code),
                )
                continue
            if result.status == OrderStatus.PENDING:
                summary["pending"] += 1
            else:
                summary["settled"] += 1
        logger.info("reconcile_pending_finished", **summary)
        return summary

    async def _load_by_token(self, token: str) -> Optional[Order]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.order_repository.get_by_gateway_token(token)

    def _duplicate(self, order: Order, source: str) -> CallbackResult:
        CALLBACK_DUPLICATES.inc()
        logger.info("payment_duplicate", order_id=order.order_id, status=order.status.value, source=source)
        return CallbackResult(order_id=order.order_id, status=order.status, duplicate=True)

    def _target_for(self, order: Order, status: PaymentStatus) -> tuple[Optional[OrderStatus], Optional[str]]:
        mapped = GATEWAY_STATUS_TO_ORDER.get(status.status_code)
        if mapped is None:
            return None, None
        target = OrderStatus(mapped)
        if target == OrderStatus.REJECTED:
            return target, f"gateway_status_{status.status_code}"
        if status.commerce_order and status.commerce_order != order.order_id:
            logger.error(
                "payment_order_mismatch",
                order_id=order.order_id,
                commerce_order=status.commerce_order,
            )
            return OrderStatus.FAILED, "order_mismatch"
        if status.amount is not None and status.amount != order.amount:
            logger.error(
                "payment_amount_mismatch",
                order_id=order.order_id,
                expected=order.amount,
                received=status.amount,
            )
            return OrderStatus.FAILED, "amount_mismatch"
        return target, None

    async def _settle(self, token: str, *, source: str) -> CallbackResult:
        result, settled = await self._transition(token, source=source)
        return await self._finish(result, settled)

    async def _transition(self, token: str, *, source: str) -> tuple[CallbackResult, Optional[Order]]:
        """Move the order to its gateway-reported status; returns the order only when this caller won."""
        order = await self._load_by_token(token)
        if order is None:
            logger.warning("payment_token_unknown", token=fingerprint(token), source=source)
            raise OrderNotFoundException(token_fingerprint=fingerprint(token))
        if order.is_terminal():
            return self._duplicate(order, source), None

        status = await self._gateway.get_status(token)
        target, reason = self._target_for(order, status)
        if target is None:
            logger.info(
                "payment_still_pending",
                order_id=order.order_id,
                gateway_status=status.status_code,
                source=source,
            )
            return CallbackResult(order_id=order.order_id, status=order.status), None

        async with self._uow_factory() as uow:
            won = await uow.order_repository.transition(
                order.order_id,
                from_statuses=sources_for(target),
                to_status=target,
                gateway_status=status.status_code,
                payer_email=status.payer_email,
                failure_reason=reason,
                status_payload=status.raw_payload,
            )
        if not won:
            current = await self._load_by_token(token) or order
            return self._duplicate(current, source), None

        ORDER_TRANSITIONS.labels(status=target.value).inc()
        order.transition_to(target, reason=reason)
        order.gateway_status = status.status_code
        order.payer_email = status.payer_email or order.payer_email
        logger.info(
            "order_settled",
            order_id=order.order_id,
            status=target.value,
            gateway_status=status.status_code,
            source=source,
        )

        return CallbackResult(order_id=order.order_id, status=target, transitioned=True), order

    async def _finish(self, result: CallbackResult, settled: Optional[Order]) -> CallbackResult:
        if settled is not None and result.status == OrderStatus.CONFIRMED:
            result.notification = await self._notify(settled)
        return result

    async def _notify(self, order: Order) -> Optional[NotificationResult]:
        try:
            return await self._notifications.dispatch(order)
        except Exception:
            # 订单已确认提交，不回滚；未完成的通知由补偿任务重发
            logger.exception("notification_dispatch_failed", order_id=order.order_id)
            return None
