"""
Deposit booking use-case.

The order is persisted before the gateway is called so every payment the
gateway knows about has a local record; a gateway failure leaves the order
FAILED with the reason instead of a dangling CREATED row.
"""
from __future__ import annotations

from typing import Callable

from application.dtos.payments import BookingRequest, BookingResult, CreatePayment
from application.ports.payment_gateway import PaymentGateway
from core.config import FlowSettings
from core.logging_config import fingerprint, get_logger
from core.metrics import ORDER_TRANSITIONS
from domain.common.exceptions import BusinessException, OrderConflictException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Customer, Order, OrderStatus, generate_order_id


logger = get_logger(__name__)


class BookingService:
    def __init__(
        self,
        gateway: PaymentGateway,
        uow_factory: Callable[..., AbstractUnitOfWork],
        config: FlowSettings,
        *,
        order_prefix: str = "MAKA",
    ) -> None:
        self._gateway = gateway
        self._uow_factory = uow_factory
        self._config = config
        self._order_prefix = order_prefix

    def _build_order(self, req: BookingRequest) -> Order:
        return Order(
            id=None,
            order_id=generate_order_id(self._order_prefix),
            amount=req.price,
            customer=Customer(
                name=req.customer_name,
                email=str(req.email),
                phone=req.phone,
                gender=req.gender,
                comments=req.comments,
            ),
            subject=f"{self._config.subject_prefix} - {req.deposit_label}",
            currency=self._config.currency,
            metadata={"deposit_label": req.deposit_label},
        )

    async def create_booking(self, req: BookingRequest) -> BookingResult:
        async with self._uow_factory() as uow:
            order = await uow.order_repository.create(self._build_order(req))
        logger.info("booking_order_created", order_id=order.order_id, amount=order.amount)

        try:
            created = await self._gateway.create_payment(
                CreatePayment(
                    order_id=order.order_id,
                    subject=order.subject,
                    amount=order.amount,
                    email=order.customer.email,
                    optional=order.gateway_optional_payload(),
                )
            )
        except BusinessException as exc:
            await self._mark_failed(order.order_id, f"gateway_{exc.error_type}")
            raise
        except Exception:
            await self._mark_failed(order.order_id, "gateway_unexpected")
            raise

        try:
            async with self._uow_factory() as uow:
                attached = await uow.order_repository.attach_gateway_token(
                    order.order_id, created.token, flow_order=created.flow_order
                )
        except OrderConflictException:
            await self._mark_failed(order.order_id, "token_conflict")
            raise
        if not attached:
            raise OrderConflictException(order.order_id, "order is no longer awaiting a payment token")

        ORDER_TRANSITIONS.labels(status=OrderStatus.PENDING.value).inc()
        logger.info("booking_payment_created", order_id=order.order_id, token=fingerprint(created.token))
        return BookingResult(redirect_url=created.redirect_url, order_id=order.order_id)

    async def _mark_failed(self, order_id: str, reason: str) -> None:
        try:
            async with self._uow_factory() as uow:
                moved = await uow.order_repository.transition(
                    order_id,
                    from_statuses=(OrderStatus.CREATED,),
                    to_status=OrderStatus.FAILED,
                    failure_reason=reason,
                )
        except Exception:
            # 保留原始网关错误向上抛出
            logger.exception("booking_mark_failed_error", order_id=order_id)
            return
        if moved:
            ORDER_TRANSITIONS.labels(status=OrderStatus.FAILED.value).inc()
        logger.warning("booking_failed", order_id=order_id, reason=reason)
