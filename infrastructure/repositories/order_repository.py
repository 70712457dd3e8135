"""
订单仓储实现 - 使用SQLAlchemy实现数据访问

状态转换使用条件 UPDATE（WHERE status IN (...)），依据受影响行数判断是否命中，
PostgreSQL 与 SQLite 下都能保证同一订单只有一个并发请求完成转换。
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger, fingerprint
from domain.common.exceptions import OrderConflictException
from domain.order.entity import Customer, Order, OrderStatus
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderModel


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            order_id=model.order_id,
            amount=int(model.amount),
            customer=Customer.from_dict(model.customer or {}),
            subject=model.subject,
            currency=model.currency,
            status=OrderStatus(model.status),
            gateway_token=model.gateway_token,
            flow_order=model.flow_order,
            gateway_status=model.gateway_status,
            payer_email=model.payer_email,
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
            confirmed_at=model.confirmed_at,
            notified_at=model.notified_at,
            metadata=dict(model.extra_metadata or {}),
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        now = datetime.now(timezone.utc)
        return OrderModel(
            id=entity.id,
            order_id=entity.order_id,
            gateway_token=entity.gateway_token,
            flow_order=entity.flow_order,
            gateway_status=entity.gateway_status,
            payer_email=entity.payer_email,
            amount=entity.amount,
            currency=entity.currency,
            subject=entity.subject,
            customer=entity.customer.to_dict(),
            status=entity.status.value,
            failure_reason=entity.failure_reason,
            created_at=entity.created_at or now,
            updated_at=entity.updated_at or now,
            confirmed_at=entity.confirmed_at,
            notified_at=entity.notified_at,
            extra_metadata=entity.metadata,
        )

    async def _get_model(self, order_id: str) -> Optional[OrderModel]:
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.order_id == order_id)
        )
        return result.scalar_one_or_none()

    async def create(self, order: Order) -> Order:
        """创建订单记录"""
        try:
            db_order = self._to_model(order)
            self.session.add(db_order)
            await self.session.flush()
            await self.session.refresh(db_order)
            logger.info(
                "order_created",
                order_id=db_order.order_id,
                amount=db_order.amount,
                status=db_order.status,
            )
            return self._to_entity(db_order)
        except IntegrityError:
            await self.session.rollback()
            logger.warning("order_create_conflict", order_id=order.order_id)
            raise OrderConflictException(order.order_id, "order_id already exists")

    async def get_by_order_id(self, order_id: str) -> Optional[Order]:
        """根据商户订单号获取订单"""
        db_order = await self._get_model(order_id)
        return self._to_entity(db_order) if db_order else None

    async def get_by_gateway_token(self, token: str) -> Optional[Order]:
        """根据网关令牌获取订单"""
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.gateway_token == token)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def attach_gateway_token(self, order_id: str, token: str, *, flow_order: Optional[int] = None) -> bool:
        """记录网关令牌（CREATED -> PENDING），令牌只写一次"""
        stmt = (
            update(OrderModel)
            .where(
                OrderModel.order_id == order_id,
                OrderModel.status == OrderStatus.CREATED.value,
                OrderModel.gateway_token.is_(None),
            )
            .values(
                gateway_token=token,
                flow_order=flow_order,
                status=OrderStatus.PENDING.value,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except IntegrityError:
            await self.session.rollback()
            logger.error("order_token_conflict", order_id=order_id, token=fingerprint(token))
            raise OrderConflictException(order_id, "gateway token already assigned to another order")
        attached = result.rowcount == 1
        logger.info(
            "order_token_attached" if attached else "order_token_attach_skipped",
            order_id=order_id,
            token=fingerprint(token),
        )
        return attached

    async def transition(
        self,
        order_id: str,
        *,
        from_statuses: Iterable[OrderStatus],
        to_status: OrderStatus,
        gateway_status: Optional[int] = None,
        payer_email: Optional[str] = None,
        failure_reason: Optional[str] = None,
        status_payload: Optional[dict] = None,
    ) -> bool:
        """条件状态转换，返回是否由本次调用完成转换"""
        sources = [s.value for s in from_statuses]
        if not sources:
            raise ValueError("from_statuses must not be empty")

        now = datetime.now(timezone.utc)
        values: dict = {"status": to_status.value, "updated_at": now}
        if to_status == OrderStatus.CONFIRMED:
            values["confirmed_at"] = now
        if gateway_status is not None:
            values["gateway_status"] = gateway_status
        if payer_email is not None:
            values["payer_email"] = payer_email
        if failure_reason is not None:
            values["failure_reason"] = failure_reason
        if status_payload is not None:
            values["last_status_payload"] = status_payload

        stmt = (
            update(OrderModel)
            .where(OrderModel.order_id == order_id, OrderModel.status.in_(sources))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        won = result.rowcount == 1
        logger.info(
            "order_transition" if won else "order_transition_lost",
            order_id=order_id,
            to_status=to_status.value,
            from_statuses=sources,
        )
        return won

    async def record_notification(
        self,
        order_id: str,
        *,
        customer_sent: bool,
        operator_sent: bool,
        at: datetime,
    ) -> Optional[Order]:
        """合并通知标记；已发送的标记不会被后续失败覆盖"""
        db_order = await self._get_model(order_id)
        if db_order is None:
            return None

        meta = dict(db_order.extra_metadata or {})
        meta["customer_notified"] = bool(meta.get("customer_notified")) or customer_sent
        meta["operator_notified"] = bool(meta.get("operator_notified")) or operator_sent
        # 重新赋值新字典以触发 JSON 列的变更检测
        db_order.extra_metadata = meta
        if meta["customer_notified"] and meta["operator_notified"] and db_order.notified_at is None:
            db_order.notified_at = at
        db_order.updated_at = datetime.now(timezone.utc)

        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info(
            "order_notification_recorded",
            order_id=order_id,
            customer_notified=meta["customer_notified"],
            operator_notified=meta["operator_notified"],
            notified=db_order.notified_at is not None,
        )
        return self._to_entity(db_order)

    async def list_by_status(
        self,
        status: OrderStatus,
        *,
        created_before: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Order]:
        """按状态获取订单，最早创建的在前"""
        query = select(OrderModel).where(OrderModel.status == status.value)
        if created_before is not None:
            query = query.where(OrderModel.created_at < created_before)
        query = query.order_by(OrderModel.created_at.asc()).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_unnotified_confirmed(
        self,
        *,
        confirmed_before: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Order]:
        """获取已确认但 notified_at 为空的订单；confirmed_before 排除回调仍在发送中的订单"""
        query = select(OrderModel).where(
            OrderModel.status == OrderStatus.CONFIRMED.value,
            OrderModel.notified_at.is_(None),
        )
        if confirmed_before is not None:
            query = query.where(OrderModel.confirmed_at < confirmed_before)
        query = query.order_by(OrderModel.confirmed_at.asc()).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]
