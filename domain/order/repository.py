"""
订单仓储接口 - 定义订单数据访问的抽象接口

状态变更全部通过条件更新（compare-and-swap）完成：实现必须保证
"检查当前状态 + 写入新状态" 在单条语句内原子执行，并返回是否命中。
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from .entity import Order, OrderStatus


class OrderRepository(ABC):
    """订单仓储抽象接口 - 只定义能做什么，不管怎么做（不提供删除）"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单记录（状态 CREATED）"""
        pass

    @abstractmethod
    async def get_by_order_id(self, order_id: str) -> Optional[Order]:
        """根据商户订单号获取订单"""
        pass

    @abstractmethod
    async def get_by_gateway_token(self, token: str) -> Optional[Order]:
        """根据网关令牌获取订单"""
        pass

    @abstractmethod
    async def attach_gateway_token(self, order_id: str, token: str, *, flow_order: Optional[int] = None) -> bool:
        """记录网关令牌并置为 PENDING；仅当订单仍为 CREATED 且尚无令牌时生效"""
        pass

    @abstractmethod
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
        """条件状态转换：当前状态属于 from_statuses 时写入 to_status，返回是否成功"""
        pass

    @abstractmethod
    async def record_notification(
        self,
        order_id: str,
        *,
        customer_sent: bool,
        operator_sent: bool,
        at: datetime,
    ) -> Optional[Order]:
        """合并记录通知结果；两封邮件都已发送时设置 notified_at（仅一次）"""
        pass

    @abstractmethod
    async def list_by_status(
        self,
        status: OrderStatus,
        *,
        created_before: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Order]:
        """按状态获取订单（可按创建时间过滤）"""
        pass

    @abstractmethod
    async def list_unnotified_confirmed(
        self,
        *,
        confirmed_before: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Order]:
        """获取已确认但尚未完成通知的订单（可按确认时间过滤）"""
        pass
