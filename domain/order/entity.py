"""
订单领域实体 - 一次预约/支付尝试的聚合根
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class OrderStatus(str, Enum):
    """订单状态枚举"""
    CREATED = "created"         # 已创建，尚未拿到网关令牌
    PENDING = "pending"         # 已跳转网关，等待支付结果
    CONFIRMED = "confirmed"     # 支付成功
    REJECTED = "rejected"       # 网关拒绝/用户取消
    FAILED = "failed"           # 本地不可恢复错误


# 状态机：只允许单向前进，终态没有出边
# 回调按令牌查找订单，支付结果只能作用于已挂令牌的 PENDING 订单
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CREATED: frozenset({
        OrderStatus.PENDING,
        OrderStatus.FAILED,
    }),
    OrderStatus.PENDING: frozenset({
        OrderStatus.CONFIRMED,
        OrderStatus.REJECTED,
        OrderStatus.FAILED,
    }),
    OrderStatus.CONFIRMED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
    OrderStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def sources_for(target: OrderStatus) -> frozenset[OrderStatus]:
    """返回可以转换到 target 的全部源状态（供条件更新使用）"""
    return frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if target in targets)


def generate_order_id(prefix: str = "MAKA") -> str:
    """生成商户订单号：PREFIX-<毫秒时间戳>-<4位随机数>"""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.randbelow(10_000):04d}"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class Customer:
    """下单时的客户信息快照（不可变）"""
    name: str
    email: str
    phone: str
    gender: Optional[str] = None
    comments: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "gender": self.gender,
            "comments": self.comments,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Customer":
        return cls(
            name=data.get("name", ""),
            email=data.get("email", ""),
            phone=data.get("phone", ""),
            gender=data.get("gender"),
            comments=data.get("comments"),
        )


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. order_id 在调用网关之前生成，之后不可变
    2. 金额为正整数（CLP 无小数）
    3. 状态转换单向前进，终态不可再变
    4. gateway_token 一旦记录不再改变
    5. notified_at 只设置一次
    """

    id: Optional[int]
    order_id: str
    amount: int
    customer: Customer
    subject: str
    currency: str = "CLP"
    status: OrderStatus = OrderStatus.CREATED
    gateway_token: Optional[str] = None
    flow_order: Optional[int] = None
    gateway_status: Optional[int] = None
    payer_email: Optional[str] = None
    failure_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    notified_at: Optional[datetime] = None

    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self._validate_amount()
        if not self.order_id:
            raise DomainValidationException("order_id is required", field="order_id")
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.confirmed_at = _ensure_utc(self.confirmed_at)
        self.notified_at = _ensure_utc(self.notified_at)
        if self.metadata is None:
            self.metadata = {}

    def _validate_amount(self) -> None:
        """业务规则：金额必须是正整数"""
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount <= 0:
            raise DomainValidationException(
                f"amount must be a positive integer: {self.amount!r}",
                field="amount",
            )

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_transition_to(self, target: OrderStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def transition_to(self, target: OrderStatus, *, reason: Optional[str] = None) -> None:
        """内存中的状态转换（持久化由仓储的条件更新完成）"""
        if not self.can_transition_to(target):
            raise DomainValidationException(
                f"cannot transition order from {self.status.value} to {target.value}",
                field="status",
            )
        now = datetime.now(timezone.utc)
        self.status = target
        self.updated_at = now
        if target == OrderStatus.CONFIRMED:
            self.confirmed_at = now
        if reason:
            self.failure_reason = reason

    def attach_token(self, token: str) -> None:
        """记录网关令牌并进入 PENDING"""
        if not token:
            raise DomainValidationException("gateway token is required", field="gateway_token")
        if self.gateway_token and self.gateway_token != token:
            raise DomainValidationException("gateway token already assigned", field="gateway_token")
        self.transition_to(OrderStatus.PENDING)
        self.gateway_token = token

    @property
    def customer_notified(self) -> bool:
        return bool(self.metadata.get("customer_notified"))

    @property
    def operator_notified(self) -> bool:
        return bool(self.metadata.get("operator_notified"))

    @property
    def deposit_label(self) -> str:
        return self.metadata.get("deposit_label") or self.subject

    def gateway_optional_payload(self) -> dict:
        """随支付请求一同提交给网关的客户快照（网关原样回传）"""
        return {
            "nombre": self.customer.name,
            "email": self.customer.email,
            "celular": self.customer.phone,
            "genero": self.customer.gender,
            "comentarios": self.customer.comments,
            "abono": self.deposit_label,
            "monto": self.amount,
            "fecha": (self.created_at or datetime.now(timezone.utc)).isoformat(),
        }
