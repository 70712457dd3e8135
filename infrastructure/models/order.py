"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, BigInteger, String, DateTime, JSON, Index
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.order.entity.Order 中
    """
    __tablename__ = "orders"

    # 主键
    id = Column(Integer, primary_key=True, index=True)

    # 商户订单号（调用网关前生成，不可变）
    order_id = Column(String(64), unique=True, index=True, nullable=False, comment="商户订单号")

    # 网关信息
    gateway_token = Column(String(128), unique=True, nullable=True, comment="网关支付令牌")
    flow_order = Column(BigInteger, nullable=True, comment="网关侧订单号")
    gateway_status = Column(Integer, nullable=True, comment="网关最近一次返回的状态码")
    payer_email = Column(String(255), nullable=True, comment="付款人邮箱")

    # 金额信息（CLP 为整数）
    amount = Column(BigInteger, nullable=False, comment="金额（整数货币单位）")
    currency = Column(String(3), nullable=False, default="CLP", comment="货币代码 ISO-4217")
    subject = Column(String(255), nullable=False, comment="支付标题")

    # 客户快照
    customer = Column(JSON, nullable=False, comment="客户信息快照")

    # 状态
    status = Column(
        String(20),
        nullable=False,
        default="created",
        index=True,
        comment="订单状态: created/pending/confirmed/rejected/failed"
    )
    failure_reason = Column(String(255), nullable=True, comment="失败原因")
    last_status_payload = Column(JSON, nullable=True, comment="最近一次状态查询的原始响应")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    confirmed_at = Column(DateTime(timezone=True), nullable=True, comment="确认时间")
    notified_at = Column(DateTime(timezone=True), nullable=True, comment="通知完成时间")

    # 扩展字段（通知标记、押金选项等）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    __table_args__ = (
        Index("idx_order_status_created", "status", "created_at"),
    )

    def __repr__(self):
        return f"<Order(order_id={self.order_id}, status={self.status}, amount={self.amount})>"
