"""
API依赖项 - 组合根

进程级资源（网关客户端、邮件客户端、日历客户端、数据库引擎）集中在
Container 中创建并挂到 app.state；应用服务按请求组装，只依赖端口。
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from application.ports.calendar import CalendarPort
from application.ports.email_sender import EmailSender
from application.ports.payment_gateway import PaymentGateway
from application.services.booking_service import BookingService
from application.services.confirmation_service import ConfirmationService
from application.services.newsletter_service import NewsletterService
from application.services.notification_service import NotificationService
from application.services.scheduling_service import SchedulingService
from core.config import Settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import create_engine, create_session_factory
from infrastructure.external.calendar import GraphCalendarClient
from infrastructure.external.email import ResendEmailClient
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import make_uow_factory


@dataclass
class Container:
    settings: Settings
    gateway: PaymentGateway
    mailer: EmailSender
    uow_factory: Callable[..., AbstractUnitOfWork]
    engine: Optional[AsyncEngine] = None
    calendar: Optional[CalendarPort] = None

    def notification_service(self) -> NotificationService:
        return NotificationService(self.mailer, self.settings.email, self.uow_factory)

    def confirmation_service(self) -> ConfirmationService:
        return ConfirmationService(
            gateway=self.gateway,
            notifications=self.notification_service(),
            uow_factory=self.uow_factory,
            config=self.settings.flow,
        )

    def booking_service(self) -> BookingService:
        return BookingService(
            gateway=self.gateway,
            uow_factory=self.uow_factory,
            config=self.settings.flow,
            order_prefix=self.settings.ORDER_PREFIX,
        )

    def newsletter_service(self) -> NewsletterService:
        return NewsletterService(self.mailer, self.settings.email)

    def scheduling_service(self) -> SchedulingService:
        if self.calendar is None:
            raise RuntimeError("calendar is not configured")
        return SchedulingService(self.calendar, self.settings.calendar)

    async def aclose(self) -> None:
        """关闭外部客户端与数据库连接池"""
        await self.gateway.aclose()
        await self.mailer.aclose()
        if self.calendar is not None:
            await self.calendar.aclose()
        if self.engine is not None:
            await self.engine.dispose()


def build_container(
    settings: Settings,
    *,
    gateway: Optional[PaymentGateway] = None,
    mailer: Optional[EmailSender] = None,
    calendar: Optional[CalendarPort] = None,
    engine: Optional[AsyncEngine] = None,
) -> Container:
    """按配置创建默认适配器；测试可注入替身"""
    engine = engine or create_engine(settings.database)
    if calendar is None and settings.calendar.enabled:
        calendar = GraphCalendarClient(settings.calendar)
    return Container(
        settings=settings,
        gateway=gateway or get_payment_gateway(settings.flow),
        mailer=mailer or ResendEmailClient(settings.email),
        uow_factory=make_uow_factory(create_session_factory(engine)),
        engine=engine,
        calendar=calendar,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_settings(request: Request) -> Settings:
    return get_container(request).settings


def get_booking_service(request: Request) -> BookingService:
    return get_container(request).booking_service()


def get_confirmation_service(request: Request) -> ConfirmationService:
    return get_container(request).confirmation_service()


def get_newsletter_service(request: Request) -> NewsletterService:
    return get_container(request).newsletter_service()


def get_scheduling_service(request: Request) -> SchedulingService:
    return get_container(request).scheduling_service()
