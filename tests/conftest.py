"""Pytest bootstrap configuration.

Mandatory settings are provided through the environment before any module
that loads settings is imported. Shared doubles for the payment gateway,
e-mail provider and calendar live here.
"""
import asyncio
import os
from itertools import count
from typing import Optional

import pytest
import pytest_asyncio

os.environ.setdefault("FLOW__API_KEY", "test-api-key")
os.environ.setdefault("FLOW__SECRET_KEY", "test-secret-key")
os.environ.setdefault("FLOW__URL_CONFIRMATION", "https://example.test/api/flow/confirm")
os.environ.setdefault("FLOW__URL_RETURN", "https://example.test/api/flow/return")
os.environ.setdefault("EMAIL__API_KEY", "re_test_key")


class StubGateway:
    """In-memory payment gateway; statuses are configured per token."""

    provider = "stub"

    def __init__(self, api_key: str, secret_key: str, *, delay: float = 0.0):
        self.api_key = api_key
        self.secret_key = secret_key
        self.delay = delay
        self.statuses: dict[str, dict] = {}
        self.create_calls: list = []
        self.status_calls: list[str] = []
        self.create_error: Optional[Exception] = None
        self.status_error: Optional[Exception] = None
        self._tokens = count(1)
        self.closed = False

    def set_status(self, token: str, status: int, *, amount: Optional[int] = None, commerce_order: Optional[str] = None):
        self.statuses[token] = {"status": status, "amount": amount, "commerce_order": commerce_order}

    async def create_payment(self, req):
        from application.dtos.payments import PaymentCreated

        self.create_calls.append(req)
        if self.create_error is not None:
            raise self.create_error
        token = f"tok-{next(self._tokens)}"
        return PaymentCreated(
            redirect_url=f"https://sandbox.flow.cl/app/web/pay.php?token={token}",
            token=token,
            flow_order=1000 + len(self.create_calls),
        )

    async def get_status(self, token: str):
        from application.dtos.payments import PaymentStatus

        self.status_calls.append(token)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.status_error is not None:
            raise self.status_error
        entry = self.statuses.get(token, {"status": 1})
        return PaymentStatus(
            token=token,
            status_code=entry["status"],
            commerce_order=entry.get("commerce_order"),
            amount=entry.get("amount"),
            payer_email="payer@example.com",
            raw_payload={"status": entry["status"]},
        )

    def verify_callback(self, token: str, signature: str) -> bool:
        from infrastructure.external.payments.signature import verify

        return verify({"apiKey": self.api_key, "token": token}, signature, self.secret_key)

    async def aclose(self) -> None:
        self.closed = True


class RecordingMailer:
    """Collects sent messages; addresses in ``fail_for`` raise an upstream error."""

    def __init__(self):
        self.sent: list = []
        self.fail_for: set[str] = set()
        self.delay = 0.0
        self.closed = False

    async def send(self, message) -> str:
        from domain.common.exceptions import UpstreamServiceException

        if any(addr in self.fail_for for addr in message.to):
            raise UpstreamServiceException("resend", "Email provider request failed", status_code=500)
        if self.delay:
            await asyncio.sleep(self.delay)
        self.sent.append(message)
        return f"msg-{len(self.sent)}"

    async def aclose(self) -> None:
        self.closed = True


class StubCalendar:
    timezone = "America/Santiago"

    def __init__(self, busy=None):
        self.busy = list(busy or [])
        self.events: list = []
        self.closed = False

    async def list_busy(self, day):
        return [b for b in self.busy if b.start.date() <= day <= b.end.date()]

    async def create_event(self, event) -> str:
        self.events.append(event)
        return f"evt-{len(self.events)}"

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def settings(tmp_path):
    from core.config import load_settings

    return load_settings(
        _env_file=None,
        database={"url": f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}"},
    )


@pytest_asyncio.fixture
async def engine(settings):
    from infrastructure.database import create_engine, create_tables

    eng = create_engine(settings.database)
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def uow_factory(engine):
    from infrastructure.database import create_session_factory
    from infrastructure.unit_of_work import make_uow_factory

    return make_uow_factory(create_session_factory(engine))


@pytest.fixture
def gateway(settings):
    return StubGateway(settings.flow.api_key, settings.flow.secret_key)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def make_calendar():
    return StubCalendar


@pytest.fixture
def notifications(mailer, settings, uow_factory):
    from application.services.notification_service import NotificationService

    return NotificationService(mailer, settings.email, uow_factory)


@pytest.fixture
def confirmation(gateway, notifications, uow_factory, settings):
    from application.services.confirmation_service import ConfirmationService

    return ConfirmationService(gateway, notifications, uow_factory, settings.flow)


@pytest.fixture
def signed_callback(settings):
    from infrastructure.external.payments.signature import sign

    def _build(token: str) -> dict:
        return {
            "token": token,
            "s": sign({"apiKey": settings.flow.api_key, "token": token}, settings.flow.secret_key),
        }

    return _build


@pytest.fixture
def make_order(uow_factory):
    """Persist an order, optionally already PENDING with a gateway token."""
    from domain.order.entity import Customer, Order, generate_order_id

    async def _make(*, amount: int = 50000, token: Optional[str] = "tok-1", **overrides) -> "Order":
        order = Order(
            id=None,
            order_id=overrides.pop("order_id", None) or generate_order_id("TEST"),
            amount=amount,
            customer=Customer(
                name="Ana Pérez",
                email="ana@example.com",
                phone="+56911111111",
                gender="femenino",
                comments="Rosa en el antebrazo",
            ),
            subject="Maka Tatuajes - Abono sesión",
            metadata={"deposit_label": "Abono sesión"},
            **overrides,
        )
        async with uow_factory() as uow:
            created = await uow.order_repository.create(order)
            if token:
                await uow.order_repository.attach_gateway_token(created.order_id, token)
        async with uow_factory(readonly=True) as uow:
            return await uow.order_repository.get_by_order_id(created.order_id)

    return _make
