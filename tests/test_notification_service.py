import asyncio
from datetime import timedelta

import pytest

from application.services import email_templates
from domain.order.entity import Customer, OrderStatus

ANY_AGE = timedelta(seconds=-60)


async def _confirm(uow_factory, order):
    async with uow_factory() as uow:
        assert await uow.order_repository.transition(
            order.order_id,
            from_statuses=(OrderStatus.PENDING,),
            to_status=OrderStatus.CONFIRMED,
        )
    async with uow_factory(readonly=True) as uow:
        return await uow.order_repository.get_by_order_id(order.order_id)


def test_format_clp():
    assert email_templates.format_clp(50000) == "$50.000"
    assert email_templates.format_clp(1234567) == "$1.234.567"
    assert email_templates.format_clp(500) == "$500"


@pytest.mark.asyncio
async def test_messages_escape_customer_input(notifications, make_order):
    order = await make_order(token=None)
    order.customer = Customer(
        name="<script>alert(1)</script>",
        email="ana@example.com",
        phone="+56911111111",
        comments="a & b",
    )

    customer = notifications.customer_message(order)
    operator = notifications.operator_message(order)

    assert "<script>" not in customer.html and "&lt;script&gt;" in customer.html
    assert "a &amp; b" in operator.html
    assert customer.to == ["ana@example.com"]
    assert customer.reply_to == "makatatuajes@outlook.com"
    assert operator.to == ["makatatuajes@outlook.com"]
    assert operator.reply_to == "ana@example.com"
    assert order.order_id in operator.subject
    assert "$50.000" in operator.html


@pytest.mark.asyncio
async def test_notify_reports_each_recipient_independently(notifications, mailer, make_order):
    order = await make_order()
    mailer.fail_for = {"makatatuajes@outlook.com"}

    result = await notifications.notify(order)

    assert result.customer_sent is True
    assert result.operator_sent is False
    assert not result.complete
    assert len(mailer.sent) == 1


@pytest.mark.asyncio
async def test_dispatch_records_completion(notifications, mailer, make_order, uow_factory):
    order = await _confirm(uow_factory, await make_order())

    result = await notifications.dispatch(order)

    assert result.complete
    assert order.notified_at is not None
    async with uow_factory(readonly=True) as uow:
        stored = await uow.order_repository.get_by_order_id(order.order_id)
    assert stored.customer_notified and stored.operator_notified
    assert stored.notified_at is not None


@pytest.mark.asyncio
async def test_retry_pending_only_sends_missing_messages(notifications, mailer, make_order, uow_factory):
    order = await _confirm(uow_factory, await make_order())
    mailer.fail_for = {"ana@example.com"}
    first = await notifications.dispatch(order)
    assert first.operator_sent and not first.customer_sent
    assert [m.to for m in mailer.sent] == [["makatatuajes@outlook.com"]]

    mailer.fail_for = set()
    summary = await notifications.retry_pending(older_than=ANY_AGE)

    assert summary == {"checked": 1, "completed": 1, "incomplete": 0}
    assert [m.to for m in mailer.sent] == [["makatatuajes@outlook.com"], ["ana@example.com"]]

    again = await notifications.retry_pending(older_than=ANY_AGE)
    assert again == {"checked": 0, "completed": 0, "incomplete": 0}
    assert len(mailer.sent) == 2


@pytest.mark.asyncio
async def test_retry_pending_counts_incomplete(notifications, mailer, make_order, uow_factory):
    await _confirm(uow_factory, await make_order())
    mailer.fail_for = {"ana@example.com", "makatatuajes@outlook.com"}

    summary = await notifications.retry_pending(older_than=ANY_AGE)

    assert summary == {"checked": 1, "completed": 0, "incomplete": 1}
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_retry_pending_skips_recent_confirmations(notifications, mailer, make_order, uow_factory):
    await _confirm(uow_factory, await make_order())

    summary = await notifications.retry_pending()

    assert summary == {"checked": 0, "completed": 0, "incomplete": 0}
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_notify_sends_both_messages_concurrently(notifications, mailer, make_order):
    order = await make_order()
    mailer.delay = 0.2
    loop = asyncio.get_running_loop()

    started = loop.time()
    result = await notifications.notify(order)
    elapsed = loop.time() - started

    assert result.complete
    assert elapsed < 0.35
    assert [m.to for m in mailer.sent] == [["ana@example.com"], ["makatatuajes@outlook.com"]]
