"""
Flow payment routes.

Thin handlers: parse the request, call the application service, render the
response. The confirmation callback answers in plain text because Flow only
looks at the status code and body literal.
"""
from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, RedirectResponse

from api.dependencies import get_booking_service, get_confirmation_service, get_settings
from api.middleware import get_client_ip
from api.utils.forms import first_value, ip_allowed, read_payload
from application.dtos.payments import BookingRequest, OrderStatusView
from application.services.booking_service import BookingService
from application.services.confirmation_service import ConfirmationService
from core.config import Settings
from core.exceptions import business_code_to_http_status
from core.logging_config import fingerprint, get_logger
from domain.common.exceptions import BusinessException, OrderNotFoundException
from domain.order.entity import OrderStatus


router = APIRouter(prefix="/flow", tags=["Flow"])
logger = get_logger(__name__)


@router.post("/payment", summary="Create a deposit booking and its Flow payment")
async def create_payment(
    payload: BookingRequest,
    service: BookingService = Depends(get_booking_service),
):
    result = await service.create_booking(payload)
    return result.model_dump(by_alias=True)


@router.post("/confirm", summary="Flow confirmation callback", response_class=PlainTextResponse)
async def confirm_payment(
    request: Request,
    service: ConfirmationService = Depends(get_confirmation_service),
    settings: Settings = Depends(get_settings),
):
    client_ip = get_client_ip() or (request.client.host if request.client else None)
    if not ip_allowed(client_ip, settings.flow.ip_allowlist):
        logger.warning("callback_ip_rejected", client_ip=client_ip)
        return PlainTextResponse("Forbidden", status_code=403)

    try:
        payload = await read_payload(request)
        result = await service.handle_callback(payload)
    except BusinessException as exc:
        status_code = business_code_to_http_status(exc.code)
        return PlainTextResponse(exc.message, status_code=status_code)
    except Exception:
        # 返回 5xx 让 Flow 重试
        logger.exception("callback_unexpected_error")
        return PlainTextResponse("Internal error", status_code=500)

    logger.info(
        "callback_processed",
        order_id=result.order_id,
        status=result.status.value,
        duplicate=result.duplicate,
        transitioned=result.transitioned,
    )
    return PlainTextResponse(settings.flow.ack_body)


def _with_order(url: str, order_id: Optional[str]) -> str:
    if not order_id:
        return url
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{urlencode({'orderId': order_id})}"


@router.api_route("/return", methods=["GET", "POST"], summary="Customer return from Flow")
async def payment_return(
    request: Request,
    service: ConfirmationService = Depends(get_confirmation_service),
    settings: Settings = Depends(get_settings),
):
    token = first_value(request.query_params.get("token"))
    if request.method == "POST":
        try:
            payload = await read_payload(request)
        except BusinessException:
            payload = {}
        token = first_value(payload.get("token")) or token

    site = settings.site
    if not token:
        logger.info("payment_return_without_token")
        return RedirectResponse(site.failure_url, status_code=303)

    try:
        result = await service.poll(token)
    except OrderNotFoundException:
        return RedirectResponse(site.failure_url, status_code=303)
    except BusinessException as exc:
        # 轮询失败不影响跳转，最终状态以回调为准
        logger.warning("payment_return_poll_failed", token=fingerprint(token), error_type=exc.error_type)
        return RedirectResponse(site.success_url, status_code=303)

    target = site.failure_url if result.status in (OrderStatus.REJECTED, OrderStatus.FAILED) else site.success_url
    return RedirectResponse(_with_order(target, result.order_id), status_code=303)


@router.get("/orders/{order_id}", summary="Order status")
async def order_status(
    order_id: str,
    service: ConfirmationService = Depends(get_confirmation_service),
):
    order = await service.get_order(order_id)
    view = OrderStatusView(
        order_id=order.order_id,
        status=order.status.value,
        amount=order.amount,
        notified=order.notified_at is not None,
    )
    return view.model_dump(by_alias=True)
