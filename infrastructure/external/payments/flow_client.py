"""
Flow (flow.cl) payment gateway client.

Every call is a form-encoded POST signed with the merchant secret (see
``signature``). Transient failures are retried once by the shared REST client;
4xx answers and error payloads are surfaced as GatewayRejectedError without a
retry.
"""
from __future__ import annotations

import json
import time
from typing import Any, Optional

import httpx

from application.dtos.payments import CreatePayment, PaymentCreated, PaymentStatus
from core.config import FlowSettings
from core.logging_config import fingerprint, get_logger
from core.metrics import GATEWAY_CALLS, GATEWAY_LATENCY
from infrastructure.external.api_clients.base import APIError, APIResponse, BaseAPIClient
from .exceptions import GatewayRejectedError, GatewayUnavailableError
from .signature import sign_params, verify


logger = get_logger(__name__)


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


class FlowClient(BaseAPIClient):
    provider = "flow"

    def __init__(self, config: FlowSettings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        super().__init__(
            base_url=config.api_url,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
            retry_delay=config.retry_backoff_seconds,
            transport=transport,
        )
        self._config = config

    async def aclose(self) -> None:
        await self.close()

    def _signed(self, params: dict[str, Any]) -> dict[str, str]:
        payload = sign_params({"apiKey": self._config.api_key, **params}, self._config.secret_key or "")
        return {k: ("" if v is None else str(v)) for k, v in payload.items()}

    def verify_callback(self, token: str, signature: str) -> bool:
        """Check the ``s`` field of a confirmation callback carrying ``token``."""
        params = {"apiKey": self._config.api_key or "", "token": token}
        return verify(params, signature, self._config.secret_key or "")

    async def _call(self, operation: str, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        start = time.perf_counter()
        try:
            response = await self.post(endpoint, data=self._signed(params))
        except APIError as exc:
            GATEWAY_CALLS.labels(operation=operation, outcome="error").inc()
            raise self._map_error(operation, exc) from exc
        finally:
            GATEWAY_LATENCY.labels(operation=operation).observe((time.perf_counter() - start) * 1000)

        body = self._parse_body(operation, response)
        GATEWAY_CALLS.labels(operation=operation, outcome="ok").inc()
        return body

    def _map_error(self, operation: str, exc: APIError) -> Exception:
        if exc.transient:
            logger.warning(
                "gateway_unavailable",
                operation=operation,
                status_code=exc.status_code,
                error_type=type(exc).__name__,
            )
            return GatewayUnavailableError(
                f"Payment gateway unavailable during {operation}",
                operation=operation,
                status_code=exc.status_code,
            )
        gateway_code = None
        if exc.response is not None and isinstance(exc.response.data, dict):
            code = exc.response.data.get("code")
            gateway_code = str(code) if code is not None else None
        logger.warning(
            "gateway_rejected",
            operation=operation,
            status_code=exc.status_code,
            gateway_code=gateway_code,
        )
        return GatewayRejectedError(
            f"Payment gateway rejected {operation}: {exc.message}",
            operation=operation,
            status_code=exc.status_code,
            gateway_code=gateway_code,
        )

    def _parse_body(self, operation: str, response: APIResponse) -> dict[str, Any]:
        data = response.data
        if data is None:
            try:
                data = json.loads(response.raw_content or b"null")
            except ValueError:
                data = None
        if not isinstance(data, dict):
            GATEWAY_CALLS.labels(operation=operation, outcome="invalid").inc()
            raise GatewayUnavailableError(
                f"Payment gateway returned an unreadable {operation} response",
                operation=operation,
                status_code=response.status_code,
            )
        return data

    async def create_payment(self, req: CreatePayment) -> PaymentCreated:
        params: dict[str, Any] = {
            "commerceOrder": req.order_id,
            "subject": req.subject,
            "currency": self._config.currency,
            "amount": req.amount,
            "email": req.email,
            "paymentMethod": self._config.payment_method,
            "urlConfirmation": self._config.url_confirmation,
            "urlReturn": self._config.url_return,
        }
        if req.optional:
            params["optional"] = json.dumps(req.optional, ensure_ascii=False, separators=(",", ":"))

        logger.info("gateway_create_request", order_id=req.order_id, amount=req.amount)
        body = await self._call("create", "/payment/create", params)

        url = body.get("url")
        token = body.get("token")
        if not url or not token:
            code = body.get("code")
            raise GatewayRejectedError(
                f"Payment gateway rejected create: {body.get('message') or 'missing url/token'}",
                operation="create",
                gateway_code=str(code) if code is not None else None,
            )
        token = str(token)
        logger.info("gateway_create_response", order_id=req.order_id, token=fingerprint(token))
        return PaymentCreated(
            redirect_url=f"{url}?token={token}",
            token=token,
            flow_order=_as_int(body.get("flowOrder")),
        )

    async def get_status(self, token: str) -> PaymentStatus:
        body = await self._call("get_status", "/payment/getStatus", {"token": token})

        status_code = _as_int(body.get("status"))
        if status_code is None:
            code = body.get("code")
            raise GatewayRejectedError(
                f"Payment gateway rejected get_status: {body.get('message') or 'missing status'}",
                operation="get_status",
                gateway_code=str(code) if code is not None else None,
            )
        payer = body.get("payer")
        logger.info(
            "gateway_status_response",
            token=fingerprint(token),
            commerce_order=body.get("commerceOrder"),
            gateway_status=status_code,
        )
        return PaymentStatus(
            token=token,
            status_code=status_code,
            commerce_order=body.get("commerceOrder"),
            flow_order=_as_int(body.get("flowOrder")),
            amount=_as_int(body.get("amount")),
            payer_email=payer if isinstance(payer, str) and payer else None,
            raw_payload=body,
        )
