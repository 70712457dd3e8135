"""
Exceptions for the payment gateway mapped to unified BusinessException variants.

Messages never include request parameters, signatures or secrets.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class GatewayUnavailableError(BusinessException):
    """Network error, timeout, 429 or 5xx from the gateway; safe to retry later."""

    retryable = True

    def __init__(self, message: str, *, operation: str, status_code: Optional[int] = None):
        super().__init__(
            code=PaymentCode.GATEWAY_UNAVAILABLE,
            message=message,
            error_type="GatewayUnavailable",
            details={"operation": operation, "status_code": status_code},
        )


class GatewayRejectedError(BusinessException):
    """The gateway answered with a client error or an error payload."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        status_code: Optional[int] = None,
        gateway_code: Optional[str] = None,
    ):
        super().__init__(
            code=PaymentCode.GATEWAY_REJECTED,
            message=message,
            error_type="GatewayRejected",
            details={"operation": operation, "status_code": status_code, "gateway_code": gateway_code},
        )
