"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    # 上游可重试的错误（回调场景下返回 5xx 让网关重发）
    retryable: bool = False

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class SignatureMismatchException(BusinessException):
    """回调签名校验失败（不携带任何签名或密钥内容）"""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(
            code=BusinessCode.SIGNATURE_INVALID,
            message=message,
            error_type="AuthenticationError",
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, *, order_id: Optional[str] = None, token_fingerprint: Optional[str] = None):
        details = {}
        if order_id is not None:
            details["order_id"] = order_id
        if token_fingerprint is not None:
            details["token"] = token_fingerprint
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="NotFoundError",
            details=details or None,
        )


class OrderConflictException(BusinessException):
    def __init__(self, order_id: str, reason: str):
        super().__init__(
            code=BusinessCode.ORDER_CONFLICT,
            message=f"Order {order_id} conflict: {reason}",
            error_type="OrderConflict",
            details={"order_id": order_id, "reason": reason},
        )


class UpstreamTimeoutException(BusinessException):
    """请求级超时（外部调用未在期限内完成）"""

    retryable = True

    def __init__(self, operation: str, timeout: float):
        super().__init__(
            code=BusinessCode.UPSTREAM_TIMEOUT,
            message=f"{operation} did not complete within {timeout:g}s",
            error_type="UpstreamTimeout",
            details={"operation": operation, "timeout": timeout},
        )


class UpstreamServiceException(BusinessException):
    """外部服务（邮件、日历）调用失败"""

    retryable = True

    def __init__(self, service: str, message: str, *, status_code: Optional[int] = None):
        super().__init__(
            code=BusinessCode.UPSTREAM_ERROR,
            message=message,
            error_type="UpstreamError",
            details={"service": service, "status_code": status_code},
        )


class SlotUnavailableException(BusinessException):
    def __init__(self, day: str, start: str):
        super().__init__(
            code=BusinessCode.SLOT_UNAVAILABLE,
            message="The selected time slot is no longer available",
            error_type="SlotUnavailable",
            details={"date": day, "start": start},
        )
