"""
统一错误响应格式定义

所有错误响应形如 {"success": false, "error": "...", "code": ..., "errorType": ..., "requestId": ...}，
与站点前端既有的 {success, error} 约定兼容。
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class ErrorResponse(BaseModel):
    """错误响应模型"""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    error: str
    code: int
    error_type: str = Field(serialization_alias="errorType")
    request_id: Optional[str] = Field(default=None, serialization_alias="requestId")
    field: Optional[str] = None
    retryable: Optional[bool] = None
    details: Optional[dict] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("timestamp")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """序列化时间戳为 UTC ISO8601，统一使用 Z 结尾"""
        ts = timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        else:
            ts = ts.astimezone(timezone.utc)
        return ts.isoformat().replace("+00:00", "Z")


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
    retryable: Optional[bool] = None,
) -> dict[str, Any]:
    """
    创建错误响应体（已序列化，可直接交给 JSONResponse）

    空字段不输出。
    """
    body = ErrorResponse(
        error=message,
        code=int(code),
        error_type=error_type,
        request_id=request_id,
        field=field,
        retryable=retryable,
        details=details,
    )
    return body.model_dump(mode="json", by_alias=True, exclude_none=True)
