"""
请求上下文中间件
生成或透传 X-Request-ID，解析客户端 IP，并绑定到 structlog 上下文
"""
import uuid
from contextvars import ContextVar
from typing import Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
client_ip_var: ContextVar[Optional[str]] = ContextVar("client_ip", default=None)


def resolve_client_ip(request: Request, *, trust_forwarded: bool = True) -> str:
    """X-Forwarded-For 第一个地址 > X-Real-IP > 连接地址"""
    if trust_forwarded:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()
    return request.client.host if request.client else "unknown"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID 追踪中间件

    request_id 与 client_ip 同时写入 request.state 与 contextvars，
    响应头回传 X-Request-ID。
    """

    HEADER_NAME = "X-Request-ID"

    def __init__(self, app: ASGIApp, *, trust_forwarded: bool = True):
        super().__init__(app)
        self.trust_forwarded = trust_forwarded

    async def dispatch(self, request: Request, call_next):
        # 只接受长度合理的外部 ID
        incoming = (request.headers.get(self.HEADER_NAME) or "").strip()
        request_id = incoming if 0 < len(incoming) <= 128 else str(uuid.uuid4())
        client_ip = resolve_client_ip(request, trust_forwarded=self.trust_forwarded)

        request.state.request_id = request_id
        request.state.client_ip = client_ip
        request_id_var.set(request_id)
        client_ip_var.set(client_ip)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response


def get_request_id() -> Optional[str]:
    """当前请求的 request_id，不在请求上下文中时为 None"""
    return request_id_var.get()


def get_client_ip() -> Optional[str]:
    return client_ip_var.get()
