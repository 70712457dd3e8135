"""
REST 客户端基础设施

Flow、Microsoft Graph 与 Resend 客户端共享的 httpx 封装与错误分类
"""
from .base import (
    APIConnectionError,
    APIError,
    APIResponse,
    BaseAPIClient,
    ClientError,
    ServerError,
)

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "ClientError",
    "ServerError",
    "APIConnectionError",
]
