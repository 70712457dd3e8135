"""
REST API客户端基类

提供通用的HTTP请求功能，包括：
- 自动重试（仅网络错误、超时、429 与 5xx）
- 错误处理
- 请求/响应日志（不记录请求体与认证头）
- 超时控制
"""
import asyncio
from typing import Dict, Any, Optional, Union
from dataclasses import dataclass
from enum import Enum
import time

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger

logger = get_logger(__name__)


class HTTPMethod(Enum):
    """HTTP方法枚举"""
    GET = "GET"
    POST = "POST"


@dataclass
class APIResponse:
    """API响应封装"""
    status_code: int
    headers: Dict[str, str]
    data: Any
    raw_content: bytes
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        """判断请求是否失败"""
        return self.status_code >= 400


class APIError(Exception):
    """API错误基类"""

    # 是否属于瞬时错误（网络、超时、429、5xx）
    transient: bool = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
        request_id: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        self.request_id = request_id
        super().__init__(self.message)

    def __str__(self):
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)


class ClientError(APIError):
    """4xx 客户端错误（请求被拒绝，不重试）"""
    pass


class APIAuthError(ClientError):
    """认证错误"""
    pass


class APINotFoundError(ClientError):
    """资源未找到错误"""
    pass


class RateLimitError(APIError):
    """速率限制错误"""
    transient = True


class ServerError(APIError):
    """服务器错误"""
    transient = True


class APIConnectionError(APIError):
    """网络错误或超时"""
    transient = True


class RetryableAPIError(APIError):
    """可重试的API错误"""
    transient = True

    def __init__(self, message: str, status_code: Optional[int], response: Optional['APIResponse'], retry_after: Optional[float] = None):
        super().__init__(message=message, status_code=status_code, response=response, request_id=response.request_id if response else None)
        self.retry_after = retry_after


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class BaseAPIClient:
    """
    REST API客户端基类

    提供通用的HTTP请求功能，子类可以继承并实现具体的API调用
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_retries: int = 1,
        retry_delay: float = 0.5,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        初始化API客户端

        Args:
            base_url: API基础URL
            timeout: 单次请求超时时间（秒）
            max_retries: 最大重试次数（不含首次请求）
            retry_delay: 重试退避基数（秒）
            headers: 默认请求头
            auth_token: 认证令牌
            transport: 自定义 httpx 传输层（测试时注入 MockTransport）
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._transport = transport

        # Content-Type 由 httpx 根据 json/data 自动设置
        self.default_headers = {
            "Accept": "application/json",
            "User-Agent": "Maka-Booking/1.0"
        }
        if headers:
            self.default_headers.update(headers)

        if auth_token:
            self.set_auth_token(auth_token)

        self._client: Optional[httpx.AsyncClient] = None

    def set_auth_token(self, token: str, header_name: str = "Authorization", prefix: str = "Bearer"):
        """设置认证令牌"""
        self.default_headers[header_name] = f"{prefix} {token}" if prefix else token

    @property
    def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """关闭HTTP客户端"""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_url(self, endpoint: str) -> str:
        """构建完整URL（endpoint 为绝对地址时原样返回）"""
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        endpoint = endpoint.lstrip('/')
        return f"{self.base_url}/{endpoint}"

    def _handle_error_response(self, status_code: int, response: APIResponse):
        """处理错误响应"""
        error_map = {
            401: APIAuthError,
            403: APIAuthError,
            404: APINotFoundError,
            429: RateLimitError,
        }
        if status_code >= 500:
            error_class = ServerError
        else:
            error_class = error_map.get(status_code, ClientError)

        # 尝试从响应中提取错误消息
        error_message = f"API request failed with status {status_code}"
        if isinstance(response.data, dict):
            detail = response.data.get("message") or response.data.get("error") or response.data.get("detail")
            if isinstance(detail, dict):
                detail = detail.get("message")
            if detail:
                error_message = str(detail)

        raise error_class(
            message=error_message,
            status_code=status_code,
            response=response,
            request_id=response.request_id
        )

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "api_request_retry",
            base_url=self.base_url,
            attempt=retry_state.attempt_number,
            error_type=type(exc).__name__ if exc else None,
            status_code=getattr(exc, "status_code", None),
        )

    async def _request(
        self,
        method: Union[str, HTTPMethod],
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> APIResponse:
        """
        发送HTTP请求

        Raises:
            APIError: 所有失败都会转换为 APIError 子类，transient 标记是否可重试
        """
        if isinstance(method, HTTPMethod):
            method = method.value

        url = self._build_url(endpoint)
        request_headers = {**self.default_headers}
        if headers:
            request_headers.update(headers)

        async def _send_once() -> APIResponse:
            start = time.perf_counter()
            response = await self.client.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                data=data,
                headers=request_headers,
            )
            elapsed = (time.perf_counter() - start) * 1000

            content_type = response.headers.get("content-type", "")
            response_data = None
            if "json" in content_type:
                try:
                    response_data = response.json()
                except ValueError:
                    response_data = None

            api_response = APIResponse(
                status_code=response.status_code,
                headers=dict(response.headers),
                data=response_data,
                raw_content=response.content,
                elapsed_ms=elapsed,
                request_id=response.headers.get("x-request-id")
            )

            logger.debug(
                "api_response",
                method=method,
                url=url,
                status_code=api_response.status_code,
                elapsed_ms=round(elapsed, 1),
            )

            if api_response.is_error and api_response.status_code in RETRY_STATUS_CODES:
                retry_after: Optional[float] = None
                if api_response.status_code == 429:
                    retry_header = api_response.headers.get("retry-after")
                    try:
                        if retry_header:
                            retry_after = min(float(retry_header), self.timeout)
                    except (TypeError, ValueError):
                        retry_after = None
                    if retry_after:
                        await asyncio.sleep(retry_after)

                raise RetryableAPIError(
                    message=f"Transient API error with status {api_response.status_code}",
                    status_code=api_response.status_code,
                    response=api_response,
                    retry_after=retry_after,
                )

            if api_response.is_error:
                self._handle_error_response(api_response.status_code, api_response)

            return api_response

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.retry_delay,
                min=self.retry_delay,
                max=self.retry_delay * 8
            ),
            retry=retry_if_exception_type((httpx.TransportError, RetryableAPIError)),
            before_sleep=self._before_sleep,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await _send_once()
        except httpx.TimeoutException as exc:
            raise APIConnectionError(f"Request timeout after {self.timeout}s") from exc
        except httpx.TransportError as exc:
            raise APIConnectionError(f"Network error: {type(exc).__name__}") from exc
        except RetryableAPIError as exc:
            if exc.response:
                self._handle_error_response(exc.status_code or exc.response.status_code, exc.response)
            raise APIError(exc.message) from exc
        except APIError:
            raise
        except httpx.HTTPError as exc:
            logger.error("api_request_unexpected_error", url=url, error_type=type(exc).__name__)
            raise APIConnectionError(f"HTTP error: {type(exc).__name__}") from exc
        raise APIError("Request was not attempted")  # pragma: no cover

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        """GET请求"""
        return await self._request(HTTPMethod.GET, endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        """POST请求"""
        return await self._request(HTTPMethod.POST, endpoint, **kwargs)
