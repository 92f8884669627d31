"""
REST API客户端基类

提供通用的HTTP请求功能，包括：
- 失败分类（可重试 / 不可重试）
- 线性退避重试
- 请求/响应日志
- 超时控制
"""
import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

logger = logging.getLogger(__name__)


class HTTPMethod(Enum):
    """HTTP方法枚举（网关只用到 POST）"""
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

    def json(self) -> Any:
        """获取JSON响应"""
        if self.data is not None:
            return self.data
        return json.loads(self.raw_content)


class APIError(Exception):
    """API错误基类

    ``retryable`` 表示最后一次失败是否为瞬时故障（网络、超时、5xx）。
    """
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
        request_id: Optional[str] = None,
        retryable: bool = False,
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        self.request_id = request_id
        self.retryable = retryable
        super().__init__(self.message)

    def __str__(self):
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)


class ClientError(APIError):
    """4xx 错误，不重试"""
    pass


class ServerError(APIError):
    """5xx 错误"""
    pass


class MalformedResponseError(APIError):
    """响应不是合法JSON或缺少必需字段，不重试"""
    pass


class RetryableAPIError(APIError):
    """单次尝试中的可重试错误，重试耗尽后转换为 ServerError"""

    def __init__(self, message: str, status_code: Optional[int], response: Optional['APIResponse']):
        super().__init__(
            message=message,
            status_code=status_code,
            response=response,
            request_id=response.request_id if response else None,
            retryable=True,
        )


# connection refused and DNS failures surface as httpx.ConnectError (a NetworkError)
TRANSIENT_EXCEPTIONS = (httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "gateway_request_retry attempt=%s wait=%.2fs error=%r",
        retry_state.attempt_number,
        wait,
        exc,
    )


class BaseAPIClient:
    """
    REST API客户端基类

    提供通用的HTTP请求功能，子类可以继承并实现具体的API调用
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        初始化API客户端

        Args:
            base_url: API基础URL
            timeout: 单次请求超时时间（秒），超时按可重试处理
            max_attempts: 总尝试次数（含首次）
            retry_delay: 第k次失败后等待 k * retry_delay 秒
            transport: 自定义 httpx transport（测试时注入 MockTransport）
            sleep: 重试等待函数，默认 asyncio.sleep
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._transport = transport
        self._sleep = sleep or asyncio.sleep

        # 设置默认请求头
        self.default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "Storefront-Checkout/1.0"
        }

        # 创建HTTP客户端
        self._client: Optional[httpx.AsyncClient] = None

    def set_basic_auth(self, username: str, password: str = ""):
        """设置 HTTP Basic 认证"""
        raw = f"{username}:{password}".encode()
        self.default_headers["Authorization"] = f"Basic {base64.b64encode(raw).decode()}"

    @property
    async def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                follow_redirects=True
            )
        return self._client

    async def close(self):
        """关闭HTTP客户端"""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_url(self, endpoint: str) -> str:
        """构建完整URL"""
        endpoint = endpoint.lstrip('/')
        return f"{self.base_url}/{endpoint}"

    def _log_request(self, method: str, url: str) -> None:
        """记录请求日志（不含请求头与请求体）"""
        logger.debug("gateway_request method=%s url=%s", method, url)

    def _log_response(self, response: APIResponse) -> None:
        """记录响应日志"""
        logger.debug(
            "gateway_response status=%s elapsed_ms=%.1f request_id=%s",
            response.status_code,
            response.elapsed_ms,
            response.request_id,
        )

    @staticmethod
    def _error_message(response: APIResponse) -> str:
        """尝试从响应中提取错误消息"""
        message = f"API request failed with status {response.status_code}"
        if isinstance(response.data, dict):
            found = (
                response.data.get("message")
                or response.data.get("error")
                or response.data.get("detail")
            )
            if found:
                message = str(found)
        return message

    def _wrap_response(self, response: httpx.Response, elapsed_ms: float) -> APIResponse:
        content_type = response.headers.get("content-type", "")
        response_data = None
        if "json" in content_type or response.content[:1] in (b"{", b"["):
            try:
                response_data = response.json()
            except (json.JSONDecodeError, UnicodeDecodeError):
                response_data = None
        return APIResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            data=response_data,
            raw_content=response.content,
            elapsed_ms=elapsed_ms,
            request_id=response.headers.get("x-request-id")
        )

    async def _request(
        self,
        method: Union[str, HTTPMethod],
        endpoint: str,
        json_data: Optional[Union[Dict[str, Any], BaseModel]] = None,
    ) -> APIResponse:
        """
        发送HTTP请求

        Returns:
            APIResponse: API响应

        Raises:
            APIError: 重试耗尽（retryable=True）或不可重试的失败，原始异常挂在 __cause__
        """
        if isinstance(method, HTTPMethod):
            method = method.value

        url = self._build_url(endpoint)

        request_headers = {**self.default_headers}

        if isinstance(json_data, BaseModel):
            json_data = json_data.model_dump(exclude_none=True)

        self._log_request(method, url)

        async def _send_once() -> APIResponse:
            start_time = datetime.now()
            client = await self.client
            response = await client.request(
                method=method,
                url=url,
                json=json_data,
                headers=request_headers,
            )
            elapsed = (datetime.now() - start_time).total_seconds() * 1000
            api_response = self._wrap_response(response, elapsed)
            self._log_response(api_response)

            if api_response.status_code >= 500:
                raise RetryableAPIError(
                    message=f"Transient API error with status {api_response.status_code}",
                    status_code=api_response.status_code,
                    response=api_response,
                )
            if api_response.is_error:
                raise ClientError(
                    message=self._error_message(api_response),
                    status_code=api_response.status_code,
                    response=api_response,
                    request_id=api_response.request_id,
                )
            if api_response.data is None:
                raise MalformedResponseError(
                    message="Response body is not valid JSON",
                    status_code=api_response.status_code,
                    response=api_response,
                    request_id=api_response.request_id,
                )
            return api_response

        retrying = AsyncRetrying(
            sleep=self._sleep,
            reraise=True,
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
            retry=retry_if_exception_type(TRANSIENT_EXCEPTIONS),
            before_sleep=_log_retry,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await _send_once()
        except httpx.TimeoutException as exc:
            raise APIError(f"Request timeout after {self.timeout}s", retryable=True) from exc
        except httpx.NetworkError as exc:
            raise APIError(f"Network error: {exc}", retryable=True) from exc
        except RetryableAPIError as exc:
            raise ServerError(
                exc.message,
                status_code=exc.status_code,
                response=exc.response,
                request_id=exc.request_id,
                retryable=True,
            ) from exc
        raise APIError("Retry loop exited without a result")  # pragma: no cover

    async def post(
        self, endpoint: str, json_data: Optional[Union[Dict[str, Any], BaseModel]] = None
    ) -> APIResponse:
        """POST请求"""
        return await self._request(HTTPMethod.POST, endpoint, json_data=json_data)
