"""
Request ID 中间件
生成或透传追踪ID，并通过 structlog contextvars 绑定到本次请求的所有日志
"""
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
client_ip_var: ContextVar[Optional[str]] = ContextVar("client_ip", default=None)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """读取或生成 X-Request-ID，写入 request.state 与日志上下文，并回写到响应头"""

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        client_ip = self._get_client_ip(request)

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

    @staticmethod
    def _get_client_ip(request: Request) -> str:
        # 代理场景优先取 X-Forwarded-For 的第一个地址
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip
        return request.client.host if request.client else "unknown"


def get_request_id() -> Optional[str]:
    """当前请求的 request_id，不在请求上下文中时为 None"""
    return request_id_var.get()


def get_client_ip() -> Optional[str]:
    """当前请求的客户端IP"""
    return client_ip_var.get()
