"""
API客户端模块

提供与外部REST API集成的客户端基础设施
"""
from .base import (
    BaseAPIClient,
    APIResponse,
    APIError,
    ClientError,
    ServerError,
    MalformedResponseError,
)

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "ClientError",
    "ServerError",
    "MalformedResponseError",
]
