"""
Base payment client implementing shared concerns: http, retry, logging, mapping.

Concrete providers subclass and implement provider-specific payloads. All
transport failures leave this module as ``GatewayError``.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import httpx

from core.logging_config import get_logger
from core.settings import PaymentSettings
from domain.common.exceptions import GatewayError
from infrastructure.external.api_clients.base import (
    APIError,
    APIResponse,
    BaseAPIClient,
    MalformedResponseError,
)
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str,
        settings: PaymentSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._settings = settings
        self._api = BaseAPIClient(
            base_url=base_url,
            timeout=settings.timeout_seconds,
            max_attempts=settings.retry.max_attempts,
            retry_delay=settings.retry.base_delay,
            transport=transport,
            sleep=sleep,
        )

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        await self._api.close()

    async def _post(self, endpoint: str, payload: dict[str, Any], *, operation: str) -> dict[str, Any]:
        """POST and return the JSON object body, translating failures to GatewayError."""
        try:
            response: APIResponse = await self._api.post(endpoint, json_data=payload)
        except APIError as exc:
            self._log(
                "gateway_request_failed",
                operation=operation,
                status_code=exc.status_code,
                retryable=exc.retryable,
                error=exc.message,
            )
            raise GatewayError(
                f"{self.provider} {operation} failed: {exc.message}",
                provider=self.provider,
                retryable=exc.retryable,
                status_code=exc.status_code,
                details=self._provider_error_details(exc),
            ) from exc

        body = response.json()
        if not isinstance(body, dict):
            raise self._malformed(operation, "response is not a JSON object", response)
        return body

    def _malformed(self, operation: str, reason: str, response: Optional[APIResponse] = None) -> GatewayError:
        cause = MalformedResponseError(
            reason,
            status_code=response.status_code if response else None,
            response=response,
        )
        error = GatewayError(
            f"{self.provider} {operation} returned a malformed response: {reason}",
            provider=self.provider,
            retryable=False,
            status_code=response.status_code if response else None,
        )
        error.__cause__ = cause
        return error

    @staticmethod
    def _provider_error_details(exc: APIError) -> Optional[dict]:
        if exc.response is not None and isinstance(exc.response.data, dict):
            return {"provider_response": exc.response.data}
        return None

    # Helpers
    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, provider_status)

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
