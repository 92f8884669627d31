"""
InfinitePay checkout-link adapter.

The merchant order id is sent as ``order_nsu`` on every call so the provider
deduplicates retried link creations and the webhook can be matched back.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from application.dtos.payments import (
    CheckoutLink,
    CheckoutLinkItem,
    GatewayAddress,
    GatewayCustomer,
    PaymentStatusReport,
)
from core.settings import PaymentSettings
from domain.common.exceptions import GatewayError
from infrastructure.external.payments.base import BasePaymentClient


CHECKOUT_LINKS_ENDPOINT = "/invoices/public/checkout/links"
PAYMENT_CHECK_ENDPOINT = "/invoices/public/checkout/payment_check"


class InfinitePayClient(BasePaymentClient):
    provider = "infinitepay"

    def __init__(
        self,
        settings: PaymentSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=None,
    ):
        super().__init__(
            base_url=settings.infinitepay.api_url,
            settings=settings,
            transport=transport,
            sleep=sleep,
        )
        self._handle = settings.infinitepay.handle

    @staticmethod
    def _sanitize_handle(handle: str) -> str:
        return handle.strip().lstrip("$")

    def _build_link_payload(
        self,
        order_id: str,
        items: List[CheckoutLinkItem],
        handle: str,
        customer: Optional[GatewayCustomer],
        address: Optional[GatewayAddress],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "handle": handle,
            "items": [item.model_dump() for item in items],
            "order_nsu": order_id,
        }
        if self._settings.redirect_url:
            payload["redirect_url"] = self._settings.redirect_url
        if self._settings.webhook_url:
            payload["webhook_url"] = self._settings.webhook_url
        if customer is not None:
            payload["customer"] = {
                k: v
                for k, v in {"name": customer.name, "email": customer.email, "phone": customer.phone}.items()
                if v
            }
        if address is not None:
            payload["address"] = {
                "zip": address.zip_code,
                "street": address.street,
                "number": address.number,
                "city": address.city,
                "state": address.state,
                "country": address.country,
            }
            if address.complement:
                payload["address"]["complement"] = address.complement
        return payload

    async def create_checkout_link(
        self,
        order_id: str,
        items: List[CheckoutLinkItem],
        customer: Optional[GatewayCustomer] = None,
        address: Optional[GatewayAddress] = None,
        handle: Optional[str] = None,
    ) -> CheckoutLink:
        raw_handle = handle or self._handle
        if not raw_handle or not self._sanitize_handle(raw_handle):
            raise GatewayError(
                "InfinitePay merchant handle is not configured",
                provider=self.provider,
                retryable=False,
            )

        payload = self._build_link_payload(
            order_id, items, self._sanitize_handle(raw_handle), customer, address
        )
        self._log(
            "gateway_checkout_link_requested",
            order_id=order_id,
            items=len(items),
            has_customer=customer is not None,
            has_address=address is not None,
        )

        body = await self._post(CHECKOUT_LINKS_ENDPOINT, payload, operation="create_checkout_link")

        url = body.get("url") or body.get("checkout_url")
        if not url or not isinstance(url, str):
            raise self._malformed("create_checkout_link", "missing checkout url")

        link = CheckoutLink(url=url, remote_order_id=str(body.get("order_nsu") or order_id))
        self._log("gateway_checkout_link_created", order_id=order_id, checkout_url=link.url)
        return link

    async def check_payment_status(self, order_id: str) -> PaymentStatusReport:
        body = await self._post(
            PAYMENT_CHECK_ENDPOINT, {"order_nsu": order_id}, operation="check_payment_status"
        )
        if not body.get("status"):
            raise self._malformed("check_payment_status", "missing status")

        try:
            report = PaymentStatusReport(
                order_id=str(body.get("order_nsu") or order_id),
                status=str(body["status"]),
                transaction_id=body.get("transaction_id") or body.get("transaction_nsu"),
                payment_method=body.get("payment_method") or body.get("capture_method"),
                paid_at=_parse_datetime(body.get("paid_at")),
                amount=body.get("amount"),
            )
        except (PydanticValidationError, ValueError) as exc:
            error = self._malformed("check_payment_status", "unexpected field types")
            raise error from exc

        self._log("gateway_payment_status", order_id=order_id, status=report.status)
        return report


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
