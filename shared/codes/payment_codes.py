"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Provider/Network errors (6xxxx)
    GATEWAY_ERROR = 60000
    GATEWAY_RETRYABLE = 60001


# Provider charge status -> internal payment status
PROVIDER_STATUS_TO_INTERNAL = {
    "pagarme": {
        "paid": "completed",
        "pending": "pending",
        "processing": "processing",
        "authorized_pending_capture": "processing",
        "waiting_capture": "processing",
        "not_authorized": "failed",
        "failed": "failed",
        "canceled": "failed",
        "refunded": "refunded",
    },
}

# Outcomes reported by the checkout-link provider (webhook or status poll)
PAID_OUTCOMES = frozenset({"paid", "approved"})
FAILED_OUTCOMES = frozenset({"failed", "rejected"})
