"""
Payment reconciliation rules.

Pure decision logic shared by the webhook and the verify-status paths: given
the stored payment and an outcome reported by the provider, decide the next
payment fields, the next order status and whether anything must be written.
Nothing here touches storage.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from domain.order.entity import OrderStatus
from shared.codes.payment_codes import FAILED_OUTCOMES, PAID_OUTCOMES

from .entity import Payment, PaymentStatus


@dataclass(frozen=True)
class ReportedOutcome:
    """Payment outcome as reported by the provider."""

    status: str
    transaction_id: Optional[str] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None

    @property
    def normalized_status(self) -> str:
        return (self.status or "").strip().lower()


@dataclass(frozen=True)
class ReconcileDecision:
    write: bool
    processed: bool
    already_processed: bool = False
    failed: bool = False
    reason: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    order_status: Optional[OrderStatus] = None
    transaction_id: Optional[str] = None
    payment_method_used: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    def apply(self, payment: Payment) -> Payment:
        """Return a copy of ``payment`` with this decision's changes applied."""
        updated = copy.deepcopy(payment)
        if not self.write:
            return updated
        if self.payment_status == PaymentStatus.COMPLETED:
            updated.mark_completed(
                self.transaction_id or "",
                method_used=self.payment_method_used,
                paid_at=self.paid_at,
            )
        elif self.payment_status == PaymentStatus.FAILED:
            updated.mark_failed(failure_reason=self.failure_reason)
        return updated


def decide(payment: Payment, outcome: ReportedOutcome) -> ReconcileDecision:
    status = outcome.normalized_status

    if payment.status == PaymentStatus.COMPLETED and payment.transaction_id == outcome.transaction_id:
        return ReconcileDecision(write=False, processed=True, already_processed=True)

    # completed and refunded are terminal whatever the provider says next
    if payment.is_final_status():
        return ReconcileDecision(
            write=False,
            processed=False,
            already_processed=True,
            reason="payment_finalized",
            payment_status=payment.status,
        )

    if status in PAID_OUTCOMES:
        if not outcome.transaction_id:
            return ReconcileDecision(write=False, processed=False, reason="missing_transaction_id")
        return ReconcileDecision(
            write=True,
            processed=True,
            payment_status=PaymentStatus.COMPLETED,
            order_status=OrderStatus.CONFIRMED,
            transaction_id=outcome.transaction_id,
            payment_method_used=outcome.payment_method,
            paid_at=outcome.paid_at,
        )

    if status in FAILED_OUTCOMES:
        if payment.status == PaymentStatus.FAILED and payment.metadata.get("failure_reason") == status:
            return ReconcileDecision(
                write=False, processed=True, already_processed=True, failed=True,
                payment_status=PaymentStatus.FAILED,
            )
        # a failed attempt leaves the order open for a new payment
        return ReconcileDecision(
            write=True,
            processed=True,
            failed=True,
            payment_status=PaymentStatus.FAILED,
            failure_reason=status,
        )

    return ReconcileDecision(write=False, processed=False, reason="unknown_status")
