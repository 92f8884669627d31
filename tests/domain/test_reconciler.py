from datetime import datetime, timezone

import pytest

from domain.common.exceptions import DomainValidationException
from domain.order.entity import OrderStatus
from domain.payment.entity import Payment, PaymentMethod, PaymentStatus
from domain.payment.reconciler import ReportedOutcome, decide


def _payment(status=PaymentStatus.PROCESSING, **kwargs) -> Payment:
    return Payment(
        id="pay-1",
        order_id="ord-1",
        method=PaymentMethod.PIX,
        status=status,
        amount=10000,
        **kwargs,
    )


def test_paid_outcome_completes_payment_and_confirms_order():
    paid_at = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
    decision = decide(_payment(), ReportedOutcome("paid", "tx-1", "pix", paid_at))

    assert decision.write and decision.processed
    assert decision.payment_status == PaymentStatus.COMPLETED
    assert decision.order_status == OrderStatus.CONFIRMED

    updated = decision.apply(_payment())
    assert updated.status == PaymentStatus.COMPLETED
    assert updated.transaction_id == "tx-1"
    assert updated.payment_method_used == "pix"
    assert updated.paid_at == paid_at


def test_approved_is_treated_like_paid_and_case_is_ignored():
    decision = decide(_payment(), ReportedOutcome("APPROVED", "tx-9"))
    assert decision.payment_status == PaymentStatus.COMPLETED


def test_replay_of_same_transaction_is_a_noop():
    payment = _payment(status=PaymentStatus.COMPLETED, transaction_id="tx-1")
    decision = decide(payment, ReportedOutcome("paid", "tx-1"))
    assert not decision.write
    assert decision.processed and decision.already_processed


@pytest.mark.parametrize("reported", ["failed", "rejected", "paid", "pending"])
def test_completed_payment_never_moves(reported):
    payment = _payment(status=PaymentStatus.COMPLETED, transaction_id="tx-1")
    decision = decide(payment, ReportedOutcome(reported, "tx-2"))
    assert not decision.write
    assert decision.already_processed
    assert decision.reason == "payment_finalized"


def test_refunded_payment_is_terminal():
    decision = decide(_payment(status=PaymentStatus.REFUNDED), ReportedOutcome("paid", "tx-3"))
    assert not decision.write


def test_failed_outcome_marks_failure_reason_and_leaves_order():
    decision = decide(_payment(), ReportedOutcome("rejected"))
    assert decision.write and decision.failed
    assert decision.order_status is None

    updated = decision.apply(_payment())
    assert updated.status == PaymentStatus.FAILED
    assert updated.metadata["failure_reason"] == "rejected"


def test_repeated_failure_with_same_reason_is_not_rewritten():
    payment = _payment(status=PaymentStatus.FAILED, metadata={"failure_reason": "failed"})
    decision = decide(payment, ReportedOutcome("failed"))
    assert not decision.write
    assert decision.already_processed


def test_failed_payment_can_still_be_paid_later():
    payment = _payment(status=PaymentStatus.FAILED, metadata={"failure_reason": "failed"})
    decision = decide(payment, ReportedOutcome("paid", "tx-late"))
    assert decision.write
    assert decision.payment_status == PaymentStatus.COMPLETED


def test_unknown_status_is_not_processed():
    decision = decide(_payment(), ReportedOutcome("waiting"))
    assert not decision.write
    assert not decision.processed
    assert decision.reason == "unknown_status"


def test_paid_without_transaction_id_is_not_applied():
    decision = decide(_payment(), ReportedOutcome("paid", None))
    assert not decision.write
    assert decision.reason == "missing_transaction_id"


def test_apply_does_not_mutate_the_input():
    payment = _payment()
    decide(payment, ReportedOutcome("paid", "tx-1")).apply(payment)
    assert payment.status == PaymentStatus.PROCESSING
    assert payment.transaction_id is None


def test_entity_refuses_to_complete_without_transaction_id():
    with pytest.raises(DomainValidationException):
        _payment().mark_completed("")
