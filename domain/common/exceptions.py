"""Domain-level business exceptions shared by the domain and infrastructure layers.

The core layer only maps these to HTTP responses; the domain never depends
on core.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base class for business errors."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    """Malformed or out-of-range input. Never retried."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message=f"Order not found: {order_id}",
            error_type="OrderNotFound",
            details={"order_id": order_id},
        )


class PaymentNotFoundException(BusinessException):
    def __init__(self, identifier: str):
        super().__init__(
            code=BusinessCode.PAYMENT_NOT_FOUND,
            message=f"Payment not found: {identifier}",
            error_type="PaymentNotFound",
            details={"identifier": identifier},
        )


class OrderNotPayableException(BusinessException):
    def __init__(self, order_id: str, status: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_PAYABLE,
            message="Order is not awaiting payment",
            error_type="OrderNotPayable",
            details={"order_id": order_id, "current_status": status},
        )


class PaymentAlreadyExistsException(BusinessException):
    """A non-failed payment already exists for the order."""

    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.PAYMENT_ALREADY_EXISTS,
            message=f"A live payment already exists for order {order_id}",
            error_type="PaymentAlreadyExists",
            details={"order_id": order_id},
        )


class ConcurrentUpdateError(BusinessException):
    """Conditional update lost a race against another writer."""

    def __init__(self, entity: str, identifier: str):
        super().__init__(
            code=BusinessCode.CONCURRENT_UPDATE,
            message=f"{entity} {identifier} was modified concurrently",
            error_type="ConcurrentUpdate",
            details={"entity": entity, "identifier": identifier},
        )


class PersistenceError(BusinessException):
    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.DATABASE_ERROR,
            message=message,
            error_type="PersistenceError",
            details=details,
        )


class CheckoutCompensationError(PersistenceError):
    """Rollback after a failed checkout could not complete; needs manual action."""

    def __init__(self, order_id: str, payment_id: Optional[str] = None):
        super().__init__(
            f"Checkout compensation failed for order {order_id}",
            details={"order_id": order_id, "payment_id": payment_id},
        )
        self.code = BusinessCode.CHECKOUT_COMPENSATION_FAILED
        self.error_type = "CheckoutCompensationError"


class GatewayError(BusinessException):
    """Payment provider communication failure.

    ``retryable`` tells whether the last failure was transient (network,
    timeout, 5xx). The original exception is chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        retryable: bool,
        status_code: int | None = None,
        details: Optional[dict] = None,
    ):
        full_details = {"provider": provider, "retryable": retryable, "status_code": status_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.GATEWAY_RETRYABLE if retryable else PaymentCode.GATEWAY_ERROR,
            message=message,
            error_type="GatewayError",
            details=full_details,
        )
        self.provider = provider
        self.retryable = retryable
        self.status_code = status_code
