"""
Checkout application service.

Turns a cart into a persisted order plus a pending payment, asks the
checkout-link provider for a payable URL and rolls the pair back when that
fails. Every store step runs in its own unit of work.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from typing import Callable, List, Optional, Tuple

from application.dtos.checkout import (
    CheckoutItem,
    CheckoutRequest,
    CheckoutResponse,
    OrderDetail,
    OrderItemOut,
    OrderStatusResponse,
)
from application.dtos.payments import CheckoutLinkItem, GatewayAddress, GatewayCustomer
from application.ports.payment_gateway import CheckoutLinkGateway
from core.logging_config import get_logger
from domain.common.exceptions import (
    CheckoutCompensationError,
    ConcurrentUpdateError,
    DomainValidationException,
    OrderNotFoundException,
    PersistenceError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import CustomerContact, Order, OrderItem, OrderStatus, ShippingAddress
from domain.payment.entity import Payment, PaymentMethod, PaymentStatus


logger = get_logger(__name__)

CARD_SURCHARGE = Decimal("1.125")

UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]


def apply_surcharge(amount: int) -> int:
    """Card price: ``ceil(amount * 1.125)`` in minor units."""
    return int((Decimal(amount) * CARD_SURCHARGE).to_integral_value(rounding=ROUND_CEILING))


def allocate_total(line_amounts: List[int], total: int) -> List[int]:
    """Split ``total`` across lines in proportion to ``line_amounts``.

    Each line gets the floor of its share; the leftover cents go one by one
    to the lines with the largest dropped fraction (earlier lines win ties).
    The result always sums to ``total``.
    """
    base = sum(line_amounts)
    if base == 0:
        return [0 for _ in line_amounts]
    shares = [Decimal(amount) * total / base for amount in line_amounts]
    allotted = [int(s.to_integral_value(rounding=ROUND_FLOOR)) for s in shares]
    leftover = total - sum(allotted)
    by_fraction = sorted(range(len(shares)), key=lambda i: (-(shares[i] - allotted[i]), i))
    for i in by_fraction[:leftover]:
        allotted[i] += 1
    return allotted


def compute_totals(items: List[CheckoutItem], payment_method: str) -> Tuple[int, List[int], List[int]]:
    """Return ``(total, unit_prices, line_totals)`` for the cart.

    The card total is ``ceil(cart * 1.125)``. Unit prices are surcharged one
    by one for display; line totals are the total allocated across the lines,
    so they add up to the order total exactly.
    """
    line_amounts = [item.unit_price * item.quantity for item in items]
    base_total = sum(line_amounts)
    if payment_method == "card":
        total = apply_surcharge(base_total)
        return total, [apply_surcharge(item.unit_price) for item in items], allocate_total(line_amounts, total)
    return base_total, [item.unit_price for item in items], line_amounts


def link_items(items: List[CheckoutItem], line_totals: List[int]) -> List[CheckoutLinkItem]:
    """Gateway line items whose prices add up to the allocated line totals.

    A line whose total does not divide by its quantity is sent as two
    entries: ``quantity - 1`` units at the floor price and one unit carrying
    the remainder.
    """
    result: List[CheckoutLinkItem] = []
    for item, line_total in zip(items, line_totals):
        unit, remainder = divmod(line_total, item.quantity)
        if remainder == 0:
            result.append(CheckoutLinkItem(description=item.product_name, quantity=item.quantity, price=unit))
            continue
        if item.quantity > 1:
            result.append(CheckoutLinkItem(description=item.product_name, quantity=item.quantity - 1, price=unit))
        result.append(CheckoutLinkItem(description=item.product_name, quantity=1, price=unit + remainder))
    return result


class CheckoutService:
    def __init__(self, uow_factory: UnitOfWorkFactory, gateway: CheckoutLinkGateway) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway

    async def create_checkout(self, req: CheckoutRequest, *, user_id: Optional[int] = None) -> CheckoutResponse:
        if not req.items:
            raise DomainValidationException("Cart is empty", field="items")

        total, unit_prices, line_totals = compute_totals(req.items, req.payment_method)
        order = await self._create_order(req, total, unit_prices, line_totals, user_id)
        logger.info(
            "checkout_order_created",
            order_id=order.id,
            total=total,
            payment_method=req.payment_method,
            items=len(req.items),
        )

        payment: Optional[Payment] = None
        try:
            async with self._uow_factory() as uow:
                payment = await uow.payment_repository.create(
                    Payment(
                        id=None,
                        order_id=order.id,
                        method=PaymentMethod.CREDIT_CARD if req.payment_method == "card" else PaymentMethod.PIX,
                        status=PaymentStatus.PENDING,
                        amount=total,
                        provider=self.gateway.provider,
                    )
                )

            link = await self.gateway.create_checkout_link(
                order.id,
                link_items(req.items, line_totals),
                customer=GatewayCustomer(
                    name=req.customer.name,
                    email=str(req.customer.email),
                    phone=req.customer.phone,
                ),
                address=self._gateway_address(req),
                handle=req.handle,
            )
            await self._record_checkout_link(payment, link.url, link.remote_order_id)
        except Exception as exc:
            await self._compensate(order.id, payment, exc)
            raise

        logger.info("checkout_created", order_id=order.id, payment_id=payment.id, total=total)
        return CheckoutResponse(order_id=order.id, checkout_url=link.url, total=total)

    async def _create_order(
        self,
        req: CheckoutRequest,
        total: int,
        unit_prices: List[int],
        line_totals: List[int],
        user_id: Optional[int],
    ) -> Order:
        """Create the order row, then its items; delete the order if the items fail."""
        async with self._uow_factory() as uow:
            order = await uow.order_repository.create(
                Order(
                    id=None,
                    user_id=user_id,
                    status=OrderStatus.PENDING,
                    total=total,
                    customer=CustomerContact(
                        email=str(req.customer.email),
                        name=req.customer.name,
                        phone=req.customer.phone,
                    ),
                    shipping_address=self._shipping_address(req),
                )
            )

        items = [
            OrderItem(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=price,
                line_total=line_total,
            )
            for item, price, line_total in zip(req.items, unit_prices, line_totals)
        ]
        try:
            async with self._uow_factory() as uow:
                order.items = await uow.order_repository.add_items(order.id, items)
        except Exception as exc:
            logger.error("checkout_items_failed", order_id=order.id, error=str(exc))
            try:
                async with self._uow_factory() as uow:
                    await uow.order_repository.delete(order.id)
            except Exception as cleanup_exc:
                logger.critical(
                    "checkout_order_cleanup_failed",
                    order_id=order.id,
                    error=str(cleanup_exc),
                )
                raise CheckoutCompensationError(order.id) from exc
            raise PersistenceError(
                "Failed to persist order items",
                details={"order_id": order.id},
            ) from exc
        return order

    async def _record_checkout_link(
        self, payment: Payment, checkout_url: str, remote_order_id: Optional[str]
    ) -> None:
        current = payment
        for _ in range(3):
            if current.status not in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
                # reconciliation already moved the payment on
                logger.info("checkout_link_skipped", payment_id=current.id, status=current.status.value)
                return
            expected = current.version
            current.mark_processing(checkout_url, remote_order_id)
            try:
                async with self._uow_factory() as uow:
                    await uow.payment_repository.update(current, expected_version=expected)
                return
            except ConcurrentUpdateError:
                async with self._uow_factory(readonly=True) as uow:
                    reread = await uow.payment_repository.get_by_id(payment.id)
                if reread is None:
                    raise
                current = reread
        raise ConcurrentUpdateError("Payment", str(payment.id))

    async def _compensate(self, order_id: str, payment: Optional[Payment], error: Exception) -> None:
        """Mark the payment failed and cancel the order. Errors here escalate."""
        logger.warning(
            "checkout_compensating",
            order_id=order_id,
            payment_id=payment.id if payment else None,
            error=str(error),
            error_type=type(error).__name__,
        )
        try:
            async with self._uow_factory() as uow:
                if payment is not None:
                    current = await uow.payment_repository.get_by_id(payment.id)
                    if current is not None and current.status in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
                        expected = current.version
                        current.mark_failed(error=str(error))
                        await uow.payment_repository.update(current, expected_version=expected)
                await uow.order_repository.update_status(
                    order_id, OrderStatus.CANCELLED, expected_status=OrderStatus.PENDING
                )
        except Exception as comp_exc:
            logger.critical(
                "checkout_compensation_failed",
                order_id=order_id,
                payment_id=payment.id if payment else None,
                error=str(comp_exc),
            )
            raise CheckoutCompensationError(order_id, payment.id if payment else None) from error

    @staticmethod
    def _shipping_address(req: CheckoutRequest) -> Optional[ShippingAddress]:
        if req.address is None:
            return None
        a = req.address
        return ShippingAddress(
            street=a.street,
            number=a.number,
            neighborhood=a.neighborhood,
            city=a.city,
            state=a.state,
            zip_code=a.cep,
            country=a.country,
            complement=a.complement,
        )

    @staticmethod
    def _gateway_address(req: CheckoutRequest) -> Optional[GatewayAddress]:
        if req.address is None:
            return None
        a = req.address
        return GatewayAddress(
            street=a.street,
            number=a.number,
            neighborhood=a.neighborhood,
            city=a.city,
            state=a.state,
            zip_code=a.cep,
            country=a.country,
            complement=a.complement,
        )

    async def get_order_status(self, order_id: str) -> OrderStatusResponse:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            payment = await uow.payment_repository.get_by_order_id(order_id)

        return OrderStatusResponse(
            order_id=order.id,
            order_status=order.status.value,
            payment_status=payment.status.value if payment else PaymentStatus.PENDING.value,
            total=order.total,
            paid_at=payment.paid_at if payment else None,
        )

    async def get_order(self, order_id: str) -> OrderDetail:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_with_items(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)

        return OrderDetail(
            id=order.id,
            status=order.status.value,
            total=order.total,
            customer_email=order.customer.email,
            customer_name=order.customer.name,
            customer_phone=order.customer.phone,
            shipping_address=order.shipping_address.to_dict() if order.shipping_address else None,
            items=[
                OrderItemOut(
                    product_id=i.product_id,
                    product_name=i.product_name,
                    quantity=i.quantity,
                    unit_price=i.unit_price,
                    subtotal=i.subtotal,
                )
                for i in order.items
            ],
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
