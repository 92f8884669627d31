"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel, OrderItemModel
from .payment import PaymentModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "OrderItemModel",
    "PaymentModel",
]
