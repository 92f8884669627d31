"""Payment domain exports."""
from .entity import Payment, PaymentMethod, PaymentStatus
from .repository import PaymentRepository

__all__ = ["Payment", "PaymentMethod", "PaymentStatus", "PaymentRepository"]
