"""Order domain exports."""
from .entity import Order, OrderItem, OrderStatus, CustomerContact, ShippingAddress
from .repository import OrderRepository

__all__ = ["Order", "OrderItem", "OrderStatus", "CustomerContact", "ShippingAddress", "OrderRepository"]
