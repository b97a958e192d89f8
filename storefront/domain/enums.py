# storefront/domain/enums.py
from enum import Enum


class Currency(str, Enum):
    INR = "inr"
    USD = "usd"


class PaymentMethod(str, Enum):
    RAZORPAY = "razorpay"
    POLAR = "polar"


class Category(str, Enum):
    ELECTRONICS = "Electronics"
    CLOTHING = "Clothing"
    BOOKS = "Books"
    FURNITURE = "Furniture"


class OrderStatus(str, Enum):
    PROCESSING = "processing"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class AddressType(str, Enum):
    SHIPPING = "shipping"
    BILLING = "billing"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# currency every order total is also recorded in
REFERENCE_CURRENCY = Currency.INR

TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})
