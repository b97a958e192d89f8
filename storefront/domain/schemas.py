# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import List, Dict
from decimal import Decimal
from datetime import datetime

from storefront.domain.enums import (
    AddressType,
    Category,
    Currency,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)


# ---------- Users ----------

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")


class UserRead(BaseModel):
    id: int
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class ForgotPasswordIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)


# ---------- Products ----------

class ProductCreate(BaseModel):
    """Amount is in minor units of the given currency."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    category: Category
    amount: int = Field(..., gt=0, description="Price in minor units (> 0)")
    currency: Currency


class ProductUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    category: Category | None = None
    amount: int | None = Field(None, gt=0)
    currency: Currency | None = None

    @model_validator(mode="after")
    def _amount_with_currency(self):
        if (self.amount is None) != (self.currency is None):
            raise ValueError("amount and currency must be provided together")
        return self


class ProductOut(BaseModel):
    id: int
    name: str
    description: str
    category: Category
    rates: Dict[Currency, int]
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProductPriceOut(BaseModel):
    product_id: int
    currency: Currency
    amount: int


# ---------- Orders ----------

class AddressIn(BaseModel):
    street_address1: str = Field(..., min_length=1, max_length=255)
    street_address2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=1, max_length=100)
    is_default: bool = False


class AddressOut(BaseModel):
    id: int
    user_id: int
    address_type: AddressType
    street_address1: str
    street_address2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str
    country: str
    is_default: bool

    model_config = ConfigDict(from_attributes=True)


class OrderItemIn(BaseModel):
    # limits are enforced by OrderService so that a bad line item surfaces as VALIDATION_ERROR
    product_id: int
    quantity: int = 1


class OrderCreate(BaseModel):
    user_id: int | None = None
    payment_method: str
    shipping_address: AddressIn | None = None
    billing_address: AddressIn | None = None
    notes: str | None = None
    products: List[OrderItemIn] = Field(default_factory=list)


class OrderUpdate(BaseModel):
    status: OrderStatus | None = None
    notes: str | None = None
    shipping_address: AddressIn | None = None
    billing_address: AddressIn | None = None


class OrderProductIn(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(1, gt=0)


class OrderItemOut(BaseModel):
    id: int
    order_id: int
    product_id: int
    quantity: int
    # major units
    price_at_order: Decimal
    created_at: datetime


class OrderPricing(BaseModel):
    original_amount: Decimal
    converted_amount: Decimal
    currency: Currency
    exchange_rate: Decimal


class OrderOut(BaseModel):
    id: int
    user_id: int
    total_amount: int
    total_amount_currency: Currency
    status: OrderStatus
    payment_method: PaymentMethod
    shipping_address_id: int
    billing_address_id: int
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
    shipping_address: AddressOut | None = None
    billing_address: AddressOut | None = None
    items: List[OrderItemOut]
    pricing: OrderPricing


class OrderListOut(BaseModel):
    orders: List[OrderOut]
    total: int


class OrderDeletedOut(BaseModel):
    deleted: bool
    order_id: int


# ---------- Payments ----------

class CheckoutIn(BaseModel):
    order_id: int = Field(..., gt=0)
    user_id: int = Field(..., gt=0)
    customer_email: str | None = None
    customer_name: str | None = None
    success_url: str | None = None


class CheckoutOut(BaseModel):
    payment_id: int
    order_id: int
    provider: PaymentMethod
    provider_reference: str
    amount: int
    currency: Currency
    checkout_url: str | None = None
    key_id: str | None = None


class RazorpayVerifyIn(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class PaymentOut(BaseModel):
    id: int
    order_id: int
    provider: PaymentMethod
    provider_reference: str | None = None
    amount: int
    currency: Currency
    status: PaymentStatus

    model_config = ConfigDict(from_attributes=True)


class WebhookAck(BaseModel):
    received: bool = True
    handled: bool
