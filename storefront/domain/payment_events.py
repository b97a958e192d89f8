# storefront/domain/payment_events.py
"""
Webhook payloads from the payment providers, parsed into tagged variants.

Razorpay discriminates on ``event``, Polar on ``type``. Events we do not act
on are parsed as ``None`` by the ``parse_*`` helpers instead of failing.
"""
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ---------- Razorpay ----------

class RazorpayPaymentEntity(_Lenient):
    id: str
    order_id: str
    status: str | None = None


class RazorpayPaymentWrapper(_Lenient):
    entity: RazorpayPaymentEntity


class RazorpayPaymentPayload(_Lenient):
    payment: RazorpayPaymentWrapper


class RazorpayPaymentCaptured(_Lenient):
    event: Literal["payment.captured"]
    payload: RazorpayPaymentPayload


class RazorpayPaymentFailed(_Lenient):
    event: Literal["payment.failed"]
    payload: RazorpayPaymentPayload


RazorpayEvent = Annotated[
    Union[RazorpayPaymentCaptured, RazorpayPaymentFailed],
    Field(discriminator="event"),
]

_razorpay_adapter = TypeAdapter(RazorpayEvent)
RAZORPAY_EVENTS = frozenset({"payment.captured", "payment.failed"})


def parse_razorpay_event(data: dict):
    if data.get("event") not in RAZORPAY_EVENTS:
        return None
    return _razorpay_adapter.validate_python(data)


# ---------- Polar ----------

class PolarCheckoutData(_Lenient):
    id: str
    status: str


class PolarOrderData(_Lenient):
    id: str
    checkout_id: str | None = None


class PolarCheckoutUpdated(_Lenient):
    type: Literal["checkout.updated"]
    data: PolarCheckoutData


class PolarOrderPaid(_Lenient):
    type: Literal["order.paid"]
    data: PolarOrderData


PolarEvent = Annotated[
    Union[PolarCheckoutUpdated, PolarOrderPaid],
    Field(discriminator="type"),
]

_polar_adapter = TypeAdapter(PolarEvent)
POLAR_EVENTS = frozenset({"checkout.updated", "order.paid"})


def parse_polar_event(data: dict):
    if data.get("type") not in POLAR_EVENTS:
        return None
    return _polar_adapter.validate_python(data)
