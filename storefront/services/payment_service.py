# storefront/services/payment_service.py
import json
from typing import Any, Dict, Mapping

import pydantic
from sqlalchemy.orm import Session

from storefront.data.database import transaction
from storefront.data.models.payment import PaymentModel
from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus
from storefront.domain.errors import (
    ExternalServiceError,
    InvalidSignatureError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from storefront.domain.payment_events import (
    PolarCheckoutUpdated,
    PolarOrderPaid,
    RazorpayPaymentCaptured,
    parse_polar_event,
    parse_razorpay_event,
)
from storefront.domain.schemas import CheckoutIn, PaymentOut
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.payment_clients import PolarClient, RazorpayClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# polar checkout status -> our payment status, anything else leaves the row alone
POLAR_CHECKOUT_STATUS = {
    "confirmed": PaymentStatus.SUCCEEDED.value,
    "succeeded": PaymentStatus.SUCCEEDED.value,
    "failed": PaymentStatus.FAILED.value,
    "expired": PaymentStatus.FAILED.value,
}


class PaymentService:
    """
    Payment provider boundary.

    A pending payment row is committed before the provider is called and
    the provider call never runs inside an open transaction.
    """

    def __init__(self, db: Session, razorpay: RazorpayClient, polar: PolarClient):
        self.db = db
        self.repo = PaymentRepo(db)
        self.orders = OrderRepo(db)
        self.razorpay = razorpay
        self.polar = polar

    def _set_status(self, payment: PaymentModel, status: str) -> bool:
        if payment.status == status:
            return False
        if payment.status == PaymentStatus.SUCCEEDED.value:
            # a late failure event must not undo a captured payment
            logger.warning(f"Ignoring {status} for already succeeded payment {payment.id}")
            return False

        with transaction(self.db):
            logger.info(f"Payment {payment.id} status {payment.status} -> {status}")
            payment.status = status
        return True

    @staticmethod
    def _load_json(raw_body: bytes) -> dict:
        try:
            data = json.loads(raw_body)
        except ValueError:
            raise ValidationError("Webhook body is not valid JSON") from None
        if not isinstance(data, dict):
            raise ValidationError("Webhook body must be a JSON object")
        return data

    # =====================================================
    # checkout
    # =====================================================

    def create_checkout(self, payload: CheckoutIn) -> Dict[str, Any]:
        with transaction(self.db):
            order = self.orders.get_user_order(payload.order_id, payload.user_id)
            if not order:
                raise NotFoundError(f"Order with ID {payload.order_id} not found")
            if order.status != OrderStatus.PROCESSING.value:
                raise StateConflictError(f"Order {order.id} with status '{order.status}' cannot be paid")
            if order.total_amount <= 0:
                raise ValidationError(f"Order {order.id} has no products to pay for")

            payment = self.repo.create_payment(
                PaymentModel(
                    order_id=order.id,
                    provider=order.payment_method,
                    amount=order.total_amount,
                    currency=order.total_amount_currency,
                    status=PaymentStatus.PENDING.value,
                )
            )

        metadata = {"order_id": str(payment.order_id), "payment_id": str(payment.id)}
        try:
            if payment.provider == PaymentMethod.RAZORPAY.value:
                notes = dict(metadata)
                if payload.customer_email:
                    notes["customer_email"] = payload.customer_email
                if payload.customer_name:
                    notes["customer_name"] = payload.customer_name
                created = self.razorpay.create_order(
                    amount=payment.amount,
                    currency=payment.currency,
                    receipt=f"order_{payment.order_id}",
                    notes=notes,
                )
                reference, checkout_url, key_id = created["id"], None, self.razorpay.key_id
            else:
                created = self.polar.create_checkout(
                    customer_email=payload.customer_email,
                    customer_name=payload.customer_name,
                    external_customer_id=str(payload.user_id),
                    success_url=payload.success_url,
                    metadata=metadata,
                )
                reference, checkout_url, key_id = created["checkout_id"], created["checkout_url"], None
        except ExternalServiceError:
            logger.exception(f"Checkout for order {payment.order_id} failed at {payment.provider}")
            with transaction(self.db):
                payment.status = PaymentStatus.FAILED.value
            raise

        with transaction(self.db):
            payment.provider_reference = reference

        logger.info(f"Checkout {reference} created for order {payment.order_id} via {payment.provider}")
        return {
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "provider": payment.provider,
            "provider_reference": reference,
            "amount": payment.amount,
            "currency": payment.currency,
            "checkout_url": checkout_url,
            "key_id": key_id,
        }

    def get_payment(self, payment_id: int) -> PaymentOut:
        payment = self.repo.get_payment(payment_id)
        if not payment:
            raise NotFoundError(f"Payment with ID {payment_id} not found")
        return PaymentOut.model_validate(payment)

    # =====================================================
    # razorpay
    # =====================================================

    def verify_razorpay_payment(self, order_ref: str, payment_id: str, signature: str) -> PaymentOut:
        """Client-side success callback: trust it only with a valid signature."""
        if not self.razorpay.verify_payment_signature(order_ref, payment_id, signature):
            raise InvalidSignatureError("Invalid Razorpay payment signature")

        payment = self.repo.get_by_reference(PaymentMethod.RAZORPAY.value, order_ref)
        if not payment:
            raise NotFoundError(f"Payment for Razorpay order {order_ref} not found")

        self._set_status(payment, PaymentStatus.SUCCEEDED.value)
        return PaymentOut.model_validate(payment)

    def handle_razorpay_webhook(self, raw_body: bytes, signature: str | None) -> Dict[str, bool]:
        if not self.razorpay.verify_webhook_signature(raw_body, signature):
            raise InvalidSignatureError("Invalid Razorpay webhook signature")

        data = self._load_json(raw_body)
        try:
            event = parse_razorpay_event(data)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Malformed Razorpay event: {e.errors()[0]['msg']}") from None

        if event is None:
            logger.info(f"Ignoring Razorpay event {data.get('event')}")
            return {"received": True, "handled": False}

        reference = event.payload.payment.entity.order_id
        payment = self.repo.get_by_reference(PaymentMethod.RAZORPAY.value, reference)
        if not payment:
            logger.warning(f"Razorpay {event.event} for unknown order {reference}")
            return {"received": True, "handled": False}

        if isinstance(event, RazorpayPaymentCaptured):
            status = PaymentStatus.SUCCEEDED.value
        else:
            status = PaymentStatus.FAILED.value
        return {"received": True, "handled": self._set_status(payment, status)}

    # =====================================================
    # polar
    # =====================================================

    def handle_polar_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> Dict[str, bool]:
        if not self.polar.verify_webhook_signature(raw_body, headers):
            raise InvalidSignatureError("Invalid Polar webhook signature")

        data = self._load_json(raw_body)
        try:
            event = parse_polar_event(data)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Malformed Polar event: {e.errors()[0]['msg']}") from None

        if event is None:
            logger.info(f"Ignoring Polar event {data.get('type')}")
            return {"received": True, "handled": False}

        if isinstance(event, PolarCheckoutUpdated):
            reference = event.data.id
            status = POLAR_CHECKOUT_STATUS.get(event.data.status)
        elif isinstance(event, PolarOrderPaid):
            reference = event.data.checkout_id
            status = PaymentStatus.SUCCEEDED.value
        else:
            return {"received": True, "handled": False}

        if not reference or status is None:
            return {"received": True, "handled": False}

        payment = self.repo.get_by_reference(PaymentMethod.POLAR.value, reference)
        if not payment:
            logger.warning(f"Polar {event.type} for unknown checkout {reference}")
            return {"received": True, "handled": False}

        return {"received": True, "handled": self._set_status(payment, status)}
