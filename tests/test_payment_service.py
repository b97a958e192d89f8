import base64
import hashlib
import hmac
import json

import pytest

from storefront.data.models import PaymentModel
from storefront.domain.enums import OrderStatus
from storefront.domain.errors import (
    ExternalServiceError,
    InvalidSignatureError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from storefront.domain.schemas import CheckoutIn, OrderCreate, OrderItemIn, OrderUpdate
from storefront.services.payment_clients import PolarClient

NOW = 1_700_000_000


@pytest.fixture
def place_order(order_service, make_product, user, address):
    def _place(payment_method="razorpay"):
        p = make_product(amount=12900)
        return order_service.create_order(
            OrderCreate(
                payment_method=payment_method,
                shipping_address=address,
                products=[OrderItemIn(product_id=p["id"], quantity=2)],
            ),
            user.id,
        )

    return _place


def _razorpay_webhook(event, order_ref, secret="rzp_webhook_secret"):
    body = json.dumps(
        {
            "event": event,
            "payload": {"payment": {"entity": {"id": "pay_1", "order_id": order_ref, "status": "captured"}}},
        }
    ).encode()
    signature = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return body, signature


def _polar_webhook(polar, payload, msg_id="msg_1", timestamp=NOW):
    body = json.dumps(payload).encode()
    headers = {
        "webhook-id": msg_id,
        "webhook-timestamp": str(timestamp),
        "webhook-signature": polar.sign(msg_id, str(timestamp), body),
    }
    return body, headers


# ---------- checkout ----------

def test_razorpay_checkout(payment_service, place_order, user, razorpay, db):
    order = place_order("razorpay")

    out = payment_service.create_checkout(CheckoutIn(order_id=order["id"], user_id=user.id))

    assert out["provider"] == "razorpay"
    assert out["provider_reference"] == "order_rzp_1"
    assert out["amount"] == order["total_amount"]
    assert out["currency"] == "inr"
    assert out["key_id"] == "rzp_test_key"
    assert razorpay.created[0]["receipt"] == f"order_{order['id']}"

    payment = db.get(PaymentModel, out["payment_id"])
    assert payment.status == "pending"
    assert payment.provider_reference == "order_rzp_1"


def test_polar_checkout(payment_service, place_order, user, polar):
    order = place_order("polar")

    out = payment_service.create_checkout(
        CheckoutIn(order_id=order["id"], user_id=user.id, customer_email="asha@example.com")
    )

    assert out["provider"] == "polar"
    assert out["currency"] == "usd"
    assert out["checkout_url"] == "https://polar.test/checkout/chk_1"
    assert polar.created[0]["external_customer_id"] == str(user.id)
    assert polar.created[0]["metadata"]["order_id"] == str(order["id"])


def test_provider_failure_marks_payment_failed(payment_service, place_order, user, razorpay, db):
    order = place_order("razorpay")
    razorpay.fail = True

    with pytest.raises(ExternalServiceError) as exc:
        payment_service.create_checkout(CheckoutIn(order_id=order["id"], user_id=user.id))

    assert exc.value.code == "RAZORPAY_ERROR"
    (payment,) = db.query(PaymentModel).all()
    assert payment.status == "failed"
    assert payment.provider_reference is None


def test_checkout_requires_processing_order(payment_service, order_service, place_order, user, db):
    order = place_order("razorpay")
    order_service.update_order(order["id"], user.id, OrderUpdate(status=OrderStatus.CANCELLED))

    with pytest.raises(StateConflictError):
        payment_service.create_checkout(CheckoutIn(order_id=order["id"], user_id=user.id))
    with pytest.raises(NotFoundError):
        payment_service.create_checkout(CheckoutIn(order_id=order["id"], user_id=user.id + 1))
    assert db.query(PaymentModel).count() == 0


def test_checkout_rejects_emptied_order(payment_service, order_service, place_order, user, db):
    order = place_order("razorpay")
    order_service.remove_product_from_order(order["id"], user.id, order["items"][0]["product_id"])

    with pytest.raises(ValidationError):
        payment_service.create_checkout(CheckoutIn(order_id=order["id"], user_id=user.id))
    assert db.query(PaymentModel).count() == 0


# ---------- razorpay ----------

def test_verify_razorpay_payment(payment_service, place_order, user):
    order = place_order("razorpay")
    out = payment_service.create_checkout(CheckoutIn(order_id=order["id"], user_id=user.id))
    signature = hmac.new(b"rzp_test_secret", b"order_rzp_1|pay_42", hashlib.sha256).hexdigest()

    with pytest.raises(InvalidSignatureError):
        payment_service.verify_razorpay_payment("order_rzp_1", "pay_42", "0" * 64)

    payment = payment_service.verify_razorpay_payment("order_rzp_1", "pay_42", signature)
    assert payment.id == out["payment_id"]
    assert payment.status == "succeeded"


def test_razorpay_webhook_captured_then_late_failure(payment_service, place_order, user, db):
    order = place_order("razorpay")
    out = payment_service.create_checkout(CheckoutIn(order_id=order["id"], user_id=user.id))

    body, sig = _razorpay_webhook("payment.captured", "order_rzp_1")
    assert payment_service.handle_razorpay_webhook(body, sig) == {"received": True, "handled": True}
    assert db.get(PaymentModel, out["payment_id"]).status == "succeeded"

    body, sig = _razorpay_webhook("payment.failed", "order_rzp_1")
    assert payment_service.handle_razorpay_webhook(body, sig)["handled"] is False
    assert db.get(PaymentModel, out["payment_id"]).status == "succeeded"


def test_razorpay_webhook_failed(payment_service, place_order, user, db):
    order = place_order("razorpay")
    out = payment_service.create_checkout(CheckoutIn(order_id=order["id"], user_id=user.id))

    body, sig = _razorpay_webhook("payment.failed", "order_rzp_1")
    assert payment_service.handle_razorpay_webhook(body, sig)["handled"] is True
    assert db.get(PaymentModel, out["payment_id"]).status == "failed"


def test_razorpay_webhook_rejects_bad_signature(payment_service):
    body, _ = _razorpay_webhook("payment.captured", "order_rzp_1")
    _, wrong = _razorpay_webhook("payment.captured", "order_rzp_1", secret="nope")

    with pytest.raises(InvalidSignatureError):
        payment_service.handle_razorpay_webhook(body, wrong)
    with pytest.raises(InvalidSignatureError):
        payment_service.handle_razorpay_webhook(body, None)


def test_razorpay_webhook_ignores_other_events(payment_service):
    body, sig = _razorpay_webhook("refund.created", "order_rzp_1")
    assert payment_service.handle_razorpay_webhook(body, sig) == {"received": True, "handled": False}

    body, sig = _razorpay_webhook("payment.captured", "order_unknown")
    assert payment_service.handle_razorpay_webhook(body, sig)["handled"] is False


# ---------- polar ----------

def test_polar_checkout_updated(payment_service, place_order, user, polar, db):
    order = place_order("polar")
    out = payment_service.create_checkout(CheckoutIn(order_id=order["id"], user_id=user.id))

    body, headers = _polar_webhook(polar, {"type": "checkout.updated", "data": {"id": "chk_1", "status": "open"}})
    assert payment_service.handle_polar_webhook(body, headers)["handled"] is False

    body, headers = _polar_webhook(polar, {"type": "checkout.updated", "data": {"id": "chk_1", "status": "expired"}})
    assert payment_service.handle_polar_webhook(body, headers)["handled"] is True
    assert db.get(PaymentModel, out["payment_id"]).status == "failed"


def test_polar_order_paid(payment_service, place_order, user, polar, db):
    order = place_order("polar")
    out = payment_service.create_checkout(CheckoutIn(order_id=order["id"], user_id=user.id))

    body, headers = _polar_webhook(
        polar, {"type": "order.paid", "data": {"id": "ord_9", "checkout_id": "chk_1", "amount": 310}}
    )
    assert payment_service.handle_polar_webhook(body, headers) == {"received": True, "handled": True}
    assert db.get(PaymentModel, out["payment_id"]).status == "succeeded"


def test_polar_webhook_signature_checks(payment_service, polar):
    payload = {"type": "order.paid", "data": {"id": "ord_9", "checkout_id": "chk_1"}}

    body, headers = _polar_webhook(polar, payload, timestamp=NOW - 3600)
    with pytest.raises(InvalidSignatureError):
        payment_service.handle_polar_webhook(body, headers)

    body, headers = _polar_webhook(polar, payload)
    with pytest.raises(InvalidSignatureError):
        payment_service.handle_polar_webhook(body + b" ", headers)

    with pytest.raises(InvalidSignatureError):
        payment_service.handle_polar_webhook(body, {"webhook-id": "msg_1"})


def test_polar_whsec_secret_matches_raw_secret():
    raw = PolarClient(webhook_secret="polar_webhook_secret", access_token="t", product_id="p")
    prefixed = PolarClient(
        webhook_secret="whsec_" + base64.b64encode(b"polar_webhook_secret").decode(),
        access_token="t",
        product_id="p",
    )
    assert raw.sign("m", "1", b"{}") == prefixed.sign("m", "1", b"{}")
