# storefront/services/payment_clients.py
import base64
import hashlib
import hmac
import time
from typing import Any, Callable, Dict, Mapping

import requests
from requests import RequestException

from storefront.domain.errors import ExternalServiceError
from storefront.utils.retry import http_retry
from storefront.utils.settings import (
    POLAR_ACCESS_TOKEN,
    POLAR_API_URL,
    POLAR_PRODUCT_ID,
    POLAR_WEBHOOK_SECRET,
    RAZORPAY_API_URL,
    RAZORPAY_KEY_ID,
    RAZORPAY_KEY_SECRET,
    RAZORPAY_WEBHOOK_SECRET,
    RETURN_URL,
    SUCCESS_URL,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

WEBHOOK_TOLERANCE_SECONDS = 5 * 60


def _hmac_sha256(key: bytes, message: bytes) -> bytes:
    return hmac.new(key, message, hashlib.sha256).digest()


class RazorpayClient:
    """Razorpay Orders API (basic auth) plus signature checks."""

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        webhook_secret: str | None = None,
        base_url: str | None = None,
        timeout: float = 5,
    ):
        self.key_id = RAZORPAY_KEY_ID if key_id is None else key_id
        self.key_secret = RAZORPAY_KEY_SECRET if key_secret is None else key_secret
        self.webhook_secret = RAZORPAY_WEBHOOK_SECRET if webhook_secret is None else webhook_secret
        self.base_url = (base_url or RAZORPAY_API_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def _post(self, path: str, body: dict) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.info(f"RazorpayClient POST {url}")
        return requests.post(url, json=body, auth=(self.key_id, self.key_secret), timeout=self.timeout)

    def create_order(self, amount: int, currency: str, receipt: str, notes: Dict[str, str] | None = None) -> Dict[str, Any]:
        if not self.key_id or not self.key_secret:
            raise ExternalServiceError("Razorpay credentials are not configured", code="RAZORPAY_ERROR")

        body = {
            "amount": amount,
            "currency": currency.upper(),
            "receipt": receipt,
            "payment_capture": 1,
            "notes": notes or {},
        }
        try:
            resp = self._post("/orders", body)
            resp.raise_for_status()
            data = resp.json()
        except (RequestException, ValueError) as e:
            raise ExternalServiceError(f"Razorpay order creation failed: {e}", code="RAZORPAY_ERROR") from e

        if not data.get("id"):
            raise ExternalServiceError("Razorpay returned an order without id", code="RAZORPAY_ERROR")
        return data

    def verify_payment_signature(self, razorpay_order_id: str, razorpay_payment_id: str, signature: str) -> bool:
        if not self.key_secret:
            return False
        message = f"{razorpay_order_id}|{razorpay_payment_id}".encode()
        expected = _hmac_sha256(self.key_secret.encode(), message).hex()
        return hmac.compare_digest(expected, signature or "")

    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> bool:
        if not self.webhook_secret or not signature:
            return False
        expected = _hmac_sha256(self.webhook_secret.encode(), raw_body).hex()
        return hmac.compare_digest(expected, signature)


class PolarClient:
    """
    Polar checkouts API (bearer token).

    Webhooks follow the Standard Webhooks scheme: the signed content is
    "{webhook-id}.{webhook-timestamp}.{body}", the header carries one or
    more space separated "v1,<base64 hmac>" entries.
    """

    def __init__(
        self,
        access_token: str | None = None,
        webhook_secret: str | None = None,
        product_id: str | None = None,
        base_url: str | None = None,
        timeout: float = 5,
        clock: Callable[[], float] = time.time,
    ):
        self.access_token = POLAR_ACCESS_TOKEN if access_token is None else access_token
        self.webhook_secret = POLAR_WEBHOOK_SECRET if webhook_secret is None else webhook_secret
        self.product_id = POLAR_PRODUCT_ID if product_id is None else product_id
        self.base_url = (base_url or POLAR_API_URL).rstrip("/")
        self.timeout = timeout
        self.clock = clock

    @http_retry()
    def _post(self, path: str, body: dict) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.info(f"PolarClient POST {url}")
        return requests.post(
            url,
            json=body,
            headers={"Authorization": f"Bearer {self.access_token}"},
            timeout=self.timeout,
        )

    def create_checkout(
        self,
        customer_email: str | None = None,
        customer_name: str | None = None,
        external_customer_id: str | None = None,
        success_url: str | None = None,
        return_url: str | None = None,
        metadata: Dict[str, str] | None = None,
    ) -> Dict[str, Any]:
        if not self.access_token:
            raise ExternalServiceError("Polar access token is not configured", code="POLAR_ERROR")

        body = {
            "products": [self.product_id],
            "customer_email": customer_email,
            "customer_name": customer_name,
            "external_customer_id": external_customer_id,
            "success_url": success_url or SUCCESS_URL,
            "return_url": return_url or RETURN_URL,
            "metadata": metadata or {},
        }
        body = {k: v for k, v in body.items() if v is not None}

        try:
            resp = self._post("/checkouts/", body)
            resp.raise_for_status()
            data = resp.json()
        except (RequestException, ValueError) as e:
            raise ExternalServiceError(f"Polar checkout creation failed: {e}", code="POLAR_ERROR") from e

        if not data.get("id"):
            raise ExternalServiceError("Polar returned a checkout without id", code="POLAR_ERROR")
        return {
            "checkout_id": data["id"],
            "checkout_url": data.get("url"),
            "status": data.get("status"),
        }

    def _secret_key(self) -> bytes:
        secret = self.webhook_secret
        if secret.startswith("whsec_"):
            return base64.b64decode(secret[len("whsec_"):])
        return secret.encode()

    def sign(self, msg_id: str, timestamp: str, raw_body: bytes) -> str:
        content = f"{msg_id}.{timestamp}.".encode() + raw_body
        return "v1," + base64.b64encode(_hmac_sha256(self._secret_key(), content)).decode()

    def verify_webhook_signature(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        if not self.webhook_secret:
            return False

        msg_id = headers.get("webhook-id")
        timestamp = headers.get("webhook-timestamp")
        signatures = headers.get("webhook-signature")
        if not msg_id or not timestamp or not signatures:
            return False

        try:
            sent_at = int(timestamp)
        except ValueError:
            return False
        if abs(self.clock() - sent_at) > WEBHOOK_TOLERANCE_SECONDS:
            logger.warning(f"Polar webhook {msg_id} outside tolerance window")
            return False

        expected = self.sign(msg_id, timestamp, raw_body)
        return any(hmac.compare_digest(expected, s) for s in signatures.split(" ") if s)
