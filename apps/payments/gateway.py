"""Razorpay order creation and payment signature verification.

Test mode never touches the network: orders are synthesized locally and every
payment verifies. Live mode talks to Razorpay with a bounded timeout and checks
the callback signature as HMAC-SHA256 over ``order_id|payment_id``.
"""
import hashlib
import hmac
import logging
from decimal import ROUND_HALF_UP, Decimal

import razorpay
import requests
from django.conf import settings
from razorpay.errors import BadRequestError, GatewayError as RazorpayGatewayError, ServerError

from apps.cases.identifiers import epoch_millis, random_suffix
from apps.common.exceptions import GatewayError

logger = logging.getLogger(__name__)


def to_minor_units(amount):
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentGateway:
    def __init__(self, key_id=None, key_secret=None, currency=None, timeout=None):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.currency = currency or settings.PAYMENT_CURRENCY
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    def create_order(self, amount, *, test_mode=False, receipt=None):
        amount_minor = to_minor_units(amount)
        if test_mode:
            return {
                "id": f"order_test_{epoch_millis()}_{random_suffix(6).lower()}",
                "amount": amount_minor,
                "currency": self.currency,
                "receipt": receipt or "",
                "status": "created",
            }

        order_data = {
            "amount": amount_minor,
            "currency": self.currency,
            "receipt": receipt or "",
            "payment_capture": 1,
        }
        try:
            order = self.client.order.create(data=order_data, timeout=self.timeout)
        except requests.Timeout as exc:
            logger.error("Razorpay order creation timed out after %ss", self.timeout)
            raise GatewayError("The payment gateway did not respond in time.") from exc
        except (BadRequestError, RazorpayGatewayError, ServerError) as exc:
            logger.error("Razorpay rejected order creation: %s", exc)
            raise GatewayError() from exc
        except requests.RequestException as exc:
            logger.error("Razorpay order creation failed: %s", exc)
            raise GatewayError() from exc

        logger.info("Created Razorpay order %s for %s minor units", order["id"], amount_minor)
        return {
            "id": order["id"],
            "amount": order.get("amount", amount_minor),
            "currency": order.get("currency", self.currency),
            "receipt": order.get("receipt", receipt or ""),
            "status": order.get("status", "created"),
        }

    def expected_signature(self, order_id, payment_id):
        payload = f"{order_id}|{payment_id}"
        return hmac.new(self.key_secret.encode(), payload.encode(), hashlib.sha256).hexdigest()

    def verify_payment(self, *, order_id, payment_id, signature, test_mode=False):
        if test_mode:
            return True
        if not (order_id and payment_id and signature):
            logger.warning("Incomplete payment callback for order %s", order_id)
            return False
        if hmac.compare_digest(self.expected_signature(order_id, payment_id), str(signature)):
            return True
        logger.warning("Payment signature mismatch for order %s", order_id)
        return False
