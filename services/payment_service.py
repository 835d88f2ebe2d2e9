# services/payment_service.py
import base64
import logging
from dataclasses import dataclass

import razorpay
import requests
from flask import current_app

from utils.errors import PaymentError, AMOUNT_MISMATCH
from utils.money import to_minor_units

logger = logging.getLogger(__name__)


@dataclass
class PaymentConfirmation:
    order_id: str
    payment_id: str
    signature: str

    @classmethod
    def from_payload(cls, data):
        data = data or {}
        order_id = data.get("razorpay_order_id") or data.get("order_id")
        payment_id = data.get("razorpay_payment_id") or data.get("payment_id")
        signature = data.get("razorpay_signature") or data.get("signature")
        if not (order_id and payment_id and signature):
            return None
        return cls(order_id=order_id, payment_id=payment_id, signature=signature)


class RazorpayGateway:
    """Payment collaborator. Calls are never retried automatically."""

    def __init__(self, key_id, key_secret, api_base="https://api.razorpay.com/v1", timeout=10):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            key_id=config.get("RAZORPAY_KEY_ID"),
            key_secret=config.get("RAZORPAY_KEY_SECRET"),
            api_base=config.get("RAZORPAY_API_BASE", "https://api.razorpay.com/v1"),
            timeout=config.get("PAYMENT_TIMEOUT_SECONDS", 10),
        )

    def _headers(self):
        token = base64.b64encode(f"{self.key_id}:{self.key_secret}".encode()).decode()
        return {
            "Content-Type": "application/json",
            "Authorization": "Basic " + token,
        }

    def create_order(self, amount, currency, receipt):
        """Create a provider order and return its id, the client confirmation token."""
        if not (self.key_id and self.key_secret):
            raise PaymentError("Payment gateway is not configured")

        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "payment_capture": 1,
        }
        try:
            response = requests.post(f"{self.api_base}/orders", headers=self._headers(),
                                     json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("payment.order_failed receipt=%s error=%s", receipt, e)
            raise PaymentError(f"Payment provider unreachable: {e}")

        if not response.ok:
            try:
                reason = response.json().get("error", {}).get("description")
            except ValueError:
                reason = None
            reason = reason or f"HTTP {response.status_code}"
            logger.error("payment.order_rejected receipt=%s status=%s reason=%s",
                         receipt, response.status_code, reason)
            raise PaymentError(f"Order creation failed: {reason}", reason=reason)

        order_id = response.json().get("id")
        logger.info("payment.order_created receipt=%s order_id=%s amount=%s", receipt, order_id, amount)
        return order_id

    def verify(self, confirmation: PaymentConfirmation, amount):
        """Raise PaymentError unless the confirmation is authentic and its order
        was opened for exactly `amount`."""
        client = razorpay.Client(auth=(self.key_id, self.key_secret))
        try:
            client.utility.verify_payment_signature({
                "razorpay_order_id": confirmation.order_id,
                "razorpay_payment_id": confirmation.payment_id,
                "razorpay_signature": confirmation.signature,
            })
        except razorpay.errors.SignatureVerificationError as e:
            logger.warning("payment.signature_invalid order_id=%s payment_id=%s",
                           confirmation.order_id, confirmation.payment_id)
            raise PaymentError("Invalid payment signature", reason=str(e) or None)

        try:
            order = client.order.fetch(confirmation.order_id)
        except (razorpay.errors.BadRequestError, razorpay.errors.ServerError,
                razorpay.errors.GatewayError, requests.RequestException) as e:
            logger.error("payment.order_fetch_failed order_id=%s error=%s", confirmation.order_id, e)
            raise PaymentError(f"Could not confirm payment order: {e}")

        expected = to_minor_units(amount)
        if order.get("amount") != expected:
            logger.warning("payment.amount_mismatch order_id=%s paid=%s expected=%s",
                           confirmation.order_id, order.get("amount"), expected)
            raise PaymentError("Payment amount does not match the booking total", reason=AMOUNT_MISMATCH)
        return confirmation.payment_id


def get_gateway():
    gateway = current_app.extensions.get("payment_gateway")
    if gateway is None:
        gateway = RazorpayGateway.from_config(current_app.config)
        current_app.extensions["payment_gateway"] = gateway
    return gateway
