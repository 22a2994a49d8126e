import hashlib
import hmac
import logging
from typing import Any, Dict

import razorpay
from fastapi import Request

from config import Settings
from errors import GatewayError, InvalidSignature

log = logging.getLogger(__name__)


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def signature_for(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class PaymentGateway:
    """Thin wrapper over the Razorpay client: order creation and signature checks."""

    def __init__(self, settings: Settings, client: razorpay.Client | None = None):
        self.secret = settings.razorpay_key_secret
        self.currency = settings.currency
        self.client = client or razorpay.Client(auth=(settings.razorpay_key_id, settings.razorpay_key_secret))

    def create_order(self, amount: float, receipt: str) -> Dict[str, Any]:
        data = {"amount": to_minor_units(amount), "currency": self.currency, "receipt": receipt}
        try:
            gateway_order = self.client.order.create(data=data)
        except Exception as e:
            log.exception("Gateway order creation failed for receipt %s", receipt)
            raise GatewayError("Payment gateway unavailable") from e
        log.info("Gateway order %s opened for %s %s", gateway_order.get("id"), data["amount"], self.currency)
        return gateway_order

    def verify_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str):
        expected = signature_for(self.secret, gateway_order_id, gateway_payment_id)
        if not hmac.compare_digest(expected.encode(), (signature or "").encode()):
            log.warning("Signature mismatch for gateway order %s", gateway_order_id)
            raise InvalidSignature()


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway
