# app/services/razorpay_service.py
# Razorpay API wrapper for one-off live-session and schedule payments
#
# Razorpay order flow:
#   1. create_charge() creates an order -> razorpay_order_id
#   2. Frontend opens hosted checkout with that order
#   3. Razorpay sends payment.captured / payment.failed webhooks
#   4. The webhook endpoint activates (or fails) the matching purchase
#
# Without API keys (local dev, tests) a mock charge succeeds immediately,
# so the purchase activates inside the checkout request.

import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError

from app.core.config import settings

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    """
    success -> money captured, activate now
    pending -> order created, wait for the payment.captured webhook
    neither -> declined; error says why
    """
    success: bool
    reference: Optional[str] = None
    error: Optional[str] = None
    pending: bool = False


class PaymentProcessor(Protocol):
    def create_charge(
        self,
        amount_paise: int,
        currency: str,
        customer: Dict[str, Any],
    ) -> ChargeResult:
        ...


def get_razorpay_client() -> razorpay.Client:
    """Return authenticated Razorpay client."""
    return razorpay.Client(
        auth=(settings.razorpay_key_id, settings.razorpay_key_secret)
    )


class RazorpayProcessor:
    """Production processor. Falls back to a mock charge when keys are missing."""

    def create_charge(
        self,
        amount_paise: int,
        currency: str,
        customer: Dict[str, Any],
    ) -> ChargeResult:
        if not settings.razorpay_key_id or not settings.razorpay_key_secret:
            reference = f"mock_pay_{uuid.uuid4().hex[:14]}"
            log.info("[DEV] Razorpay keys missing -- mock charge %s for %d paise", reference, amount_paise)
            return ChargeResult(success=True, reference=reference)

        client = get_razorpay_client()
        try:
            order = client.order.create({
                "amount": amount_paise,
                "currency": currency,
                "receipt": customer.get("receipt") or uuid.uuid4().hex[:20],
                "notes": {k: str(v) for k, v in customer.items()},
            })
        except (BadRequestError, GatewayError, ServerError) as e:
            log.warning("Razorpay order creation failed: %s", e)
            return ChargeResult(success=False, error=str(e))

        return ChargeResult(success=False, pending=True, reference=order["id"])


def get_payment_processor() -> PaymentProcessor:
    """FastAPI dependency -- override in tests with a fake processor."""
    return RazorpayProcessor()


def verify_webhook_signature(
    payload_body: bytes,
    razorpay_signature: str,
) -> bool:
    """
    Verify Razorpay webhook signature using HMAC-SHA256.
    Must be called before processing any webhook event.

    Args:
        payload_body: Raw request body bytes
        razorpay_signature: Value of X-Razorpay-Signature header

    Returns:
        True if signature is valid, False otherwise
    """
    if not settings.razorpay_webhook_secret:
        # In development without webhook secret, skip verification
        return True

    expected = hmac.new(
        settings.razorpay_webhook_secret.encode("utf-8"),
        payload_body,
        hashlib.sha256,
    ).hexdigest()

    return hmac.compare_digest(expected, razorpay_signature or "")


def extract_order_reference(event: Dict[str, Any]) -> Optional[str]:
    """Pull the order id out of a payment.* webhook body."""
    entity = event.get("payload", {}).get("payment", {}).get("entity", {})
    return entity.get("order_id")


# ── Webhook Event Types We Handle ────────────────────────────────────────────
HANDLED_EVENTS = {
    "payment.captured",   # Money captured -- activate the purchase
    "payment.failed",     # Declined -- mark the purchase failed
}
