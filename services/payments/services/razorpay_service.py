"""Razorpay-style order and signature handling"""
import hashlib
import hmac
import logging
import secrets
import time
from typing import Dict, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


class RazorpayService:
    """
    Gateway side of a UPI payment.

    Orders are created locally with gateway-shaped ids; what the gateway
    really guarantees is the signature, an HMAC-SHA256 keyed with the
    account secret.
    """

    def __init__(self, key_id: Optional[str] = None, key_secret: Optional[str] = None):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET

        if not self.key_id:
            logger.warning("RAZORPAY_KEY_ID not configured; orders are created in test mode")
        if not self.key_secret:
            logger.warning("RAZORPAY_KEY_SECRET not configured; payment signatures are refused outside development")

    @property
    def can_verify(self) -> bool:
        """False when no secret is configured, outside development"""
        return bool(self.key_secret) or settings.APP_ENV == "development"

    def create_order(
        self,
        amount: int,
        currency: str = "INR",
        receipt: Optional[str] = None,
        notes: Optional[Dict] = None
    ) -> Dict:
        """
        Create an order

        Args:
            amount: amount in minor units (paise)
            currency: ISO currency code
            receipt: merchant reference
            notes: free-form metadata

        Returns:
            Order dict shaped like the gateway's
        """
        now = int(time.time())
        return {
            "id": f"order_{secrets.token_hex(7)}",
            "entity": "order",
            "amount": amount,
            "amount_paid": 0,
            "amount_due": amount,
            "currency": currency,
            "receipt": receipt or f"receipt_{now}",
            "status": "created",
            "notes": notes or {},
            "created_at": now,
        }

    def _sign(self, message: bytes) -> str:
        return hmac.new(self.key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def payment_signature(self, order_id: str, payment_id: str) -> str:
        """Signature the checkout returns for a successful payment"""
        return self._sign(f"{order_id}|{payment_id}".encode("utf-8"))

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Constant-time check of a checkout signature"""
        if not (order_id and payment_id and signature) or not self.can_verify:
            return False
        expected = self.payment_signature(order_id, payment_id)
        return hmac.compare_digest(expected, signature)

    def verify_webhook(self, body: bytes, signature: Optional[str]) -> bool:
        """Check the X-Razorpay-Signature header against the raw request body"""
        if not signature or not self.can_verify:
            return False
        return hmac.compare_digest(self._sign(body), signature)
