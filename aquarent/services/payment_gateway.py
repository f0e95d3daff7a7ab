"""
Razorpay Gateway Client

Thin wrapper over the Razorpay SDK:
- Create gateway orders for pending rental payments
- Verify checkout callback signatures (HMAC-SHA256 over "order_id|payment_id")
"""

import logging
import hmac
import hashlib
from decimal import Decimal
from typing import Dict, Any, Optional

import razorpay

from aquarent.config import settings
from aquarent.core.exceptions import GatewayError

logger = logging.getLogger(__name__)


def to_paise(amount: Decimal) -> int:
    """Razorpay uses the smallest currency unit."""
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


class RazorpayGateway:
    """
    Service for talking to Razorpay.
    """

    def __init__(self, key_id: Optional[str] = None, key_secret: Optional[str] = None):
        """Initialize Razorpay client."""
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.client = razorpay.Client(auth=(self.key_id, self.key_secret))

    def create_order(
        self,
        amount: Decimal,
        receipt: str,
        notes: Dict[str, str],
        currency: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a Razorpay order.

        Returns:
            The gateway order, with at least ``id``, ``amount`` (paise) and ``currency``
        """
        order_data = {
            "amount": to_paise(amount),
            "currency": currency or settings.PAYMENT_CURRENCY,
            "receipt": receipt,
            "notes": notes,
        }
        try:
            razorpay_order = self.client.order.create(data=order_data)
        except Exception as e:
            logger.error(f"Failed to create Razorpay order for {receipt}: {e}")
            raise GatewayError("Payment gateway could not create the order") from e

        logger.info(f"Created Razorpay order {razorpay_order['id']} for {receipt}")
        return razorpay_order

    def verify_signature(self, razorpay_order_id: str, razorpay_payment_id: str, signature: str) -> bool:
        """
        Verify a checkout callback signature.

        Uses a constant-time comparison. Never touches the network.
        """
        if not self.key_secret or not signature:
            return False

        payload = f"{razorpay_order_id}|{razorpay_payment_id}"
        expected_signature = hmac.new(
            self.key_secret.encode(),
            payload.encode(),
            hashlib.sha256
        ).hexdigest()

        return hmac.compare_digest(expected_signature, signature)
