"""
Payment gateway integration
Verifies payment callback signatures and recognises sandbox (test) payments
"""

import hashlib
import hmac
import logging
from typing import Optional

from ..config import Settings, settings as default_settings
from ..models import PaymentOutcome

logger = logging.getLogger(__name__)

PLACEHOLDER_SIGNATURES = ("", "null", "undefined")


class PaymentGateway:
    """Checks payment outcomes reported by the gateway before they touch a booking."""

    def __init__(
        self,
        secret: Optional[str] = None,
        sandbox_enabled: Optional[bool] = None,
        sandbox_prefix: Optional[str] = None,
        settings: Optional[Settings] = None
    ):
        settings = settings or default_settings
        self.secret = settings.payment_gateway_secret if secret is None else secret
        self.sandbox_enabled = settings.payments_dry_run if sandbox_enabled is None else sandbox_enabled
        self.sandbox_prefix = settings.sandbox_payment_prefix if sandbox_prefix is None else sandbox_prefix

        if self.sandbox_enabled:
            logger.warning("⚠️ Sandbox payments enabled - unsigned test payments will be accepted")

    def sign(self, order_id: str, payment_id: str) -> str:
        """HMAC-SHA256 hex digest over "order_id|payment_id"."""
        return hmac.new(
            self.secret.encode(),
            f"{order_id}|{payment_id}".encode(),
            hashlib.sha256
        ).hexdigest()

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Verify a gateway signature"""
        if not self.secret:
            logger.error("PAYMENT_GATEWAY_SECRET not configured")
            return False

        expected_signature = self.sign(order_id, payment_id)
        return hmac.compare_digest(signature.encode(), expected_signature.encode())

    def is_sandbox_payment(self, payment_id: str, signature: Optional[str]) -> bool:
        """Test payments carry a placeholder signature or a sandbox payment id prefix."""
        if signature is None or signature.strip() in PLACEHOLDER_SIGNATURES:
            return True
        return bool(self.sandbox_prefix) and payment_id.startswith(self.sandbox_prefix)

    def check_outcome(self, outcome: PaymentOutcome) -> bool:
        """
        Decide whether a payment outcome may be applied.

        Sandbox outcomes skip verification only while sandbox payments are
        enabled; otherwise a valid signature over order id and payment id is
        required.
        """
        if self.sandbox_enabled and self.is_sandbox_payment(outcome.payment_id, outcome.signature):
            logger.info(f"Sandbox payment {outcome.payment_id} accepted without signature check")
            return True

        if not outcome.signature or not outcome.order_id:
            logger.warning(f"Payment {outcome.payment_id} rejected: missing signature or order id")
            return False

        verified = self.verify_signature(outcome.order_id, outcome.payment_id, outcome.signature)
        if not verified:
            logger.warning(
                f"Payment {outcome.payment_id} rejected: signature mismatch for order {outcome.order_id}"
            )
        return verified
