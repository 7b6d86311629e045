"""Gateway used in tests and in environments without provider credentials."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from apps.finances.gateways.base import (
    STATUS_PENDING,
    STATUS_REFUNDED,
    STATUS_SUCCESS,
    GatewayResult,
    PaymentGateway,
)

logger = logging.getLogger(__name__)


class StubGateway(PaymentGateway):
    """Approves every request without moving money."""

    def create_intent(self, amount: Decimal, currency: str, booking_id: int, customer_id: int, metadata: dict) -> GatewayResult:
        ref = f"STUB_{self.name.upper()}_{booking_id}_{uuid.uuid4().hex[:8]}"
        logger.info(f"[STUB {self.name}] intent {ref} for booking {booking_id}: {amount} {currency}")
        return GatewayResult(status=STATUS_PENDING, gateway_ref=ref, metadata={"stub": True})

    def capture(self, payment_id: int, amount: Decimal, metadata: dict, gateway_ref: str = "") -> GatewayResult:
        logger.info(f"[STUB {self.name}] capture of payment {payment_id}: {amount}")
        return GatewayResult(
            status=STATUS_SUCCESS,
            gateway_ref=gateway_ref or f"STUB_{self.name.upper()}_{payment_id}",
            metadata={"stub": True},
        )

    def refund(self, payment_id: int, amount: Decimal, reason: str, metadata: dict, gateway_ref: str = "") -> GatewayResult:
        logger.info(f"[STUB {self.name}] refund of payment {payment_id}: {amount} ({reason})")
        return GatewayResult(
            status=STATUS_REFUNDED,
            gateway_ref=f"STUB_REFUND_{payment_id}",
            metadata={"stub": True},
        )
