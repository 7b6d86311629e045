"""Payment gateway interface shared by every provider."""

from __future__ import annotations

import hashlib
import hmac
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_REFUNDED = "refunded"

# Provider status words normalized to payment statuses
STATUS_ALIASES = {
    "pending": STATUS_PENDING,
    "initiated": STATUS_PENDING,
    "processing": STATUS_PENDING,
    "success": STATUS_SUCCESS,
    "successful": STATUS_SUCCESS,
    "completed": STATUS_SUCCESS,
    "paid": STATUS_SUCCESS,
    "failed": STATUS_FAILED,
    "failure": STATUS_FAILED,
    "cancelled": STATUS_FAILED,
    "declined": STATUS_FAILED,
    "expired": STATUS_FAILED,
    "refunded": STATUS_REFUNDED,
}


def normalize_status(value) -> str:  # type: ignore
    return STATUS_ALIASES.get(str(value or "").strip().lower(), STATUS_FAILED)


@dataclass
class GatewayResult:
    status: str
    gateway_ref: str = ""
    metadata: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status in (STATUS_SUCCESS, STATUS_REFUNDED)


@dataclass
class WebhookNotice:
    """Payment update extracted from a verified webhook body."""

    gateway_ref: str
    status: str
    payment_id: int | None = None


class PaymentGateway(ABC):
    """
    Abstract payment provider.

    Implementations raise ``GatewayError`` when the provider answers with
    an error and ``GatewayTimeoutError`` when it does not answer in time.
    """

    def __init__(self, name: str, config: dict | None = None, timeout: float = 15.0):
        self.name = name
        self.config = config or {}
        self.timeout = timeout

    @classmethod
    def has_credentials(cls, config: dict) -> bool:
        return True

    @property
    def webhook_secret(self) -> str:
        return self.config.get("WEBHOOK_SECRET", "")

    @abstractmethod
    def create_intent(
        self,
        amount: Decimal,
        currency: str,
        booking_id: int,
        customer_id: int,
        metadata: dict,
    ) -> GatewayResult:
        """Open a payment with the provider."""

    @abstractmethod
    def capture(self, payment_id: int, amount: Decimal, metadata: dict, gateway_ref: str = "") -> GatewayResult:
        """Collect the money of an opened payment."""

    @abstractmethod
    def refund(
        self,
        payment_id: int,
        amount: Decimal,
        reason: str,
        metadata: dict,
        gateway_ref: str = "",
    ) -> GatewayResult:
        """Return the money of a captured payment."""

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.webhook_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()

    def verify_webhook(self, payload: bytes, signature: str) -> bool:
        """HMAC-SHA256 of the raw body, hex encoded, compared in constant time."""
        if not self.webhook_secret:
            logger.error(f"{self.name} webhook rejected: no webhook secret configured")
            return False
        if not signature:
            return False
        return hmac.compare_digest(self.sign(payload), signature.strip())

    def parse_webhook(self, data: dict) -> WebhookNotice:
        payment_id = data.get("payment_id")
        try:
            payment_id = int(payment_id) if payment_id is not None else None
        except (TypeError, ValueError):
            payment_id = None
        return WebhookNotice(
            gateway_ref=str(data.get("gateway_ref") or data.get("reference") or ""),
            status=normalize_status(data.get("status")),
            payment_id=payment_id,
        )
