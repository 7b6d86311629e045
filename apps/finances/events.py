"""
Finance Domain Events

Published after the transaction that produced them commits.
"""

from dataclasses import dataclass
from decimal import Decimal

from shared.domain.base import DomainEvent


@dataclass(kw_only=True)
class PaymentCaptured(DomainEvent):
    """
    Event: Payment collected (PENDING -> SUCCESS)

    Triggers:
    - Notify customer and professional
    """
    payment_id: int
    booking_id: int
    amount: Decimal


@dataclass(kw_only=True)
class RefundCreated(DomainEvent):
    """
    Event: Refund obligation opened for a payment

    Triggers:
    - Notify the customer
    """
    refund_id: int
    booking_id: int
    amount: Decimal
