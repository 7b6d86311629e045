"""
Booking Domain Events

Events that represent things that have happened in the booking domain.
These are published after successful transaction commits.
"""

from dataclasses import dataclass
from decimal import Decimal

from shared.domain.base import DomainEvent


# ===== Booking Events =====

@dataclass(kw_only=True)
class BookingLifecycleEvent(DomainEvent):
    """Common payload of every booking lifecycle event"""
    booking_id: int
    customer_id: int
    professional_id: int


@dataclass(kw_only=True)
class BookingCreated(BookingLifecycleEvent):
    """
    Event: A customer requested a job (-> PENDING)

    Triggers:
    - Notify the professional about the new request
    """


@dataclass(kw_only=True)
class BookingAccepted(BookingLifecycleEvent):
    """
    Event: Booking accepted (PENDING -> ACCEPTED)

    Triggers:
    - Notify the customer
    """
    via: str = 'professional'


@dataclass(kw_only=True)
class BookingRejected(BookingLifecycleEvent):
    """
    Event: Professional rejected the request (PENDING -> REJECTED)

    Triggers:
    - Refund creation when the booking was already paid
    - Notify the customer
    """
    reason: str = ''


@dataclass(kw_only=True)
class BookingStarted(BookingLifecycleEvent):
    """
    Event: Professional checked in (ACCEPTED -> IN_PROGRESS)

    Triggers:
    - Notify the customer
    """


@dataclass(kw_only=True)
class BookingCompleted(BookingLifecycleEvent):
    """
    Event: Job finished (IN_PROGRESS -> COMPLETED)

    Triggers:
    - Commission calculation and settlement ledger update
    - Notify both parties
    """
    final_amount: Decimal = Decimal('0.00')


@dataclass(kw_only=True)
class BookingCancelled(BookingLifecycleEvent):
    """
    Event: Booking cancelled by a party, an admin or a refund

    Triggers:
    - Notify the other party
    """
    cancelled_by: str = ''
    reason: str = ''
