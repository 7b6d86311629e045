"""Persistence primitives for booking status changes.

Every status change goes through :func:`apply_transition`: the state
machine validates the move against the stored event log, then a
conditional UPDATE applies it only if the row still holds the status
that was validated. A concurrent writer that loses the race gets an
``InvalidTransitionError`` instead of overwriting the winner.

Callers run these inside a ``DjangoUnitOfWork`` so the status update and
the appended event commit together.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable

from django.utils import timezone  # type: ignore

from apps.bookings.domain import state_machine
from apps.bookings.domain.events import BookingAccepted, BookingCancelled
from apps.bookings.domain.state_machine import BookingEventType, BookingStatus
from apps.bookings.models import Booking, BookingEvent
from shared.domain.exceptions import InvalidTransitionError, NotFoundError

logger = logging.getLogger(__name__)


def load_booking(booking_id: int) -> Booking:
    try:
        return Booking.objects.select_related("customer", "professional", "category").get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFoundError(f"Booking {booking_id} not found") from None


def actor_role(booking: Booking, user) -> str | None:  # type: ignore
    """Relation of ``user`` to ``booking``: customer, professional, admin or None."""
    if user is None:
        return None
    if booking.professional_id == user.pk:
        return Booking.CancelledBy.PROFESSIONAL
    if booking.customer_id == user.pk:
        return Booking.CancelledBy.CUSTOMER
    if getattr(user, "is_staff", False) or getattr(user, "is_superuser", False):
        return Booking.CancelledBy.ADMIN
    if hasattr(user, "is_platform_admin") and user.is_platform_admin():
        return Booking.CancelledBy.ADMIN
    return None


def apply_transition(
    booking: Booking,
    target: BookingStatus,
    *,
    fields: dict[str, Any] | None = None,
    events: Iterable[str] | None = None,
) -> BookingEventType:
    """
    Validate and persist ``booking.status -> target``.

    Returns the event type the caller must append. ``fields`` are written
    in the same conditional UPDATE as the status.
    """
    expected = BookingStatus(booking.status)
    existing = list(events) if events is not None else booking.event_types()
    event_type = state_machine.ensure_transition(expected, target, existing)

    now = timezone.now()
    values = dict(fields or {})
    updated = Booking.objects.filter(pk=booking.pk, status=expected).update(
        status=target, updated_at=now, **values
    )
    if updated != 1:
        logger.warning(
            f"Booking {booking.pk}: concurrent update detected while moving "
            f"{expected.name} -> {BookingStatus(target).name}"
        )
        raise InvalidTransitionError(
            f"Cannot transition from {expected.name} to {BookingStatus(target).name}: "
            f"booking was modified concurrently"
        )

    booking.status = BookingStatus(target)
    booking.updated_at = now
    for name, value in values.items():
        setattr(booking, name, value)

    logger.info(f"Booking {booking.pk}: {expected.name} -> {booking.status.name}")
    return event_type


def transition_booking(
    booking: Booking,
    target: BookingStatus,
    *,
    actor=None,  # type: ignore
    metadata: dict | None = None,
    fields: dict[str, Any] | None = None,
) -> BookingEvent:
    """Apply a transition and append its required event."""
    event_type = apply_transition(booking, target, fields=fields)
    return booking.record_event(event_type, metadata, actor=actor)


def accept_after_payment(booking: Booking, payment_id: int, amount: Decimal, gateway_ref: str) -> bool:
    """
    Record a captured payment on the booking.

    A PENDING booking is moved to ACCEPTED first. The PAYMENT_COMPLETED
    audit event is always appended. Returns True when the status changed.
    """
    accepted = False
    if booking.status == BookingStatus.PENDING:
        transition_booking(
            booking,
            BookingStatus.ACCEPTED,
            metadata={"via": "payment_capture", "payment_id": payment_id},
        )
        booking.add_event(
            BookingAccepted(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                customer_id=booking.customer_id,
                professional_id=booking.professional_id,
                via="payment_capture",
            )
        )
        accepted = True

    booking.record_event(
        BookingEventType.PAYMENT_COMPLETED,
        {"payment_id": payment_id, "amount": amount, "gateway_ref": gateway_ref or ""},
    )
    return accepted


def cancel_after_refund(
    booking: Booking,
    *,
    payment_id: int,
    amount: Decimal,
    reason: str,
    actor=None,  # type: ignore
) -> bool:
    """
    Record a refunded payment on the booking.

    Bookings that still have a CANCELLED edge are cancelled; terminal
    bookings keep their status. The REFUNDED audit event is always
    appended. Returns True when the booking was cancelled.
    """
    cancelled = False
    if BookingStatus.CANCELLED in state_machine.next_statuses(booking.status):
        role = actor_role(booking, actor) or Booking.CancelledBy.SYSTEM
        now = timezone.now()
        transition_booking(
            booking,
            BookingStatus.CANCELLED,
            actor=actor,
            metadata={"reason": reason, "cancelled_by": role, "via": "refund"},
            fields={"cancel_reason": reason[:500], "cancelled_by": role, "cancelled_at": now},
        )
        booking.add_event(
            BookingCancelled(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                customer_id=booking.customer_id,
                professional_id=booking.professional_id,
                cancelled_by=role,
                reason=reason,
            )
        )
        cancelled = True
    else:
        logger.info(
            f"Booking {booking.pk} is {BookingStatus(booking.status).name}; "
            f"refund recorded without status change"
        )

    booking.record_event(
        BookingEventType.REFUNDED,
        {"payment_id": payment_id, "amount": amount, "reason": reason},
        actor=actor,
    )
    return cancelled
