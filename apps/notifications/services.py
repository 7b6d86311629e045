"""Notification Requester.

Builds notification requests from booking snapshots and queues their
delivery. Transport and presence are handled outside the platform, the
requester only records what should be said to whom.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING

from django.db import transaction  # type: ignore

from .models import NotificationRequest

if TYPE_CHECKING:  # pragma: no cover
    from apps.bookings.models import Booking

logger = logging.getLogger(__name__)

Kind = NotificationRequest.Kind

CUSTOMER = "customer"
PROFESSIONAL = "professional"

RECIPIENTS: dict[str, tuple[str, ...]] = {
    Kind.BOOKING_CREATED.value: (PROFESSIONAL,),
    Kind.BOOKING_ACCEPTED.value: (CUSTOMER,),
    Kind.BOOKING_REJECTED.value: (CUSTOMER,),
    Kind.BOOKING_STARTED.value: (CUSTOMER,),
    Kind.BOOKING_COMPLETED.value: (CUSTOMER, PROFESSIONAL),
    Kind.BOOKING_CANCELLED.value: (CUSTOMER, PROFESSIONAL),
    Kind.PAYMENT_COMPLETED.value: (CUSTOMER, PROFESSIONAL),
    Kind.REFUND_CREATED.value: (CUSTOMER,),
}


class NotificationRequester:
    def request(self, kind: str, booking: "Booking", **extra) -> list[NotificationRequest]:  # type: ignore
        """Store one request per recipient of ``kind`` and queue delivery after commit."""
        from .tasks import deliver_notification

        kind = Kind(kind)
        payload = {"kind": kind.value, "booking": booking.snapshot(), **extra}
        recipient_ids = {
            CUSTOMER: booking.customer_id,
            PROFESSIONAL: booking.professional_id,
        }

        created = []
        for role in RECIPIENTS[kind.value]:
            notification = NotificationRequest.objects.create(
                recipient_id=recipient_ids[role],
                kind=kind,
                payload={**payload, "recipient_role": role},
            )
            transaction.on_commit(partial(deliver_notification.delay, notification.pk))
            created.append(notification)

        logger.info(f"Queued {len(created)} {kind.value} notification(s) for booking {booking.pk}")
        return created

    def booking_created(self, booking: "Booking") -> list[NotificationRequest]:
        return self.request(Kind.BOOKING_CREATED, booking)

    def booking_accepted(self, booking: "Booking") -> list[NotificationRequest]:
        return self.request(Kind.BOOKING_ACCEPTED, booking)

    def booking_rejected(self, booking: "Booking", reason: str) -> list[NotificationRequest]:
        return self.request(Kind.BOOKING_REJECTED, booking, reason=reason)

    def booking_started(self, booking: "Booking") -> list[NotificationRequest]:
        return self.request(Kind.BOOKING_STARTED, booking)

    def booking_completed(self, booking: "Booking") -> list[NotificationRequest]:
        return self.request(Kind.BOOKING_COMPLETED, booking)

    def booking_cancelled(self, booking: "Booking", cancelled_by: str, reason: str) -> list[NotificationRequest]:
        return self.request(Kind.BOOKING_CANCELLED, booking, cancelled_by=str(cancelled_by), reason=reason)

    def payment_completed(self, booking: "Booking", payment_id: int, amount) -> list[NotificationRequest]:  # type: ignore
        return self.request(Kind.PAYMENT_COMPLETED, booking, payment_id=payment_id, amount=str(amount))

    def refund_created(self, booking: "Booking", refund_id: int, amount) -> list[NotificationRequest]:  # type: ignore
        return self.request(Kind.REFUND_CREATED, booking, refund_id=refund_id, amount=str(amount))
