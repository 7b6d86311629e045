"""
Booking Event Handlers

Run after the transition that raised the event has committed. Each
handler only enqueues work (a Celery task or a notification request),
so its failure can never undo the booking change.
"""

import logging

from apps.bookings.domain.events import (
    BookingAccepted,
    BookingCancelled,
    BookingCompleted,
    BookingCreated,
    BookingRejected,
    BookingStarted,
)
from apps.bookings.models import Booking
from apps.finances.models import Payment
from apps.finances.tasks import create_refund_for_rejected_booking, record_completion_settlement
from apps.notifications.services import NotificationRequester
from shared.application.message_bus import message_bus

logger = logging.getLogger(__name__)


def _booking(event):
    booking = Booking.objects.filter(pk=event.booking_id).first()
    if booking is None:
        logger.warning(f"{type(event).__name__}: booking {event.booking_id} no longer exists")
    return booking


# ===== Notifications =====

def notify_booking_created(event: BookingCreated):
    booking = _booking(event)
    if booking:
        NotificationRequester().booking_created(booking)


def notify_booking_accepted(event: BookingAccepted):
    booking = _booking(event)
    if booking:
        NotificationRequester().booking_accepted(booking)


def notify_booking_rejected(event: BookingRejected):
    booking = _booking(event)
    if booking:
        NotificationRequester().booking_rejected(booking, event.reason)


def notify_booking_started(event: BookingStarted):
    booking = _booking(event)
    if booking:
        NotificationRequester().booking_started(booking)


def notify_booking_completed(event: BookingCompleted):
    booking = _booking(event)
    if booking:
        NotificationRequester().booking_completed(booking)


def notify_booking_cancelled(event: BookingCancelled):
    booking = _booking(event)
    if booking:
        NotificationRequester().booking_cancelled(booking, event.cancelled_by, event.reason)


# ===== Finance side effects =====

def request_refund_for_rejection(event: BookingRejected):
    """Paid bookings that get rejected need their money back."""
    if not Payment.objects.filter(booking_id=event.booking_id, status=Payment.Status.SUCCESS).exists():
        return
    logger.info(f"Booking {event.booking_id} rejected after payment, requesting refund")
    create_refund_for_rejected_booking.delay(event.booking_id, event.reason)


def settle_completed_booking(event: BookingCompleted):
    logger.info(f"Booking {event.booking_id} completed with {event.final_amount}, requesting settlement")
    record_completion_settlement.delay(event.booking_id)


def register_handlers():
    """Called from ``BookingsConfig.ready()``."""
    message_bus.register_event_handler(BookingCreated, notify_booking_created)
    message_bus.register_event_handler(BookingAccepted, notify_booking_accepted)
    message_bus.register_event_handler(BookingRejected, request_refund_for_rejection)
    message_bus.register_event_handler(BookingRejected, notify_booking_rejected)
    message_bus.register_event_handler(BookingStarted, notify_booking_started)
    message_bus.register_event_handler(BookingCompleted, settle_completed_booking)
    message_bus.register_event_handler(BookingCompleted, notify_booking_completed)
    message_bus.register_event_handler(BookingCancelled, notify_booking_cancelled)
