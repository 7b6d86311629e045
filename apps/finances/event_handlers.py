"""Finance event handlers, run after commit."""

import logging

from apps.bookings.models import Booking
from apps.finances.events import PaymentCaptured, RefundCreated
from apps.notifications.services import NotificationRequester
from shared.application.message_bus import message_bus

logger = logging.getLogger(__name__)


def notify_payment_completed(event: PaymentCaptured):
    booking = Booking.objects.filter(pk=event.booking_id).first()
    if booking is None:
        logger.warning(f"PaymentCaptured: booking {event.booking_id} no longer exists")
        return
    NotificationRequester().payment_completed(booking, event.payment_id, event.amount)


def notify_refund_created(event: RefundCreated):
    booking = Booking.objects.filter(pk=event.booking_id).first()
    if booking is None:
        logger.warning(f"RefundCreated: booking {event.booking_id} no longer exists")
        return
    NotificationRequester().refund_created(booking, event.refund_id, event.amount)


def register_handlers():
    message_bus.register_event_handler(PaymentCaptured, notify_payment_completed)
    message_bus.register_event_handler(RefundCreated, notify_refund_created)
