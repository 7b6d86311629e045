"""
Booking Command Handlers

These are the use cases for the booking domain.
They orchestrate domain operations within transactions.

Commands:
- CreateBookingCommand: Customer requests a job (-> PENDING)
- AcceptBookingCommand: Professional accepts (PENDING -> ACCEPTED)
- RejectBookingCommand: Professional rejects (PENDING -> REJECTED)
- CheckInBookingCommand: Professional starts the job (ACCEPTED -> IN_PROGRESS)
- CheckOutBookingCommand: Professional records hours (stays IN_PROGRESS)
- CompleteBookingCommand: Job finished, final amount fixed (IN_PROGRESS -> COMPLETED)
- CancelBookingCommand: Customer, professional or admin cancels

Each handler checks who is acting before asking the state machine, so a
caller can tell "not your booking" (403) from "not allowed now" (400).
Side effects (refunds, settlement, notifications) are published as
domain events after commit and never undo the transition.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone

from shared.application.uow import DjangoUnitOfWork
from shared.domain.exceptions import (
    ForbiddenError,
    InvalidOperationError,
    InvalidTransitionError,
    NotFoundError,
)
from apps.bookings.domain import state_machine
from apps.bookings.domain.events import (
    BookingAccepted,
    BookingCancelled,
    BookingCompleted,
    BookingCreated,
    BookingRejected,
    BookingStarted,
)
from apps.bookings.domain.state_machine import BookingEventType, BookingStatus
from apps.bookings.models import Booking
from apps.bookings.services import (
    actor_role,
    apply_transition,
    load_booking,
    transition_booking,
)

logger = logging.getLogger(__name__)


# ===== Commands =====

@dataclass
class CreateBookingCommand:
    """
    Command to create a new booking

    This is the primary entry point for job requests.
    """
    customer_id: int
    professional_id: int
    category_id: int
    scheduled_at: datetime
    address: str
    quoted_price: Decimal
    pricing_model: str = Booking.PricingModel.FIXED
    details: str = ''
    latitude: Decimal | None = None
    longitude: Decimal | None = None


@dataclass
class AcceptBookingCommand:
    booking_id: int
    actor_id: int
    note: str = ''


@dataclass
class RejectBookingCommand:
    booking_id: int
    actor_id: int
    reason: str = ''


@dataclass
class CheckInBookingCommand:
    booking_id: int
    actor_id: int


@dataclass
class CheckOutBookingCommand:
    """Command to record the end of work; actual hours default to time since check-in"""
    booking_id: int
    actor_id: int
    actual_hours: Decimal | None = None


@dataclass
class CompleteBookingCommand:
    """
    Command to complete a booking

    ``final_amount`` overrides the computed amount (hourly rate x hours,
    or the quoted price for fixed bookings).
    """
    booking_id: int
    actor_id: int
    actual_hours: Decimal | None = None
    final_amount: Decimal | None = None


@dataclass
class CancelBookingCommand:
    booking_id: int
    actor_id: int
    reason: str = ''


# ===== Command Handlers =====

class BookingCommandHandler:
    """Shared loading and authorization for booking use cases"""

    def _load_booking(self, booking_id: int) -> Booking:
        return load_booking(booking_id)

    def _load_actor(self, actor_id: int):
        User = get_user_model()
        try:
            return User.objects.get(pk=actor_id)
        except User.DoesNotExist:
            raise NotFoundError(f"User {actor_id} not found") from None

    def _require_professional(self, booking: Booking, actor, action: str):
        if booking.professional_id != actor.pk:
            raise ForbiddenError(f"Only the assigned professional can {action} this booking")

    def _event_kwargs(self, booking: Booking) -> dict:
        return {
            'aggregate_id': booking.pk,
            'booking_id': booking.pk,
            'customer_id': booking.customer_id,
            'professional_id': booking.professional_id,
        }


class CreateBookingHandler(BookingCommandHandler):
    """
    Handler for CreateBooking command

    Strategy:
    1. Validate the professional, the category and the schedule
    2. Snapshot the commission rate that applies right now
    3. Create the booking and its CREATED event in one transaction
    4. Publish BookingCreated after commit
    """

    def __init__(self, commission_resolver=None):
        if commission_resolver is None:
            from apps.finances.commission import CommissionResolver
            commission_resolver = CommissionResolver()
        self.commission_resolver = commission_resolver

    def handle(self, command: CreateBookingCommand) -> Booking:
        """
        Handle booking creation

        Returns: Created Booking

        Raises:
            NotFoundError: Customer, professional or category not found
            InvalidOperationError: Validation failed
        """
        from apps.catalog.models import ServiceCategory

        logger.info(
            f"Creating booking for customer {command.customer_id}, "
            f"professional {command.professional_id}, category {command.category_id}"
        )

        customer = self._load_actor(command.customer_id)
        professional = self._load_actor(command.professional_id)

        if not professional.is_professional():
            raise InvalidOperationError(f"User {professional.pk} is not a professional")
        if professional.pk == customer.pk:
            raise InvalidOperationError("Professionals cannot book themselves")

        try:
            category = ServiceCategory.objects.get(pk=command.category_id, is_active=True)
        except ServiceCategory.DoesNotExist:
            raise NotFoundError(f"Category {command.category_id} not found or not active") from None

        if command.scheduled_at <= timezone.now():
            raise InvalidOperationError("Scheduled time must be in the future")

        if command.pricing_model not in Booking.PricingModel.values:
            raise InvalidOperationError(f"Unknown pricing model: {command.pricing_model}")

        if command.quoted_price is None or command.quoted_price <= 0:
            raise InvalidOperationError("Quoted price must be positive")

        commission_percent = self.commission_resolver.resolve(category.pk)

        with DjangoUnitOfWork() as uow:
            booking = Booking.objects.create(
                customer=customer,
                professional=professional,
                category=category,
                status=BookingStatus.PENDING,
                scheduled_at=command.scheduled_at,
                address=command.address,
                latitude=command.latitude,
                longitude=command.longitude,
                details=command.details,
                pricing_model=command.pricing_model,
                quoted_price=command.quoted_price,
                currency=settings.MARKETPLACE['CURRENCY'],
                commission_percent=commission_percent,
            )
            booking.record_event(
                BookingEventType.CREATED,
                {
                    'pricing_model': command.pricing_model,
                    'quoted_price': command.quoted_price,
                    'commission_percent': commission_percent,
                },
                actor=customer,
            )
            booking.add_event(BookingCreated(**self._event_kwargs(booking)))
            uow.collect_events(booking)

        logger.info(f"Booking {booking.pk} created (PENDING) at {commission_percent}% commission")
        return booking


class AcceptBookingHandler(BookingCommandHandler):
    """Handler for Accept command (PENDING -> ACCEPTED)"""

    def handle(self, command: AcceptBookingCommand) -> Booking:
        actor = self._load_actor(command.actor_id)

        with DjangoUnitOfWork() as uow:
            booking = self._load_booking(command.booking_id)
            self._require_professional(booking, actor, 'accept')

            transition_booking(
                booking,
                BookingStatus.ACCEPTED,
                actor=actor,
                metadata={'via': 'professional', 'note': command.note},
            )
            booking.add_event(BookingAccepted(**self._event_kwargs(booking)))
            uow.collect_events(booking)

        return booking


class RejectBookingHandler(BookingCommandHandler):
    """
    Handler for Reject command (PENDING -> REJECTED)

    A paid booking gets its refund created by the BookingRejected event
    handler after commit; a failing refund never reverts the rejection.
    """

    def handle(self, command: RejectBookingCommand) -> Booking:
        actor = self._load_actor(command.actor_id)

        with DjangoUnitOfWork() as uow:
            booking = self._load_booking(command.booking_id)
            self._require_professional(booking, actor, 'reject')

            transition_booking(
                booking,
                BookingStatus.REJECTED,
                actor=actor,
                metadata={'reason': command.reason},
            )
            booking.add_event(BookingRejected(reason=command.reason, **self._event_kwargs(booking)))
            uow.collect_events(booking)

        return booking


class CheckInBookingHandler(BookingCommandHandler):
    """Handler for CheckIn command (ACCEPTED -> IN_PROGRESS)"""

    def handle(self, command: CheckInBookingCommand) -> Booking:
        actor = self._load_actor(command.actor_id)

        with DjangoUnitOfWork() as uow:
            booking = self._load_booking(command.booking_id)
            self._require_professional(booking, actor, 'check in')

            now = timezone.now()
            transition_booking(
                booking,
                BookingStatus.IN_PROGRESS,
                actor=actor,
                metadata={'checked_in_at': now},
                fields={'checked_in_at': now},
            )
            booking.add_event(BookingStarted(**self._event_kwargs(booking)))
            uow.collect_events(booking)

        return booking


class CheckOutBookingHandler(BookingCommandHandler):
    """
    Handler for CheckOut command

    Records the checkout time and actual hours. The status stays
    IN_PROGRESS and no money is computed here.
    """

    def handle(self, command: CheckOutBookingCommand) -> Booking:
        actor = self._load_actor(command.actor_id)

        if command.actual_hours is not None and command.actual_hours < 0:
            raise InvalidOperationError("Actual hours cannot be negative")

        with DjangoUnitOfWork():
            booking = self._load_booking(command.booking_id)
            self._require_professional(booking, actor, 'check out')

            current = BookingStatus(booking.status)
            if current != BookingStatus.IN_PROGRESS:
                raise InvalidTransitionError(f"Cannot check out a booking in status {current.name}")

            events = booking.event_types()
            missing = state_machine.missing_events(current, events)
            if missing:
                names = ', '.join(event.name for event in missing)
                raise InvalidTransitionError(f"Missing required events for current status: {names}")
            if BookingEventType.CHECKED_OUT in events:
                raise InvalidTransitionError(f"Booking {booking.pk} has already been checked out")

            now = timezone.now()
            hours = command.actual_hours if command.actual_hours is not None else booking.hours_worked(until=now)

            updated = Booking.objects.filter(
                pk=booking.pk,
                status=BookingStatus.IN_PROGRESS,
                checked_out_at__isnull=True,
            ).update(checked_out_at=now, actual_hours=hours, updated_at=now)
            if updated != 1:
                raise InvalidTransitionError(
                    f"Booking {booking.pk} was modified concurrently and cannot be checked out"
                )

            booking.checked_out_at = now
            booking.actual_hours = hours
            booking.record_event(
                BookingEventType.CHECKED_OUT,
                {'checked_out_at': now, 'actual_hours': hours},
                actor=actor,
            )

        logger.info(f"Booking {booking.pk} checked out after {hours} hours")
        return booking


class CompleteBookingHandler(BookingCommandHandler):
    """
    Handler for Complete command (IN_PROGRESS -> COMPLETED)

    Fixes the final amount. When no checkout was recorded an implicit
    CHECKED_OUT event is appended before COMPLETED in the same
    transaction. Settlement runs after commit from the BookingCompleted
    event, best-effort; the backfill job repairs missed settlements.
    """

    def handle(self, command: CompleteBookingCommand) -> Booking:
        actor = self._load_actor(command.actor_id)

        if command.actual_hours is not None and command.actual_hours < 0:
            raise InvalidOperationError("Actual hours cannot be negative")

        with DjangoUnitOfWork() as uow:
            booking = self._load_booking(command.booking_id)
            self._require_professional(booking, actor, 'complete')

            events = booking.event_types()
            state_machine.ensure_transition(booking.status, BookingStatus.COMPLETED, events)

            now = timezone.now()
            checked_out = BookingEventType.CHECKED_OUT in events
            if command.actual_hours is not None:
                hours = command.actual_hours
            elif booking.actual_hours is not None:
                hours = booking.actual_hours
            else:
                hours = booking.hours_worked(until=now)

            final_amount = booking.compute_final_amount(hours, command.final_amount)
            if final_amount <= 0:
                raise InvalidOperationError(
                    f"Final amount must be positive, got {final_amount}", code='invalid_final_amount'
                )

            fields = {'final_amount': final_amount, 'actual_hours': hours, 'completed_at': now}
            if not checked_out:
                fields['checked_out_at'] = now

            apply_transition(booking, BookingStatus.COMPLETED, fields=fields, events=events)

            if not checked_out:
                booking.record_event(
                    BookingEventType.CHECKED_OUT,
                    {'checked_out_at': now, 'actual_hours': hours, 'implicit': True},
                    actor=actor,
                )
            booking.record_event(
                BookingEventType.COMPLETED,
                {
                    'final_amount': final_amount,
                    'actual_hours': hours,
                    'amount_overridden': command.final_amount is not None,
                },
                actor=actor,
            )
            booking.add_event(BookingCompleted(final_amount=final_amount, **self._event_kwargs(booking)))
            uow.collect_events(booking)

        logger.info(f"Booking {booking.pk} completed with final amount {final_amount}")
        return booking


class CancelBookingHandler(BookingCommandHandler):
    """
    Handler for Cancel command

    Customer, professional or an admin may cancel. ``can_be_cancelled``
    is only a pre-check; the edge graph decides, so a REJECTED booking
    cannot be cancelled.
    """

    def handle(self, command: CancelBookingCommand) -> Booking:
        actor = self._load_actor(command.actor_id)

        with DjangoUnitOfWork() as uow:
            booking = self._load_booking(command.booking_id)
            role = actor_role(booking, actor)
            if role is None:
                raise ForbiddenError("You are not allowed to cancel this booking")

            current = BookingStatus(booking.status)
            if not state_machine.can_be_cancelled(current):
                raise InvalidTransitionError(f"Booking in status {current.name} cannot be cancelled")

            now = timezone.now()
            transition_booking(
                booking,
                BookingStatus.CANCELLED,
                actor=actor,
                metadata={'reason': command.reason, 'cancelled_by': role},
                fields={'cancel_reason': command.reason[:500], 'cancelled_by': role, 'cancelled_at': now},
            )
            booking.add_event(
                BookingCancelled(cancelled_by=role, reason=command.reason, **self._event_kwargs(booking))
            )
            uow.collect_events(booking)

        return booking
