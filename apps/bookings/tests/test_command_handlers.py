"""Tests for the booking command handlers."""

from __future__ import annotations

from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.utils import timezone

from apps.bookings.application.command_handlers import (
    AcceptBookingCommand,
    AcceptBookingHandler,
    BookingCommandHandler,
    CancelBookingCommand,
    CancelBookingHandler,
    CheckInBookingCommand,
    CheckInBookingHandler,
    CheckOutBookingCommand,
    CheckOutBookingHandler,
    CreateBookingCommand,
    CreateBookingHandler,
    RejectBookingCommand,
    RejectBookingHandler,
)
from apps.bookings.domain.state_machine import BookingEventType as E
from apps.bookings.domain.state_machine import BookingStatus as S
from apps.bookings.models import Booking, BookingEvent
from apps.finances.models import BookingSettlement, CommissionSetting, DailySettlement, Payment, Refund
from shared.domain.exceptions import ForbiddenError, InvalidOperationError, InvalidTransitionError, NotFoundError
from shared.testing import (
    complete_booking,
    make_admin,
    make_booking,
    make_category,
    make_customer,
    make_professional,
    start_booking,
)


def event_types(booking: Booking) -> list[str]:
    return list(booking.events.order_by("created_at", "id").values_list("type", flat=True))


class CreateBookingTests(TestCase):
    def setUp(self) -> None:
        self.customer = make_customer()
        self.professional = make_professional()
        self.category = make_category()

    def _command(self, **overrides) -> CreateBookingCommand:
        values = {
            "customer_id": self.customer.pk,
            "professional_id": self.professional.pk,
            "category_id": self.category.pk,
            "scheduled_at": timezone.now() + timezone.timedelta(days=2),
            "address": "Road 11, Banani, Dhaka",
            "quoted_price": Decimal("800.00"),
        }
        values.update(overrides)
        return CreateBookingCommand(**values)

    def test_creates_pending_booking_with_created_event(self) -> None:
        booking = CreateBookingHandler().handle(self._command())

        booking.refresh_from_db()
        self.assertEqual(booking.status, S.PENDING)
        self.assertEqual(event_types(booking), [E.CREATED])
        self.assertEqual(booking.commission_percent, Decimal("15.00"))
        self.assertEqual(booking.currency, "BDT")

    def test_snapshots_category_commission(self) -> None:
        CommissionSetting.objects.create(category=self.category, percent=Decimal("12.50"))

        booking = CreateBookingHandler().handle(self._command())

        self.assertEqual(booking.commission_percent, Decimal("12.50"))
        created = booking.events.get()
        self.assertEqual(created.metadata["commission_percent"], "12.50")
        self.assertEqual(created.metadata["schema_version"], 1)

    def test_rejects_non_professional(self) -> None:
        other_customer = make_customer()
        with self.assertRaises(InvalidOperationError):
            CreateBookingHandler().handle(self._command(professional_id=other_customer.pk))

    def test_rejects_past_schedule(self) -> None:
        with self.assertRaises(InvalidOperationError):
            CreateBookingHandler().handle(self._command(scheduled_at=timezone.now() - timezone.timedelta(hours=1)))

    def test_rejects_inactive_category(self) -> None:
        self.category.is_active = False
        self.category.save()
        with self.assertRaises(NotFoundError):
            CreateBookingHandler().handle(self._command())

    def test_unknown_customer(self) -> None:
        with self.assertRaises(NotFoundError):
            CreateBookingHandler().handle(self._command(customer_id=999999))


class LifecycleTests(TestCase):
    def setUp(self) -> None:
        self.customer = make_customer()
        self.professional = make_professional()
        self.category = make_category()

    def test_accept_appends_accepted_event(self) -> None:
        booking = make_booking(self.customer, self.professional, self.category)
        self.assertEqual(event_types(booking), [E.CREATED])

        booking = AcceptBookingHandler().handle(
            AcceptBookingCommand(booking_id=booking.pk, actor_id=self.professional.pk)
        )

        booking.refresh_from_db()
        self.assertEqual(booking.status, S.ACCEPTED)
        self.assertEqual(event_types(booking), [E.CREATED, E.ACCEPTED])

    def test_check_in_on_pending_booking_is_invalid_transition(self) -> None:
        booking = make_booking(self.customer, self.professional, self.category)

        with self.assertRaisesMessage(InvalidTransitionError, "Cannot transition from PENDING to IN_PROGRESS"):
            CheckInBookingHandler().handle(
                CheckInBookingCommand(booking_id=booking.pk, actor_id=self.professional.pk)
            )

        booking.refresh_from_db()
        self.assertEqual(booking.status, S.PENDING)
        self.assertEqual(event_types(booking), [E.CREATED])

    def test_other_professional_is_forbidden_before_state_check(self) -> None:
        booking = make_booking(self.customer, self.professional, self.category)
        stranger = make_professional()

        # Check-in from PENDING is also invalid, authorization wins
        with self.assertRaises(ForbiddenError):
            CheckInBookingHandler().handle(CheckInBookingCommand(booking_id=booking.pk, actor_id=stranger.pk))
        with self.assertRaises(ForbiddenError):
            AcceptBookingHandler().handle(AcceptBookingCommand(booking_id=booking.pk, actor_id=stranger.pk))

    def test_customer_cannot_accept(self) -> None:
        booking = make_booking(self.customer, self.professional, self.category)

        with self.assertRaises(ForbiddenError):
            AcceptBookingHandler().handle(AcceptBookingCommand(booking_id=booking.pk, actor_id=self.customer.pk))

    def test_hourly_completion_settles_at_default_rate(self) -> None:
        booking = make_booking(
            self.customer, self.professional, self.category, pricing_model="hourly", quoted_price="500.00"
        )
        start_booking(booking)
        booking.refresh_from_db()
        self.assertEqual(booking.status, S.IN_PROGRESS)
        self.assertEqual(event_types(booking), [E.CREATED, E.ACCEPTED, E.CHECKED_IN])

        with self.captureOnCommitCallbacks(execute=True):
            complete_booking(booking, actual_hours="2.5")

        booking.refresh_from_db()
        self.assertEqual(booking.status, S.COMPLETED)
        self.assertEqual(booking.final_amount, Decimal("1250.00"))
        settlement = BookingSettlement.objects.get(booking=booking)
        self.assertEqual(settlement.commission_amount, Decimal("187.50"))
        self.assertEqual(settlement.professional_amount, Decimal("1062.50"))
        self.assertEqual(settlement.commission_percent, Decimal("15.00"))
        self.assertEqual(settlement.source, BookingSettlement.Source.COMPLETION)

    def test_completion_without_checkout_appends_implicit_checkout(self) -> None:
        booking = make_booking(self.customer, self.professional, self.category)
        start_booking(booking)

        complete_booking(booking)

        self.assertEqual(
            event_types(booking),
            [E.CREATED, E.ACCEPTED, E.CHECKED_IN, E.CHECKED_OUT, E.COMPLETED],
        )
        checkout = booking.events.get(type=E.CHECKED_OUT)
        self.assertTrue(checkout.metadata["implicit"])
        booking.refresh_from_db()
        self.assertEqual(booking.final_amount, Decimal("1000.00"))

    def test_explicit_checkout_then_complete(self) -> None:
        booking = make_booking(
            self.customer, self.professional, self.category, pricing_model="hourly", quoted_price="300.00"
        )
        start_booking(booking)

        CheckOutBookingHandler().handle(
            CheckOutBookingCommand(booking_id=booking.pk, actor_id=self.professional.pk, actual_hours=Decimal("3"))
        )
        booking.refresh_from_db()
        self.assertEqual(booking.status, S.IN_PROGRESS)
        self.assertEqual(booking.actual_hours, Decimal("3.00"))

        with self.assertRaises(InvalidTransitionError):
            CheckOutBookingHandler().handle(
                CheckOutBookingCommand(booking_id=booking.pk, actor_id=self.professional.pk)
            )

        complete_booking(booking)

        booking.refresh_from_db()
        self.assertEqual(booking.final_amount, Decimal("900.00"))
        self.assertEqual(event_types(booking).count(E.CHECKED_OUT), 1)
        checkout = booking.events.get(type=E.CHECKED_OUT)
        self.assertFalse(checkout.metadata["implicit"])

    def test_final_amount_override(self) -> None:
        booking = make_booking(self.customer, self.professional, self.category)
        start_booking(booking)

        complete_booking(booking, final_amount="1500")

        booking.refresh_from_db()
        self.assertEqual(booking.final_amount, Decimal("1500.00"))
        self.assertTrue(booking.events.get(type=E.COMPLETED).metadata["amount_overridden"])

    def test_hourly_completion_with_zero_hours_is_rejected(self) -> None:
        booking = make_booking(
            self.customer, self.professional, self.category, pricing_model="hourly", quoted_price="500.00"
        )
        start_booking(booking)

        with self.assertRaises(InvalidOperationError):
            complete_booking(booking, actual_hours="0")

        booking.refresh_from_db()
        self.assertEqual(booking.status, S.IN_PROGRESS)
        self.assertIsNone(booking.final_amount)

    def test_completion_side_effect_failure_does_not_revert_booking(self) -> None:
        booking = make_booking(self.customer, self.professional, self.category)
        start_booking(booking)

        with mock.patch(
            "apps.finances.ledger.SettlementLedger.settle_completed_booking",
            side_effect=RuntimeError("ledger down"),
        ):
            with self.captureOnCommitCallbacks(execute=True):
                complete_booking(booking)

        booking.refresh_from_db()
        self.assertEqual(booking.status, S.COMPLETED)
        self.assertFalse(BookingSettlement.objects.filter(booking=booking).exists())


class ConcurrentAcceptTests(TestCase):
    def test_second_accept_on_stale_booking_fails(self) -> None:
        customer, professional = make_customer(), make_professional()
        booking = make_booking(customer, professional, make_category())
        stale = Booking.objects.get(pk=booking.pk)

        AcceptBookingHandler().handle(AcceptBookingCommand(booking_id=booking.pk, actor_id=professional.pk))

        # Second caller loaded the booking before the first one committed
        with mock.patch.object(BookingCommandHandler, "_load_booking", return_value=stale):
            with self.assertRaises(InvalidTransitionError):
                AcceptBookingHandler().handle(
                    AcceptBookingCommand(booking_id=booking.pk, actor_id=professional.pk)
                )

        booking.refresh_from_db()
        self.assertEqual(booking.status, S.ACCEPTED)
        self.assertEqual(BookingEvent.objects.filter(booking=booking, type=E.ACCEPTED).count(), 1)


class RejectAndCancelTests(TestCase):
    def setUp(self) -> None:
        self.customer = make_customer()
        self.professional = make_professional()
        self.booking = make_booking(self.customer, self.professional, make_category(), quoted_price="2000.00")

    def test_reject_after_successful_payment_creates_one_refund(self) -> None:
        payment = Payment.objects.create(
            booking=self.booking,
            customer=self.customer,
            method=Payment.Method.STUB,
            status=Payment.Status.SUCCESS,
            amount=Decimal("2000.00"),
        )

        with self.captureOnCommitCallbacks(execute=True):
            RejectBookingHandler().handle(
                RejectBookingCommand(booking_id=self.booking.pk, actor_id=self.professional.pk, reason="Fully booked")
            )

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, S.REJECTED)
        refund = Refund.objects.get(booking=self.booking)
        self.assertEqual(refund.payment, payment)
        self.assertEqual(refund.amount, Decimal("2000.00"))
        self.assertEqual(refund.status, Refund.Status.PENDING)
        self.assertIn("rejected", refund.reason)
        self.assertIn("Fully booked", refund.reason)

    def test_reject_without_payment_creates_no_refund(self) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            RejectBookingHandler().handle(
                RejectBookingCommand(booking_id=self.booking.pk, actor_id=self.professional.pk)
            )

        self.assertFalse(Refund.objects.exists())
        self.assertEqual(event_types(self.booking), [E.CREATED, E.REJECTED])

    def test_refund_failure_does_not_revert_rejection(self) -> None:
        Payment.objects.create(
            booking=self.booking,
            customer=self.customer,
            method=Payment.Method.STUB,
            status=Payment.Status.SUCCESS,
            amount=Decimal("2000.00"),
        )

        with mock.patch(
            "apps.finances.refunds.create_refund_for_rejected_booking",
            side_effect=RuntimeError("database hiccup"),
        ):
            with self.captureOnCommitCallbacks(execute=True):
                RejectBookingHandler().handle(
                    RejectBookingCommand(booking_id=self.booking.pk, actor_id=self.professional.pk)
                )

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, S.REJECTED)
        self.assertFalse(Refund.objects.exists())

    def test_cancelling_rejected_booking_is_invalid_transition(self) -> None:
        RejectBookingHandler().handle(
            RejectBookingCommand(booking_id=self.booking.pk, actor_id=self.professional.pk)
        )

        with self.assertRaisesMessage(InvalidTransitionError, "Cannot transition from REJECTED to CANCELLED"):
            CancelBookingHandler().handle(
                CancelBookingCommand(booking_id=self.booking.pk, actor_id=self.customer.pk)
            )

    def test_customer_cancels_pending_booking(self) -> None:
        booking = CancelBookingHandler().handle(
            CancelBookingCommand(booking_id=self.booking.pk, actor_id=self.customer.pk, reason="Plans changed")
        )

        booking.refresh_from_db()
        self.assertEqual(booking.status, S.CANCELLED)
        self.assertEqual(booking.cancelled_by, Booking.CancelledBy.CUSTOMER)
        self.assertEqual(event_types(booking), [E.CREATED, E.CANCELLED])

    def test_admin_can_cancel(self) -> None:
        booking = CancelBookingHandler().handle(
            CancelBookingCommand(booking_id=self.booking.pk, actor_id=make_admin().pk)
        )

        self.assertEqual(booking.cancelled_by, Booking.CancelledBy.ADMIN)

    def test_stranger_cannot_cancel(self) -> None:
        with self.assertRaises(ForbiddenError):
            CancelBookingHandler().handle(
                CancelBookingCommand(booking_id=self.booking.pk, actor_id=make_customer().pk)
            )

    def test_completed_booking_cannot_be_cancelled(self) -> None:
        start_booking(self.booking)
        complete_booking(self.booking)

        with self.assertRaises(InvalidTransitionError):
            CancelBookingHandler().handle(
                CancelBookingCommand(booking_id=self.booking.pk, actor_id=self.customer.pk)
            )


class DailyRollupTests(TestCase):
    def test_two_completions_on_the_same_day(self) -> None:
        customer, professional, category = make_customer(), make_professional(), make_category()
        first = make_booking(customer, professional, category, quoted_price="1000.00")
        second = make_booking(customer, professional, category, quoted_price="500.00")

        for booking in (first, second):
            start_booking(booking)
            with self.captureOnCommitCallbacks(execute=True):
                complete_booking(booking)

        daily = DailySettlement.objects.get(date=timezone.localdate())
        self.assertEqual(daily.total_bookings, 2)
        self.assertEqual(daily.total_amount, Decimal("1500.00"))
        self.assertEqual(daily.total_commission, Decimal("225.00"))
        self.assertEqual(daily.total_payouts, Decimal("1275.00"))
