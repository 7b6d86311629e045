"""Payment coordinator: intents, capture, refunds and provider webhooks."""

import hashlib
import hmac
import json
from decimal import Decimal
from unittest import mock

from django.test import TestCase

from apps.bookings.application.command_handlers import CheckInBookingCommand, CheckInBookingHandler
from apps.bookings.domain.state_machine import BookingEventType as E
from apps.bookings.domain.state_machine import BookingStatus as S
from apps.finances.gateways import get_gateway
from apps.finances.gateways.base import GatewayResult
from apps.finances.models import BookingSettlement, CommissionSetting, Payment
from apps.finances.payments import PaymentCoordinator
from shared.domain.exceptions import (
    ForbiddenError,
    GatewayError,
    GatewayTimeoutError,
    InvalidOperationError,
    NotFoundError,
)
from shared.testing import (
    accept_booking,
    complete_booking,
    make_admin,
    make_booking,
    make_category,
    make_customer,
    make_professional,
)

BKASH_SECRET = "test-bkash-secret"


def signed(payload: dict, secret: str = BKASH_SECRET) -> tuple[bytes, str]:
    body = json.dumps(payload).encode("utf-8")
    return body, hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def failing_gateway(**errors) -> mock.Mock:
    """Gateway double whose named operations raise the given errors."""
    gateway = mock.Mock()
    gateway.create_intent.return_value = GatewayResult(status="pending", gateway_ref="REF-1")
    gateway.capture.return_value = GatewayResult(status="success", gateway_ref="REF-1")
    for operation, error in errors.items():
        getattr(gateway, operation).side_effect = error
    return gateway


def event_types(booking) -> list[str]:  # type: ignore
    return list(booking.events.order_by("created_at", "id").values_list("type", flat=True))


class PaymentTestCase(TestCase):
    def setUp(self) -> None:
        self.customer = make_customer()
        self.professional = make_professional()
        self.category = make_category()
        self.booking = make_booking(self.customer, self.professional, self.category, quoted_price="1000.00")
        self.coordinator = PaymentCoordinator()


class IntentTests(PaymentTestCase):
    def test_intent_snapshots_commission(self) -> None:
        payment = self.coordinator.create_intent(self.booking.pk, self.customer)

        self.assertEqual(payment.status, Payment.Status.PENDING)
        self.assertEqual(payment.amount, Decimal("1000.00"))
        self.assertTrue(payment.gateway_ref.startswith(f"STUB_STUB_{self.booking.pk}_"))
        self.assertEqual(payment.metadata["commission"]["percent"], "15.00")
        self.assertEqual(payment.metadata["commission"]["commission_amount"], "150.00")
        self.assertEqual(payment.transactions.get().event, "intent_created")

    def test_retried_intent_returns_pending_payment(self) -> None:
        first = self.coordinator.create_intent(self.booking.pk, self.customer)
        second = self.coordinator.create_intent(self.booking.pk, self.customer)

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Payment.objects.count(), 1)

    def test_paid_booking_rejects_new_intent(self) -> None:
        payment = self.coordinator.create_intent(self.booking.pk, self.customer)
        self.coordinator.capture(payment.pk)

        with self.assertRaises(InvalidOperationError) as ctx:
            self.coordinator.create_intent(self.booking.pk, self.customer)
        self.assertEqual(ctx.exception.code, "already_paid")

    def test_only_booking_customer_can_pay(self) -> None:
        with self.assertRaises(ForbiddenError):
            self.coordinator.create_intent(self.booking.pk, make_customer())

    def test_mock_method_is_not_payable(self) -> None:
        with self.assertRaises(InvalidOperationError):
            self.coordinator.create_intent(self.booking.pk, self.customer, method=Payment.Method.MOCK)

    def test_provider_without_credentials_uses_stub(self) -> None:
        payment = self.coordinator.create_intent(self.booking.pk, self.customer, method="bkash")

        self.assertTrue(payment.gateway_ref.startswith("STUB_BKASH_"))

    def test_intent_gateway_timeout_marks_payment_failed(self) -> None:
        gateway = failing_gateway(create_intent=GatewayTimeoutError("bkash timed out after 15s"))
        coordinator = PaymentCoordinator(gateway_factory=lambda method: gateway)

        with self.assertRaises(GatewayTimeoutError):
            coordinator.create_intent(self.booking.pk, self.customer, method="bkash")

        payment = Payment.objects.get()
        self.assertEqual(payment.status, Payment.Status.FAILED)
        self.assertTrue(payment.metadata["gateway_timeout"])
        self.assertEqual(payment.metadata["failed_operation"], "intent")
        self.assertEqual(payment.transactions.get().event, "gateway_timeout")

    def test_unknown_booking(self) -> None:
        with self.assertRaises(NotFoundError):
            self.coordinator.create_intent(987654, self.customer)


class CaptureTests(PaymentTestCase):
    def test_capture_accepts_pending_booking_and_settles(self) -> None:
        payment = self.coordinator.create_intent(self.booking.pk, self.customer)

        payment = self.coordinator.capture(payment.pk, actor=self.customer)

        self.assertEqual(payment.status, Payment.Status.SUCCESS)
        self.assertIsNotNone(payment.paid_at)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, S.ACCEPTED)
        self.assertEqual(event_types(self.booking), [E.CREATED, E.ACCEPTED, E.PAYMENT_COMPLETED])
        accepted = self.booking.events.get(type=E.ACCEPTED)
        self.assertEqual(accepted.metadata["via"], "payment_capture")

        settlement = BookingSettlement.objects.get(booking=self.booking)
        self.assertEqual(settlement.source, BookingSettlement.Source.CAPTURE)
        self.assertEqual(settlement.payment, payment)
        self.assertEqual(settlement.commission_amount, Decimal("150.00"))
        self.assertEqual(settlement.professional_amount, Decimal("850.00"))

    def test_capture_uses_rate_from_intent(self) -> None:
        payment = self.coordinator.create_intent(self.booking.pk, self.customer)
        CommissionSetting.objects.create(category=self.category, percent=Decimal("10.00"))

        self.coordinator.capture(payment.pk)

        settlement = BookingSettlement.objects.get(booking=self.booking)
        self.assertEqual(settlement.commission_percent, Decimal("15.00"))
        self.assertEqual(settlement.commission_amount, Decimal("150.00"))

    def test_capture_on_accepted_booking_keeps_status(self) -> None:
        payment = self.coordinator.create_intent(self.booking.pk, self.customer)
        accept_booking(self.booking)

        self.coordinator.capture(payment.pk)

        self.assertEqual(event_types(self.booking), [E.CREATED, E.ACCEPTED, E.PAYMENT_COMPLETED])

    def test_completion_after_capture_keeps_single_settlement(self) -> None:
        payment = self.coordinator.create_intent(self.booking.pk, self.customer)
        self.coordinator.capture(payment.pk)
        CheckInBookingHandler().handle(
            CheckInBookingCommand(booking_id=self.booking.pk, actor_id=self.professional.pk)
        )

        with self.captureOnCommitCallbacks(execute=True):
            complete_booking(self.booking)

        settlement = BookingSettlement.objects.get(booking=self.booking)
        self.assertEqual(settlement.source, BookingSettlement.Source.CAPTURE)

    def test_capture_twice_is_rejected(self) -> None:
        payment = self.coordinator.create_intent(self.booking.pk, self.customer)
        self.coordinator.capture(payment.pk)

        with self.assertRaises(InvalidOperationError):
            self.coordinator.capture(payment.pk)

    def test_professional_cannot_capture(self) -> None:
        payment = self.coordinator.create_intent(self.booking.pk, self.customer)

        with self.assertRaises(ForbiddenError):
            self.coordinator.capture(payment.pk, actor=self.professional)

    def test_capture_gateway_error_marks_payment_failed(self) -> None:
        payment = self.coordinator.create_intent(self.booking.pk, self.customer)
        gateway = failing_gateway(capture=GatewayError("insufficient balance"))
        coordinator = PaymentCoordinator(gateway_factory=lambda method: gateway)

        with self.assertRaises(GatewayError) as ctx:
            coordinator.capture(payment.pk)

        self.assertEqual(ctx.exception.message, "Payment could not be processed")
        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.Status.FAILED)
        self.assertEqual(payment.metadata["gateway_error"], "insufficient balance")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, S.PENDING)
        self.assertFalse(BookingSettlement.objects.exists())

    def test_pending_capture_waits_for_webhook(self) -> None:
        payment = self.coordinator.create_intent(self.booking.pk, self.customer, method="bkash")
        gateway = failing_gateway()
        gateway.capture.return_value = GatewayResult(
            status="pending", gateway_ref="BK-TRX-9", metadata={"transactionStatus": "Initiated"}
        )
        coordinator = PaymentCoordinator(gateway_factory=lambda method: gateway)

        payment = coordinator.capture(payment.pk, actor=self.customer)

        self.assertEqual(payment.status, Payment.Status.PENDING)
        self.assertIsNone(payment.paid_at)
        self.assertEqual(payment.gateway_ref, "BK-TRX-9")
        self.assertEqual(payment.metadata["capture_pending"], {"transactionStatus": "Initiated"})
        self.assertEqual(payment.transactions.order_by("-id").first().event, "capture_pending")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, S.PENDING)
        self.assertEqual(event_types(self.booking), [E.CREATED])
        self.assertFalse(BookingSettlement.objects.exists())

        body, signature = signed({"gateway_ref": "BK-TRX-9", "status": "success"})
        result = PaymentCoordinator().process_webhook("bkash", body, signature)

        self.assertTrue(result["success"])
        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.Status.SUCCESS)
        self.assertEqual(BookingSettlement.objects.get(booking=self.booking).payment, payment)

    def test_declined_capture_marks_payment_failed(self) -> None:
        payment = self.coordinator.create_intent(self.booking.pk, self.customer)
        gateway = failing_gateway()
        gateway.capture.return_value = GatewayResult(status="failed")
        coordinator = PaymentCoordinator(gateway_factory=lambda method: gateway)

        with self.assertRaises(GatewayError):
            coordinator.capture(payment.pk)

        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.Status.FAILED)
        self.assertEqual(payment.metadata["failed_operation"], "capture")
        self.assertFalse(BookingSettlement.objects.exists())


class RefundTests(PaymentTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.payment = self.coordinator.create_intent(self.booking.pk, self.customer)
        self.coordinator.capture(self.payment.pk)

    def test_refund_cancels_booking_and_settlement(self) -> None:
        admin = make_admin()

        payment = self.coordinator.refund(self.payment.pk, "Customer complaint", actor=admin)

        self.assertEqual(payment.status, Payment.Status.REFUNDED)
        self.assertIsNotNone(payment.refunded_at)
        self.assertEqual(payment.metadata["refund"]["gateway_ref"], f"STUB_REFUND_{payment.pk}")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, S.CANCELLED)
        self.assertEqual(self.booking.cancelled_by, "admin")
        self.assertEqual(event_types(self.booking)[-2:], [E.CANCELLED, E.REFUNDED])
        settlement = BookingSettlement.objects.get(booking=self.booking)
        self.assertEqual(settlement.status, BookingSettlement.Status.REFUNDED)

    def test_refund_of_completed_booking_keeps_status(self) -> None:
        CheckInBookingHandler().handle(
            CheckInBookingCommand(booking_id=self.booking.pk, actor_id=self.professional.pk)
        )
        complete_booking(self.booking)

        self.coordinator.refund(self.payment.pk, "Goodwill")

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, S.COMPLETED)
        self.assertEqual(event_types(self.booking)[-1], E.REFUNDED)

    def test_refund_requires_successful_payment(self) -> None:
        self.coordinator.refund(self.payment.pk, "First")

        with self.assertRaises(InvalidOperationError):
            self.coordinator.refund(self.payment.pk, "Second")

    def test_refund_gateway_error_keeps_payment_successful(self) -> None:
        gateway = failing_gateway(refund=GatewayError("provider refused"))
        coordinator = PaymentCoordinator(gateway_factory=lambda method: gateway)

        with self.assertRaises(GatewayError):
            coordinator.refund(self.payment.pk, "Customer complaint")

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.SUCCESS)
        self.assertEqual(self.payment.metadata["refund_error"], "provider refused")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, S.ACCEPTED)


class WebhookTests(PaymentTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.payment = self.coordinator.create_intent(self.booking.pk, self.customer, method="bkash")

    def test_valid_success_webhook_captures_payment(self) -> None:
        body, signature = signed({"gateway_ref": self.payment.gateway_ref, "status": "completed"})

        result = self.coordinator.process_webhook("bkash", body, signature)

        self.assertEqual(result, {"success": True, "payment_id": self.payment.pk, "status": "success"})
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.SUCCESS)
        self.assertEqual(self.payment.metadata["webhook_payload"]["status"], "completed")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, S.ACCEPTED)

    def test_repeated_success_webhook_is_harmless(self) -> None:
        body, signature = signed({"gateway_ref": self.payment.gateway_ref, "status": "success"})
        self.coordinator.process_webhook("bkash", body, signature)

        result = self.coordinator.process_webhook("bkash", body, signature)

        self.assertTrue(result["success"])
        self.assertEqual(event_types(self.booking).count(E.PAYMENT_COMPLETED), 1)

    def test_invalid_signature_changes_nothing(self) -> None:
        body, _ = signed({"gateway_ref": self.payment.gateway_ref, "status": "success"})
        _, wrong = signed({"gateway_ref": self.payment.gateway_ref, "status": "success"}, secret="guess")

        result = self.coordinator.process_webhook("bkash", body, wrong)

        self.assertEqual(result, {"success": False, "error": "invalid_signature"})
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.PENDING)

    def test_missing_signature(self) -> None:
        body, _ = signed({"gateway_ref": self.payment.gateway_ref, "status": "success"})

        self.assertFalse(self.coordinator.process_webhook("bkash", body, "")["success"])

    def test_stub_provider_has_no_webhook_secret(self) -> None:
        body, signature = signed({"payment_id": self.payment.pk, "status": "success"}, secret="")

        result = self.coordinator.process_webhook("stub", body, signature)

        self.assertEqual(result["error"], "invalid_signature")

    def test_unknown_provider(self) -> None:
        body, signature = signed({"status": "success"})

        self.assertEqual(
            self.coordinator.process_webhook("paypal", body, signature),
            {"success": False, "error": "unknown_provider"},
        )

    def test_unknown_payment(self) -> None:
        body, signature = signed({"gateway_ref": "NOPE", "status": "success"})

        self.assertEqual(self.coordinator.process_webhook("bkash", body, signature)["error"], "payment_not_found")

    def test_malformed_body(self) -> None:
        body = b"not json"
        signature = get_gateway("bkash").sign(body)

        self.assertEqual(self.coordinator.process_webhook("bkash", body, signature)["error"], "invalid_payload")

    def test_failure_webhook_fails_pending_payment(self) -> None:
        body, signature = signed({"reference": self.payment.gateway_ref, "status": "declined"})

        result = self.coordinator.process_webhook("bkash", body, signature)

        self.assertTrue(result["success"])
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.FAILED)

    def test_refund_webhook_refunds_successful_payment(self) -> None:
        self.coordinator.capture(self.payment.pk)
        body, signature = signed({"gateway_ref": self.payment.gateway_ref, "status": "refunded"})

        result = self.coordinator.process_webhook("bkash", body, signature)

        self.assertEqual(result["status"], "refunded")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, S.CANCELLED)
        self.assertEqual(self.booking.cancelled_by, "system")


class TimeoutReconciliationTests(PaymentTestCase):
    def setUp(self) -> None:
        super().setUp()
        gateway = failing_gateway(create_intent=GatewayTimeoutError("nagad timed out after 15s"))
        with self.assertRaises(GatewayTimeoutError):
            PaymentCoordinator(gateway_factory=lambda method: gateway).create_intent(
                self.booking.pk, self.customer, method="nagad"
            )
        self.payment = Payment.objects.get()

    def test_late_success_webhook_reconciles_timed_out_payment(self) -> None:
        body, signature = signed({"payment_id": self.payment.pk, "status": "success"}, "test-nagad-secret")

        result = self.coordinator.process_webhook("nagad", body, signature)

        self.assertTrue(result["success"])
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.SUCCESS)
        self.assertIn("webhook_reconciled", self.payment.transactions.values_list("event", flat=True))
        self.assertTrue(BookingSettlement.objects.filter(booking=self.booking).exists())

    def test_reconciliation_refused_when_another_payment_is_active(self) -> None:
        retry = self.coordinator.create_intent(self.booking.pk, self.customer, method="nagad")
        body, signature = signed({"payment_id": self.payment.pk, "status": "success"}, "test-nagad-secret")

        result = self.coordinator.process_webhook("nagad", body, signature)

        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "reconciliation_conflict")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.FAILED)
        retry.refresh_from_db()
        self.assertEqual(retry.status, Payment.Status.PENDING)
