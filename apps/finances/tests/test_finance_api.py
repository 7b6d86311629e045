"""Integration tests for the finance API endpoints."""

from __future__ import annotations

import hashlib
import hmac
import json
from decimal import Decimal

from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.finances.ledger import SettlementLedger
from apps.finances.models import BookingSettlement, CommissionSetting, Payment, Payout, Refund
from apps.finances.payments import PaymentCoordinator
from shared.testing import (
    complete_booking,
    make_admin,
    make_booking,
    make_category,
    make_customer,
    make_professional,
    start_booking,
)


class FinanceAPITestCase(APITestCase):
    def setUp(self) -> None:
        self.customer = make_customer()
        self.professional = make_professional()
        self.admin = make_admin()
        self.category = make_category()
        self.booking = make_booking(self.customer, self.professional, self.category, quoted_price="1000.00")


class PaymentAPITests(FinanceAPITestCase):
    def test_customer_opens_and_captures_payment(self) -> None:
        self.client.force_authenticate(self.customer)

        response = self.client.post(
            reverse("payment-intent"), {"booking_id": self.booking.pk, "method": "nagad"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["status"], "pending")
        self.assertEqual(response.data["amount"], "1000.00")
        payment_id = response.data["id"]

        response = self.client.post(reverse("payment-capture", args=[payment_id]), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "success")
        self.assertEqual(
            [t["event"] for t in response.data["transactions"]].count("captured"), 1
        )
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, "accepted")

    def test_stranger_cannot_pay(self) -> None:
        self.client.force_authenticate(make_customer())

        response = self.client.post(reverse("payment-intent"), {"booking_id": self.booking.pk}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN, response.data)

    def test_mock_method_is_not_accepted(self) -> None:
        self.client.force_authenticate(self.customer)

        response = self.client.post(
            reverse("payment-intent"), {"booking_id": self.booking.pk, "method": "mock"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_is_scoped(self) -> None:
        PaymentCoordinator().create_intent(self.booking.pk, self.customer)

        self.client.force_authenticate(self.professional)
        self.assertEqual(len(self.client.get(reverse("payment-list")).data), 1)
        self.client.force_authenticate(make_customer())
        self.assertEqual(self.client.get(reverse("payment-list")).data, [])

    def test_refund_is_admin_only(self) -> None:
        coordinator = PaymentCoordinator()
        payment = coordinator.create_intent(self.booking.pk, self.customer)
        coordinator.capture(payment.pk)
        url = reverse("payment-refund", args=[payment.pk])

        self.client.force_authenticate(self.customer)
        self.assertEqual(
            self.client.post(url, {"reason": "please"}, format="json").status_code, status.HTTP_403_FORBIDDEN
        )

        self.client.force_authenticate(self.admin)
        response = self.client.post(url, {"reason": "Duplicate charge"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "refunded")


class WebhookAPITests(FinanceAPITestCase):
    def setUp(self) -> None:
        super().setUp()
        self.payment = PaymentCoordinator().create_intent(self.booking.pk, self.customer, method="bkash")
        self.url = reverse("payment-webhook", args=["bkash"])

    def _post(self, payload: dict, secret: str = "test-bkash-secret"):  # type: ignore
        body = json.dumps(payload).encode("utf-8")
        signature = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return self.client.generic("POST", self.url, body, content_type="application/json", HTTP_X_SIGNATURE=signature)

    def test_signed_webhook_captures_payment(self) -> None:
        response = self._post({"gateway_ref": self.payment.gateway_ref, "status": "success"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["success"])
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.SUCCESS)

    def test_bad_signature_still_answers_200(self) -> None:
        response = self._post({"gateway_ref": self.payment.gateway_ref, "status": "success"}, secret="wrong")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {"success": False, "error": "invalid_signature"})
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.PENDING)

    def test_unknown_provider_answers_200(self) -> None:
        response = self.client.post(reverse("payment-webhook", args=["paypal"]), {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["success"])


class CommissionAPITests(FinanceAPITestCase):
    def test_admin_manages_settings(self) -> None:
        self.client.force_authenticate(self.admin)
        url = reverse("commission-setting-list")

        response = self.client.post(url, {"category": self.category.pk, "percent": "12.50"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["percent"], "12.50")

        duplicate = self.client.post(url, {"category": self.category.pk, "percent": "11.00"}, format="json")
        self.assertEqual(duplicate.status_code, status.HTTP_409_CONFLICT, duplicate.data)
        self.assertEqual(duplicate.data["code"], "duplicate_request")

        detail = reverse("commission-setting-detail", args=[response.data["id"]])
        response = self.client.patch(detail, {"percent": "9"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["percent"], "9.00")

        self.assertEqual(self.client.delete(detail).status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(CommissionSetting.objects.exists())

    def test_out_of_range_percent(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.post(reverse("commission-setting-list"), {"percent": "120"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_admin_cannot_manage(self) -> None:
        self.client.force_authenticate(self.professional)

        response = self.client.get(reverse("commission-setting-list"))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_quote_for_amount_and_booking(self) -> None:
        CommissionSetting.objects.create(category=self.category, percent=Decimal("20.00"))
        self.client.force_authenticate(self.customer)
        url = reverse("commission-setting-quote")

        response = self.client.post(url, {"amount": "250.00", "category_id": self.category.pk}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["commission_amount"], "50.00")
        self.assertEqual(response.data["net_amount"], "200.00")

        response = self.client.post(url, {"booking_id": self.booking.pk}, format="json")
        self.assertEqual(response.data["amount"], "1000.00")
        self.assertEqual(response.data["commission_amount"], "200.00")

        self.client.force_authenticate(make_customer())
        response = self.client.post(url, {"booking_id": self.booking.pk}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_quote_needs_booking_or_amount(self) -> None:
        self.client.force_authenticate(self.customer)

        response = self.client.post(reverse("commission-setting-quote"), {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class RefundAPITests(FinanceAPITestCase):
    def setUp(self) -> None:
        super().setUp()
        payment = Payment.objects.create(
            booking=self.booking,
            customer=self.customer,
            method=Payment.Method.STUB,
            status=Payment.Status.SUCCESS,
            amount=Decimal("1000.00"),
        )
        self.refund = Refund.objects.create(
            booking=self.booking, payment=payment, amount=payment.amount, reason="Booking rejected by professional"
        )
        self.client.force_authenticate(self.admin)

    def test_process_then_complete(self) -> None:
        response = self.client.post(
            reverse("refund-process", args=[self.refund.pk]), {"method": "bkash"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "processing")
        self.assertEqual(response.data["processed_by_id"], self.admin.pk)

        response = self.client.post(
            reverse("refund-complete", args=[self.refund.pk]), {"gateway_ref": "TRX-1"}, format="json"
        )
        self.assertEqual(response.data["status"], "completed")

        response = self.client.post(reverse("refund-fail", args=[self.refund.pk]), {"notes": "late"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_stats_and_filters(self) -> None:
        response = self.client.get(reverse("refund-stats"))
        self.assertEqual(response.data["pending_amount"], "1000.00")
        self.assertEqual(response.data["total_count"], 1)

        response = self.client.get(reverse("refund-list"), {"status": "completed"})
        self.assertEqual(response.data, [])

    def test_customers_cannot_see_refunds(self) -> None:
        self.client.force_authenticate(self.customer)

        self.assertEqual(self.client.get(reverse("refund-list")).status_code, status.HTTP_403_FORBIDDEN)


class SettlementAPITests(FinanceAPITestCase):
    def setUp(self) -> None:
        super().setUp()
        start_booking(self.booking)
        complete_booking(self.booking)
        self.booking.refresh_from_db()

    def test_manual_settlement_and_summary(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.post(reverse("settlement-manual"), {"booking_id": self.booking.pk}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["source"], "manual")
        self.assertEqual(response.data["professional_amount"], "850.00")

        again = self.client.post(reverse("settlement-manual"), {"booking_id": self.booking.pk}, format="json")
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)

        response = self.client.get(reverse("settlement-summary"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["total_bookings"], 1)
        self.assertEqual(response.data["total_amount"], "1000.00")

    def test_mark_paid_and_earnings(self) -> None:
        settlement, _ = SettlementLedger().settle_completed_booking(self.booking)
        self.client.force_authenticate(self.admin)

        response = self.client.post(reverse("settlement-mark-paid", args=[settlement.pk]), format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "paid")

        self.client.force_authenticate(self.professional)
        response = self.client.get(reverse("settlement-earnings"))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["total_paid"], "850.00")

        self.client.force_authenticate(self.customer)
        self.assertEqual(self.client.get(reverse("settlement-earnings")).status_code, status.HTTP_403_FORBIDDEN)

    def test_backfill_and_process_day(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.post(reverse("settlement-backfill"), {}, format="json")
        self.assertEqual(response.data["created"], 1)

        today = timezone.localdate().isoformat()
        response = self.client.post(reverse("settlement-process-day"), {"date": today}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "processed")
        self.assertEqual(BookingSettlement.objects.get().status, BookingSettlement.Status.PAID)

        response = self.client.get(reverse("settlement-history"), {"start": today, "end": today})
        self.assertEqual(len(response.data), 1)

    def test_history_requires_ordered_range(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.get(reverse("settlement-history"), {"start": "2026-03-10", "end": "2026-03-01"})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_settlement_admin_is_restricted(self) -> None:
        self.client.force_authenticate(self.professional)

        response = self.client.post(reverse("settlement-manual"), {"booking_id": self.booking.pk}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class PayoutAPITests(FinanceAPITestCase):
    def _create(self, start: str, end: str):  # type: ignore
        return self.client.post(
            reverse("payout-list"),
            {"professional_id": self.professional.pk, "period_start": start, "period_end": end, "amount": "500.00"},
            format="json",
        )

    def test_overlapping_payout_is_rejected(self) -> None:
        self.client.force_authenticate(self.admin)

        self.assertEqual(self._create("2026-03-01", "2026-03-07").status_code, status.HTTP_201_CREATED)
        response = self._create("2026-03-05", "2026-03-12")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["code"], "overlapping_payout")
        self.assertEqual(Payout.objects.count(), 1)

    def test_professional_sees_own_payouts_and_cannot_create(self) -> None:
        self.client.force_authenticate(self.admin)
        self._create("2026-03-01", "2026-03-07")

        self.client.force_authenticate(self.professional)
        self.assertEqual(self._create("2026-04-01", "2026-04-07").status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.get(reverse("payout-list"))
        self.assertEqual(len(response.data), 1)
        stats = self.client.get(reverse("payout-stats")).data
        self.assertEqual(stats["pending"], 1)
        self.assertEqual(stats["pending_amount"], "500.00")

    def test_generate_and_mark_paid(self) -> None:
        start_booking(self.booking)
        complete_booking(self.booking)
        self.client.force_authenticate(self.admin)
        today = timezone.localdate().isoformat()

        response = self.client.post(
            reverse("payout-generate"), {"period_start": today, "period_end": today}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["generated"], 1)
        self.assertEqual(response.data["total_amount"], "850.00")

        payout = Payout.objects.get()
        response = self.client.post(reverse("payout-mark-paid", args=[payout.pk]), format="json")
        self.assertEqual(response.data["status"], "paid")
