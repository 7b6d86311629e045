"""
Settlement Ledger

Owns DailySettlement and BookingSettlement. No other module writes to
these tables.

- ``record_settlement`` creates the single BookingSettlement of a
  booking and adds its contribution to the day's rollup with atomic
  ``F()`` increments. A second call for the same booking is a no-op.
- ``process_day`` and ``mark_paid`` move settlements DUE -> PAID and
  credit the professional's balance in the same transaction.
- ``backfill`` rebuilds settlements for completed bookings that never
  got one because the post-completion task failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from django.db import transaction  # type: ignore
from django.db.models import Count, F, Sum  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain.state_machine import BookingStatus
from apps.bookings.models import Booking
from apps.finances.commission import CommissionBreakdown, CommissionResolver, split_amount
from apps.finances.models import BookingSettlement, DailySettlement, Payment
from apps.users.models import ProfessionalProfile
from shared.domain.exceptions import (
    DuplicateRequestError,
    InvalidOperationError,
    NotFoundError,
    SettlementError,
)
from shared.domain.value_objects import quantize_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class BackfillResult:
    scanned: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    failed_booking_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "created": self.created,
            "skipped": self.skipped,
            "failed": self.failed,
            "failed_booking_ids": list(self.failed_booking_ids),
        }


class SettlementLedger:
    def __init__(self, resolver: CommissionResolver | None = None):
        self.resolver = resolver or CommissionResolver()

    # ===== Recording =====

    def record_settlement(
        self,
        booking: Booking,
        payment: Payment | None,
        commission_amount: Decimal,
        professional_amount: Decimal,
        *,
        commission_percent: Decimal,
        source: str,
        settlement_date: date | None = None,
    ) -> tuple[BookingSettlement, bool]:
        """
        Settle ``booking`` into the rollup of ``settlement_date`` (default today).

        Returns ``(settlement, created)``. When the booking already has a
        settlement nothing is written and ``created`` is False.

        Raises:
            SettlementError: the day is already processed.
        """
        commission_amount = quantize_money(commission_amount)
        professional_amount = quantize_money(professional_amount)
        if commission_amount < 0 or professional_amount < 0:
            raise SettlementError(
                f"Booking {booking.pk}: settlement amounts must not be negative "
                f"(commission {commission_amount}, professional {professional_amount})"
            )
        gross_amount = commission_amount + professional_amount
        settlement_date = settlement_date or timezone.localdate()

        with transaction.atomic():
            daily, _ = DailySettlement.objects.get_or_create(date=settlement_date)
            settlement, created = BookingSettlement.objects.get_or_create(
                booking=booking,
                defaults={
                    "daily_settlement": daily,
                    "payment": payment,
                    "professional_id": booking.professional_id,
                    "gross_amount": gross_amount,
                    "commission_percent": commission_percent,
                    "commission_amount": commission_amount,
                    "professional_amount": professional_amount,
                    "source": source,
                },
            )
            if not created:
                logger.info(
                    f"Booking {booking.pk} already settled (settlement {settlement.pk}, "
                    f"source {settlement.source}); {source} settlement skipped"
                )
                return settlement, False

            updated = DailySettlement.objects.filter(
                pk=daily.pk,
                status=DailySettlement.Status.PENDING,
            ).update(
                total_bookings=F("total_bookings") + 1,
                total_amount=F("total_amount") + gross_amount,
                total_commission=F("total_commission") + commission_amount,
                total_payouts=F("total_payouts") + professional_amount,
                updated_at=timezone.now(),
            )
            if updated != 1:
                raise SettlementError(
                    f"Daily settlement {settlement_date} is already processed; "
                    f"booking {booking.pk} cannot be added"
                )

        logger.info(
            f"Booking {booking.pk} settled into {settlement_date}: gross {gross_amount}, "
            f"commission {commission_amount}, professional {professional_amount} ({source})"
        )
        return settlement, True

    def _record_breakdown(
        self,
        booking: Booking,
        payment: Payment | None,
        breakdown: CommissionBreakdown,
        source: str,
        settlement_date: date | None = None,
    ) -> tuple[BookingSettlement, bool]:
        return self.record_settlement(
            booking,
            payment,
            breakdown.commission_amount,
            breakdown.net_amount,
            commission_percent=breakdown.percent,
            source=source,
            settlement_date=settlement_date,
        )

    def settle_completed_booking(self, booking: Booking) -> tuple[BookingSettlement, bool]:
        """Settle a completed booking's final amount at the category's current rate."""
        if booking.status != BookingStatus.COMPLETED:
            raise SettlementError(f"Booking {booking.pk} is not completed (status {booking.status})")
        payment = booking.payments.filter(status=Payment.Status.SUCCESS).first()
        breakdown = self.resolver.calculate_for_booking(booking)
        return self._record_breakdown(booking, payment, breakdown, BookingSettlement.Source.COMPLETION)

    def settle_captured_payment(self, payment: Payment) -> tuple[BookingSettlement, bool]:
        """Settle a captured payment using the commission snapshot taken at intent creation."""
        snapshot = payment.commission_snapshot
        if snapshot.get("percent") is not None:
            breakdown = split_amount(payment.amount, snapshot["percent"])
        else:
            logger.warning(f"Payment {payment.pk} has no commission snapshot; resolving the current rate")
            breakdown = self.resolver.calculate(payment.amount, payment.booking.category_id)
        return self._record_breakdown(payment.booking, payment, breakdown, BookingSettlement.Source.CAPTURE)

    @transaction.atomic
    def create_manual_settlement(self, booking_id: int) -> BookingSettlement:
        try:
            booking = Booking.objects.select_for_update().get(pk=booking_id)
        except Booking.DoesNotExist:
            raise NotFoundError(f"Booking {booking_id} not found") from None
        if booking.status != BookingStatus.COMPLETED:
            raise InvalidOperationError(
                f"Only completed bookings can be settled; booking {booking_id} is {booking.status}"
            )
        if BookingSettlement.objects.filter(booking_id=booking_id).exists():
            raise DuplicateRequestError(f"Booking {booking_id} already has a settlement")

        payment = booking.payments.filter(status=Payment.Status.SUCCESS).first()
        breakdown = self.resolver.calculate_for_booking(booking)
        settlement, _ = self._record_breakdown(booking, payment, breakdown, BookingSettlement.Source.MANUAL)
        return settlement

    # ===== Payment of professionals =====

    def _credit_balance(self, professional_id: int, amount: Decimal) -> None:
        profile, _ = ProfessionalProfile.objects.get_or_create(user_id=professional_id)
        ProfessionalProfile.objects.filter(pk=profile.pk).update(
            account_balance=F("account_balance") + amount,
            updated_at=timezone.now(),
        )

    def _pay(self, settlement: BookingSettlement, now) -> bool:  # type: ignore
        updated = BookingSettlement.objects.filter(
            pk=settlement.pk,
            status=BookingSettlement.Status.DUE,
        ).update(status=BookingSettlement.Status.PAID, paid_at=now, updated_at=now)
        if updated != 1:
            return False
        self._credit_balance(settlement.professional_id, settlement.professional_amount)
        return True

    def process_day(self, day: date) -> DailySettlement:
        """Close ``day`` and pay every DUE settlement in it."""
        with transaction.atomic():
            try:
                daily = DailySettlement.objects.select_for_update().get(date=day)
            except DailySettlement.DoesNotExist:
                raise NotFoundError(f"No settlement for {day}") from None
            if daily.status == DailySettlement.Status.PROCESSED:
                raise InvalidOperationError(f"Settlement for {day} is already processed")

            now = timezone.now()
            paid = 0
            paid_amount = ZERO
            for settlement in daily.booking_settlements.filter(status=BookingSettlement.Status.DUE):
                if self._pay(settlement, now):
                    paid += 1
                    paid_amount += settlement.professional_amount

            daily.status = DailySettlement.Status.PROCESSED
            daily.processed_at = now
            daily.save(update_fields=["status", "processed_at", "updated_at"])

        logger.info(f"Daily settlement {day} processed: {paid} settlements paid, {paid_amount} credited")
        return daily

    def mark_paid(self, settlement_id: int) -> BookingSettlement:
        with transaction.atomic():
            settlement = self.get_settlement(settlement_id, lock=True)
            if settlement.status != BookingSettlement.Status.DUE:
                raise InvalidOperationError(
                    f"Settlement {settlement_id} is {settlement.status}; only due settlements can be paid"
                )
            self._pay(settlement, timezone.now())

        settlement.refresh_from_db()
        logger.info(
            f"Settlement {settlement_id} paid: {settlement.professional_amount} credited "
            f"to professional {settlement.professional_id}"
        )
        return settlement

    @transaction.atomic
    def mark_refunded(self, booking: Booking) -> BookingSettlement | None:
        """
        Flag the booking's settlement REFUNDED.

        A settlement that was already paid out is reversed from the
        professional's balance. Daily totals are left untouched.
        """
        settlement = (
            BookingSettlement.objects.select_for_update()
            .filter(booking_id=booking.pk)
            .first()
        )
        if settlement is None:
            logger.info(f"Booking {booking.pk} has no settlement to refund")
            return None
        if settlement.status == BookingSettlement.Status.REFUNDED:
            logger.info(f"Settlement {settlement.pk} already refunded")
            return settlement

        if settlement.status == BookingSettlement.Status.PAID:
            logger.warning(
                f"Settlement {settlement.pk} was already paid; debiting "
                f"{settlement.professional_amount} from professional {settlement.professional_id}"
            )
            self._credit_balance(settlement.professional_id, -settlement.professional_amount)

        settlement.status = BookingSettlement.Status.REFUNDED
        settlement.refunded_at = timezone.now()
        settlement.save(update_fields=["status", "refunded_at", "updated_at"])
        logger.info(f"Settlement {settlement.pk} for booking {booking.pk} marked refunded")
        return settlement

    # ===== Reconciliation =====

    def backfill(self, limit: int | None = None) -> BackfillResult:
        """Create settlements for completed bookings that have none. Safe to re-run."""
        result = BackfillResult()
        candidates = (
            Booking.objects.filter(status=BookingStatus.COMPLETED, settlement__isnull=True)
            .select_related("customer", "professional", "category")
            .order_by("completed_at", "pk")
        )
        if limit:
            candidates = candidates[:limit]

        for booking in candidates:
            result.scanned += 1
            try:
                created = self._backfill_booking(booking)
            except Exception as e:
                result.failed += 1
                result.failed_booking_ids.append(booking.pk)
                logger.error(f"Backfill failed for booking {booking.pk}: {e}", exc_info=True)
                continue
            if created:
                result.created += 1
            else:
                result.skipped += 1

        logger.info(
            f"Settlement backfill: scanned {result.scanned}, created {result.created}, "
            f"skipped {result.skipped}, failed {result.failed}"
        )
        return result

    def _backfill_booking(self, booking: Booking) -> bool:
        today = timezone.localdate()
        day = timezone.localdate(booking.completed_at) if booking.completed_at else today
        if day != today and DailySettlement.objects.filter(
            date=day, status=DailySettlement.Status.PROCESSED
        ).exists():
            day = today

        breakdown = self.resolver.calculate_for_booking(booking)
        with transaction.atomic():
            payment = booking.payments.filter(status=Payment.Status.SUCCESS).first()
            if payment is None and not booking.payments.filter(status__in=Payment.ACTIVE_STATUSES).exists():
                payment = Payment.objects.create(
                    booking=booking,
                    customer_id=booking.customer_id,
                    method=Payment.Method.MOCK,
                    status=Payment.Status.SUCCESS,
                    amount=breakdown.amount,
                    currency=booking.currency,
                    gateway_ref=f"MOCK_PAYMENT_{booking.pk}",
                    paid_at=booking.completed_at or timezone.now(),
                    metadata={
                        "created_for": "settlement_backfill",
                        "commission": breakdown.as_metadata(),
                    },
                )
                logger.info(f"Synthesized payment {payment.pk} for booking {booking.pk}")

            _, created = self._record_breakdown(
                booking, payment, breakdown, BookingSettlement.Source.BACKFILL, settlement_date=day
            )
        return created

    # ===== Queries =====

    def get_settlement(self, settlement_id: int, lock: bool = False) -> BookingSettlement:
        qs = BookingSettlement.objects.all()
        if lock:
            qs = qs.select_for_update()
        try:
            return qs.get(pk=settlement_id)
        except BookingSettlement.DoesNotExist:
            raise NotFoundError(f"Settlement {settlement_id} not found") from None

    def daily_summary(self, day: date) -> dict:
        daily = DailySettlement.objects.filter(date=day).first()
        if daily is None:
            return {
                "date": day,
                "status": None,
                "total_bookings": 0,
                "total_amount": ZERO,
                "total_commission": ZERO,
                "total_payouts": ZERO,
                "by_status": {},
            }
        by_status = {
            row["status"]: {"count": row["count"], "professional_amount": quantize_money(row["amount"] or ZERO)}
            for row in daily.booking_settlements.values("status").annotate(
                count=Count("id"), amount=Sum("professional_amount")
            )
        }
        return {
            "date": daily.date,
            "status": daily.status,
            "total_bookings": daily.total_bookings,
            "total_amount": daily.total_amount,
            "total_commission": daily.total_commission,
            "total_payouts": daily.total_payouts,
            "by_status": by_status,
        }

    def history(self, start: date, end: date):  # type: ignore
        if start > end:
            raise InvalidOperationError(f"Start date {start} is after end date {end}")
        return DailySettlement.objects.filter(date__gte=start, date__lte=end).order_by("date")

    def due_settlements(self, professional_id: int | None = None):  # type: ignore
        qs = BookingSettlement.objects.filter(status=BookingSettlement.Status.DUE).select_related(
            "booking", "daily_settlement"
        )
        if professional_id is not None:
            qs = qs.filter(professional_id=professional_id)
        return qs.order_by("daily_settlement__date", "pk")

    def professional_earnings(
        self,
        professional_id: int,
        start: date | None = None,
        end: date | None = None,
    ) -> dict:
        paid = BookingSettlement.objects.filter(
            professional_id=professional_id,
            status=BookingSettlement.Status.PAID,
        )
        if start:
            paid = paid.filter(paid_at__date__gte=start)
        if end:
            paid = paid.filter(paid_at__date__lte=end)
        totals = paid.aggregate(total=Sum("professional_amount"), count=Count("id"))
        due = BookingSettlement.objects.filter(
            professional_id=professional_id,
            status=BookingSettlement.Status.DUE,
        ).aggregate(total=Sum("professional_amount"))
        return {
            "professional_id": professional_id,
            "start": start,
            "end": end,
            "paid_settlements": totals["count"],
            "total_paid": quantize_money(totals["total"] or ZERO),
            "total_due": quantize_money(due["total"] or ZERO),
        }
