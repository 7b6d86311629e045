"""
Payout Batch Generator

Groups the net earnings of completed bookings per professional into
payable Payout rows. A professional never has two payouts with
overlapping periods: manual creation rejects an overlap, batch
generation skips the professional.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model  # type: ignore
from django.db import transaction  # type: ignore
from django.db.models import Count, Sum  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain.state_machine import BookingStatus
from apps.bookings.models import Booking
from apps.finances.commission import CommissionResolver
from apps.finances.models import Payout
from shared.domain.exceptions import ForbiddenError, InvalidOperationError, NotFoundError
from shared.domain.value_objects import DateRange, quantize_money

logger = logging.getLogger(__name__)

User = get_user_model()

ZERO = Decimal("0.00")


def _period(start: date, end: date) -> DateRange:
    try:
        return DateRange(start, end)
    except ValueError as e:
        raise InvalidOperationError(str(e), code="invalid_period") from None


def _is_admin(user) -> bool:  # type: ignore
    return bool(user.is_staff or user.is_superuser or user.is_platform_admin())


def overlapping_payouts(professional_id: int, period: DateRange):  # type: ignore
    return Payout.objects.filter(
        professional_id=professional_id,
        period_start__lte=period.end_date,
        period_end__gte=period.start_date,
    )


def _lock_professional(professional_id: int):  # type: ignore
    """Row lock on the professional serializing payout creation for them."""
    try:
        return User.objects.select_for_update().get(pk=professional_id)
    except User.DoesNotExist:
        raise NotFoundError(f"Professional {professional_id} not found") from None


def payouts_for_user(user):  # type: ignore
    qs = Payout.objects.select_related("professional")
    if _is_admin(user):
        return qs
    return qs.filter(professional=user)


def get_payout(payout_id: int, user=None) -> Payout:  # type: ignore
    try:
        payout = Payout.objects.select_related("professional").get(pk=payout_id)
    except Payout.DoesNotExist:
        raise NotFoundError(f"Payout {payout_id} not found") from None
    if user is not None and payout.professional_id != user.pk and not _is_admin(user):
        raise ForbiddenError("Access denied to this payout")
    return payout


@transaction.atomic
def create_payout(
    professional_id: int,
    start: date,
    end: date,
    amount: Decimal,
    metadata: dict | None = None,
) -> Payout:
    period = _period(start, end)
    amount = quantize_money(amount)
    if amount <= 0:
        raise InvalidOperationError(f"Payout amount must be positive, got {amount}", code="invalid_amount")

    professional = _lock_professional(professional_id)
    if not professional.is_professional():
        raise InvalidOperationError(f"User {professional_id} is not a professional")
    if overlapping_payouts(professional_id, period).exists():
        raise InvalidOperationError(
            f"Payout period {period} overlaps with an existing payout of professional {professional_id}",
            code="overlapping_payout",
        )

    payout = Payout.objects.create(
        professional=professional,
        period_start=period.start_date,
        period_end=period.end_date,
        amount=amount,
        metadata={"source": "manual", **(metadata or {})},
    )
    logger.info(f"Payout {payout.pk} created for professional {professional_id}: {amount} for {period}")
    return payout


def generate_for_period(start: date, end: date, resolver: CommissionResolver | None = None) -> dict:
    """Create one payout per professional with completed bookings in the period."""
    period = _period(start, end)
    resolver = resolver or CommissionResolver()

    bookings = Booking.objects.filter(
        status=BookingStatus.COMPLETED,
        updated_at__date__gte=period.start_date,
        updated_at__date__lte=period.end_date,
    ).order_by("professional_id", "pk")

    earnings: dict[int, Decimal] = defaultdict(lambda: ZERO)
    booking_ids: dict[int, list[int]] = defaultdict(list)
    for booking in bookings:
        earnings[booking.professional_id] += resolver.calculate_for_booking(booking).net_amount
        booking_ids[booking.professional_id].append(booking.pk)

    generated = 0
    skipped = 0
    total = ZERO
    for professional_id, amount in earnings.items():
        if amount <= 0:
            continue
        with transaction.atomic():
            _lock_professional(professional_id)
            if overlapping_payouts(professional_id, period).exists():
                skipped += 1
                logger.info(f"Professional {professional_id} already has a payout overlapping {period}; skipped")
                continue
            Payout.objects.create(
                professional_id=professional_id,
                period_start=period.start_date,
                period_end=period.end_date,
                amount=amount,
                metadata={
                    "source": "batch_generation",
                    "generated_at": timezone.now().isoformat(),
                    "booking_ids": booking_ids[professional_id],
                },
            )
        generated += 1
        total += amount

    logger.info(f"Payout generation for {period}: {generated} created, {skipped} skipped, total {total}")
    return {
        "period_start": period.start_date,
        "period_end": period.end_date,
        "generated": generated,
        "skipped": skipped,
        "total_amount": total,
    }


@transaction.atomic
def mark_payout_paid(payout_id: int, admin) -> Payout:  # type: ignore
    if not _is_admin(admin):
        raise ForbiddenError("Only admins can mark payouts as paid")
    try:
        payout = Payout.objects.select_for_update().get(pk=payout_id)
    except Payout.DoesNotExist:
        raise NotFoundError(f"Payout {payout_id} not found") from None
    if payout.status != Payout.Status.PENDING:
        raise InvalidOperationError(f"Payout {payout_id} is {payout.status}; only pending payouts can be paid")

    now = timezone.now()
    payout.status = Payout.Status.PAID
    payout.paid_at = now
    payout.metadata = {**payout.metadata, "paid_at": now.isoformat(), "paid_by": admin.pk}
    payout.save(update_fields=["status", "paid_at", "metadata", "updated_at"])
    logger.info(f"Payout {payout_id} marked paid by admin {admin.pk}")
    return payout


def payout_stats(user) -> dict:  # type: ignore
    qs = payouts_for_user(user)
    by_status = {
        row["status"]: (row["count"], quantize_money(row["amount"] or ZERO))
        for row in qs.values("status").annotate(count=Count("id"), amount=Sum("amount"))
    }
    pending = by_status.get(Payout.Status.PENDING.value, (0, ZERO))
    paid = by_status.get(Payout.Status.PAID.value, (0, ZERO))
    return {
        "total": pending[0] + paid[0],
        "pending": pending[0],
        "paid": paid[0],
        "total_amount": quantize_money(pending[1] + paid[1]),
        "pending_amount": pending[1],
        "paid_amount": paid[1],
    }
