"""Celery tasks for the finance domain."""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task  # type: ignore
from django.conf import settings  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.models import Booking
from apps.finances import payouts, refunds
from apps.finances.ledger import SettlementLedger
from apps.finances.models import DailySettlement
from shared.domain.exceptions import DomainError, NotFoundError

logger = logging.getLogger(__name__)

RETRY_COUNTDOWN = 60


def _max_retries() -> int:
    return int(settings.MARKETPLACE["SIDE_EFFECT_MAX_RETRIES"])


# ============================================================================
# POST-COMMIT SIDE EFFECTS
# ============================================================================

@shared_task(bind=True, name="finances.record_completion_settlement")
def record_completion_settlement(self, booking_id: int) -> dict:
    """
    Settle a completed booking.

    Runs after the completion committed; a failure here never affects the
    booking. Domain errors are final (backfill picks the booking up),
    anything else is retried.
    """
    try:
        booking = Booking.objects.select_related("category").get(pk=booking_id)
        settlement, created = SettlementLedger().settle_completed_booking(booking)
    except Booking.DoesNotExist:
        logger.error(f"Settlement skipped: booking {booking_id} not found")
        return {"booking_id": booking_id, "settled": False}
    except DomainError as e:
        logger.error(f"Settlement for booking {booking_id} failed, left for backfill: {e}", exc_info=True)
        return {"booking_id": booking_id, "settled": False, "error": e.code}
    except Exception as e:
        logger.error(f"Settlement for booking {booking_id} failed, retrying: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=RETRY_COUNTDOWN, max_retries=_max_retries())

    return {"booking_id": booking_id, "settled": True, "created": created, "settlement_id": settlement.pk}


@shared_task(bind=True, name="finances.create_refund_for_rejected_booking")
def create_refund_for_rejected_booking(self, booking_id: int, reason: str = "") -> dict:
    """Open the refund of a rejected booking. The rejection itself is never reverted."""
    try:
        refund = refunds.create_refund_for_rejected_booking(booking_id, reason)
    except DomainError as e:
        logger.error(f"Refund for rejected booking {booking_id} not created: {e}", exc_info=True)
        return {"booking_id": booking_id, "refund_id": None, "error": e.code}
    except Exception as e:
        logger.error(f"Refund for rejected booking {booking_id} failed, retrying: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=RETRY_COUNTDOWN, max_retries=_max_retries())

    return {"booking_id": booking_id, "refund_id": refund.pk if refund else None}


# ============================================================================
# PERIODIC TASKS (Celery Beat)
# ============================================================================

@shared_task(name="finances.process_previous_day_settlement")
def process_previous_day_settlement() -> dict:
    """Close yesterday's rollup and pay its due settlements."""
    day = timezone.localdate() - timedelta(days=1)
    daily = DailySettlement.objects.filter(date=day).first()
    if daily is None or daily.status == DailySettlement.Status.PROCESSED:
        logger.info(f"No open settlement to process for {day}")
        return {"date": day.isoformat(), "processed": False}

    try:
        SettlementLedger().process_day(day)
    except NotFoundError:
        return {"date": day.isoformat(), "processed": False}
    return {"date": day.isoformat(), "processed": True}


@shared_task(name="finances.backfill_settlements")
def backfill_settlements(limit: int | None = None) -> dict:
    return SettlementLedger().backfill(limit=limit).as_dict()


@shared_task(name="finances.generate_weekly_payouts")
def generate_weekly_payouts() -> dict:
    """Batch payouts for the previous Monday..Sunday week."""
    today = timezone.localdate()
    end = today - timedelta(days=today.weekday() + 1)
    start = end - timedelta(days=6)
    result = payouts.generate_for_period(start, end)
    return {
        **result,
        "period_start": start.isoformat(),
        "period_end": end.isoformat(),
        "total_amount": str(result["total_amount"]),
    }
