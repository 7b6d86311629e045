"""Refund obligations: creation on rejection and operator processing."""

from __future__ import annotations

import logging
from decimal import Decimal

from django.db import IntegrityError, transaction  # type: ignore
from django.db.models import Count, Sum  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain.state_machine import BookingStatus
from apps.bookings.models import Booking
from apps.finances.events import RefundCreated
from apps.finances.models import Payment, Refund
from apps.finances.payments import PaymentCoordinator
from shared.application.uow import DjangoUnitOfWork
from shared.domain.exceptions import DomainError, InvalidOperationError, NotFoundError
from shared.domain.value_objects import quantize_money

logger = logging.getLogger(__name__)

OPEN_STATUSES = (Refund.Status.PENDING, Refund.Status.PROCESSING)


def get_refund(refund_id: int, lock: bool = False) -> Refund:
    qs = Refund.objects.select_related("booking", "payment", "processed_by")
    if lock:
        qs = qs.select_for_update(of=("self",))
    try:
        return qs.get(pk=refund_id)
    except Refund.DoesNotExist:
        raise NotFoundError(f"Refund {refund_id} not found") from None


def list_refunds(status: str | None = None, start=None, end=None):  # type: ignore
    qs = Refund.objects.select_related("booking", "payment", "processed_by")
    if status:
        qs = qs.filter(status=status)
    if start:
        qs = qs.filter(created_at__date__gte=start)
    if end:
        qs = qs.filter(created_at__date__lte=end)
    return qs.order_by("-created_at")


def create_refund_for_rejected_booking(booking_id: int, reason: str = "") -> Refund | None:
    """
    Open the refund of a rejected booking's successful payment.

    Returns the existing refund when one was already created for the
    payment, and None when the booking has nothing to refund.
    """
    try:
        booking = Booking.objects.select_related("customer", "professional").get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFoundError(f"Booking {booking_id} not found") from None
    if booking.status != BookingStatus.REJECTED:
        raise InvalidOperationError(
            f"Booking {booking_id} is {BookingStatus(booking.status).name}; "
            f"refunds are created only for rejected bookings"
        )

    payment = booking.payments.filter(status=Payment.Status.SUCCESS).order_by("-created_at").first()
    if payment is None:
        logger.info(f"Booking {booking_id} rejected without a successful payment; no refund needed")
        return None

    existing = Refund.objects.filter(payment=payment).first()
    if existing is not None:
        logger.warning(f"Refund {existing.pk} already exists for booking {booking_id}, payment {payment.pk}")
        return existing

    full_reason = f"Booking rejected by professional: {reason}" if reason else "Booking rejected by professional"
    try:
        with DjangoUnitOfWork() as uow:
            refund = Refund.objects.create(
                booking=booking,
                payment=payment,
                amount=payment.amount,
                currency=payment.currency,
                reason=full_reason[:500],
                metadata={
                    "customer_id": booking.customer_id,
                    "customer_name": booking.customer.get_full_name(),
                    "customer_email": booking.customer.email,
                    "customer_phone": booking.customer.phone,
                    "professional_id": booking.professional_id,
                    "professional_name": booking.professional.get_full_name(),
                    "original_payment_method": payment.method,
                },
            )
            uow.add_event(
                RefundCreated(
                    aggregate_id=refund.pk,
                    refund_id=refund.pk,
                    booking_id=booking.pk,
                    amount=refund.amount,
                )
            )
    except IntegrityError:
        existing = Refund.objects.filter(payment=payment).first()
        if existing is None:
            raise
        logger.warning(f"Refund {existing.pk} for payment {payment.pk} was created concurrently")
        return existing

    logger.info(f"Refund {refund.pk} created for booking {booking_id}: {refund.amount} {refund.currency}")
    return refund


@transaction.atomic
def process_refund(refund_id: int, admin, method: str, notes: str = "") -> Refund:  # type: ignore
    refund = get_refund(refund_id, lock=True)
    if refund.status != Refund.Status.PENDING:
        raise InvalidOperationError(f"Refund {refund_id} is {refund.status}; only pending refunds can be processed")
    refund.status = Refund.Status.PROCESSING
    refund.processed_by = admin
    refund.method = method
    refund.notes = notes
    refund.processed_at = timezone.now()
    refund.save(update_fields=["status", "processed_by", "method", "notes", "processed_at", "updated_at"])
    logger.info(f"Refund {refund_id} marked processing by admin {admin.pk}")
    return refund


@transaction.atomic
def complete_refund(refund_id: int, gateway_ref: str = "", notes: str = "") -> Refund:
    refund = get_refund(refund_id, lock=True)
    if refund.status not in OPEN_STATUSES:
        raise InvalidOperationError(f"Refund {refund_id} is {refund.status} and cannot be completed")
    refund.status = Refund.Status.COMPLETED
    refund.gateway_ref = gateway_ref or refund.gateway_ref
    if notes:
        refund.notes = notes
    refund.completed_at = timezone.now()
    refund.save(update_fields=["status", "gateway_ref", "notes", "completed_at", "updated_at"])
    logger.info(f"Refund {refund_id} completed (ref {refund.gateway_ref or '-'})")
    return refund


@transaction.atomic
def fail_refund(refund_id: int, notes: str) -> Refund:
    refund = get_refund(refund_id, lock=True)
    if refund.status not in OPEN_STATUSES:
        raise InvalidOperationError(f"Refund {refund_id} is {refund.status} and cannot be failed")
    refund.status = Refund.Status.FAILED
    refund.notes = notes
    refund.save(update_fields=["status", "notes", "updated_at"])
    logger.warning(f"Refund {refund_id} failed: {notes}")
    return refund


def execute_refund(refund_id: int, admin, coordinator: PaymentCoordinator | None = None) -> Refund:  # type: ignore
    """Return the money through the payment gateway, then close the refund."""
    refund = get_refund(refund_id)
    if refund.status not in OPEN_STATUSES:
        raise InvalidOperationError(f"Refund {refund_id} is {refund.status} and cannot be executed")
    if refund.status == Refund.Status.PENDING:
        refund = process_refund(refund_id, admin, method=refund.payment.method)

    coordinator = coordinator or PaymentCoordinator()
    try:
        payment = coordinator.refund(refund.payment_id, refund.reason, actor=admin)
    except DomainError as e:
        detail = getattr(e, "detail", "") or e.message
        logger.error(f"Refund {refund_id} execution failed: {detail}")
        fail_refund(refund_id, f"Gateway refund failed: {detail}")
        raise

    return complete_refund(refund_id, gateway_ref=payment.metadata.get("refund", {}).get("gateway_ref", ""))


def refund_stats() -> dict:
    rows = Refund.objects.values("status").annotate(count=Count("id"), amount=Sum("amount"))
    by_status = {status: {"count": 0, "amount": Decimal("0.00")} for status in Refund.Status.values}
    for row in rows:
        by_status[row["status"]] = {"count": row["count"], "amount": quantize_money(row["amount"] or Decimal("0.00"))}
    return {
        "by_status": by_status,
        "total_count": sum(item["count"] for item in by_status.values()),
        "pending_amount": by_status[Refund.Status.PENDING.value]["amount"],
    }
