"""
Payment Coordinator

Moves a Payment through PENDING -> SUCCESS | FAILED and SUCCESS ->
REFUNDED, talks to the payment gateway, and keeps the booking and the
settlement ledger in step with the payment:

- capture accepts a pending booking and settles the payment using the
  commission snapshot stored at intent creation;
- refund cancels the booking when it can still be cancelled and flags
  its settlement refunded;
- webhooks never raise, they answer ``{"success": bool}``.

Gateway calls are made outside database transactions. A gateway error
leaves the payment FAILED with the provider detail in its metadata and
is re-raised; money movement is never retried automatically.
"""

from __future__ import annotations

import json
import logging

from django.db import IntegrityError, transaction  # type: ignore
from django.db.models import Q  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain.state_machine import BookingStatus
from apps.bookings.models import Booking
from apps.bookings.services import accept_after_payment, actor_role, cancel_after_refund, load_booking
from apps.finances.commission import CommissionResolver
from apps.finances.events import PaymentCaptured
from apps.finances.gateways import get_gateway
from apps.finances.gateways.base import STATUS_FAILED, STATUS_REFUNDED, STATUS_SUCCESS
from apps.finances.ledger import SettlementLedger
from apps.finances.models import Payment, PaymentTransaction
from shared.application.uow import DjangoUnitOfWork
from shared.domain.exceptions import (
    DomainError,
    ForbiddenError,
    GatewayError,
    GatewayTimeoutError,
    InvalidOperationError,
    NotFoundError,
    SettlementError,
)

logger = logging.getLogger(__name__)

PAYABLE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.ACCEPTED)


def json_safe(payload: dict | None) -> dict:
    return json.loads(json.dumps(payload or {}, default=str))


def record_transaction(payment: Payment, event: str, payload: dict | None = None, status: str = "") -> PaymentTransaction:
    return PaymentTransaction.objects.create(
        payment=payment,
        event=event,
        payload=json_safe(payload),
        status=status,
    )


def payments_for_user(user):  # type: ignore
    """Payments visible to ``user``: own as customer, assigned as professional, all for admins."""
    qs = Payment.objects.select_related("booking", "customer").prefetch_related("transactions")
    if user.is_staff or user.is_superuser or user.is_platform_admin():
        return qs
    return qs.filter(Q(customer=user) | Q(booking__professional=user))


class PaymentCoordinator:
    def __init__(
        self,
        resolver: CommissionResolver | None = None,
        ledger: SettlementLedger | None = None,
        gateway_factory=get_gateway,  # type: ignore
    ):
        self.resolver = resolver or CommissionResolver()
        self.ledger = ledger or SettlementLedger(self.resolver)
        self.gateway_factory = gateway_factory

    def get_payment(self, payment_id: int) -> Payment:
        try:
            return Payment.objects.select_related("booking", "customer").get(pk=payment_id)
        except Payment.DoesNotExist:
            raise NotFoundError(f"Payment {payment_id} not found") from None

    # ===== Intent =====

    def create_intent(self, booking_id: int, customer, method: str = Payment.Method.STUB) -> Payment:  # type: ignore
        """
        Open a payment for a booking.

        A retried request while a payment is still pending returns that
        payment. A booking that is already paid is rejected.
        """
        booking = load_booking(booking_id)
        if booking.customer_id != customer.pk:
            raise ForbiddenError("Only the booking customer can pay for this booking")
        if booking.status not in PAYABLE_BOOKING_STATUSES:
            raise InvalidOperationError(
                f"Booking {booking_id} is {BookingStatus(booking.status).name}; "
                f"only pending or accepted bookings can be paid"
            )
        if method == Payment.Method.MOCK:
            raise InvalidOperationError("Mock payments cannot be created by customers", code="unsupported_method")

        existing = self._active_payment(booking)
        if existing is not None:
            return self._existing_or_error(existing)

        gateway = self.gateway_factory(method)
        breakdown = self.resolver.calculate_for_booking(booking)
        try:
            with transaction.atomic():
                payment = Payment.objects.create(
                    booking=booking,
                    customer=customer,
                    method=method,
                    amount=breakdown.amount,
                    currency=booking.currency,
                    metadata={
                        "commission": breakdown.as_metadata(),
                        "commission_resolved_at": timezone.now().isoformat(),
                    },
                )
        except IntegrityError:
            existing = self._active_payment(booking)
            if existing is None:
                raise
            return self._existing_or_error(existing)

        try:
            result = gateway.create_intent(
                payment.amount,
                payment.currency,
                booking.pk,
                customer.pk,
                {"payment_id": payment.pk, "commission": payment.metadata["commission"]},
            )
        except GatewayError as e:
            self._mark_failed(payment, e, operation="intent")
            raise

        payment.gateway_ref = result.gateway_ref
        payment.metadata["intent"] = result.metadata
        payment.save(update_fields=["gateway_ref", "metadata", "updated_at"])
        record_transaction(payment, "intent_created", result.metadata, result.status)
        logger.info(
            f"Payment {payment.pk} opened for booking {booking.pk}: {payment.amount} {payment.currency} "
            f"via {payment.method} (ref {payment.gateway_ref})"
        )
        return payment

    def _active_payment(self, booking: Booking) -> Payment | None:
        return booking.payments.filter(status__in=Payment.ACTIVE_STATUSES).first()

    def _existing_or_error(self, existing: Payment) -> Payment:
        if existing.status == Payment.Status.PENDING:
            logger.info(f"Booking {existing.booking_id} already has pending payment {existing.pk}; returning it")
            return existing
        raise InvalidOperationError(
            f"Booking {existing.booking_id} is already paid (payment {existing.pk})",
            code="already_paid",
        )

    # ===== Capture =====

    def capture(self, payment_id: int, actor=None) -> Payment:  # type: ignore
        payment = self.get_payment(payment_id)
        if actor is not None and actor_role(payment.booking, actor) not in ("customer", "admin"):
            raise ForbiddenError("Only the paying customer or an administrator can capture this payment")
        if payment.status != Payment.Status.PENDING:
            raise InvalidOperationError(
                f"Payment {payment_id} is {payment.status}; only pending payments can be captured"
            )

        gateway = self.gateway_factory(payment.method)
        try:
            result = gateway.capture(payment.pk, payment.amount, payment.metadata, gateway_ref=payment.gateway_ref)
        except GatewayError as e:
            self._mark_failed(payment, e, operation="capture")
            raise

        if result.status == STATUS_FAILED:
            error = GatewayError(f"{payment.method} declined capture of payment {payment.pk}")
            self._mark_failed(payment, error, operation="capture")
            raise error
        if result.status != STATUS_SUCCESS:
            return self._capture_pending(payment, result)

        return self._complete_payment(
            payment,
            gateway_ref=result.gateway_ref or payment.gateway_ref,
            event="captured",
            payload=result.metadata,
            from_statuses=(Payment.Status.PENDING,),
        )

    def _capture_pending(self, payment: Payment, result) -> Payment:  # type: ignore
        """The provider has not collected the money yet; its webhook finishes the capture."""
        if result.gateway_ref:
            payment.gateway_ref = result.gateway_ref
        payment.metadata["capture_pending"] = json_safe(result.metadata)
        payment.save(update_fields=["gateway_ref", "metadata", "updated_at"])
        record_transaction(payment, "capture_pending", result.metadata, Payment.Status.PENDING)
        logger.info(f"Payment {payment.pk} capture is {result.status} at {payment.method}; awaiting webhook")
        return payment

    def _complete_payment(
        self,
        payment: Payment,
        *,
        gateway_ref: str,
        event: str,
        payload: dict,
        from_statuses: tuple,
    ) -> Payment:
        now = timezone.now()
        with DjangoUnitOfWork() as uow:
            updated = Payment.objects.filter(pk=payment.pk, status__in=from_statuses).update(
                status=Payment.Status.SUCCESS,
                gateway_ref=gateway_ref,
                paid_at=now,
                updated_at=now,
            )
            if updated != 1:
                raise InvalidOperationError(f"Payment {payment.pk} was modified concurrently")
            payment.refresh_from_db()
            payment.metadata["capture"] = json_safe(payload)
            payment.save(update_fields=["metadata", "updated_at"])
            record_transaction(payment, event, payload, Payment.Status.SUCCESS)

            booking = Booking.objects.select_related("category").get(pk=payment.booking_id)
            payment.booking = booking
            accept_after_payment(booking, payment.pk, payment.amount, payment.gateway_ref)

            if booking.status in (BookingStatus.REJECTED, BookingStatus.CANCELLED):
                logger.warning(
                    f"Payment {payment.pk} captured for {BookingStatus(booking.status).name} "
                    f"booking {booking.pk}; not settled, refund required"
                )
            else:
                try:
                    self.ledger.settle_captured_payment(payment)
                except SettlementError as e:
                    logger.error(f"Payment {payment.pk}: settlement deferred to backfill: {e}", exc_info=True)

            uow.collect_events(booking)
            uow.add_event(
                PaymentCaptured(
                    aggregate_id=payment.pk,
                    payment_id=payment.pk,
                    booking_id=booking.pk,
                    amount=payment.amount,
                )
            )

        logger.info(f"Payment {payment.pk} for booking {payment.booking_id} succeeded ({event})")
        return payment

    # ===== Refund =====

    def refund(self, payment_id: int, reason: str, actor=None) -> Payment:  # type: ignore
        payment = self.get_payment(payment_id)
        if payment.status != Payment.Status.SUCCESS:
            raise InvalidOperationError(
                f"Payment {payment_id} is {payment.status}; only successful payments can be refunded"
            )
        if payment.method == Payment.Method.MOCK:
            raise InvalidOperationError(
                f"Payment {payment_id} was synthesized by settlement backfill and cannot be refunded through a gateway",
                code="unsupported_method",
            )

        gateway = self.gateway_factory(payment.method)
        try:
            result = gateway.refund(
                payment.pk,
                payment.amount,
                reason,
                payment.metadata.get("capture", {}),
                gateway_ref=payment.gateway_ref,
            )
        except GatewayError as e:
            logger.error(f"Refund of payment {payment.pk} failed at the gateway: {e.detail}")
            payment.metadata["refund_error"] = e.detail
            payment.save(update_fields=["metadata", "updated_at"])
            record_transaction(payment, "refund_failed", {"detail": e.detail}, STATUS_FAILED)
            raise

        return self._apply_refund(
            payment,
            reason,
            actor=actor,
            event="refunded",
            payload={"gateway_ref": result.gateway_ref, **result.metadata},
        )

    def _apply_refund(self, payment: Payment, reason: str, *, actor, event: str, payload: dict) -> Payment:  # type: ignore
        now = timezone.now()
        with DjangoUnitOfWork() as uow:
            updated = Payment.objects.filter(pk=payment.pk, status=Payment.Status.SUCCESS).update(
                status=Payment.Status.REFUNDED,
                refunded_at=now,
                updated_at=now,
            )
            if updated != 1:
                raise InvalidOperationError(f"Payment {payment.pk} was modified concurrently")
            payment.refresh_from_db()
            payment.metadata["refund"] = json_safe(payload)
            payment.save(update_fields=["metadata", "updated_at"])
            record_transaction(payment, event, payload, Payment.Status.REFUNDED)

            booking = Booking.objects.get(pk=payment.booking_id)
            cancel_after_refund(booking, payment_id=payment.pk, amount=payment.amount, reason=reason, actor=actor)
            self.ledger.mark_refunded(booking)
            uow.collect_events(booking)

        logger.info(f"Payment {payment.pk} for booking {payment.booking_id} refunded: {reason}")
        return payment

    # ===== Failures =====

    def _mark_failed(self, payment: Payment, error: GatewayError, operation: str) -> None:
        timed_out = isinstance(error, GatewayTimeoutError)
        payment.status = Payment.Status.FAILED
        payment.metadata["gateway_error"] = error.detail
        payment.metadata["failed_operation"] = operation
        if timed_out:
            payment.metadata["gateway_timeout"] = True
        payment.save(update_fields=["status", "metadata", "updated_at"])
        record_transaction(
            payment,
            "gateway_timeout" if timed_out else "gateway_error",
            {"operation": operation, "detail": error.detail},
            STATUS_FAILED,
        )
        logger.error(
            f"Payment {payment.pk} marked failed after gateway "
            f"{'timeout' if timed_out else 'error'} during {operation}: {error.detail}"
        )

    # ===== Webhooks =====

    def process_webhook(self, provider: str, body: bytes, signature: str) -> dict:
        """Apply a provider notification. Never raises; failures are logged and reported."""
        try:
            gateway = self.gateway_factory(provider)
        except DomainError as e:
            logger.error(f"Webhook for unknown or unconfigured provider {provider}: {e}")
            return {"success": False, "error": "unknown_provider"}

        if not gateway.verify_webhook(body, signature):
            logger.error(f"{provider} webhook signature verification failed")
            return {"success": False, "error": "invalid_signature"}

        try:
            data = json.loads(body)
        except ValueError:
            logger.error(f"{provider} webhook body is not valid JSON")
            return {"success": False, "error": "invalid_payload"}
        if not isinstance(data, dict):
            logger.error(f"{provider} webhook body is not a JSON object")
            return {"success": False, "error": "invalid_payload"}

        notice = gateway.parse_webhook(data)
        payment = self._find_webhook_payment(provider, notice)
        if payment is None:
            logger.error(f"{provider} webhook references unknown payment (ref {notice.gateway_ref!r})")
            return {"success": False, "error": "payment_not_found"}

        try:
            payment = self._apply_webhook(payment, notice.status, data)
        except DomainError as e:
            logger.error(f"{provider} webhook for payment {payment.pk} not applied: {e}")
            return {"success": False, "error": e.code, "payment_id": payment.pk}

        return {"success": True, "payment_id": payment.pk, "status": payment.status}

    def _find_webhook_payment(self, provider: str, notice) -> Payment | None:  # type: ignore
        qs = Payment.objects.filter(method=provider)
        if notice.gateway_ref:
            payment = qs.filter(gateway_ref=notice.gateway_ref).first()
            if payment is not None:
                return payment
        if notice.payment_id is not None:
            return qs.filter(pk=notice.payment_id).first()
        return None

    def _apply_webhook(self, payment: Payment, status: str, data: dict) -> Payment:
        record_transaction(payment, "webhook", data, status)

        if status == STATUS_SUCCESS:
            if payment.status == Payment.Status.SUCCESS:
                logger.info(f"Webhook success for already successful payment {payment.pk}; nothing to do")
            elif payment.status == Payment.Status.PENDING:
                payment = self._complete_payment(
                    payment,
                    gateway_ref=payment.gateway_ref,
                    event="webhook_captured",
                    payload=data,
                    from_statuses=(Payment.Status.PENDING,),
                )
            elif payment.status == Payment.Status.FAILED and payment.metadata.get("gateway_timeout"):
                other = payment.booking.payments.filter(status__in=Payment.ACTIVE_STATUSES).exclude(pk=payment.pk)
                if other.exists():
                    raise InvalidOperationError(
                        f"Booking {payment.booking_id} already has an active payment; "
                        f"timed out payment {payment.pk} needs manual reconciliation",
                        code="reconciliation_conflict",
                    )
                logger.warning(f"Payment {payment.pk} reconciled after gateway timeout")
                payment = self._complete_payment(
                    payment,
                    gateway_ref=payment.gateway_ref,
                    event="webhook_reconciled",
                    payload=data,
                    from_statuses=(Payment.Status.FAILED,),
                )
            else:
                raise InvalidOperationError(
                    f"Payment {payment.pk} is {payment.status}; webhook success ignored",
                    code="invalid_payment_status",
                )
        elif status == STATUS_FAILED:
            if payment.status == Payment.Status.PENDING:
                Payment.objects.filter(pk=payment.pk, status=Payment.Status.PENDING).update(
                    status=Payment.Status.FAILED,
                    updated_at=timezone.now(),
                )
                payment.refresh_from_db()
                logger.info(f"Payment {payment.pk} failed according to provider webhook")
            else:
                logger.info(f"Webhook failure for payment {payment.pk} in status {payment.status} ignored")
        elif status == STATUS_REFUNDED:
            if payment.status == Payment.Status.SUCCESS:
                payment = self._apply_refund(
                    payment,
                    data.get("reason") or "Refunded by payment provider",
                    actor=None,
                    event="webhook_refunded",
                    payload=data,
                )
            else:
                logger.info(f"Webhook refund for payment {payment.pk} in status {payment.status} ignored")

        payment.metadata["webhook_payload"] = data
        payment.save(update_fields=["metadata", "updated_at"])
        return payment
