"""Booking domain models for ServiceHub."""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings  # type: ignore
from django.core.validators import MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.bookings.domain.metadata import build_event_metadata
from apps.bookings.domain.state_machine import BookingEventType, BookingStatus
from shared.domain.base import EventRecorder
from shared.domain.value_objects import quantize_money

HOURS_QUANTUM = Decimal("0.01")


class Booking(EventRecorder, models.Model):
    """One job request between a customer and a professional."""

    Status = BookingStatus

    class PricingModel(models.TextChoices):
        HOURLY = "hourly", _("Hourly")
        FIXED = "fixed", _("Fixed price")

    class CancelledBy(models.TextChoices):
        CUSTOMER = "customer", _("Customer")
        PROFESSIONAL = "professional", _("Professional")
        ADMIN = "admin", _("Administrator")
        SYSTEM = "system", _("System")

    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    professional = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="assigned_bookings",
    )
    category = models.ForeignKey(
        "catalog.ServiceCategory",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    status = models.CharField(
        max_length=20,
        choices=BookingStatus.choices,
        default=BookingStatus.PENDING,
    )
    scheduled_at = models.DateTimeField()
    address = models.CharField(max_length=255)
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    details = models.TextField(blank=True)
    pricing_model = models.CharField(
        max_length=10,
        choices=PricingModel.choices,
        default=PricingModel.FIXED,
    )
    quoted_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
        help_text=_("Hourly rate for hourly bookings, total price for fixed ones."),
    )
    currency = models.CharField(max_length=3, default="BDT")
    commission_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text=_("Commission rate resolved when the booking was created."),
    )
    checked_in_at = models.DateTimeField(null=True, blank=True)
    checked_out_at = models.DateTimeField(null=True, blank=True)
    actual_hours = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    final_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text=_("Set only when the booking is completed."),
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.CharField(max_length=500, blank=True)
    cancelled_by = models.CharField(max_length=20, choices=CancelledBy.choices, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(final_amount__isnull=True) | models.Q(status=BookingStatus.COMPLETED),
                name="booking_final_amount_only_when_completed",
            ),
        ]
        indexes = [
            models.Index(fields=["status"], name="booking_status_idx"),
            models.Index(fields=["professional", "status"], name="booking_prof_status_idx"),
            models.Index(fields=["customer", "status"], name="booking_cust_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.pk} ({self.status})"

    @property
    def is_hourly(self) -> bool:
        return self.pricing_model == self.PricingModel.HOURLY

    def event_types(self) -> list[str]:
        """Event log types in insertion order, read fresh from the database."""
        return list(
            BookingEvent.objects.filter(booking_id=self.pk)
            .order_by("created_at", "id")
            .values_list("type", flat=True)
        )

    def record_event(self, event_type, metadata: dict | None = None, actor=None) -> "BookingEvent":
        """Append a schema-validated event to the log."""
        return BookingEvent.objects.create(
            booking=self,
            type=BookingEventType(event_type),
            metadata=build_event_metadata(event_type, metadata),
            actor=actor,
        )

    def hours_worked(self, until=None) -> Decimal:
        """Hours between check-in and ``until`` (default now), two decimals."""
        if not self.checked_in_at:
            return Decimal("0.00")
        end = until or self.checked_out_at or timezone.now()
        seconds = Decimal(max((end - self.checked_in_at).total_seconds(), 0))
        return (seconds / Decimal(3600)).quantize(HOURS_QUANTUM, rounding=ROUND_HALF_UP)

    def compute_final_amount(self, actual_hours: Decimal | None, override: Decimal | None = None) -> Decimal:
        """Hourly: rate x hours. Fixed: quoted price. An explicit override always wins."""
        if override is not None:
            return quantize_money(override)
        if self.is_hourly:
            return quantize_money(self.quoted_price * (actual_hours or Decimal("0")))
        return quantize_money(self.quoted_price)

    def chargeable_amount(self) -> Decimal:
        return self.final_amount if self.final_amount is not None else self.quoted_price

    def snapshot(self) -> dict:
        """Plain data used in notification payloads."""
        return {
            "booking_id": self.pk,
            "status": str(self.status),
            "customer_id": self.customer_id,
            "professional_id": self.professional_id,
            "category_id": self.category_id,
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "address": self.address,
            "pricing_model": str(self.pricing_model),
            "quoted_price": str(self.quoted_price),
            "final_amount": str(self.final_amount) if self.final_amount is not None else None,
            "currency": self.currency,
        }


class BookingEvent(models.Model):
    """Append-only fact in a booking's lifecycle."""

    booking = models.ForeignKey(
        Booking,
        on_delete=models.PROTECT,
        related_name="events",
    )
    type = models.CharField(max_length=32, choices=BookingEventType.choices)
    metadata = models.JSONField(default=dict, blank=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(default=timezone.now, editable=False)

    class Meta:
        verbose_name = _("Booking event")
        verbose_name_plural = _("Booking events")
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["booking", "created_at"], name="bookingevent_booking_time_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.type} for booking {self.booking_id}"

    def save(self, *args, **kwargs):  # type: ignore
        if not self._state.adding:
            raise ValueError("Booking events are append-only and cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):  # type: ignore
        raise ValueError("Booking events are append-only and cannot be deleted.")
