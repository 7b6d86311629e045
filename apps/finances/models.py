"""Financial domain models for ServiceHub."""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings  # type: ignore
from django.core.validators import MaxValueValidator, MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Payment(models.Model):
    """One attempt to collect money for a booking."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        SUCCESS = "success", _("Paid")
        FAILED = "failed", _("Failed")
        REFUNDED = "refunded", _("Refunded")

    class Method(models.TextChoices):
        BKASH = "bkash", _("bKash")
        NAGAD = "nagad", _("Nagad")
        ROCKET = "rocket", _("Rocket")
        STUB = "stub", _("Test gateway")
        MOCK = "mock", _("Synthesized by settlement backfill")

    ACTIVE_STATUSES = (Status.PENDING, Status.SUCCESS)

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payments",
    )
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments",
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    method = models.CharField(max_length=20, choices=Method.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="BDT")
    gateway_ref = models.CharField(max_length=255, blank=True, db_index=True)
    metadata = models.JSONField(default=dict, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Payment")
        verbose_name_plural = _("Payments")
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["booking"],
                condition=models.Q(status__in=["pending", "success"]),
                name="one_active_payment_per_booking",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment {self.pk} for booking {self.booking_id} ({self.status})"

    @property
    def commission_snapshot(self) -> dict:
        return self.metadata.get("commission") or {}


class PaymentTransaction(models.Model):
    """Audit trail of every interaction with the payment provider."""

    payment = models.ForeignKey(
        Payment,
        on_delete=models.CASCADE,
        related_name="transactions",
    )
    event = models.CharField(max_length=50)
    payload = models.JSONField(default=dict)
    status = models.CharField(max_length=20, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Payment transaction")
        verbose_name_plural = _("Payment transactions")
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.event} for payment {self.payment_id}"


class Refund(models.Model):
    """Refund obligation for one payment of a booking."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        PROCESSING = "processing", _("Processing")
        COMPLETED = "completed", _("Completed")
        FAILED = "failed", _("Failed")

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="refunds",
    )
    payment = models.OneToOneField(
        Payment,
        on_delete=models.PROTECT,
        related_name="refund",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="BDT")
    reason = models.CharField(max_length=500)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    method = models.CharField(max_length=50, blank=True)
    gateway_ref = models.CharField(max_length=255, blank=True)
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="processed_refunds",
    )
    notes = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Refund")
        verbose_name_plural = _("Refunds")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="refund_status_created_idx"),
        ]

    def __str__(self) -> str:
        return f"Refund {self.pk} of {self.amount} for booking {self.booking_id} ({self.status})"


class CommissionSetting(models.Model):
    """Commission override for one category, or the platform default when category is empty."""

    category = models.ForeignKey(
        "catalog.ServiceCategory",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="commission_settings",
    )
    percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Commission setting")
        verbose_name_plural = _("Commission settings")
        ordering = ["category_id"]
        constraints = [
            models.UniqueConstraint(fields=["category"], name="one_commission_setting_per_category"),
            models.CheckConstraint(
                condition=models.Q(percent__gte=0) & models.Q(percent__lte=100),
                name="commission_percent_range",
            ),
        ]

    def __str__(self) -> str:
        scope = f"category {self.category_id}" if self.category_id else "global"
        return f"{self.percent}% ({scope})"


class DailySettlement(models.Model):
    """Per calendar day rollup of settled bookings."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Open")
        PROCESSED = "processed", _("Processed")

    date = models.DateField(unique=True)
    total_bookings = models.PositiveIntegerField(default=0)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    total_commission = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    total_payouts = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Daily settlement")
        verbose_name_plural = _("Daily settlements")
        ordering = ["-date"]

    def __str__(self) -> str:
        return f"Settlement {self.date} ({self.status})"


class BookingSettlement(models.Model):
    """How one booking's money was split and whether the professional was paid."""

    class Status(models.TextChoices):
        DUE = "due", _("Due")
        PAID = "paid", _("Paid")
        REFUNDED = "refunded", _("Refunded")

    class Source(models.TextChoices):
        COMPLETION = "completion", _("Booking completion")
        CAPTURE = "capture", _("Payment capture")
        BACKFILL = "backfill", _("Backfill")
        MANUAL = "manual", _("Manual")

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="settlement",
    )
    daily_settlement = models.ForeignKey(
        DailySettlement,
        on_delete=models.PROTECT,
        related_name="booking_settlements",
    )
    payment = models.ForeignKey(
        Payment,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="settlements",
    )
    professional = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="settlements",
    )
    gross_amount = models.DecimalField(max_digits=12, decimal_places=2)
    commission_percent = models.DecimalField(max_digits=5, decimal_places=2)
    commission_amount = models.DecimalField(max_digits=12, decimal_places=2)
    professional_amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DUE)
    source = models.CharField(max_length=20, choices=Source.choices)
    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Booking settlement")
        verbose_name_plural = _("Booking settlements")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["professional", "status"], name="settlement_professional_idx"),
        ]

    def __str__(self) -> str:
        return f"Settlement for booking {self.booking_id} ({self.status})"


class Payout(models.Model):
    """Batched payment obligation to one professional for a period."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        PAID = "paid", _("Paid")

    professional = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payouts",
    )
    period_start = models.DateField()
    period_end = models.DateField()
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="BDT")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    metadata = models.JSONField(default=dict, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Payout")
        verbose_name_plural = _("Payouts")
        ordering = ["-period_end", "-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(period_end__gte=models.F("period_start")),
                name="payout_valid_period",
            ),
        ]
        indexes = [
            models.Index(fields=["professional", "period_start", "period_end"], name="payout_prof_period_idx"),
        ]

    def __str__(self) -> str:
        return f"Payout {self.pk} to {self.professional_id} for {self.period_start}..{self.period_end}"
