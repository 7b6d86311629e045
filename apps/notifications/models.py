"""Notification request outbox.

Every notification the platform wants delivered is stored here first,
then delivered by a Celery task. Failed deliveries stay in the table
and are retried by a periodic job until the attempt budget is spent.
"""

from __future__ import annotations

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class NotificationRequest(models.Model):
    """A notification waiting for, or done with, external delivery."""

    class Kind(models.TextChoices):
        BOOKING_CREATED = "booking_created", _("Booking created")
        BOOKING_ACCEPTED = "booking_accepted", _("Booking accepted")
        BOOKING_REJECTED = "booking_rejected", _("Booking rejected")
        BOOKING_STARTED = "booking_started", _("Booking started")
        BOOKING_COMPLETED = "booking_completed", _("Booking completed")
        BOOKING_CANCELLED = "booking_cancelled", _("Booking cancelled")
        PAYMENT_COMPLETED = "payment_completed", _("Payment completed")
        REFUND_CREATED = "refund_created", _("Refund created")

    class Status(models.TextChoices):
        PENDING = "pending", _("Queued")
        SENT = "sent", _("Sent")
        FAILED = "failed", _("Failed")

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notification_requests",
    )
    kind = models.CharField(max_length=32, choices=Kind.choices)
    payload = models.JSONField(default=dict)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    attempts = models.PositiveSmallIntegerField(default=0)
    error_message = models.TextField(blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Notification request")
        verbose_name_plural = _("Notification requests")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="notif_status_created_idx"),
            models.Index(fields=["recipient", "created_at"], name="notif_recipient_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.kind} to {self.recipient_id} ({self.status})"
