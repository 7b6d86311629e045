"""
Booking Event Metadata Schemas

Each event type has its own serializer describing the payload stored in
``BookingEvent.metadata``. Payloads carry ``schema_version`` so stored
events stay readable when a schema evolves.
"""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.bookings.domain.state_machine import BookingEventType
from shared.domain.exceptions import InvalidOperationError

SCHEMA_VERSION = 1

ACTOR_ROLES = ("customer", "professional", "admin", "system")


class EventMetadataSerializer(serializers.Serializer):
    schema_version = serializers.IntegerField(default=SCHEMA_VERSION, min_value=1)


class CreatedMetadata(EventMetadataSerializer):
    pricing_model = serializers.ChoiceField(choices=("hourly", "fixed"))
    quoted_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    commission_percent = serializers.DecimalField(max_digits=5, decimal_places=2)


class AcceptedMetadata(EventMetadataSerializer):
    via = serializers.ChoiceField(choices=("professional", "payment_capture"), default="professional")
    note = serializers.CharField(required=False, allow_blank=True, max_length=500)
    payment_id = serializers.IntegerField(required=False)


class RejectedMetadata(EventMetadataSerializer):
    reason = serializers.CharField(allow_blank=True, max_length=500)


class CheckedInMetadata(EventMetadataSerializer):
    checked_in_at = serializers.DateTimeField()


class CheckedOutMetadata(EventMetadataSerializer):
    checked_out_at = serializers.DateTimeField()
    actual_hours = serializers.DecimalField(max_digits=6, decimal_places=2)
    implicit = serializers.BooleanField(default=False)


class CompletedMetadata(EventMetadataSerializer):
    final_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    actual_hours = serializers.DecimalField(max_digits=6, decimal_places=2, required=False, allow_null=True)
    amount_overridden = serializers.BooleanField(default=False)


class CancelledMetadata(EventMetadataSerializer):
    reason = serializers.CharField(allow_blank=True, max_length=500)
    cancelled_by = serializers.ChoiceField(choices=ACTOR_ROLES)
    via = serializers.ChoiceField(choices=("request", "refund"), default="request")


class PaymentCompletedMetadata(EventMetadataSerializer):
    payment_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    gateway_ref = serializers.CharField(allow_blank=True, max_length=255)


class RefundedMetadata(EventMetadataSerializer):
    payment_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    reason = serializers.CharField(allow_blank=True, max_length=500)


METADATA_SCHEMAS: dict[BookingEventType, type[EventMetadataSerializer]] = {
    BookingEventType.CREATED: CreatedMetadata,
    BookingEventType.ACCEPTED: AcceptedMetadata,
    BookingEventType.REJECTED: RejectedMetadata,
    BookingEventType.CHECKED_IN: CheckedInMetadata,
    BookingEventType.CHECKED_OUT: CheckedOutMetadata,
    BookingEventType.COMPLETED: CompletedMetadata,
    BookingEventType.CANCELLED: CancelledMetadata,
    BookingEventType.PAYMENT_COMPLETED: PaymentCompletedMetadata,
    BookingEventType.REFUNDED: RefundedMetadata,
}


def build_event_metadata(event_type, data: dict | None = None) -> dict:
    """
    Validate ``data`` against the schema of ``event_type``.

    Returns the JSON-ready payload (decimals and datetimes as strings).
    Unknown keys are dropped.
    """
    event = BookingEventType(event_type)
    serializer = METADATA_SCHEMAS[event](data=data or {})
    if not serializer.is_valid():
        raise InvalidOperationError(
            f"Invalid metadata for {event.name} event: {serializer.errors}",
            code="invalid_event_metadata",
        )
    return dict(serializer.data)
