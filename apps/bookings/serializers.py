"""Serializers for the booking domain."""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers  # type: ignore

from apps.bookings.domain import state_machine
from .models import Booking, BookingEvent


class BookingEventSerializer(serializers.ModelSerializer):
    type_display = serializers.SerializerMethodField()
    actor_id = serializers.ReadOnlyField()

    class Meta:
        model = BookingEvent
        fields = ["id", "type", "type_display", "metadata", "actor_id", "created_at"]
        read_only_fields = fields

    def get_type_display(self, obj: BookingEvent) -> str:
        return state_machine.event_type_display(obj.type)


class BookingSerializer(serializers.ModelSerializer):
    """Booking detail with its ordered event log."""

    customer_id = serializers.ReadOnlyField()
    professional_id = serializers.ReadOnlyField()
    category_id = serializers.ReadOnlyField()
    category_name = serializers.ReadOnlyField(source="category.name")
    status_display = serializers.SerializerMethodField()
    next_statuses = serializers.SerializerMethodField()
    events = BookingEventSerializer(many=True, read_only=True)

    class Meta:
        model = Booking
        fields = [
            "id",
            "customer_id",
            "professional_id",
            "category_id",
            "category_name",
            "status",
            "status_display",
            "next_statuses",
            "scheduled_at",
            "address",
            "latitude",
            "longitude",
            "details",
            "pricing_model",
            "quoted_price",
            "currency",
            "commission_percent",
            "checked_in_at",
            "checked_out_at",
            "actual_hours",
            "final_amount",
            "completed_at",
            "cancel_reason",
            "cancelled_by",
            "cancelled_at",
            "events",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_status_display(self, obj: Booking) -> str:
        return state_machine.status_display(obj.status)

    def get_next_statuses(self, obj: Booking) -> list[str]:
        return [status.value for status in state_machine.next_statuses(obj.status)]


class BookingListSerializer(BookingSerializer):
    """Short form for list views, without the event log."""

    class Meta(BookingSerializer.Meta):
        fields = [
            "id",
            "customer_id",
            "professional_id",
            "category_id",
            "category_name",
            "status",
            "status_display",
            "scheduled_at",
            "pricing_model",
            "quoted_price",
            "final_amount",
            "currency",
            "created_at",
        ]
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    """Job request by a customer. Business rules are checked by CreateBookingHandler."""

    professional_id = serializers.IntegerField(min_value=1)
    category_id = serializers.IntegerField(min_value=1)
    scheduled_at = serializers.DateTimeField()
    address = serializers.CharField(max_length=255)
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True)
    details = serializers.CharField(required=False, allow_blank=True, default="")
    pricing_model = serializers.ChoiceField(
        choices=Booking.PricingModel.choices,
        default=Booking.PricingModel.FIXED,
    )
    quoted_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))


class BookingNoteSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, allow_blank=True, default="", max_length=500)


class BookingReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=500)


class BookingCheckOutSerializer(serializers.Serializer):
    actual_hours = serializers.DecimalField(
        max_digits=6, decimal_places=2, required=False, allow_null=True, min_value=Decimal("0")
    )


class BookingCompleteSerializer(BookingCheckOutSerializer):
    final_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True, min_value=Decimal("0.01")
    )
