"""Serializers for the finance domain."""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers  # type: ignore

from apps.catalog.models import ServiceCategory

from .models import (
    BookingSettlement,
    CommissionSetting,
    DailySettlement,
    Payment,
    PaymentTransaction,
    Payout,
    Refund,
)

MONEY = {"max_digits": 12, "decimal_places": 2}


# ===== Payments =====

class PaymentTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentTransaction
        fields = ["id", "event", "payload", "status", "created_at"]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    """Payment with its gateway audit trail."""

    booking_id = serializers.ReadOnlyField()
    customer_id = serializers.ReadOnlyField()
    transactions = PaymentTransactionSerializer(many=True, read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "booking_id",
            "customer_id",
            "method",
            "status",
            "amount",
            "currency",
            "gateway_ref",
            "metadata",
            "paid_at",
            "refunded_at",
            "transactions",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PaymentIntentSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField(min_value=1)
    method = serializers.ChoiceField(
        choices=[choice for choice in Payment.Method.choices if choice[0] != Payment.Method.MOCK],
        default=Payment.Method.STUB,
    )


class PaymentRefundSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)


# ===== Commission =====

class CommissionSettingSerializer(serializers.ModelSerializer):
    category = serializers.PrimaryKeyRelatedField(
        queryset=ServiceCategory.objects.all(),
        required=False,
        allow_null=True,
    )
    category_name = serializers.ReadOnlyField(source="category.name")

    class Meta:
        model = CommissionSetting
        fields = ["id", "category", "category_name", "percent", "created_at", "updated_at"]
        read_only_fields = ["id", "category_name", "created_at", "updated_at"]
        # One setting per scope is enforced by commission.create_setting
        validators: list = []


class CommissionQuoteSerializer(serializers.Serializer):
    """Either ``booking_id`` or ``amount`` (with an optional category)."""

    booking_id = serializers.IntegerField(required=False, min_value=1)
    amount = serializers.DecimalField(required=False, min_value=Decimal("0"), **MONEY)
    category_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)

    def validate(self, attrs):  # type: ignore
        if attrs.get("booking_id") is None and attrs.get("amount") is None:
            raise serializers.ValidationError("Provide either booking_id or amount.")
        return attrs


class CommissionBreakdownSerializer(serializers.Serializer):
    amount = serializers.DecimalField(**MONEY)
    percent = serializers.DecimalField(max_digits=5, decimal_places=2)
    commission_amount = serializers.DecimalField(**MONEY)
    net_amount = serializers.DecimalField(**MONEY)


# ===== Refunds =====

class RefundSerializer(serializers.ModelSerializer):
    booking_id = serializers.ReadOnlyField()
    payment_id = serializers.ReadOnlyField()
    processed_by_id = serializers.ReadOnlyField()

    class Meta:
        model = Refund
        fields = [
            "id",
            "booking_id",
            "payment_id",
            "amount",
            "currency",
            "reason",
            "status",
            "method",
            "gateway_ref",
            "processed_by_id",
            "notes",
            "metadata",
            "processed_at",
            "completed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class RefundProcessSerializer(serializers.Serializer):
    method = serializers.CharField(max_length=50)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class RefundCompleteSerializer(serializers.Serializer):
    gateway_ref = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class RefundFailSerializer(serializers.Serializer):
    notes = serializers.CharField()


# ===== Settlements =====

class DailySettlementSerializer(serializers.ModelSerializer):
    class Meta:
        model = DailySettlement
        fields = [
            "id",
            "date",
            "total_bookings",
            "total_amount",
            "total_commission",
            "total_payouts",
            "status",
            "processed_at",
        ]
        read_only_fields = fields


class BookingSettlementSerializer(serializers.ModelSerializer):
    booking_id = serializers.ReadOnlyField()
    payment_id = serializers.ReadOnlyField()
    professional_id = serializers.ReadOnlyField()
    settlement_date = serializers.ReadOnlyField(source="daily_settlement.date")

    class Meta:
        model = BookingSettlement
        fields = [
            "id",
            "booking_id",
            "payment_id",
            "professional_id",
            "settlement_date",
            "gross_amount",
            "commission_percent",
            "commission_amount",
            "professional_amount",
            "status",
            "source",
            "paid_at",
            "refunded_at",
            "created_at",
        ]
        read_only_fields = fields


class DateRangeQuerySerializer(serializers.Serializer):
    start = serializers.DateField()
    end = serializers.DateField()

    def validate(self, attrs):  # type: ignore
        if attrs["start"] > attrs["end"]:
            raise serializers.ValidationError("start must not be after end.")
        return attrs


class OptionalDateRangeQuerySerializer(serializers.Serializer):
    start = serializers.DateField(required=False)
    end = serializers.DateField(required=False)


class SettlementDaySerializer(serializers.Serializer):
    date = serializers.DateField()


class ManualSettlementSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField(min_value=1)


class BackfillSerializer(serializers.Serializer):
    limit = serializers.IntegerField(required=False, allow_null=True, min_value=1)


# ===== Payouts =====

class PayoutSerializer(serializers.ModelSerializer):
    professional_id = serializers.ReadOnlyField()

    class Meta:
        model = Payout
        fields = [
            "id",
            "professional_id",
            "period_start",
            "period_end",
            "amount",
            "currency",
            "status",
            "metadata",
            "paid_at",
            "created_at",
        ]
        read_only_fields = fields


class PayoutCreateSerializer(serializers.Serializer):
    professional_id = serializers.IntegerField(min_value=1)
    period_start = serializers.DateField()
    period_end = serializers.DateField()
    amount = serializers.DecimalField(min_value=Decimal("0.01"), **MONEY)
    metadata = serializers.JSONField(required=False, default=dict)


class PayoutGenerateSerializer(serializers.Serializer):
    period_start = serializers.DateField()
    period_end = serializers.DateField()
