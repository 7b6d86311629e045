"""Admin registration for the finance domain."""

from __future__ import annotations

from django.contrib import admin  # type: ignore

from .models import (
    BookingSettlement,
    CommissionSetting,
    DailySettlement,
    Payment,
    PaymentTransaction,
    Payout,
    Refund,
)


class PaymentTransactionInline(admin.TabularInline):
    model = PaymentTransaction
    extra = 0
    can_delete = False
    fields = ("event", "status", "payload", "created_at")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):  # type: ignore
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "customer", "method", "status", "amount", "currency", "paid_at", "created_at")
    list_filter = ("status", "method")
    search_fields = ("gateway_ref", "booking__id", "customer__email")
    # Status changes go through the payment coordinator
    readonly_fields = ("status", "amount", "gateway_ref", "paid_at", "refunded_at", "created_at", "updated_at")
    inlines = [PaymentTransactionInline]


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "payment", "amount", "status", "processed_by", "created_at")
    list_filter = ("status",)
    search_fields = ("booking__id", "gateway_ref", "reason")
    readonly_fields = ("booking", "payment", "amount", "processed_at", "completed_at", "created_at", "updated_at")


@admin.register(CommissionSetting)
class CommissionSettingAdmin(admin.ModelAdmin):
    list_display = ("id", "category", "percent", "updated_at")


class BookingSettlementInline(admin.TabularInline):
    model = BookingSettlement
    extra = 0
    can_delete = False
    fields = ("booking", "professional", "gross_amount", "commission_amount", "professional_amount", "status")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):  # type: ignore
        return False


@admin.register(DailySettlement)
class DailySettlementAdmin(admin.ModelAdmin):
    list_display = ("date", "status", "total_bookings", "total_amount", "total_commission", "total_payouts")
    list_filter = ("status",)
    date_hierarchy = "date"
    readonly_fields = ("total_bookings", "total_amount", "total_commission", "total_payouts", "processed_at")
    inlines = [BookingSettlementInline]


@admin.register(BookingSettlement)
class BookingSettlementAdmin(admin.ModelAdmin):
    list_display = (
        "booking",
        "professional",
        "gross_amount",
        "commission_percent",
        "commission_amount",
        "professional_amount",
        "status",
        "source",
    )
    list_filter = ("status", "source")
    search_fields = ("booking__id", "professional__email")
    readonly_fields = (
        "booking",
        "daily_settlement",
        "payment",
        "professional",
        "gross_amount",
        "commission_percent",
        "commission_amount",
        "professional_amount",
        "status",
        "source",
        "paid_at",
        "refunded_at",
    )


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    list_display = ("id", "professional", "period_start", "period_end", "amount", "status", "paid_at")
    list_filter = ("status",)
    search_fields = ("professional__email",)
    readonly_fields = ("status", "paid_at", "created_at")
