"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin  # type: ignore

from .models import Booking, BookingEvent


class BookingEventInline(admin.TabularInline):
    """The event log is append-only, even for staff."""

    model = BookingEvent
    extra = 0
    can_delete = False
    fields = ("type", "metadata", "actor", "created_at")
    readonly_fields = fields
    ordering = ("created_at", "id")

    def has_add_permission(self, request, obj=None):  # type: ignore
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "customer",
        "professional",
        "category",
        "status",
        "pricing_model",
        "quoted_price",
        "final_amount",
        "scheduled_at",
        "created_at",
    )
    list_filter = ("status", "pricing_model", "category", "scheduled_at")
    search_fields = ("customer__email", "professional__email", "address")
    # Status and money move only through the command handlers
    readonly_fields = (
        "status",
        "commission_percent",
        "checked_in_at",
        "checked_out_at",
        "actual_hours",
        "final_amount",
        "completed_at",
        "cancelled_by",
        "cancelled_at",
        "created_at",
        "updated_at",
    )
    inlines = [BookingEventInline]


@admin.register(BookingEvent)
class BookingEventAdmin(admin.ModelAdmin):
    list_display = ("booking", "type", "actor", "created_at")
    list_filter = ("type",)
    search_fields = ("booking__id",)
    readonly_fields = ("booking", "type", "metadata", "actor", "created_at")

    def has_add_permission(self, request):  # type: ignore
        return False

    def has_change_permission(self, request, obj=None):  # type: ignore
        return False

    def has_delete_permission(self, request, obj=None):  # type: ignore
        return False
