from django.contrib import admin  # type: ignore

from .models import NotificationRequest


@admin.register(NotificationRequest)
class NotificationRequestAdmin(admin.ModelAdmin):
    list_display = ("id", "kind", "recipient", "status", "attempts", "created_at", "sent_at")
    list_filter = ("kind", "status")
    search_fields = ("recipient__email",)
    readonly_fields = ("payload", "attempts", "error_message", "sent_at", "created_at", "updated_at")
