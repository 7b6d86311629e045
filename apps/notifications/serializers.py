"""Serializers for notification requests."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import NotificationRequest


class NotificationRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = NotificationRequest
        fields = ["id", "kind", "payload", "status", "attempts", "sent_at", "created_at"]
        read_only_fields = fields
