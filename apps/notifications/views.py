"""API views for notification requests."""

from __future__ import annotations

from rest_framework import permissions, viewsets  # type: ignore

from .models import NotificationRequest
from .serializers import NotificationRequestSerializer


class NotificationRequestViewSet(viewsets.ReadOnlyModelViewSet):
    """Notification requests addressed to the authenticated user."""

    serializer_class = NotificationRequestSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["kind", "status"]

    def get_queryset(self):  # type: ignore
        return NotificationRequest.objects.filter(recipient=self.request.user)
