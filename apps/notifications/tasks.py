"""Celery tasks delivering notification requests."""

from __future__ import annotations

import logging

import requests
from celery import shared_task  # type: ignore
from django.conf import settings  # type: ignore
from django.db.models import F  # type: ignore
from django.utils import timezone  # type: ignore

from .models import NotificationRequest

logger = logging.getLogger(__name__)

DELIVERY_TIMEOUT = 10


def _max_attempts() -> int:
    return int(settings.MARKETPLACE["SIDE_EFFECT_MAX_RETRIES"])


@shared_task(name="notifications.deliver_notification")
def deliver_notification(notification_id: int) -> bool:
    """
    Hand one request to the external notification service.

    Without ``NOTIFICATIONS_WEBHOOK_URL`` the request is only logged and
    counted as sent.
    """
    try:
        notification = NotificationRequest.objects.get(pk=notification_id)
    except NotificationRequest.DoesNotExist:
        logger.warning(f"Notification request {notification_id} not found")
        return False

    if notification.status == NotificationRequest.Status.SENT:
        return True

    NotificationRequest.objects.filter(pk=notification.pk).update(attempts=F("attempts") + 1)
    url = settings.NOTIFICATIONS_WEBHOOK_URL
    if url:
        try:
            response = requests.post(
                url,
                json={
                    "id": notification.pk,
                    "kind": notification.kind,
                    "recipient_id": notification.recipient_id,
                    "payload": notification.payload,
                },
                timeout=DELIVERY_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            NotificationRequest.objects.filter(pk=notification.pk).update(
                status=NotificationRequest.Status.FAILED,
                error_message=str(e)[:1000],
                updated_at=timezone.now(),
            )
            logger.error(f"Delivery of notification {notification.pk} ({notification.kind}) failed: {e}", exc_info=True)
            return False
    else:
        logger.info(
            f"[NOTIFICATION] {notification.kind} to user {notification.recipient_id}: {notification.payload}"
        )

    NotificationRequest.objects.filter(pk=notification.pk).update(
        status=NotificationRequest.Status.SENT,
        sent_at=timezone.now(),
        error_message="",
        updated_at=timezone.now(),
    )
    return True


@shared_task(name="notifications.retry_failed_notifications")
def retry_failed_notifications() -> dict[str, int]:
    """Re-deliver failed requests that still have attempts left."""
    retried = 0
    failed = NotificationRequest.objects.filter(
        status=NotificationRequest.Status.FAILED,
        attempts__lt=_max_attempts(),
    ).values_list("pk", flat=True)
    for notification_id in list(failed):
        deliver_notification.delay(notification_id)
        retried += 1

    if retried:
        logger.info(f"Retried {retried} failed notification requests")
    return {"retried": retried}
