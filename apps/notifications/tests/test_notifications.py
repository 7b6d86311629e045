"""Tests for the notification outbox and its delivery tasks."""

from __future__ import annotations

from unittest import mock

import requests
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.notifications.models import NotificationRequest
from apps.notifications.services import NotificationRequester
from apps.notifications.tasks import deliver_notification, retry_failed_notifications
from shared.testing import accept_booking, make_booking, make_category, make_customer, make_professional

WEBHOOK_URL = "https://notify.example.com/hooks"


class NotificationRequesterTests(TestCase):
    def setUp(self) -> None:
        self.customer = make_customer()
        self.professional = make_professional()
        self.booking = make_booking(self.customer, self.professional, make_category())

    def test_recipients_follow_the_kind(self) -> None:
        requester = NotificationRequester()

        created = requester.booking_created(self.booking)
        completed = requester.booking_completed(self.booking)

        self.assertEqual([n.recipient_id for n in created], [self.professional.pk])
        self.assertEqual({n.recipient_id for n in completed}, {self.customer.pk, self.professional.pk})
        self.assertEqual(created[0].payload["recipient_role"], "professional")
        self.assertEqual(created[0].payload["booking"]["booking_id"], self.booking.pk)

    def test_extra_fields_land_in_payload(self) -> None:
        [notification] = NotificationRequester().booking_rejected(self.booking, "Fully booked")

        self.assertEqual(notification.kind, NotificationRequest.Kind.BOOKING_REJECTED)
        self.assertEqual(notification.payload["reason"], "Fully booked")

    def test_delivery_is_queued_after_commit(self) -> None:
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            [notification] = NotificationRequester().booking_accepted(self.booking)

        self.assertEqual(len(callbacks), 1)
        notification.refresh_from_db()
        self.assertEqual(notification.status, NotificationRequest.Status.SENT)
        self.assertEqual(notification.attempts, 1)

    def test_transitions_request_notifications(self) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            accept_booking(self.booking)

        notification = NotificationRequest.objects.get(kind=NotificationRequest.Kind.BOOKING_ACCEPTED)
        self.assertEqual(notification.recipient, self.customer)


@override_settings(NOTIFICATIONS_WEBHOOK_URL=WEBHOOK_URL)
class DeliveryTests(TestCase):
    def setUp(self) -> None:
        booking = make_booking(make_customer(), make_professional(), make_category())
        [self.notification] = NotificationRequester().booking_accepted(booking)

    @mock.patch("apps.notifications.tasks.requests.post")
    def test_successful_delivery(self, post: mock.Mock) -> None:
        self.assertTrue(deliver_notification(self.notification.pk))

        post.assert_called_once()
        self.assertEqual(post.call_args.args[0], WEBHOOK_URL)
        self.assertEqual(post.call_args.kwargs["json"]["kind"], "booking_accepted")
        self.notification.refresh_from_db()
        self.assertEqual(self.notification.status, NotificationRequest.Status.SENT)
        self.assertIsNotNone(self.notification.sent_at)

    @mock.patch("apps.notifications.tasks.requests.post")
    def test_failed_delivery_is_recorded(self, post: mock.Mock) -> None:
        post.side_effect = requests.ConnectionError("connection refused")

        self.assertFalse(deliver_notification(self.notification.pk))

        self.notification.refresh_from_db()
        self.assertEqual(self.notification.status, NotificationRequest.Status.FAILED)
        self.assertEqual(self.notification.attempts, 1)
        self.assertIn("connection refused", self.notification.error_message)

    @mock.patch("apps.notifications.tasks.requests.post")
    def test_sent_notification_is_not_delivered_twice(self, post: mock.Mock) -> None:
        deliver_notification(self.notification.pk)

        self.assertTrue(deliver_notification(self.notification.pk))

        post.assert_called_once()

    def test_missing_notification(self) -> None:
        self.assertFalse(deliver_notification(999999))

    @mock.patch("apps.notifications.tasks.requests.post")
    def test_retry_respects_attempt_budget(self, post: mock.Mock) -> None:
        post.side_effect = requests.Timeout("slow")
        deliver_notification(self.notification.pk)

        post.side_effect = None
        result = retry_failed_notifications()

        self.assertEqual(result, {"retried": 1})
        self.notification.refresh_from_db()
        self.assertEqual(self.notification.status, NotificationRequest.Status.SENT)
        self.assertEqual(self.notification.attempts, 2)

        NotificationRequest.objects.filter(pk=self.notification.pk).update(
            status=NotificationRequest.Status.FAILED, attempts=99
        )
        self.assertEqual(retry_failed_notifications(), {"retried": 0})


class NotificationAPITests(APITestCase):
    def test_user_sees_only_own_requests(self) -> None:
        customer = make_customer()
        professional = make_professional()
        booking = make_booking(customer, professional, make_category())
        NotificationRequester().booking_completed(booking)
        self.client.force_authenticate(customer)

        response = self.client.get(reverse("notification-list"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["kind"], "booking_completed")
