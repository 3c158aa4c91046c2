from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase

from apps.notifications.models import Notification, NotificationType
from apps.notifications.services import notify, notify_all

User = get_user_model()


class NotificationFanoutTests(TestCase):
    def setUp(self):
        self.first = User.objects.create_user(username="first", password="first123", role="admin")
        self.second = User.objects.create_user(username="second", password="second123", role="admin")

    def test_notify_creates_one_record(self):
        notification = notify(recipient=self.first, title="Hello", message="World")
        self.assertEqual(notification.type, NotificationType.IN_APP)
        self.assertFalse(notification.is_read)
        self.assertEqual(Notification.objects.count(), 1)

    def test_notify_all_creates_one_record_per_recipient(self):
        created = notify_all(recipients=[self.first, self.second], title="New Case Created", message="CASE-1")
        self.assertEqual(len(created), 2)
        self.assertEqual(
            set(Notification.objects.values_list("recipient__username", flat=True)),
            {"first", "second"},
        )

    def test_notify_all_keeps_earlier_records_when_a_later_one_fails(self):
        original_create = Notification.objects.create

        def flaky_create(**kwargs):
            if kwargs["recipient"] == self.second:
                raise RuntimeError("store unavailable")
            return original_create(**kwargs)

        with mock.patch.object(Notification.objects, "create", side_effect=flaky_create):
            with self.assertRaises(RuntimeError):
                notify_all(recipients=[self.first, self.second], title="t", message="m")

        self.assertEqual(list(Notification.objects.values_list("recipient__username", flat=True)), ["first"])
