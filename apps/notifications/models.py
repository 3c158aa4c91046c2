import uuid

from django.db import models


class NotificationType(models.TextChoices):
    IN_APP = "in_app", "In App"


class Notification(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    recipient = models.ForeignKey("accounts.User", on_delete=models.CASCADE, related_name="notifications")
    type = models.CharField(max_length=16, choices=NotificationType.choices, default=NotificationType.IN_APP)
    title = models.CharField(max_length=200)
    message = models.TextField()
    related_case = models.ForeignKey(
        "cases.Case",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
    )
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["recipient", "is_read"], name="notification_recipient_idx"),
        ]
