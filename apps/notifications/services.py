from apps.notifications.models import Notification, NotificationType


def notify(*, recipient, title, message, related_case=None, notification_type=NotificationType.IN_APP):
    return Notification.objects.create(
        recipient=recipient,
        type=notification_type,
        title=title,
        message=message,
        related_case=related_case,
    )


def notify_all(*, recipients, title, message, related_case=None, notification_type=NotificationType.IN_APP):
    # One record per recipient; earlier records are not undone if a later one fails.
    return [
        notify(
            recipient=recipient,
            title=title,
            message=message,
            related_case=related_case,
            notification_type=notification_type,
        )
        for recipient in recipients
    ]
