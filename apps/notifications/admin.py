from django.contrib import admin

from apps.notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("recipient", "type", "title", "related_case", "is_read", "created_at")
    list_filter = ("type", "is_read")
    search_fields = ("recipient__username", "title", "message", "related_case__case_id")
    raw_id_fields = ("recipient", "related_case")
