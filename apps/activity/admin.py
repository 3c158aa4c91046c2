from django.contrib import admin

from apps.activity.models import ActivityLog


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ("action", "entity_type", "entity_id", "case", "actor", "created_at")
    list_filter = ("action", "entity_type")
    search_fields = ("entity_id", "case__case_id", "actor__username")
    readonly_fields = ("actor", "action", "entity_type", "entity_id", "case", "payload", "created_at")
