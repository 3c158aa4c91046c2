from django.contrib import admin

from apps.cases.models import Case


@admin.register(Case)
class CaseAdmin(admin.ModelAdmin):
    list_display = ("case_id", "end_user", "service", "employee", "status", "enrollment_type", "deadline", "enrolled_at")
    list_filter = ("status", "enrollment_type", "service")
    search_fields = ("case_id", "end_user__username", "end_user__email", "service__name")
    raw_id_fields = ("end_user", "employee", "enrolled_by")
    readonly_fields = ("case_id", "enrolled_by", "enrollment_type", "enrolled_at")
