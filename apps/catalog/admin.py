from django.contrib import admin

from apps.catalog.models import Service


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ("name", "type", "price", "sla_hours", "is_active", "updated_at")
    list_filter = ("is_active", "type")
    search_fields = ("name", "description")
