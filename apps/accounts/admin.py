from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    fieldsets = DjangoUserAdmin.fieldsets + (("Enrollment", {"fields": ("role", "phone", "source_tag", "agent")}),)
    list_display = DjangoUserAdmin.list_display + ("role", "source_tag")
    list_filter = DjangoUserAdmin.list_filter + ("role", "source_tag")
    raw_id_fields = ("agent",)
