from django.contrib.auth.models import AbstractUser
from django.db import models


class UserRole(models.TextChoices):
    ADMIN = "admin", "Admin"
    EMPLOYEE = "employee", "Employee"
    AGENT = "agent", "Agent"
    ASSOCIATE = "associate", "Associate"
    END_USER = "end_user", "End User"


class SourceTag(models.TextChoices):
    SELF = "self", "Self"
    AGENT = "agent", "Agent"
    ASSOCIATE = "associate", "Associate"
    ADMIN_DIRECT = "admin_direct", "Admin Direct"
    EMPLOYEE = "employee", "Employee"


class User(AbstractUser):
    role = models.CharField(max_length=20, choices=UserRole.choices, default=UserRole.END_USER)
    phone = models.CharField(max_length=32, blank=True)
    source_tag = models.CharField(max_length=20, choices=SourceTag.choices, default=SourceTag.SELF)
    agent = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="onboarded_users",
    )

    @property
    def display_name(self):
        return self.get_full_name() or self.username
