import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Case",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("case_id", models.CharField(max_length=40, unique=True)),
                ("assigned_at", models.DateTimeField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("new", "New"),
                            ("in_progress", "In Progress"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="new",
                        max_length=16,
                    ),
                ),
                ("current_step", models.CharField(blank=True, max_length=120)),
                ("deadline", models.DateTimeField(blank=True, null=True)),
                ("notes", models.JSONField(blank=True, default=list)),
                ("documents", models.JSONField(blank=True, default=list)),
                (
                    "enrollment_type",
                    models.CharField(
                        choices=[
                            ("self", "Self"),
                            ("admin", "Admin"),
                            ("employee", "Employee"),
                            ("agent", "Agent"),
                            ("associate", "Associate"),
                        ],
                        default="self",
                        max_length=16,
                    ),
                ),
                ("enrolled_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "employee",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="assigned_cases",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "end_user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="cases",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "enrolled_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="enrollments_made",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "service",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="cases",
                        to="catalog.service",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["end_user", "status"], name="case_end_user_status_idx"),
                    models.Index(fields=["employee", "status"], name="case_employee_status_idx"),
                    models.Index(fields=["enrolled_by", "enrolled_at"], name="case_enrolled_by_idx"),
                ],
            },
        ),
    ]
