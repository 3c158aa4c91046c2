import uuid

from django.db import models
from django.utils import timezone


class CaseStatus(models.TextChoices):
    NEW = "new", "New"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class EnrollmentType(models.TextChoices):
    SELF = "self", "Self"
    ADMIN = "admin", "Admin"
    EMPLOYEE = "employee", "Employee"
    AGENT = "agent", "Agent"
    ASSOCIATE = "associate", "Associate"


class Case(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    case_id = models.CharField(max_length=40, unique=True)
    end_user = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="cases")
    service = models.ForeignKey("catalog.Service", on_delete=models.PROTECT, related_name="cases")
    employee = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_cases",
    )
    assigned_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=CaseStatus.choices, default=CaseStatus.NEW)
    current_step = models.CharField(max_length=120, blank=True)
    deadline = models.DateTimeField(null=True, blank=True)
    notes = models.JSONField(default=list, blank=True)
    documents = models.JSONField(default=list, blank=True)
    enrolled_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="enrollments_made",
    )
    enrollment_type = models.CharField(max_length=16, choices=EnrollmentType.choices, default=EnrollmentType.SELF)
    enrolled_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["end_user", "status"], name="case_end_user_status_idx"),
            models.Index(fields=["employee", "status"], name="case_employee_status_idx"),
            models.Index(fields=["enrolled_by", "enrolled_at"], name="case_enrolled_by_idx"),
        ]

    def __str__(self):
        return self.case_id
