import uuid

from django.db import models


class ServiceType(models.TextChoices):
    TRADEMARK = "trademark", "Trademark"
    COPYRIGHT = "copyright", "Copyright"
    PATENT = "patent", "Patent"
    GST_REGISTRATION = "gst_registration", "GST Registration"
    COMPANY_REGISTRATION = "company_registration", "Company Registration"


class Service(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, db_index=True)
    type = models.CharField(max_length=32, choices=ServiceType.choices)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    is_active = models.BooleanField(default=True, db_index=True)
    sla_hours = models.PositiveIntegerField(null=True, blank=True)
    documents_required = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(condition=models.Q(price__gte=0), name="service_price_gte_zero"),
        ]

    def __str__(self):
        return f"{self.name} ({self.get_type_display()})"

    def summary(self):
        return {
            "id": str(self.id),
            "name": self.name,
            "type": self.type,
            "price": self.price,
        }
