import uuid

from django.db import IntegrityError, models, transaction
from django.utils import timezone

from apps.cases.identifiers import generate_invoice_number

INVOICE_NUMBER_ATTEMPTS = 3


class PaymentMethod(models.TextChoices):
    RAZORPAY = "razorpay", "Razorpay"
    CASH = "cash", "Cash"
    TEST_PAYMENT = "test_payment", "Test Payment"
    EMPLOYEE_ENROLLMENT = "employee_enrollment", "Employee Enrollment"
    AGENT_ENROLLMENT = "agent_enrollment", "Agent Enrollment"
    ADMIN_ENROLLMENT = "admin_enrollment", "Admin Enrollment"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class InitiatedFrom(models.TextChoices):
    ADMIN_PANEL = "admin_panel", "Admin Panel"
    EMPLOYEE_PANEL = "employee_panel", "Employee Panel"
    AGENT_PORTAL = "agent_portal", "Agent Portal"
    ASSOCIATE_PORTAL = "associate_portal", "Associate Portal"
    END_USER_PORTAL = "end_user_portal", "End User Portal"


class PaymentOrderStatus(models.TextChoices):
    CREATED = "created", "Created"
    COMPLETED = "completed", "Completed"


class Payment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    case = models.ForeignKey("cases.Case", on_delete=models.PROTECT, related_name="payments")
    end_user = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="payments")
    service = models.ForeignKey("catalog.Service", on_delete=models.PROTECT, related_name="payments")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    original_amount = models.DecimalField(max_digits=12, decimal_places=2)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    coupon = models.ForeignKey(
        "coupons.Coupon",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )
    coupon_code = models.CharField(max_length=20, blank=True)
    transaction_id = models.CharField(max_length=80, unique=True)
    payment_method = models.CharField(max_length=24, choices=PaymentMethod.choices)
    status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    gateway_order_id = models.CharField(max_length=80, blank=True)
    invoice_number = models.CharField(max_length=60, unique=True, null=True, blank=True)
    cash_received_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cash_payments_received",
    )
    cash_received_at = models.DateTimeField(null=True, blank=True)
    cash_receipt_number = models.CharField(max_length=60, blank=True)
    cash_notes = models.TextField(blank=True)
    enrolled_by = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments_enrolled",
    )
    enroller_role = models.CharField(max_length=20, blank=True)
    initiated_from = models.CharField(max_length=24, choices=InitiatedFrom.choices, blank=True)
    payment_date = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-payment_date"]
        constraints = [
            models.CheckConstraint(condition=models.Q(amount__gte=0), name="payment_amount_gte_zero"),
            models.CheckConstraint(condition=models.Q(discount_amount__gte=0), name="payment_discount_gte_zero"),
        ]
        indexes = [
            models.Index(fields=["status", "payment_date"], name="payment_status_date_idx"),
            models.Index(fields=["end_user", "payment_date"], name="payment_end_user_date_idx"),
            models.Index(fields=["enrolled_by", "payment_date"], name="payment_enrolled_by_idx"),
        ]

    def save(self, *args, **kwargs):
        if self.invoice_number or not self._state.adding:
            return super().save(*args, **kwargs)

        for attempt in range(INVOICE_NUMBER_ATTEMPTS):
            self.invoice_number = generate_invoice_number(self.payment_date)
            try:
                with transaction.atomic():
                    return super().save(*args, **kwargs)
            except IntegrityError:
                if attempt == INVOICE_NUMBER_ATTEMPTS - 1 or self._invoice_number_is_free():
                    raise

    def _invoice_number_is_free(self):
        return not Payment.objects.filter(invoice_number=self.invoice_number).exists()

    @property
    def is_cash(self):
        return self.payment_method == PaymentMethod.CASH

    def __str__(self):
        return self.transaction_id


class PaymentOrder(models.Model):
    """Server-side record of a gateway quote.

    Created when the caller asks for an order and consumed once the gateway
    reports the payment, so the amounts and coupon committed later are always
    the ones quoted here rather than whatever the client echoes back.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    gateway_order_id = models.CharField(max_length=80, unique=True)
    status = models.CharField(max_length=16, choices=PaymentOrderStatus.choices, default=PaymentOrderStatus.CREATED)
    payment_method = models.CharField(max_length=24, choices=PaymentMethod.choices)
    is_test_mode = models.BooleanField(default=False)
    service = models.ForeignKey("catalog.Service", on_delete=models.PROTECT, related_name="payment_orders")
    end_user = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="payment_orders")
    enroller = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="payment_orders_created")
    enroller_role = models.CharField(max_length=20)
    coupon = models.ForeignKey(
        "coupons.Coupon",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_orders",
    )
    coupon_code = models.CharField(max_length=20, blank=True)
    original_amount = models.DecimalField(max_digits=12, decimal_places=2)
    discount_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    final_amount = models.DecimalField(max_digits=12, decimal_places=2)
    amount_minor = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=3)
    receipt = models.CharField(max_length=60, blank=True)
    payment = models.OneToOneField(
        Payment,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="order",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["enroller", "status"], name="paymentorder_enroller_idx"),
        ]

    def quote(self):
        return {
            "original_amount": self.original_amount,
            "discount_percentage": self.discount_percentage,
            "discount_amount": self.discount_amount,
            "final_amount": self.final_amount,
        }

    def __str__(self):
        return self.gateway_order_id
