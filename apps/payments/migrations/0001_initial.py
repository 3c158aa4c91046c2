import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

PAYMENT_METHOD_CHOICES = [
    ("razorpay", "Razorpay"),
    ("cash", "Cash"),
    ("test_payment", "Test Payment"),
    ("employee_enrollment", "Employee Enrollment"),
    ("agent_enrollment", "Agent Enrollment"),
    ("admin_enrollment", "Admin Enrollment"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("cases", "0001_initial"),
        ("catalog", "0001_initial"),
        ("coupons", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("original_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("discount_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("discount_percentage", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("tax_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("coupon_code", models.CharField(blank=True, max_length=20)),
                ("transaction_id", models.CharField(max_length=80, unique=True)),
                ("payment_method", models.CharField(choices=PAYMENT_METHOD_CHOICES, max_length=24)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("gateway_order_id", models.CharField(blank=True, max_length=80)),
                ("invoice_number", models.CharField(blank=True, max_length=60, null=True, unique=True)),
                ("cash_received_at", models.DateTimeField(blank=True, null=True)),
                ("cash_receipt_number", models.CharField(blank=True, max_length=60)),
                ("cash_notes", models.TextField(blank=True)),
                ("enroller_role", models.CharField(blank=True, max_length=20)),
                (
                    "initiated_from",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("admin_panel", "Admin Panel"),
                            ("employee_panel", "Employee Panel"),
                            ("agent_portal", "Agent Portal"),
                            ("associate_portal", "Associate Portal"),
                            ("end_user_portal", "End User Portal"),
                        ],
                        max_length=24,
                    ),
                ),
                ("payment_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "case",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="cases.case",
                    ),
                ),
                (
                    "cash_received_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="cash_payments_received",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "coupon",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to="coupons.coupon",
                    ),
                ),
                (
                    "end_user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "enrolled_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments_enrolled",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "service",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="catalog.service",
                    ),
                ),
            ],
            options={
                "ordering": ["-payment_date"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gte", 0)), name="payment_amount_gte_zero"),
                    models.CheckConstraint(
                        condition=models.Q(("discount_amount__gte", 0)),
                        name="payment_discount_gte_zero",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["status", "payment_date"], name="payment_status_date_idx"),
                    models.Index(fields=["end_user", "payment_date"], name="payment_end_user_date_idx"),
                    models.Index(fields=["enrolled_by", "payment_date"], name="payment_enrolled_by_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentOrder",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("gateway_order_id", models.CharField(max_length=80, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("created", "Created"), ("completed", "Completed")],
                        default="created",
                        max_length=16,
                    ),
                ),
                ("payment_method", models.CharField(choices=PAYMENT_METHOD_CHOICES, max_length=24)),
                ("is_test_mode", models.BooleanField(default=False)),
                ("enroller_role", models.CharField(max_length=20)),
                ("coupon_code", models.CharField(blank=True, max_length=20)),
                ("original_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("discount_percentage", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("discount_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("final_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("amount_minor", models.PositiveBigIntegerField()),
                ("currency", models.CharField(max_length=3)),
                ("receipt", models.CharField(blank=True, max_length=60)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "coupon",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payment_orders",
                        to="coupons.coupon",
                    ),
                ),
                (
                    "end_user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "enroller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_orders_created",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "payment",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="order",
                        to="payments.payment",
                    ),
                ),
                (
                    "service",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_orders",
                        to="catalog.service",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["enroller", "status"], name="paymentorder_enroller_idx")],
            },
        ),
    ]
