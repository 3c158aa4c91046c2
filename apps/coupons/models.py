import uuid

from django.core.validators import MaxValueValidator, MinLengthValidator, MinValueValidator
from django.db import models
from django.utils import timezone


def normalize_coupon_code(value):
    return str(value or "").strip().upper()


class CouponRejection(models.TextChoices):
    INACTIVE = "coupon_inactive", "Coupon is inactive"
    NOT_YET_VALID = "coupon_not_yet_valid", "Coupon is not yet valid"
    EXPIRED = "coupon_expired", "Coupon has expired"
    LIMIT_REACHED = "coupon_limit_reached", "Coupon usage limit reached"
    PER_USER_LIMIT_REACHED = (
        "coupon_per_user_limit_reached",
        "You have already used this coupon the maximum number of times",
    )


class Coupon(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=20, unique=True, validators=[MinLengthValidator(3)])
    description = models.CharField(max_length=200, blank=True)
    discount_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(1), MaxValueValidator(100)],
    )
    valid_from = models.DateTimeField(default=timezone.now)
    valid_to = models.DateTimeField()
    max_total_uses = models.PositiveIntegerField(null=True, blank=True, validators=[MinValueValidator(1)])
    max_uses_per_user = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    current_uses = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True, db_index=True)
    created_by = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="coupons_created")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(discount_percentage__gte=1, discount_percentage__lte=100),
                name="coupon_discount_pct_range",
            ),
            models.CheckConstraint(condition=models.Q(valid_to__gt=models.F("valid_from")), name="coupon_valid_window"),
            models.CheckConstraint(condition=models.Q(max_uses_per_user__gte=1), name="coupon_per_user_gte_one"),
        ]

    def save(self, *args, **kwargs):
        self.code = normalize_coupon_code(self.code)
        super().save(*args, **kwargs)

    @property
    def is_expired(self):
        return timezone.now() > self.valid_to

    @property
    def remaining_uses(self):
        if self.max_total_uses is None:
            return None
        return max(0, self.max_total_uses - self.current_uses)

    def __str__(self):
        return self.code


class CouponUsage(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    coupon = models.ForeignKey(Coupon, on_delete=models.CASCADE, related_name="usage_history")
    user = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="coupon_usages")
    case = models.OneToOneField("cases.Case", on_delete=models.PROTECT, related_name="coupon_usage")
    payment = models.OneToOneField("payments.Payment", on_delete=models.PROTECT, related_name="coupon_usage")
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2)
    used_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["used_at"]
        indexes = [
            models.Index(fields=["coupon", "user"], name="couponusage_coupon_user_idx"),
        ]
