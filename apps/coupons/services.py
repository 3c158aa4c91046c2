"""Coupon eligibility rules and discount arithmetic.

Validity and per-user eligibility are recomputed from stored state on every
call. Usage is recorded through ``record_usage`` only, which appends one
``CouponUsage`` row per case and bumps ``current_uses`` with an ``F()``
expression in the same transaction.
"""
from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction
from django.db.models import Count, DecimalField, F, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from apps.coupons.models import Coupon, CouponRejection, CouponUsage, normalize_coupon_code

CENT = Decimal("0.01")


def find_coupon(code, *, lock=False):
    normalized = normalize_coupon_code(code)
    if not normalized:
        return None
    queryset = Coupon.objects.all()
    if lock:
        queryset = queryset.select_for_update()
    return queryset.filter(code=normalized).first()


def check_validity(coupon, now=None, *, pending_uses=0):
    now = now or timezone.now()
    if not coupon.is_active:
        return False, CouponRejection.INACTIVE
    if now < coupon.valid_from:
        return False, CouponRejection.NOT_YET_VALID
    if now > coupon.valid_to:
        return False, CouponRejection.EXPIRED
    if total_limit_reached(coupon, pending_uses):
        return False, CouponRejection.LIMIT_REACHED
    return True, None


def total_limit_reached(coupon, pending_uses=0):
    return coupon.max_total_uses is not None and coupon.current_uses + pending_uses >= coupon.max_total_uses


def check_user_eligibility(coupon, user, *, pending_uses=0):
    user_id = getattr(user, "pk", user)
    used = CouponUsage.objects.filter(coupon=coupon, user_id=user_id).count()
    if used + pending_uses >= coupon.max_uses_per_user:
        return False, CouponRejection.PER_USER_LIMIT_REACHED
    return True, None


def evaluate_coupon(coupon, *, user, now=None, pending_total=0, pending_for_user=0):
    """Full eligibility check.

    ``pending_total`` and ``pending_for_user`` count uses that are promised
    but not yet recorded, such as open payment orders quoted with this coupon.
    """
    valid, reason = check_validity(coupon, now, pending_uses=pending_total)
    if not valid:
        return False, reason
    return check_user_eligibility(coupon, user, pending_uses=pending_for_user)


def check_usage_limits(coupon, user):
    if total_limit_reached(coupon):
        return False, CouponRejection.LIMIT_REACHED
    return check_user_eligibility(coupon, user)


def compute_discount(coupon, original_amount):
    original = Decimal(str(original_amount)).quantize(CENT)
    percentage = Decimal(str(coupon.discount_percentage))
    # Rounded once, on the discount; the final amount is whatever remains.
    discount = (original * percentage / Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return {
        "original_amount": original,
        "discount_percentage": percentage,
        "discount_amount": discount.quantize(CENT),
        "final_amount": (original - discount).quantize(CENT),
    }


def record_usage(*, coupon, user, case, payment, discount_amount):
    with transaction.atomic():
        usage, created = CouponUsage.objects.get_or_create(
            case=case,
            defaults={
                "coupon": coupon,
                "user": user,
                "payment": payment,
                "discount_amount": discount_amount,
                "used_at": timezone.now(),
            },
        )
        if created:
            Coupon.objects.filter(pk=coupon.pk).update(
                current_uses=F("current_uses") + 1,
                updated_at=timezone.now(),
            )
    return usage, created


def coupon_stats(coupon, recent_limit=10):
    usage = coupon.usage_history.all()
    totals = usage.aggregate(
        total_discount_given=Coalesce(
            Sum("discount_amount"),
            Value(Decimal("0.00")),
            output_field=DecimalField(max_digits=16, decimal_places=2),
        ),
        unique_users_count=Count("user", distinct=True),
    )
    recent = usage.select_related("user", "case", "payment").order_by("-used_at")[:recent_limit]
    return {
        "code": coupon.code,
        "total_uses": coupon.current_uses,
        "max_total_uses": coupon.max_total_uses,
        "remaining_uses": coupon.remaining_uses,
        "total_discount_given": totals["total_discount_given"],
        "unique_users_count": totals["unique_users_count"],
        "is_active": coupon.is_active,
        "is_expired": coupon.is_expired,
        "recent_usage": list(recent),
    }
