from django.contrib import admin

from apps.coupons.models import Coupon, CouponUsage


class CouponUsageInline(admin.TabularInline):
    model = CouponUsage
    extra = 0
    readonly_fields = ("user", "case", "payment", "discount_amount", "used_at")
    can_delete = False


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "discount_percentage",
        "valid_from",
        "valid_to",
        "current_uses",
        "max_total_uses",
        "max_uses_per_user",
        "is_active",
    )
    list_filter = ("is_active",)
    search_fields = ("code", "description")
    readonly_fields = ("current_uses", "created_at", "updated_at")
    inlines = [CouponUsageInline]


@admin.register(CouponUsage)
class CouponUsageAdmin(admin.ModelAdmin):
    list_display = ("coupon", "user", "case", "payment", "discount_amount", "used_at")
    search_fields = ("coupon__code", "user__username", "case__case_id")
    readonly_fields = ("coupon", "user", "case", "payment", "discount_amount", "used_at")
