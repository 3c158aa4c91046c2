from rest_framework import serializers

from apps.coupons.models import Coupon, CouponUsage, normalize_coupon_code


class CouponSerializer(serializers.ModelSerializer):
    created_by_username = serializers.CharField(source="created_by.username", read_only=True)
    is_expired = serializers.BooleanField(read_only=True)
    remaining_uses = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Coupon
        fields = [
            "id",
            "code",
            "description",
            "discount_percentage",
            "valid_from",
            "valid_to",
            "max_total_uses",
            "max_uses_per_user",
            "current_uses",
            "remaining_uses",
            "is_active",
            "is_expired",
            "created_by",
            "created_by_username",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "current_uses", "created_by", "created_at", "updated_at"]
        # Uniqueness is checked against the normalized code in validate_code.
        extra_kwargs = {"code": {"validators": []}}

    def validate_code(self, value):
        code = normalize_coupon_code(value)
        if self.instance is not None:
            if code != self.instance.code:
                raise serializers.ValidationError("Coupon code cannot be changed.")
            return code
        if len(code) < 3:
            raise serializers.ValidationError("Coupon code must be at least 3 characters.")
        if Coupon.objects.filter(code=code).exists():
            raise serializers.ValidationError("Coupon code already exists")
        return code

    def validate(self, attrs):
        valid_from = attrs.get("valid_from", getattr(self.instance, "valid_from", None))
        valid_to = attrs.get("valid_to", getattr(self.instance, "valid_to", None))
        if valid_from and valid_to and valid_to <= valid_from:
            raise serializers.ValidationError({"valid_to": "Valid to date must be after valid from date"})
        return attrs


class CouponUsageSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source="user.username", read_only=True)
    case_id = serializers.CharField(source="case.case_id", read_only=True)
    transaction_id = serializers.CharField(source="payment.transaction_id", read_only=True)

    class Meta:
        model = CouponUsage
        fields = ["id", "user", "username", "case", "case_id", "payment", "transaction_id", "discount_amount", "used_at"]
        read_only_fields = fields


class CouponStatsSerializer(serializers.Serializer):
    code = serializers.CharField()
    total_uses = serializers.IntegerField()
    max_total_uses = serializers.IntegerField(allow_null=True)
    remaining_uses = serializers.IntegerField(allow_null=True)
    total_discount_given = serializers.DecimalField(max_digits=16, decimal_places=2)
    unique_users_count = serializers.IntegerField()
    is_active = serializers.BooleanField()
    is_expired = serializers.BooleanField()
    recent_usage = CouponUsageSerializer(many=True)


class CouponPreviewSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=40)
    service_id = serializers.UUIDField()
    end_user_id = serializers.IntegerField(required=False, allow_null=True)

    def validate_code(self, value):
        return normalize_coupon_code(value)
