from rest_framework import serializers

from apps.payments.models import Payment, PaymentMethod, PaymentOrder, PaymentStatus


class PaymentSerializer(serializers.ModelSerializer):
    case_id = serializers.CharField(source="case.case_id", read_only=True)
    end_user_name = serializers.CharField(source="end_user.display_name", read_only=True)
    end_user_email = serializers.CharField(source="end_user.email", read_only=True)
    service_name = serializers.CharField(source="service.name", read_only=True)
    enrolled_by_username = serializers.CharField(source="enrolled_by.username", read_only=True, default=None)
    cash_payment_details = serializers.SerializerMethodField()

    class Meta:
        model = Payment
        fields = [
            "id",
            "case",
            "case_id",
            "end_user",
            "end_user_name",
            "end_user_email",
            "service",
            "service_name",
            "amount",
            "original_amount",
            "discount_amount",
            "discount_percentage",
            "tax_amount",
            "coupon",
            "coupon_code",
            "transaction_id",
            "gateway_order_id",
            "payment_method",
            "status",
            "invoice_number",
            "cash_payment_details",
            "enrolled_by",
            "enrolled_by_username",
            "enroller_role",
            "initiated_from",
            "payment_date",
            "created_at",
        ]
        read_only_fields = fields

    def get_cash_payment_details(self, obj):
        if not obj.is_cash:
            return None
        return {
            "received_by": obj.cash_received_by_id,
            "received_at": obj.cash_received_at,
            "receipt_number": obj.cash_receipt_number,
            "notes": obj.cash_notes,
        }


class PaymentOrderSerializer(serializers.ModelSerializer):
    id = serializers.CharField(source="gateway_order_id", read_only=True)
    amount = serializers.IntegerField(source="amount_minor", read_only=True)
    test_mode = serializers.BooleanField(source="is_test_mode", read_only=True)

    class Meta:
        model = PaymentOrder
        fields = ["id", "amount", "currency", "receipt", "status", "test_mode"]
        read_only_fields = fields


class DiscountSerializer(serializers.Serializer):
    original_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    discount_percentage = serializers.DecimalField(max_digits=5, decimal_places=2)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    final_amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class PaymentHistoryQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=PaymentStatus.choices, required=False)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    q = serializers.CharField(required=False, allow_blank=True, max_length=100)

    def validate(self, attrs):
        date_from = attrs.get("date_from")
        date_to = attrs.get("date_to")
        if date_from and date_to and date_from > date_to:
            raise serializers.ValidationError({"date_from": "date_from must be before or equal to date_to."})
        return attrs
