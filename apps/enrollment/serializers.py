from rest_framework import serializers

from apps.cases.serializers import CaseSerializer
from apps.payments.models import PaymentMethod
from apps.payments.serializers import DiscountSerializer, PaymentOrderSerializer, PaymentSerializer

ENROLLMENT_METHODS = [PaymentMethod.RAZORPAY, PaymentMethod.CASH, PaymentMethod.TEST_PAYMENT]
GATEWAY_ORDER_METHODS = [PaymentMethod.RAZORPAY, PaymentMethod.TEST_PAYMENT]


class CashDetailsSerializer(serializers.Serializer):
    receipt_number = serializers.CharField(required=False, allow_blank=True, max_length=60)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class EnrollmentCreateSerializer(serializers.Serializer):
    end_user_id = serializers.IntegerField(required=False, allow_null=True)
    service_id = serializers.UUIDField()
    payment_method = serializers.ChoiceField(choices=[(m.value, m.label) for m in ENROLLMENT_METHODS])
    cash_details = CashDetailsSerializer(required=False)
    coupon_code = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=40)
    is_test_mode = serializers.BooleanField(required=False, default=False)


class PaymentOrderCreateSerializer(serializers.Serializer):
    end_user_id = serializers.IntegerField(required=False, allow_null=True)
    service_id = serializers.UUIDField()
    payment_method = serializers.ChoiceField(
        choices=[(m.value, m.label) for m in GATEWAY_ORDER_METHODS],
        required=False,
        default=PaymentMethod.RAZORPAY,
    )
    coupon_code = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=40)
    is_test_mode = serializers.BooleanField(required=False, default=False)


class EnrollmentVerifySerializer(serializers.Serializer):
    razorpay_order_id = serializers.CharField(max_length=80)
    razorpay_payment_id = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=80)
    razorpay_signature = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=256)


def enrollment_payload(result):
    return {
        "case": CaseSerializer(result.case).data,
        "payment": PaymentSerializer(result.payment).data,
        "service": result.service.summary(),
    }


def quote_payload(order):
    coupon = None
    discount = None
    if order.coupon_code:
        coupon = {
            "id": str(order.coupon_id) if order.coupon_id else None,
            "code": order.coupon_code,
            "discount_percentage": order.discount_percentage,
        }
        discount = DiscountSerializer(order.quote()).data
    return {
        "requires_payment_verification": True,
        "order": PaymentOrderSerializer(order).data,
        "service": order.service.summary(),
        "discount": discount,
        "coupon": coupon,
        "end_user_id": order.end_user_id,
        "enroller_id": order.enroller_id,
        "enroller_role": order.enroller_role,
    }
