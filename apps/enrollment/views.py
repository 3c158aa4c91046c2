from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common.permissions import RolePermission
from apps.enrollment.policies import available_channels
from apps.enrollment.serializers import (
    EnrollmentCreateSerializer,
    EnrollmentVerifySerializer,
    PaymentOrderCreateSerializer,
    enrollment_payload,
    quote_payload,
)
from apps.enrollment.services import EnrollmentResult, complete_verified_enrollment, create_enrollment


class PaymentMethodListView(APIView):
    permission_classes = [RolePermission]
    capability_map = {"get": ["enrollment.create"]}

    def get(self, request):
        return Response(available_channels(request.user))


class EnrollmentCreateView(APIView):
    permission_classes = [RolePermission]
    capability_map = {"post": ["enrollment.create"]}

    def post(self, request):
        serializer = EnrollmentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        outcome = create_enrollment(
            enroller=request.user,
            service_id=data["service_id"],
            payment_method=data["payment_method"],
            end_user_id=data.get("end_user_id"),
            coupon_code=data.get("coupon_code"),
            cash_details=data.get("cash_details"),
            is_test_mode=data["is_test_mode"],
        )
        if isinstance(outcome, EnrollmentResult):
            return Response(enrollment_payload(outcome), status=status.HTTP_201_CREATED)
        return Response(quote_payload(outcome), status=status.HTTP_200_OK)


class PaymentOrderCreateView(APIView):
    permission_classes = [RolePermission]
    capability_map = {"post": ["enrollment.create"]}

    def post(self, request):
        serializer = PaymentOrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = create_enrollment(
            enroller=request.user,
            service_id=data["service_id"],
            payment_method=data["payment_method"],
            end_user_id=data.get("end_user_id"),
            coupon_code=data.get("coupon_code"),
            is_test_mode=data["is_test_mode"],
        )
        return Response(quote_payload(order), status=status.HTTP_200_OK)


class EnrollmentVerifyView(APIView):
    permission_classes = [RolePermission]
    capability_map = {"post": ["enrollment.create"]}

    def post(self, request):
        serializer = EnrollmentVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = complete_verified_enrollment(
            enroller=request.user,
            gateway_order_id=data["razorpay_order_id"],
            gateway_payment_id=data.get("razorpay_payment_id") or None,
            signature=data.get("razorpay_signature") or None,
        )
        response_status = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
        return Response(enrollment_payload(result), status=response_status)
