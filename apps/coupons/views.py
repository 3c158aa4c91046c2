from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.response import Response

from apps.accounts.models import UserRole
from apps.activity.services import record_activity
from apps.catalog.models import Service
from apps.common.exceptions import Forbidden, InvalidState
from apps.common.permissions import RolePermission, resolve_role
from apps.coupons.models import Coupon
from apps.coupons.serializers import CouponPreviewSerializer, CouponSerializer, CouponStatsSerializer
from apps.coupons.services import compute_discount, coupon_stats, evaluate_coupon, find_coupon
from apps.payments.serializers import DiscountSerializer

User = get_user_model()


class CouponViewSet(viewsets.ModelViewSet):
    queryset = Coupon.objects.select_related("created_by").order_by("-created_at")
    serializer_class = CouponSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["coupons.manage"],
        "retrieve": ["coupons.manage"],
        "create": ["coupons.manage"],
        "update": ["coupons.manage"],
        "partial_update": ["coupons.manage"],
        "destroy": ["coupons.manage"],
        "stats": ["coupons.manage"],
        "preview": ["coupons.preview"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        status_filter = self.request.query_params.get("status")
        now = timezone.now()
        if status_filter == "active":
            queryset = queryset.filter(is_active=True, valid_to__gte=now)
        elif status_filter == "inactive":
            queryset = queryset.filter(is_active=False)
        elif status_filter == "expired":
            queryset = queryset.filter(valid_to__lt=now)
        return queryset

    def perform_create(self, serializer):
        coupon = serializer.save(created_by=self.request.user)
        record_activity(
            actor=self.request.user,
            action="coupon.create",
            entity_type="coupon",
            entity_id=coupon.id,
            payload={"code": coupon.code, "discount_percentage": coupon.discount_percentage},
        )

    def perform_update(self, serializer):
        coupon = serializer.save()
        record_activity(
            actor=self.request.user,
            action="coupon.update",
            entity_type="coupon",
            entity_id=coupon.id,
            payload={"fields": sorted(serializer.validated_data.keys())},
        )

    def destroy(self, request, *args, **kwargs):
        coupon = self.get_object()
        if coupon.is_active:
            coupon.is_active = False
            coupon.save(update_fields=["is_active", "updated_at"])
            record_activity(
                actor=request.user,
                action="coupon.deactivate",
                entity_type="coupon",
                entity_id=coupon.id,
                payload={"code": coupon.code},
            )
        return Response(self.get_serializer(coupon).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["get"])
    def stats(self, request, pk=None):
        coupon = self.get_object()
        return Response(CouponStatsSerializer(coupon_stats(coupon)).data)

    @action(detail=False, methods=["post"], url_path="validate")
    def preview(self, request):
        serializer = CouponPreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        coupon = find_coupon(data["code"])
        if coupon is None:
            raise NotFound("Invalid coupon code")

        service = Service.objects.filter(pk=data["service_id"]).first()
        if service is None:
            raise NotFound("Service not found")
        if not service.is_active:
            raise InvalidState("Service is not active")

        end_user = request.user
        if data.get("end_user_id") and data["end_user_id"] != request.user.pk:
            if resolve_role(request.user) == UserRole.END_USER:
                raise Forbidden("You can only check coupons for your own account")
            end_user = User.objects.filter(pk=data["end_user_id"]).first()
            if end_user is None:
                raise NotFound("User not found")

        valid, reason = evaluate_coupon(coupon, user=end_user)
        if not valid:
            return Response(
                {
                    "success": False,
                    "valid": False,
                    "code": reason.value,
                    "reason": reason.label,
                    "detail": reason.label,
                    "fields": {},
                },
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(
            {
                "valid": True,
                "coupon": {
                    "code": coupon.code,
                    "discount_percentage": coupon.discount_percentage,
                    "description": coupon.description,
                },
                "discount": DiscountSerializer(compute_discount(coupon, service.price)).data,
            }
        )
