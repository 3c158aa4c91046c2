import csv

from django.http import HttpResponse
from django.utils import timezone
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.common.permissions import RolePermission
from apps.payments.history import (
    EXPORT_COLUMNS,
    build_receipt,
    export_row,
    filter_payments,
    payment_analytics,
    scoped_payments,
)
from apps.payments.serializers import PaymentHistoryQuerySerializer, PaymentSerializer


class PaymentViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = PaymentSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["payments.view"],
        "retrieve": ["payments.view"],
        "receipt": ["payments.view"],
        "analytics": ["payments.view"],
        "export": ["payments.export"],
    }

    def get_queryset(self):
        return scoped_payments(self.request.user)

    def filtered_queryset(self):
        query = PaymentHistoryQuerySerializer(data=self.request.query_params)
        query.is_valid(raise_exception=True)
        return filter_payments(self.get_queryset(), **query.validated_data)

    def list(self, request, *args, **kwargs):
        queryset = self.filtered_queryset()
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(queryset, many=True).data)

    @action(detail=True, methods=["get"])
    def receipt(self, request, pk=None):
        return Response(build_receipt(self.get_object()))

    @action(detail=False, methods=["get"])
    def analytics(self, request):
        return Response(payment_analytics(self.filtered_queryset()))

    @action(detail=False, methods=["get"])
    def export(self, request):
        queryset = self.filtered_queryset()
        response = HttpResponse(content_type="text/csv")
        filename = f"payments-{timezone.localdate():%Y%m%d}.csv"
        response["Content-Disposition"] = f'attachment; filename="{filename}"'

        writer = csv.writer(response)
        writer.writerow([label for _, label in EXPORT_COLUMNS])
        for payment in queryset.iterator():
            row = export_row(payment)
            writer.writerow([row[key] for key, _ in EXPORT_COLUMNS])
        return response
