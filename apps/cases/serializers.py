from rest_framework import serializers

from apps.cases.models import Case


class CaseSerializer(serializers.ModelSerializer):
    end_user_name = serializers.CharField(source="end_user.display_name", read_only=True)
    service_name = serializers.CharField(source="service.name", read_only=True)
    enrolled_by_username = serializers.CharField(source="enrolled_by.username", read_only=True, default=None)

    class Meta:
        model = Case
        fields = [
            "id",
            "case_id",
            "end_user",
            "end_user_name",
            "service",
            "service_name",
            "employee",
            "status",
            "current_step",
            "deadline",
            "notes",
            "documents",
            "enrolled_by",
            "enrolled_by_username",
            "enrollment_type",
            "enrolled_at",
            "created_at",
        ]
        read_only_fields = fields
