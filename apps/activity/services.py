import json

from django.core.serializers.json import DjangoJSONEncoder

from apps.activity.models import ActivityLog


def record_activity(*, actor, action, entity_type, entity_id, case=None, payload=None):
    # Decimal/UUID/datetime values are flattened to JSON-safe strings.
    safe_payload = json.loads(json.dumps(payload or {}, cls=DjangoJSONEncoder))
    return ActivityLog.objects.create(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        case=case,
        payload=safe_payload,
    )
