# hsse_core/audit/api/serializers.py
from rest_framework import serializers

from hsse_core.audit.models import AuditEntry


class AuditEntrySerializer(serializers.ModelSerializer):
    # Keep API field name "timestamp", mapped to occurred_at
    timestamp = serializers.DateTimeField(source="occurred_at", read_only=True)

    class Meta:
        model = AuditEntry
        fields = [
            "id",
            "tenant_id",
            "event_id",
            "actor_id",
            "action",
            "from_status",
            "to_status",
            "old_value",
            "new_value",
            "timestamp",
        ]
        read_only_fields = fields
