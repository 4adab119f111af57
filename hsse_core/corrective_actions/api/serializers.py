# hsse_core/corrective_actions/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from hsse_core.corrective_actions.models import CorrectiveAction


class CorrectiveActionSerializer(serializers.ModelSerializer):
    is_overdue = serializers.BooleanField(read_only=True)
    event_reference = serializers.CharField(source="event.reference", read_only=True)

    class Meta:
        model = CorrectiveAction
        fields = [
            "id",
            "tenant_id",
            "event_id",
            "event_reference",
            "title",
            "description",
            "status",
            "assigned_to_id",
            "created_by_id",
            "due_at",
            "completed_at",
            "completion_notes",
            "verified_by_id",
            "verified_at",
            "return_count",
            "last_return_reason",
            "is_overdue",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CorrectiveActionCreateSerializer(serializers.Serializer):
    event_id = serializers.UUIDField()
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    assigned_to_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    due_at = serializers.DateTimeField(required=False, allow_null=True, default=None)


class CompleteActionSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ReturnActionSerializer(serializers.Serializer):
    reason = serializers.CharField()


class ClosureEligibilitySerializer(serializers.Serializer):
    event_id = serializers.UUIDField()
    total = serializers.IntegerField()
    open = serializers.IntegerField()
    completed = serializers.IntegerField()
    verified = serializers.IntegerField()
    pending = serializers.ListField(child=serializers.CharField())
    can_request_closure = serializers.BooleanField()
