# hsse_core/events/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from hsse_core.events import severity as sev
from hsse_core.events.models import Event, EventType, InjuryClassification, Investigation


class InvestigationSerializer(serializers.ModelSerializer):
    is_active = serializers.BooleanField(read_only=True)

    class Meta:
        model = Investigation
        fields = [
            "investigator_id",
            "assigned_by_id",
            "assignment_date",
            "assignment_notes",
            "started_at",
            "is_active",
        ]
        read_only_fields = fields


class EventSerializer(serializers.ModelSerializer):
    investigation = serializers.SerializerMethodField()
    severity_change = serializers.SerializerMethodField()
    potential_severity_change = serializers.SerializerMethodField()

    class Meta:
        model = Event
        fields = [
            "id",
            "tenant_id",
            "reference",
            "event_type",
            "subtype",
            "title",
            "description",
            "department",
            "injury_classification",
            "erp_activated",
            "status",
            "status_changed_at",
            "version",
            "severity",
            "potential_severity",
            "severity_change",
            "potential_severity_change",
            "reporter_id",
            "approver_id",
            "investigation_locked",
            "approved_by_id",
            "approved_at",
            "closure_approved_by_id",
            "closure_approved_at",
            "closure_reason",
            "resubmission_count",
            "dispute_count",
            "dept_rep_reject_locked",
            "last_action",
            "investigation",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_investigation(self, obj: Event):
        try:
            return InvestigationSerializer(obj.investigation).data
        except Investigation.DoesNotExist:
            return None

    @staticmethod
    def _change(obj: Event, field: str):
        state = sev.read_state(obj, field)
        if isinstance(state, sev.Committed):
            return {"state": "committed", "value": state.value}
        return {
            "state": "proposed",
            "current": state.current,
            "proposed": state.proposed,
            "justification": state.justification,
            "override_reason": state.override_reason,
            "proposed_by_id": state.proposed_by_id,
        }

    def get_severity_change(self, obj: Event):
        return self._change(obj, "severity")

    def get_potential_severity_change(self, obj: Event):
        return self._change(obj, "potential_severity")


class EventCreateSerializer(serializers.Serializer):
    event_type = serializers.ChoiceField(choices=EventType.choices)
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    subtype = serializers.CharField(required=False, allow_blank=True, default="", max_length=64)
    department = serializers.CharField(required=False, allow_blank=True, default="", max_length=128)
    injury_classification = serializers.ChoiceField(
        choices=InjuryClassification.choices, required=False, default=InjuryClassification.NONE
    )
    erp_activated = serializers.BooleanField(required=False, default=False)
    severity = serializers.IntegerField(required=False, allow_null=True, min_value=1, max_value=5)
    potential_severity = serializers.IntegerField(required=False, allow_null=True, min_value=1, max_value=5)
    approver_id = serializers.IntegerField(required=False, allow_null=True)
    override_reason = serializers.CharField(required=False, allow_blank=True, default="")


class ActionRequestSerializer(serializers.Serializer):
    action = serializers.CharField(max_length=64)
    payload = serializers.DictField(required=False, default=dict)


class ActionResponseSerializer(serializers.Serializer):
    status = serializers.CharField()
    new_state = serializers.CharField()
    noop = serializers.BooleanField()
    event = EventSerializer()


class AvailableActionsSerializer(serializers.Serializer):
    event_id = serializers.UUIDField()
    status = serializers.CharField()
    actions = serializers.ListField(child=serializers.CharField())


class EventSummarySerializer(serializers.Serializer):
    id = serializers.UUIDField()
    reference = serializers.CharField()
    status = serializers.CharField()
    severity = serializers.IntegerField(allow_null=True)
    event_type = serializers.CharField()
    due_at = serializers.DateTimeField(allow_null=True)
    is_overdue = serializers.BooleanField()
