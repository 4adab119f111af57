# hsse_core/events/admin.py
from django.contrib import admin

from hsse_core.events.models import Event, Investigation


class InvestigationInline(admin.StackedInline):
    model = Investigation
    extra = 0
    can_delete = False
    readonly_fields = ("investigator_id", "assigned_by_id", "assignment_date", "assignment_notes", "started_at")


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    """
    Read-mostly: status changes go through the workflow service, never the admin.
    """
    list_display = ("reference", "event_type", "status", "severity", "department", "reporter_id", "created_at")
    list_filter = ("tenant_id", "event_type", "status", "severity", "severity_pending_approval")
    search_fields = ("reference", "title")
    ordering = ("-created_at",)
    inlines = [InvestigationInline]
    readonly_fields = (
        "reference",
        "status",
        "status_changed_at",
        "version",
        "severity",
        "potential_severity",
        "investigation_locked",
        "approved_by_id",
        "approved_at",
        "closure_approved_by_id",
        "closure_approved_at",
        "last_action",
        "last_action_fingerprint",
    )

    def has_delete_permission(self, request, obj=None):
        return False
