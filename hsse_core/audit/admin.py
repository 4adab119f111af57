# hsse_core/audit/admin.py
from django.contrib import admin

from hsse_core.audit.models import AuditEntry


@admin.register(AuditEntry)
class AuditEntryAdmin(admin.ModelAdmin):
    list_display = (
        "action",
        "event_id",
        "from_status",
        "to_status",
        "tenant_id",
        "actor_id",
        "occurred_at",
    )
    list_filter = ("tenant_id", "action")
    search_fields = ("action", "event_id")
    readonly_fields = [f.name for f in AuditEntry._meta.fields]
    ordering = ("-occurred_at",)

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
