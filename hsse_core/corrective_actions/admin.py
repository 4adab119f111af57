# hsse_core/corrective_actions/admin.py
from __future__ import annotations

from django.contrib import admin

from hsse_core.corrective_actions.models import CorrectiveAction


@admin.register(CorrectiveAction)
class CorrectiveActionAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "tenant_id",
        "event",
        "title",
        "status",
        "assigned_to_id",
        "due_at",
        "completed_at",
        "verified_at",
        "return_count",
        "created_at",
    )
    list_filter = ("status",)
    search_fields = ("id", "title", "event__reference")
    ordering = ("-created_at",)

    readonly_fields = ("created_at", "updated_at", "return_count", "last_return_reason")
    list_select_related = ("event",)

    fieldsets = (
        ("Scope", {"fields": ("tenant_id", "event")}),
        ("Action", {"fields": ("title", "description", "status")}),
        ("Assignment", {"fields": ("assigned_to_id", "created_by_id")}),
        ("Timing", {"fields": ("due_at", "completed_at", "completion_notes")}),
        ("Verification", {"fields": ("verified_by_id", "verified_at", "return_count", "last_return_reason")}),
        ("Audit", {"fields": ("created_at", "updated_at")}),
    )
