from django.contrib import admin

from hsse_core.notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("title", "recipient_id", "template_kind", "event_id", "is_read", "created_at")
    list_filter = ("tenant_id", "template_kind", "is_read")
    search_fields = ("title", "template_kind")
    ordering = ("-created_at",)
