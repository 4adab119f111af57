from rest_framework import serializers

from hsse_core.notifications.models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = [
            "id",
            "event_id",
            "template_kind",
            "title",
            "body",
            "is_read",
            "read_at",
            "created_at",
            "meta",
        ]
        read_only_fields = fields
