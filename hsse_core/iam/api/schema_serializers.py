# hsse_core/iam/api/schema_serializers.py
from __future__ import annotations

from rest_framework import serializers


class MeUserSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    username = serializers.CharField(allow_null=True, required=False)
    email = serializers.EmailField(allow_null=True, required=False)
    is_superuser = serializers.BooleanField()


class MembershipSerializer(serializers.Serializer):
    tenant_id = serializers.UUIDField()
    tenant_code = serializers.CharField()
    tenant_name = serializers.CharField()
    roles = serializers.ListField(child=serializers.CharField())


class ActiveScopeSerializer(serializers.Serializer):
    tenant_id = serializers.UUIDField()
    roles = serializers.ListField(child=serializers.CharField())


class MeResponseSerializer(serializers.Serializer):
    user = MeUserSerializer()
    memberships = MembershipSerializer(many=True)
    active_scope = ActiveScopeSerializer(allow_null=True, required=False)
