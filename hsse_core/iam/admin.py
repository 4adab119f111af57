from django.contrib import admin

from hsse_core.iam.models import RoleAssignment, TenantMember


class RoleAssignmentInline(admin.TabularInline):
    model = RoleAssignment
    extra = 0


@admin.register(TenantMember)
class TenantMemberAdmin(admin.ModelAdmin):
    list_display = ("id", "tenant", "user_id", "display_name", "is_active", "created_at")
    list_filter = ("tenant", "is_active")
    search_fields = ("display_name", "user_id")
    inlines = [RoleAssignmentInline]
