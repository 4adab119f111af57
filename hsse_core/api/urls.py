# hsse_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from hsse_core.audit.api.views import AuditEntryViewSet
from hsse_core.corrective_actions.api.views import CorrectiveActionViewSet
from hsse_core.events.api.views import EventViewSet
from hsse_core.iam.api.me import MeView
from hsse_core.notifications.api.views import NotificationViewSet

router = DefaultRouter()

router.register(r"events", EventViewSet, basename="events")
router.register(r"corrective-actions", CorrectiveActionViewSet, basename="corrective-actions")
router.register(r"audit/entries", AuditEntryViewSet, basename="audit-entries")
router.register(r"notifications", NotificationViewSet, basename="notifications")

urlpatterns = [
    # /me
    path("me/", MeView.as_view(), name="me"),

    # Router URLs last (so explicit paths win if ever overlapping)
    *router.urls,
]
