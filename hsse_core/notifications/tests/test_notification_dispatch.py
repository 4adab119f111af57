import logging

import pytest

from hsse_core.audit.selectors import get_audit_trail
from hsse_core.events import services as event_services
from hsse_core.events.models import Event, EventStatus
from hsse_core.notifications.models import Notification
from hsse_core.notifications.services import NotificationService


pytestmark = pytest.mark.django_db


def _inbox(tenant, user):
    return list(Notification.objects.filter(tenant_id=tenant.id, recipient_id=user.id).order_by("created_at"))


def test_submit_notifies_dept_reps_but_not_the_actor(make_event, act, tenant, reporter, dept_rep):
    event = act(make_event(), reporter, "submit")

    inbox = _inbox(tenant, dept_rep)
    assert len(inbox) == 1
    assert inbox[0].template_kind == "event.submit"
    assert inbox[0].event_id == event.id
    assert event.reference in inbox[0].title
    assert inbox[0].meta["status"] == EventStatus.PENDING_DEPT_REP_REVIEW

    assert _inbox(tenant, reporter) == []


def test_unassigned_approval_goes_to_every_manager(
    make_event, act, tenant, reporter, dept_rep, expert, manager, member_factory
):
    from hsse_core.iam.roles import RoleCode

    other_manager = member_factory("line_manager_2", [RoleCode.MANAGER])
    event = act(act(make_event(), reporter, "submit"), dept_rep, "dept_rep_approve")
    act(event, expert, "expert_approve", severity=2)

    assert [n.template_kind for n in _inbox(tenant, manager)] == ["event.expert_approve"]
    assert [n.template_kind for n in _inbox(tenant, other_manager)] == ["event.expert_approve"]


def test_severity_decision_notifies_the_proposer(approved_incident, act, tenant, expert, hsse_manager):
    event = act(approved_incident, expert, "propose_severity", value=4, justification="More damage found")
    act(event, hsse_manager, "reject_severity", reason="Insufficient evidence")

    kinds = [n.template_kind for n in _inbox(tenant, expert)]
    assert "event.reject_severity" in kinds


def test_dispatch_failure_does_not_undo_the_transition(make_event, act, tenant, reporter, monkeypatch, caplog):
    class Exploding:
        def notify(self, *args, **kwargs):
            raise RuntimeError("smtp down")

    monkeypatch.setattr(event_services, "get_dispatcher", lambda: Exploding())
    event = make_event()

    with caplog.at_level(logging.ERROR, logger="hsse_core.events.services"):
        updated = act(event, reporter, "submit")

    assert updated.status == EventStatus.PENDING_DEPT_REP_REVIEW
    assert Event.objects.get(id=event.id).status == EventStatus.PENDING_DEPT_REP_REVIEW
    assert [e.action for e in get_audit_trail(tenant_id=tenant.id, event_id=event.id)] == ["create", "submit"]
    assert "Notification dispatch failed" in caplog.text


def test_null_dispatcher_drops_notifications(make_event, act, tenant, reporter, dept_rep, settings):
    settings.HSSE_NOTIFICATION_DISPATCHER = "hsse_core.notifications.dispatchers.NullNotificationDispatcher"

    act(make_event(), reporter, "submit")
    assert _inbox(tenant, dept_rep) == []


def test_inbox_api_lists_and_marks_read(make_event, act, tenant, reporter, dept_rep, client_for):
    act(make_event(), reporter, "submit")
    c = client_for(dept_rep)

    body = c.get("/api/v1/notifications/", {"is_read": "false"}).json()
    assert body["count"] == 1
    notif_id = body["results"][0]["id"]

    res = c.post(f"/api/v1/notifications/{notif_id}/read/")
    assert res.status_code == 200
    assert res.json()["is_read"] is True

    assert c.get("/api/v1/notifications/", {"is_read": "false"}).json()["count"] == 0

    # somebody else's notification is invisible
    assert client_for(reporter).post(f"/api/v1/notifications/{notif_id}/read/").status_code == 404


def test_notify_users_in_app_dedupes_recipients(tenant, dept_rep):
    rows = NotificationService.notify_users_in_app(
        tenant_id=tenant.id,
        event_id=None,
        template_kind="event.unknown_kind",
        user_ids=[dept_rep.id, dept_rep.id],
        reference="INC-2026-00001",
        status="closed",
    )
    assert len(rows) == 1
    assert rows[0].title == "Update on INC-2026-00001"
