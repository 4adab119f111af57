import pytest

from hsse_core.audit.models import AuditEntry, AuditEntryImmutable
from hsse_core.audit.services import AuditService


pytestmark = pytest.mark.django_db


def test_entries_are_append_only(make_event, tenant):
    event = make_event()
    entry = AuditEntry.objects.get(tenant_id=tenant.id, event_id=event.id)

    entry.action = "tampered"
    with pytest.raises(AuditEntryImmutable):
        entry.save()

    with pytest.raises(AuditEntryImmutable):
        entry.delete()

    assert AuditEntry.objects.get(id=entry.id).action == "create"


def test_log_defaults_values_to_empty_dicts(tenant):
    import uuid

    entry = AuditService.log(tenant_id=tenant.id, event_id=uuid.uuid4(), actor_id=None, action="create")
    assert entry.old_value == {}
    assert entry.new_value == {}


def test_audit_list_api_filters(make_event, act, reporter, client_for):
    event = act(make_event(), reporter, "submit")
    make_event(title="Another")
    c = client_for(reporter)

    rows = c.get("/api/v1/audit/entries/", {"event_id": str(event.id)}).json()
    assert [r["action"] for r in rows] == ["submit", "create"]

    rows = c.get("/api/v1/audit/entries/", {"action": "create"}).json()
    assert len(rows) == 2

    rows = c.get("/api/v1/audit/entries/", {"action": "submit", "actor_id": reporter.id}).json()
    assert len(rows) == 1
    assert rows[0]["timestamp"]

    assert c.get("/api/v1/audit/entries/", {"event_id": "not-a-uuid"}).status_code == 400
