import pytest

from hsse_core.corrective_actions.models import CorrectiveActionStatus


pytestmark = pytest.mark.django_db

BASE = "/api/v1/corrective-actions/"


@pytest.fixture
def created(client_for, approved_incident, dept_rep, reporter):
    res = client_for(dept_rep).post(
        BASE,
        {"event_id": str(approved_incident.id), "title": "Fix handrail", "assigned_to_id": reporter.id},
        format="json",
    )
    assert res.status_code == 201, res.content
    return res.json()


def test_member_without_role_cannot_create(client_for, approved_incident, reporter):
    res = client_for(reporter).post(BASE, {"event_id": str(approved_incident.id), "title": "x"}, format="json")
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "permission_denied"


def test_create_and_list(client_for, created, reporter, approved_incident):
    assert created["status"] == CorrectiveActionStatus.ASSIGNED
    assert created["event_reference"] == approved_incident.reference

    body = client_for(reporter).get(BASE, {"mine": "1"}).json()
    assert body["count"] == 1
    assert body["results"][0]["id"] == created["id"]


def test_assignee_works_the_action_but_cannot_verify_it(client_for, created, reporter, expert):
    c = client_for(reporter)
    assert c.post(f"{BASE}{created['id']}/start/").status_code == 200

    res = c.post(f"{BASE}{created['id']}/complete/", {"notes": "Bolted down"}, format="json")
    assert res.status_code == 200
    assert res.json()["status"] == CorrectiveActionStatus.COMPLETED

    assert c.post(f"{BASE}{created['id']}/verify/").status_code == 403
    assert c.post(f"{BASE}{created['id']}/cancel/").status_code == 403

    res = client_for(expert).post(f"{BASE}{created['id']}/verify/")
    assert res.status_code == 200
    assert res.json()["status"] == CorrectiveActionStatus.VERIFIED


def test_invalid_transition_maps_to_400(client_for, created, expert):
    res = client_for(expert).post(f"{BASE}{created['id']}/verify/")
    assert res.status_code == 400
    assert "COMPLETED" in res.json()["error"]["message"]


def test_return_requires_reason(client_for, created, reporter, expert):
    c = client_for(reporter)
    c.post(f"{BASE}{created['id']}/start/")
    c.post(f"{BASE}{created['id']}/complete/")

    assert client_for(expert).post(f"{BASE}{created['id']}/return/", {}, format="json").status_code == 400

    res = client_for(expert).post(f"{BASE}{created['id']}/return/", {"reason": "Photo missing"}, format="json")
    assert res.status_code == 200
    assert res.json()["status"] == CorrectiveActionStatus.RETURNED_FOR_CORRECTION
    assert res.json()["return_count"] == 1


def test_closure_eligibility_endpoint(client_for, created, reporter, approved_incident):
    res = client_for(reporter).get(f"{BASE}closure-eligibility/", {"event_id": str(approved_incident.id)})
    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 1
    assert body["pending"] == ["Fix handrail"]
    assert body["can_request_closure"] is False

    assert client_for(reporter).get(f"{BASE}closure-eligibility/", {"event_id": "nope"}).status_code == 400


def test_unknown_action_is_404(client_for, expert):
    import uuid

    assert client_for(expert).post(f"{BASE}{uuid.uuid4()}/verify/").status_code == 404
