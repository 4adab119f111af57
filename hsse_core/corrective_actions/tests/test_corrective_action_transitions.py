import pytest
from django.core.exceptions import ValidationError

from hsse_core.audit.selectors import get_audit_trail
from hsse_core.corrective_actions.models import CorrectiveActionStatus
from hsse_core.corrective_actions.selectors import closure_eligibility
from hsse_core.corrective_actions.services import CorrectiveActionService


pytestmark = pytest.mark.django_db


@pytest.fixture
def event(approved_incident):
    return approved_incident


@pytest.fixture
def create(tenant, event, expert, dept_rep):
    def _create(title="Replace worn sling"):
        return CorrectiveActionService.create_action(
            tenant_id=tenant.id,
            event_id=event.id,
            actor_id=expert.id,
            title=title,
            assigned_to_id=dept_rep.id,
        )

    return _create


def test_happy_path_assigned_to_verified(create, tenant, dept_rep, expert):
    ca = create()
    assert ca.status == CorrectiveActionStatus.ASSIGNED
    assert ca.is_open

    ca = CorrectiveActionService.start_action(tenant_id=tenant.id, action_id=ca.id, actor_id=dept_rep.id)
    assert ca.status == CorrectiveActionStatus.IN_PROGRESS

    ca = CorrectiveActionService.complete_action(
        tenant_id=tenant.id, action_id=ca.id, actor_id=dept_rep.id, notes="New sling fitted"
    )
    assert ca.status == CorrectiveActionStatus.COMPLETED
    assert ca.completed_at is not None
    assert ca.completion_notes == "New sling fitted"

    ca = CorrectiveActionService.verify_action(tenant_id=tenant.id, action_id=ca.id, actor_id=expert.id)
    assert ca.status == CorrectiveActionStatus.VERIFIED
    assert ca.verified_by_id == expert.id


def test_complete_requires_in_progress(create, tenant, dept_rep):
    ca = create()
    with pytest.raises(ValidationError):
        CorrectiveActionService.complete_action(tenant_id=tenant.id, action_id=ca.id, actor_id=dept_rep.id)


def test_repeated_calls_are_idempotent(create, tenant, dept_rep, expert):
    ca = create()
    CorrectiveActionService.start_action(tenant_id=tenant.id, action_id=ca.id, actor_id=dept_rep.id)
    CorrectiveActionService.start_action(tenant_id=tenant.id, action_id=ca.id, actor_id=dept_rep.id)

    done = CorrectiveActionService.complete_action(tenant_id=tenant.id, action_id=ca.id, actor_id=dept_rep.id)
    again = CorrectiveActionService.complete_action(tenant_id=tenant.id, action_id=ca.id, actor_id=dept_rep.id)
    assert again.completed_at == done.completed_at

    trail = get_audit_trail(tenant_id=tenant.id, event_id=ca.event_id)
    assert [e.action for e in trail].count("corrective_action.started") == 1
    assert [e.action for e in trail].count("corrective_action.completed") == 1


def test_return_for_correction(create, tenant, dept_rep, expert):
    ca = create()
    CorrectiveActionService.start_action(tenant_id=tenant.id, action_id=ca.id, actor_id=dept_rep.id)
    CorrectiveActionService.complete_action(tenant_id=tenant.id, action_id=ca.id, actor_id=dept_rep.id)

    with pytest.raises(ValidationError):
        CorrectiveActionService.return_action(tenant_id=tenant.id, action_id=ca.id, actor_id=expert.id, reason=" ")

    ca = CorrectiveActionService.return_action(
        tenant_id=tenant.id, action_id=ca.id, actor_id=expert.id, reason="Sling not certified"
    )
    assert ca.status == CorrectiveActionStatus.RETURNED_FOR_CORRECTION
    assert ca.return_count == 1
    assert ca.completed_at is None
    assert ca.is_open

    ca = CorrectiveActionService.start_action(tenant_id=tenant.id, action_id=ca.id, actor_id=dept_rep.id)
    assert ca.status == CorrectiveActionStatus.IN_PROGRESS


def test_cancel_rules(create, tenant, dept_rep, expert):
    ca = create()
    ca = CorrectiveActionService.cancel_action(tenant_id=tenant.id, action_id=ca.id, actor_id=expert.id)
    assert ca.status == CorrectiveActionStatus.CANCELLED

    with pytest.raises(ValidationError):
        CorrectiveActionService.start_action(tenant_id=tenant.id, action_id=ca.id, actor_id=dept_rep.id)

    other = create("Toolbox talk")
    CorrectiveActionService.start_action(tenant_id=tenant.id, action_id=other.id, actor_id=dept_rep.id)
    CorrectiveActionService.complete_action(tenant_id=tenant.id, action_id=other.id, actor_id=dept_rep.id)
    with pytest.raises(ValidationError):
        CorrectiveActionService.cancel_action(tenant_id=tenant.id, action_id=other.id, actor_id=expert.id)


def test_changes_are_audited_on_the_event(create, tenant, event, dept_rep):
    ca = create()
    CorrectiveActionService.start_action(tenant_id=tenant.id, action_id=ca.id, actor_id=dept_rep.id)

    entries = [e for e in get_audit_trail(tenant_id=tenant.id, event_id=event.id) if e.action.startswith("corrective_")]
    assert [e.action for e in entries] == ["corrective_action.created", "corrective_action.started"]
    started = entries[1]
    assert started.old_value["status"] == "assigned"
    assert started.new_value["status"] == "in_progress"
    assert started.from_status == started.to_status == event.status


def test_closure_eligibility_ignores_cancelled(create, tenant, event, dept_rep, expert):
    assert closure_eligibility(tenant_id=tenant.id, event_id=event.id).all_verified

    keep = create("Guard rail")
    drop = create("Duplicate")
    CorrectiveActionService.cancel_action(tenant_id=tenant.id, action_id=drop.id, actor_id=expert.id)

    elig = closure_eligibility(tenant_id=tenant.id, event_id=event.id)
    assert elig.total == 1
    assert elig.pending == ("Guard rail",)
    assert not elig.all_verified
    assert not elig.all_completed

    CorrectiveActionService.start_action(tenant_id=tenant.id, action_id=keep.id, actor_id=dept_rep.id)
    CorrectiveActionService.complete_action(tenant_id=tenant.id, action_id=keep.id, actor_id=dept_rep.id)
    elig = closure_eligibility(tenant_id=tenant.id, event_id=event.id)
    assert elig.all_completed
    assert not elig.all_verified


def test_cannot_add_actions_to_closed_event(make_event, act, tenant, reporter, dept_rep, expert):
    event = act(act(make_event(), reporter, "submit"), dept_rep, "dept_rep_approve")
    event = act(event, expert, "no_investigation", justification="Minor")

    with pytest.raises(ValidationError):
        CorrectiveActionService.create_action(
            tenant_id=tenant.id, event_id=event.id, actor_id=expert.id, title="Too late"
        )


def test_event_from_other_tenant_is_rejected(create, other_tenant, event, expert):
    with pytest.raises(ValidationError):
        CorrectiveActionService.create_action(
            tenant_id=other_tenant.id, event_id=event.id, actor_id=expert.id, title="Cross tenant"
        )
