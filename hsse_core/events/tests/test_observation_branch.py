import pytest

from hsse_core.corrective_actions.services import CorrectiveActionService
from hsse_core.events.errors import DomainRuleViolation, InvalidPayload, Unauthorized
from hsse_core.events.models import EventStatus, EventType
from hsse_core.events.services import WorkflowService


pytestmark = pytest.mark.django_db


@pytest.fixture
def observation_with_dept_rep(make_event, act, reporter):
    """
    Level 3 observation waiting on the department representative.
    """
    event = make_event(event_type="observation", title="Blocked fire exit", severity=3)
    event = act(event, reporter, "submit")
    assert event.status == EventStatus.PENDING_DEPT_REP_APPROVAL
    return event


def _add_action(tenant, event, actor, assignee, title="Clear the exit route"):
    return CorrectiveActionService.create_action(
        tenant_id=tenant.id,
        event_id=event.id,
        actor_id=actor.id,
        title=title,
        assigned_to_id=assignee.id,
    )


def _finish_action(tenant, action, assignee):
    CorrectiveActionService.start_action(tenant_id=tenant.id, action_id=action.id, actor_id=assignee.id)
    CorrectiveActionService.complete_action(tenant_id=tenant.id, action_id=action.id, actor_id=assignee.id)


def test_low_severity_observation_closed_on_spot(make_event, act, reporter):
    event = act(make_event(event_type="observation", severity=1), reporter, "submit")
    assert event.status == EventStatus.SUBMITTED

    with pytest.raises(InvalidPayload):
        act(event, reporter, "close_on_spot")

    event = act(event, reporter, "close_on_spot", evidence_ref="photos/after.jpg")
    assert event.status == EventStatus.CLOSED
    assert event.closure_reason == "closed_on_spot"


def test_low_severity_observation_can_be_routed_to_dept_rep(make_event, act, reporter):
    event = act(make_event(event_type="observation", severity=2), reporter, "submit")
    event = act(event, reporter, "route_to_dept_rep")
    assert event.status == EventStatus.PENDING_DEPT_REP_APPROVAL


def test_observation_submit_requires_severity(make_event, act, reporter):
    with pytest.raises(InvalidPayload):
        act(make_event(event_type="observation"), reporter, "submit")


def test_actions_path_to_validation_and_closure(observation_with_dept_rep, act, tenant, dept_rep, expert):
    event = observation_with_dept_rep

    with pytest.raises(DomainRuleViolation):
        act(event, dept_rep, "approve_with_actions")

    ca = _add_action(tenant, event, dept_rep, dept_rep)
    event = act(event, dept_rep, "approve_with_actions")
    assert event.status == EventStatus.OBSERVATION_ACTIONS_PENDING

    with pytest.raises(DomainRuleViolation):
        act(event, dept_rep, "submit_for_validation")

    _finish_action(tenant, ca, dept_rep)
    event = act(event, dept_rep, "submit_for_validation")
    assert event.status == EventStatus.PENDING_HSSE_VALIDATION

    # completed is not enough, HSSE has to verify each action first
    with pytest.raises(DomainRuleViolation) as exc:
        act(event, expert, "validate_actions")
    assert "Clear the exit route" in exc.value.message

    CorrectiveActionService.verify_action(tenant_id=tenant.id, action_id=ca.id, actor_id=expert.id)
    event = act(event, expert, "validate_actions")
    assert event.status == EventStatus.CLOSED
    assert event.closure_reason == "actions_validated"


def test_validation_reject_returns_to_dept_rep(observation_with_dept_rep, act, tenant, dept_rep, expert):
    event = observation_with_dept_rep
    ca = _add_action(tenant, event, dept_rep, dept_rep)
    event = act(event, dept_rep, "approve_with_actions")
    _finish_action(tenant, ca, dept_rep)
    event = act(event, dept_rep, "submit_for_validation")

    with pytest.raises(InvalidPayload):
        act(event, expert, "validation_reject")

    CorrectiveActionService.return_action(
        tenant_id=tenant.id, action_id=ca.id, actor_id=expert.id, reason="Exit still partly blocked"
    )
    event = act(event, expert, "validation_reject", reason="Exit still partly blocked")
    assert event.status == EventStatus.OBSERVATION_ACTIONS_PENDING

    # HSSE cannot close it out from under the department rep
    expert_actions = WorkflowService.available_actions(tenant_id=tenant.id, event_id=event.id, actor_id=expert.id)
    assert "accept_rejection" not in expert_actions
    with pytest.raises(Unauthorized):
        act(event, expert, "accept_rejection")

    available = WorkflowService.available_actions(tenant_id=tenant.id, event_id=event.id, actor_id=dept_rep.id)
    assert "submit_for_validation" in available

    with pytest.raises(DomainRuleViolation):
        act(event, dept_rep, "submit_for_validation")

    _finish_action(tenant, ca, dept_rep)
    event = act(event, dept_rep, "submit_for_validation")
    assert event.status == EventStatus.PENDING_HSSE_VALIDATION


def test_rejection_review_can_return_to_dept_rep(observation_with_dept_rep, act, dept_rep, expert):
    event = act(observation_with_dept_rep, dept_rep, "dept_rep_reject", reason="Not our area")
    assert event.status == EventStatus.PENDING_HSSE_REJECTION_REVIEW

    event = act(event, expert, "return_to_dept_rep", reason="Check the site map again")
    assert event.status == EventStatus.RETURNED_TO_DEPT_REP
    assert event.dept_rep_reject_locked is False


def test_mandatory_action_removes_dept_rep_reject(observation_with_dept_rep, act, tenant, dept_rep, expert):
    event = act(observation_with_dept_rep, dept_rep, "dept_rep_reject", reason="Not our area")
    assert event.status == EventStatus.PENDING_HSSE_REJECTION_REVIEW

    event = act(event, expert, "require_mandatory_action", reason="Your area per site map")
    assert event.status == EventStatus.PENDING_DEPT_REP_MANDATORY_ACTION
    assert event.dept_rep_reject_locked is True

    available = WorkflowService.available_actions(tenant_id=tenant.id, event_id=event.id, actor_id=dept_rep.id)
    assert "dept_rep_reject" not in available
    assert set(available) == {"approve_with_actions", "escalate_to_hsse"}

    with pytest.raises(Unauthorized):
        act(event, dept_rep, "dept_rep_reject", reason="Still not ours")

    # the lock survives a round trip through HSSE review
    event = act(event, dept_rep, "escalate_to_hsse", reason="Needs contractor")
    event = act(event, expert, "return_to_dept_rep", reason="Handle it locally")
    assert event.status == EventStatus.RETURNED_TO_DEPT_REP

    with pytest.raises(DomainRuleViolation):
        act(event, dept_rep, "dept_rep_reject", reason="Still not ours")


def test_hsse_accepts_rejection_and_closes(observation_with_dept_rep, act, dept_rep, hsse_manager):
    event = act(observation_with_dept_rep, dept_rep, "dept_rep_reject", reason="Already fixed")
    event = act(event, hsse_manager, "accept_rejection")
    assert event.status == EventStatus.CLOSED
    assert event.closure_reason == "rejection_accepted"


def test_escalation_accepted_as_observation(observation_with_dept_rep, act, tenant, dept_rep, expert):
    event = act(observation_with_dept_rep, dept_rep, "escalate_to_hsse", reason="Recurring")
    assert event.status == EventStatus.PENDING_HSSE_ESCALATION_REVIEW

    event = act(event, expert, "accept_as_observation")
    assert event.status == EventStatus.ACCEPTED_AS_OBSERVATION

    _add_action(tenant, event, expert, dept_rep)
    event = act(event, expert, "approve_with_actions")
    assert event.status == EventStatus.OBSERVATION_ACTIONS_PENDING


def test_escalation_upgraded_to_incident(observation_with_dept_rep, act, dept_rep, expert, manager):
    event = act(observation_with_dept_rep, dept_rep, "escalate_to_hsse", reason="Someone got hurt")
    event = act(event, expert, "upgrade_to_incident", reason="First aid case")

    assert event.status == EventStatus.UPGRADED_TO_INCIDENT
    assert event.event_type == EventType.INCIDENT
    assert event.reference.startswith("OBS-")

    event = act(event, expert, "expert_approve", severity=3, approver_id=manager.id)
    assert event.status == EventStatus.PENDING_MANAGER_APPROVAL
