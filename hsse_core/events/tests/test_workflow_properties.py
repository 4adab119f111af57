import pytest

from hsse_core.audit.models import AuditEntry
from hsse_core.audit.selectors import get_audit_trail
from hsse_core.events.errors import Conflict, DomainRuleViolation, InvalidPayload, Unauthorized
from hsse_core.events.models import Event, EventStatus
from hsse_core.events.services import WorkflowService, submit_action
from hsse_core.events.store import EventStore
from hsse_core.events.workflow import transition


pytestmark = pytest.mark.django_db


def _count(tenant, event, **filters):
    return AuditEntry.objects.filter(tenant_id=tenant.id, event_id=event.id, **filters).count()


# ----------------------------
# Authorization
# ----------------------------
def test_unauthorized_action_leaves_event_unchanged(make_event, act, tenant, dept_rep):
    event = make_event()

    with pytest.raises(Unauthorized):
        act(event, dept_rep, "submit")

    fresh = Event.objects.get(id=event.id)
    assert fresh.status == EventStatus.NEW
    assert fresh.version == event.version
    assert _count(tenant, event) == 1  # creation only


def test_action_not_defined_for_status_is_unauthorized(make_event, act, reporter, expert):
    event = act(make_event(), reporter, "submit")

    # expert_approve is only defined in pending_review
    with pytest.raises(Unauthorized):
        act(event, expert, "expert_approve", severity=2)


def test_unknown_action_name_is_unauthorized(make_event, act, reporter):
    with pytest.raises(Unauthorized):
        act(make_event(), reporter, "teleport")


def test_submit_action_returns_typed_error_outcome(make_event, tenant, dept_rep):
    event = make_event()

    outcome = submit_action(tenant.id, event.id, dept_rep.id, "submit", {})

    assert not outcome.ok
    assert outcome.as_dict() == {
        "status": "error",
        "kind": "unauthorized",
        "message": Unauthorized.default_message,
    }


# ----------------------------
# Severity rules
# ----------------------------
def test_fatality_cannot_be_created_below_level_5(make_event):
    with pytest.raises(DomainRuleViolation):
        make_event(injury_classification="fatality", severity=4, override_reason="Contractor, not staff")


def test_fatality_expert_approval_below_5_is_refused_even_with_override(
    make_event, act, reporter, dept_rep, expert
):
    event = act(act(make_event(injury_classification="fatality"), reporter, "submit"), dept_rep, "dept_rep_approve")

    with pytest.raises(DomainRuleViolation):
        act(event, expert, "expert_approve", severity=4, override_reason="Natural causes")

    assert Event.objects.get(id=event.id).status == EventStatus.PENDING_REVIEW

    event = act(event, expert, "expert_approve", severity=5)
    assert event.severity == 5


def test_lost_time_injury_below_minimum_needs_override(make_event, act, tenant, reporter, dept_rep, expert):
    event = make_event(injury_classification="lost_time_injury")
    event = act(act(event, reporter, "submit"), dept_rep, "dept_rep_approve")

    with pytest.raises(InvalidPayload):
        act(event, expert, "expert_approve", severity=2)

    event = act(
        event,
        expert,
        "expert_approve",
        severity=2,
        override_reason="Medical review confirms light duty only",
    )
    assert event.status == EventStatus.PENDING_MANAGER_APPROVAL
    assert event.severity == 2

    last = get_audit_trail(tenant_id=tenant.id, event_id=event.id)[-1]
    assert last.action == "expert_approve"
    assert last.new_value["severity"] == 2
    assert last.new_value["override_reason"] == "Medical review confirms light duty only"


def test_propose_then_reject_restores_committed_severity(approved_incident, act, expert, hsse_manager):
    event = act(approved_incident, expert, "propose_severity", value=4, justification="Second casualty found")
    assert event.status == EventStatus.INVESTIGATION_PENDING
    assert event.severity == 3
    assert event.severity_pending_approval is True
    assert event.severity_proposed == 4

    with pytest.raises(DomainRuleViolation):
        act(event, expert, "propose_severity", value=2, justification="Changed my mind")

    event = act(event, hsse_manager, "reject_severity", reason="Not supported by evidence")
    assert event.status == EventStatus.INVESTIGATION_PENDING
    assert event.severity == 3
    assert event.severity_pending_approval is False
    assert event.severity_proposed is None
    assert event.severity_justification == ""


def test_propose_then_approve_potential_severity(approved_incident, act, expert, hsse_manager):
    event = act(
        approved_incident,
        expert,
        "propose_severity",
        field="potential_severity",
        value=5,
        justification="Could have been fatal",
    )
    event = act(event, hsse_manager, "approve_severity", field="potential_severity")

    assert event.potential_severity == 5
    assert event.potential_severity_pending_approval is False
    assert event.potential_severity_approved_by_id == hsse_manager.id
    assert event.severity == 3


def test_proposal_equal_to_current_is_refused(approved_incident, act, expert):
    with pytest.raises(DomainRuleViolation):
        act(approved_incident, expert, "propose_severity", value=3, justification="Same")


def test_reject_severity_without_pending_change(approved_incident, act, hsse_manager):
    with pytest.raises(DomainRuleViolation):
        act(approved_incident, hsse_manager, "reject_severity", reason="Nothing here")


def test_only_assigned_investigator_may_propose(approved_incident, act, member_factory, expert, investigator):
    from hsse_core.iam.roles import RoleCode

    bystander = member_factory("investigator_other", [RoleCode.INVESTIGATOR])
    event = act(approved_incident, expert, "assign_investigator", investigator_id=investigator.id)

    with pytest.raises(Unauthorized):
        act(event, bystander, "propose_severity", value=4, justification="Looks worse")

    event = act(event, investigator, "propose_severity", value=4, justification="Looks worse")
    assert event.severity_proposed_by_id == investigator.id


def _investigated(make_event, act, reporter, dept_rep, expert, manager, investigator, *, classification, severity):
    event = make_event(injury_classification=classification)
    event = act(act(event, reporter, "submit"), dept_rep, "dept_rep_approve")
    event = act(event, expert, "expert_approve", severity=severity, approver_id=manager.id)
    event = act(event, manager, "manager_approve")
    return act(event, expert, "assign_investigator", investigator_id=investigator.id)


def test_investigator_proposal_below_lost_time_minimum_needs_override(
    make_event, act, tenant, reporter, dept_rep, expert, manager, investigator, hsse_manager
):
    event = _investigated(
        make_event, act, reporter, dept_rep, expert, manager, investigator,
        classification="lost_time_injury", severity=4,
    )
    before = _count(tenant, event)

    with pytest.raises(InvalidPayload):
        act(event, investigator, "propose_severity", value=2, justification="Back at work next day")

    unchanged = Event.objects.get(id=event.id)
    assert unchanged.severity == 4
    assert unchanged.severity_pending_approval is False
    assert _count(tenant, event) == before

    event = act(
        event,
        investigator,
        "propose_severity",
        value=2,
        justification="Back at work next day",
        override_reason="documented rationale",
    )
    assert event.severity_pending_approval is True
    assert event.severity_proposed == 2
    assert event.severity_override_reason == "documented rationale"
    assert event.severity == 4

    event = act(event, hsse_manager, "approve_severity")
    assert event.severity == 2
    assert event.severity_pending_approval is False


def test_fatality_proposal_below_5_is_refused_even_with_override(
    make_event, act, tenant, reporter, dept_rep, expert, manager, investigator
):
    event = _investigated(
        make_event, act, reporter, dept_rep, expert, manager, investigator,
        classification="fatality", severity=5,
    )

    with pytest.raises(DomainRuleViolation):
        act(
            event,
            investigator,
            "propose_severity",
            value=4,
            justification="Heart attack, not work related",
            override_reason="Coroner report",
        )

    unchanged = Event.objects.get(id=event.id)
    assert unchanged.severity == 5
    assert unchanged.severity_pending_approval is False
    assert unchanged.severity_proposed is None


def test_fatality_blocks_approval_of_earlier_lower_proposal(approved_incident, act, investigator, expert, hsse_manager):
    event = act(approved_incident, expert, "assign_investigator", investigator_id=investigator.id)
    event = act(event, investigator, "propose_severity", value=2, justification="Minor bruising only")
    assert event.severity_pending_approval is True

    # reclassified after the proposal was made
    Event.objects.filter(id=event.id).update(injury_classification="fatality")

    with pytest.raises(DomainRuleViolation):
        act(event, hsse_manager, "approve_severity")

    unchanged = Event.objects.get(id=event.id)
    assert unchanged.severity == 3
    assert unchanged.severity_pending_approval is True


# ----------------------------
# Idempotence / concurrency
# ----------------------------
def test_repeated_action_is_a_noop_with_single_audit_entry(make_event, tenant, reporter):
    event = make_event()

    first = submit_action(tenant.id, event.id, reporter.id, "submit", {})
    second = submit_action(tenant.id, event.id, reporter.id, "submit", {})

    assert first.ok and not first.noop
    assert second.ok and second.noop
    assert second.new_state == first.new_state == EventStatus.PENDING_DEPT_REP_REVIEW
    assert _count(tenant, event, action="submit") == 1
    assert Event.objects.get(id=event.id).version == first.event.version


def test_stale_commit_raises_conflict(make_event, act, tenant, reporter):
    event = make_event()
    stale = EventStore.get(tenant_id=tenant.id, event_id=event.id)
    result = transition(
        stale,
        reporter.id,
        "submit",
        {},
        WorkflowService.build_context(event=stale, actor_id=reporter.id),
    )

    # a concurrent writer gets there first
    act(event, reporter, "submit")

    with pytest.raises(Conflict):
        EventStore.commit(event=stale, actor_id=reporter.id, result=result)

    fresh = Event.objects.get(id=event.id)
    assert fresh.version == stale.version + 1
    assert _count(tenant, event, action="submit") == 1


def test_conflict_retries_are_bounded(make_event, tenant, reporter, monkeypatch, settings):
    settings.HSSE_WORKFLOW_CONFLICT_RETRIES = 2
    event = make_event()
    calls = []

    def always_stale(**kwargs):
        calls.append(kwargs)
        raise Conflict()

    monkeypatch.setattr(EventStore, "commit", staticmethod(always_stale))

    with pytest.raises(Conflict) as exc:
        WorkflowService.apply_action(
            tenant_id=tenant.id,
            event_id=event.id,
            actor_id=reporter.id,
            action_name="submit",
        )

    assert len(calls) == 3
    assert "refresh" in exc.value.message.lower()


def test_conflict_is_retried_on_fresh_state(make_event, tenant, reporter, monkeypatch):
    event = make_event()
    original = EventStore.commit
    calls = []

    def flaky(**kwargs):
        calls.append(kwargs)
        if len(calls) == 1:
            raise Conflict()
        return original(**kwargs)

    monkeypatch.setattr(EventStore, "commit", staticmethod(flaky))

    updated, result = WorkflowService.apply_action(
        tenant_id=tenant.id,
        event_id=event.id,
        actor_id=reporter.id,
        action_name="submit",
    )
    assert len(calls) == 2
    assert updated.status == EventStatus.PENDING_DEPT_REP_REVIEW


# ----------------------------
# Scenarios
# ----------------------------
def test_rejection_dispute_and_uphold(make_event, act, tenant, reporter, dept_rep, expert):
    event = act(act(make_event(), reporter, "submit"), dept_rep, "dept_rep_approve")

    event = act(event, expert, "expert_reject", reason="Duplicate report")
    assert event.status == EventStatus.REJECTED

    event = act(event, reporter, "dispute", reason="Different shift, different location")
    assert event.status == EventStatus.REPORTER_DISPUTE
    assert event.dispute_count == 1

    event = act(event, expert, "uphold_rejection", reason="Same event, checked CCTV")
    assert event.status == EventStatus.REJECTED

    with pytest.raises(DomainRuleViolation):
        act(event, reporter, "dispute", reason="Still disagree")

    rejected = [e for e in get_audit_trail(tenant_id=tenant.id, event_id=event.id) if e.to_status == "rejected"]
    assert len(rejected) == 2
    assert [e.action for e in rejected] == ["expert_reject", "uphold_rejection"]

    event = act(event, reporter, "acknowledge_rejection")
    assert event.status == EventStatus.CLOSED
    assert event.closure_reason == "rejection_acknowledged"


def test_accepted_dispute_returns_to_review(make_event, act, reporter, dept_rep, expert):
    event = act(act(make_event(), reporter, "submit"), dept_rep, "dept_rep_approve")
    event = act(event, expert, "expert_reject", reason="Not HSSE related")
    event = act(event, reporter, "dispute", reason="Chemical exposure involved")

    event = act(event, expert, "accept_dispute")
    assert event.status == EventStatus.PENDING_REVIEW


def test_closed_event_accepts_no_actions(make_event, act, reporter, dept_rep, expert):
    event = act(act(make_event(), reporter, "submit"), dept_rep, "dept_rep_approve")
    event = act(event, expert, "no_investigation", justification="Minor")
    assert event.is_terminal

    assert WorkflowService.available_actions(
        tenant_id=event.tenant_id, event_id=event.id, actor_id=expert.id
    ) == []
    with pytest.raises(Unauthorized):
        act(event, expert, "expert_reject", reason="Too late")
