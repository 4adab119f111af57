# hsse_core/events/workflow.py
"""
Transition authority for the incident / observation lifecycle.

`transition()` is pure: it reads an Event (plus the context the service
gathered for it) and returns a TransitionResult describing what to persist,
what to audit and whom to notify. It never writes.

Authorization is a single static table, PERMISSIONS, keyed by
(status, action). Any pair missing from the table is Unauthorized.
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional
from uuid import UUID

from django.db import models
from django.utils import timezone

from hsse_core.audit.services import AuditDraft
from hsse_core.corrective_actions.selectors import ClosureEligibility
from hsse_core.events import severity as sev
from hsse_core.events.errors import DomainRuleViolation, InvalidPayload, Unauthorized
from hsse_core.events.models import Event, EventStatus, EventType, Investigation
from hsse_core.iam.roles import (
    ROLE_ASSIGNED_INVESTIGATOR,
    ROLE_DESIGNATED_APPROVER,
    ROLE_REPORTER,
    RoleCode,
)


class WorkflowAction(models.TextChoices):
    # Incident intake / screening
    SUBMIT = "submit", "Submit"
    DEPT_REP_APPROVE = "dept_rep_approve", "Dept Rep Approve"
    RETURN_TO_REPORTER = "return_to_reporter", "Return to Reporter"
    RESUBMIT = "resubmit", "Resubmit"
    EXPERT_REJECT = "expert_reject", "HSSE Expert Reject"
    DISPUTE = "dispute", "Dispute Rejection"
    UPHOLD_REJECTION = "uphold_rejection", "Uphold Rejection"
    ACCEPT_DISPUTE = "accept_dispute", "Accept Dispute"
    ACKNOWLEDGE_REJECTION = "acknowledge_rejection", "Acknowledge Rejection"
    EXPERT_APPROVE = "expert_approve", "HSSE Expert Approve"
    NO_INVESTIGATION = "no_investigation", "Close Without Investigation"

    # Manager approval
    MANAGER_APPROVE = "manager_approve", "Manager Approve"
    MANAGER_REJECT = "manager_reject", "Manager Reject"
    OVERRIDE_REJECTION = "override_rejection", "Override Manager Rejection"
    CONFIRM_REJECTION = "confirm_rejection", "Confirm Manager Rejection"

    # Investigation / closure
    ASSIGN_INVESTIGATOR = "assign_investigator", "Assign Investigator"
    START_INVESTIGATION = "start_investigation", "Start Investigation"
    REQUEST_CLOSURE = "request_closure", "Request Closure"
    REJECT_CLOSURE = "reject_closure", "Reject Closure"
    APPROVE_CLOSURE = "approve_closure", "Approve Closure"
    FINAL_CLOSE = "final_close", "Final Close"

    # Observation branch
    CLOSE_ON_SPOT = "close_on_spot", "Close on the Spot"
    ROUTE_TO_DEPT_REP = "route_to_dept_rep", "Route to Dept Rep"
    APPROVE_WITH_ACTIONS = "approve_with_actions", "Approve with Actions"
    ESCALATE_TO_HSSE = "escalate_to_hsse", "Escalate to HSSE"
    DEPT_REP_REJECT = "dept_rep_reject", "Dept Rep Reject"
    ACCEPT_AS_OBSERVATION = "accept_as_observation", "Accept as Observation"
    UPGRADE_TO_INCIDENT = "upgrade_to_incident", "Upgrade to Incident"
    RETURN_TO_DEPT_REP = "return_to_dept_rep", "Return to Dept Rep"
    ACCEPT_REJECTION = "accept_rejection", "Accept Dept Rep Rejection"
    REQUIRE_MANDATORY_ACTION = "require_mandatory_action", "Require Mandatory Action"
    SUBMIT_FOR_VALIDATION = "submit_for_validation", "Submit for Validation"
    VALIDATE_ACTIONS = "validate_actions", "Validate Actions"
    VALIDATION_REJECT = "validation_reject", "Reject Validation"

    # Severity change (status unchanged)
    PROPOSE_SEVERITY = "propose_severity", "Propose Severity Change"
    APPROVE_SEVERITY = "approve_severity", "Approve Severity Change"
    REJECT_SEVERITY = "reject_severity", "Reject Severity Change"


S = EventStatus
A = WorkflowAction

SEVERITY_ACTIONS = frozenset({A.PROPOSE_SEVERITY, A.APPROVE_SEVERITY, A.REJECT_SEVERITY})

_REPORTER = frozenset({ROLE_REPORTER})
_DEPT_REP = frozenset({RoleCode.DEPARTMENT_REPRESENTATIVE})
_EXPERT = frozenset({RoleCode.HSSE_EXPERT})
_HSSE_MANAGER = frozenset({RoleCode.HSSE_MANAGER})
_HSSE_OVERSIGHT = _EXPERT | _HSSE_MANAGER
_APPROVER = frozenset({ROLE_DESIGNATED_APPROVER})
_INVESTIGATOR = frozenset({ROLE_ASSIGNED_INVESTIGATOR})

PERMISSIONS: Dict[tuple[str, str], frozenset[str]] = {
    # Intake
    (S.NEW, A.SUBMIT): _REPORTER,
    (S.PENDING_DEPT_REP_REVIEW, A.DEPT_REP_APPROVE): _DEPT_REP,
    (S.PENDING_DEPT_REP_REVIEW, A.RETURN_TO_REPORTER): _DEPT_REP,
    (S.RETURNED_TO_REPORTER, A.RESUBMIT): _REPORTER,

    # HSSE screening
    (S.PENDING_REVIEW, A.RETURN_TO_REPORTER): _EXPERT,
    (S.PENDING_REVIEW, A.EXPERT_REJECT): _EXPERT,
    (S.PENDING_REVIEW, A.EXPERT_APPROVE): _EXPERT,
    (S.PENDING_REVIEW, A.NO_INVESTIGATION): _EXPERT,
    (S.REJECTED, A.DISPUTE): _REPORTER,
    (S.REJECTED, A.ACKNOWLEDGE_REJECTION): _REPORTER,
    (S.REPORTER_DISPUTE, A.UPHOLD_REJECTION): _EXPERT,
    (S.REPORTER_DISPUTE, A.ACCEPT_DISPUTE): _EXPERT,

    # Manager approval
    (S.PENDING_MANAGER_APPROVAL, A.MANAGER_APPROVE): _APPROVER,
    (S.PENDING_MANAGER_APPROVAL, A.MANAGER_REJECT): _APPROVER,
    (S.HSSE_MANAGER_ESCALATION, A.OVERRIDE_REJECTION): _HSSE_MANAGER,
    (S.HSSE_MANAGER_ESCALATION, A.CONFIRM_REJECTION): _HSSE_MANAGER,

    # Investigation
    (S.INVESTIGATION_PENDING, A.ASSIGN_INVESTIGATOR): _HSSE_OVERSIGHT,
    (S.INVESTIGATION_IN_PROGRESS, A.ASSIGN_INVESTIGATOR): _HSSE_OVERSIGHT,
    (S.INVESTIGATION_PENDING, A.START_INVESTIGATION): _INVESTIGATOR,
    (S.INVESTIGATION_IN_PROGRESS, A.REQUEST_CLOSURE): _INVESTIGATOR,

    # Closure
    (S.PENDING_CLOSURE, A.REJECT_CLOSURE): _HSSE_MANAGER,
    (S.PENDING_CLOSURE, A.APPROVE_CLOSURE): _HSSE_MANAGER,
    (S.PENDING_FINAL_CLOSURE, A.FINAL_CLOSE): _HSSE_MANAGER,

    # Observation branch
    (S.SUBMITTED, A.CLOSE_ON_SPOT): _REPORTER | _DEPT_REP,
    (S.SUBMITTED, A.ROUTE_TO_DEPT_REP): _REPORTER,
    (S.PENDING_DEPT_REP_MANDATORY_ACTION, A.APPROVE_WITH_ACTIONS): _DEPT_REP,
    (S.PENDING_DEPT_REP_MANDATORY_ACTION, A.ESCALATE_TO_HSSE): _DEPT_REP,
    (S.PENDING_HSSE_ESCALATION_REVIEW, A.ACCEPT_AS_OBSERVATION): _EXPERT,
    (S.PENDING_HSSE_ESCALATION_REVIEW, A.UPGRADE_TO_INCIDENT): _EXPERT,
    (S.PENDING_HSSE_ESCALATION_REVIEW, A.RETURN_TO_DEPT_REP): _EXPERT,
    (S.ACCEPTED_AS_OBSERVATION, A.APPROVE_WITH_ACTIONS): _DEPT_REP | _EXPERT,
    (S.UPGRADED_TO_INCIDENT, A.EXPERT_APPROVE): _EXPERT,
    (S.PENDING_HSSE_REJECTION_REVIEW, A.ACCEPT_REJECTION): _HSSE_OVERSIGHT,
    (S.PENDING_HSSE_REJECTION_REVIEW, A.REQUIRE_MANDATORY_ACTION): _HSSE_OVERSIGHT,
    (S.PENDING_HSSE_REJECTION_REVIEW, A.RETURN_TO_DEPT_REP): _HSSE_OVERSIGHT,
    (S.OBSERVATION_ACTIONS_PENDING, A.SUBMIT_FOR_VALIDATION): _DEPT_REP,
    (S.PENDING_HSSE_VALIDATION, A.VALIDATE_ACTIONS): _EXPERT,
    (S.PENDING_HSSE_VALIDATION, A.VALIDATION_REJECT): _EXPERT,
}

# Dept rep decision points; pending_dept_rep_mandatory_action has no reject
for _status in (S.PENDING_DEPT_REP_APPROVAL, S.RETURNED_TO_DEPT_REP):
    PERMISSIONS[(_status, A.APPROVE_WITH_ACTIONS)] = _DEPT_REP
    PERMISSIONS[(_status, A.ESCALATE_TO_HSSE)] = _DEPT_REP
    PERMISSIONS[(_status, A.DEPT_REP_REJECT)] = _DEPT_REP

SEVERITY_CHANGE_STATUSES = frozenset({
    S.PENDING_MANAGER_APPROVAL,
    S.HSSE_MANAGER_ESCALATION,
    S.INVESTIGATION_PENDING,
    S.INVESTIGATION_IN_PROGRESS,
    S.PENDING_CLOSURE,
    S.PENDING_DEPT_REP_APPROVAL,
    S.RETURNED_TO_DEPT_REP,
    S.PENDING_HSSE_ESCALATION_REVIEW,
    S.OBSERVATION_ACTIONS_PENDING,
    S.PENDING_HSSE_VALIDATION,
})

for _status in SEVERITY_CHANGE_STATUSES:
    PERMISSIONS[(_status, A.PROPOSE_SEVERITY)] = _EXPERT | _INVESTIGATOR
    PERMISSIONS[(_status, A.APPROVE_SEVERITY)] = _HSSE_MANAGER
    PERMISSIONS[(_status, A.REJECT_SEVERITY)] = _HSSE_MANAGER


# Recipient specs resolved by the service after commit:
#   "reporter" | "investigator" | "approver" | "proposer" | "role:<code>"
RECIPIENT_REPORTER = "reporter"
RECIPIENT_INVESTIGATOR = "investigator"
RECIPIENT_APPROVER = "approver"
RECIPIENT_PROPOSER = "proposer"


def role_recipient(role: str) -> str:
    return f"role:{role}"


@dataclass(frozen=True)
class NotificationRequest:
    template_kind: str
    recipients: tuple[str, ...]


@dataclass(frozen=True)
class TransitionContext:
    """
    Everything transition() needs besides the event itself.
    `roles` are the actor's configured tenant roles; contextual roles are derived here.
    """
    roles: frozenset[str] = frozenset()
    investigation: Optional[Investigation] = None
    eligibility: ClosureEligibility = field(default_factory=ClosureEligibility)
    roles_of: Optional[Callable[[int], frozenset[str]]] = None
    now: Optional[datetime] = None


@dataclass(frozen=True)
class TransitionResult:
    action: str
    from_status: str
    to_status: str
    event_patch: Dict[str, Any] = field(default_factory=dict)
    investigation_patch: Optional[Dict[str, Any]] = None
    audit: Optional[AuditDraft] = None
    notifications: tuple[NotificationRequest, ...] = ()
    noop: bool = False


@dataclass
class _Step:
    to_status: str
    patch: Dict[str, Any] = field(default_factory=dict)
    investigation_patch: Optional[Dict[str, Any]] = None
    notify: tuple[str, ...] = ()
    note: Dict[str, Any] = field(default_factory=dict)


# -------------------------
# Payload helpers
# -------------------------
def _text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _require(payload: Mapping[str, Any], key: str, action: str) -> str:
    value = _text(payload, key)
    if not value:
        raise InvalidPayload(f"'{key}' is required for {action}. Fill it in and try again.")
    return value


def _require_user_id(payload: Mapping[str, Any], key: str, action: str) -> int:
    raw = _require(payload, key, action)
    try:
        return int(raw)
    except ValueError:
        raise InvalidPayload(f"'{key}' must be a user id (integer).")


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    return value


def fingerprint(action: str, actor_id: int, payload: Mapping[str, Any]) -> str:
    raw = json.dumps(
        {"action": str(action), "actor": actor_id, "payload": dict(payload)},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


# -------------------------
# Roles
# -------------------------
def effective_roles(event: Event, actor_id: int, context: TransitionContext) -> frozenset[str]:
    roles = set(context.roles)

    if event.reporter_id == actor_id:
        roles.add(ROLE_REPORTER)

    inv = context.investigation
    if inv is not None and inv.investigator_id == actor_id:
        roles.add(ROLE_ASSIGNED_INVESTIGATOR)

    if event.approver_id is not None:
        if event.approver_id == actor_id:
            roles.add(ROLE_DESIGNATED_APPROVER)
    elif RoleCode.MANAGER in roles:
        roles.add(ROLE_DESIGNATED_APPROVER)

    return frozenset(roles)


def allowed_actions(event: Event, actor_id: int, context: TransitionContext) -> list[str]:
    """
    Actions the actor's roles permit in the event's current status.
    Payload and domain guards are not evaluated here.
    """
    roles = effective_roles(event, actor_id, context)
    return [
        action.value
        for (status, action), permitted in PERMISSIONS.items()
        if status == event.status and permitted & roles
    ]


# -------------------------
# Handlers: (event, actor_id, payload, ctx, now) -> _Step
# -------------------------
def _submit(event, actor_id, payload, ctx, now):
    if event.event_type == EventType.INCIDENT:
        return _Step(S.PENDING_DEPT_REP_REVIEW, notify=(role_recipient(RoleCode.DEPARTMENT_REPRESENTATIVE),))

    raw = payload.get("severity")
    if raw in (None, "") and event.severity is None:
        raise InvalidPayload("'severity' is required to submit an observation. Pick a level from 1 to 5.")
    level = sev.coerce_level(raw if raw not in (None, "") else event.severity)
    sev.check_actual_severity(event, level, _text(payload, "override_reason"))

    patch = {"severity": level} if level != event.severity else {}
    if level <= 2:
        return _Step(S.SUBMITTED, patch, notify=(RECIPIENT_REPORTER,))
    return _Step(S.PENDING_DEPT_REP_APPROVAL, patch, notify=(role_recipient(RoleCode.DEPARTMENT_REPRESENTATIVE),))


def _dept_rep_approve(event, actor_id, payload, ctx, now):
    return _Step(S.PENDING_REVIEW, notify=(role_recipient(RoleCode.HSSE_EXPERT),))


def _return_to_reporter(event, actor_id, payload, ctx, now):
    reason = _require(payload, "reason", A.RETURN_TO_REPORTER)
    return _Step(S.RETURNED_TO_REPORTER, notify=(RECIPIENT_REPORTER,), note={"reason": reason})


def _resubmit(event, actor_id, payload, ctx, now):
    return _Step(
        S.PENDING_DEPT_REP_REVIEW,
        {"resubmission_count": event.resubmission_count + 1},
        notify=(role_recipient(RoleCode.DEPARTMENT_REPRESENTATIVE),),
    )


def _expert_reject(event, actor_id, payload, ctx, now):
    reason = _require(payload, "reason", A.EXPERT_REJECT)
    return _Step(S.REJECTED, notify=(RECIPIENT_REPORTER,), note={"reason": reason})


def _dispute(event, actor_id, payload, ctx, now):
    reason = _require(payload, "reason", A.DISPUTE)
    if event.dispute_count >= 1:
        raise DomainRuleViolation(
            "This event's rejection has already been disputed once. Acknowledge the rejection instead."
        )
    return _Step(
        S.REPORTER_DISPUTE,
        {"dispute_count": event.dispute_count + 1},
        notify=(role_recipient(RoleCode.HSSE_EXPERT),),
        note={"reason": reason},
    )


def _uphold_rejection(event, actor_id, payload, ctx, now):
    note = {"reason": _text(payload, "reason")} if _text(payload, "reason") else {}
    return _Step(S.REJECTED, notify=(RECIPIENT_REPORTER,), note=note)


def _accept_dispute(event, actor_id, payload, ctx, now):
    return _Step(S.PENDING_REVIEW, notify=(RECIPIENT_REPORTER,))


def _acknowledge_rejection(event, actor_id, payload, ctx, now):
    return _Step(S.CLOSED, {"closure_reason": "rejection_acknowledged"})


def _expert_approve(event, actor_id, payload, ctx, now):
    level = sev.coerce_level(payload.get("severity"))
    sev.check_actual_severity(event, level, _text(payload, "override_reason"))

    patch: Dict[str, Any] = {"severity": level}

    raw_potential = payload.get("potential_severity")
    if raw_potential not in (None, ""):
        patch["potential_severity"] = sev.coerce_level(raw_potential, field_name="potential_severity")

    if _text(payload, "approver_id"):
        patch["approver_id"] = _require_user_id(payload, "approver_id", A.EXPERT_APPROVE)

    notify = (RECIPIENT_APPROVER,)
    note = {"override_reason": _text(payload, "override_reason")} if _text(payload, "override_reason") else {}
    return _Step(S.PENDING_MANAGER_APPROVAL, patch, notify=notify, note=note)


def _no_investigation(event, actor_id, payload, ctx, now):
    justification = _require(payload, "justification", A.NO_INVESTIGATION)
    return _Step(
        S.CLOSED,
        {"closure_reason": "no_investigation"},
        notify=(RECIPIENT_REPORTER,),
        note={"justification": justification},
    )


def _approval_patch(actor_id: int, now: datetime) -> Dict[str, Any]:
    return {"approved_by_id": actor_id, "approved_at": now, "investigation_locked": True}


def _manager_approve(event, actor_id, payload, ctx, now):
    return _Step(
        S.INVESTIGATION_PENDING,
        _approval_patch(actor_id, now),
        notify=(role_recipient(RoleCode.HSSE_EXPERT), role_recipient(RoleCode.HSSE_MANAGER)),
    )


def _manager_reject(event, actor_id, payload, ctx, now):
    reason = _require(payload, "reason", A.MANAGER_REJECT)
    return _Step(S.HSSE_MANAGER_ESCALATION, notify=(role_recipient(RoleCode.HSSE_MANAGER),), note={"reason": reason})


def _override_rejection(event, actor_id, payload, ctx, now):
    justification = _require(payload, "justification", A.OVERRIDE_REJECTION)
    return _Step(
        S.INVESTIGATION_PENDING,
        _approval_patch(actor_id, now),
        notify=(RECIPIENT_APPROVER, role_recipient(RoleCode.HSSE_EXPERT)),
        note={"justification": justification},
    )


def _confirm_rejection(event, actor_id, payload, ctx, now):
    justification = _require(payload, "justification", A.CONFIRM_REJECTION)
    return _Step(S.REJECTED, notify=(RECIPIENT_REPORTER,), note={"justification": justification})


def _assign_investigator(event, actor_id, payload, ctx, now):
    investigator_id = _require_user_id(payload, "investigator_id", A.ASSIGN_INVESTIGATOR)

    if ctx.roles_of is not None and RoleCode.INVESTIGATOR not in ctx.roles_of(investigator_id):
        raise DomainRuleViolation("The selected user does not hold the investigator role in this tenant.")

    note: Dict[str, Any] = {}
    current = ctx.investigation.investigator_id if ctx.investigation is not None else None
    if event.status == S.INVESTIGATION_IN_PROGRESS:
        note["reason"] = _require(payload, "reason", "reassignment")
        if current == investigator_id:
            raise DomainRuleViolation("This investigator is already assigned. Pick a different investigator.")
        note["previous_investigator_id"] = current

    inv_patch = {
        "investigator_id": investigator_id,
        "assigned_by_id": actor_id,
        "assignment_date": now,
        "assignment_notes": _text(payload, "notes"),
        "started_at": None,
    }
    return _Step(S.INVESTIGATION_PENDING, investigation_patch=inv_patch, notify=(RECIPIENT_INVESTIGATOR,), note=note)


def _start_investigation(event, actor_id, payload, ctx, now):
    if event.approved_at is None:
        raise DomainRuleViolation("The event has not been approved for investigation yet.")
    return _Step(
        S.INVESTIGATION_IN_PROGRESS,
        investigation_patch={"started_at": now},
        notify=(role_recipient(RoleCode.HSSE_MANAGER),),
    )


def _ensure_all_verified(ctx: TransitionContext, doing: str) -> None:
    # Actions can be added at any non-terminal status, so every closing step re-checks.
    if not ctx.eligibility.all_verified:
        pending = ", ".join(ctx.eligibility.pending)
        raise DomainRuleViolation(
            f"All corrective actions must be verified before {doing}. Still pending: {pending}."
        )


def _request_closure(event, actor_id, payload, ctx, now):
    _ensure_all_verified(ctx, "requesting closure")
    return _Step(S.PENDING_CLOSURE, notify=(role_recipient(RoleCode.HSSE_MANAGER),))


def _reject_closure(event, actor_id, payload, ctx, now):
    reason = _require(payload, "reason", A.REJECT_CLOSURE)
    return _Step(S.INVESTIGATION_IN_PROGRESS, notify=(RECIPIENT_INVESTIGATOR,), note={"reason": reason})


def _approve_closure(event, actor_id, payload, ctx, now):
    _ensure_all_verified(ctx, "approving closure")
    patch ={"closure_approved_by_id": actor_id, "closure_approved_at": now}
    if event.severity == sev.MAX_LEVEL:
        return _Step(S.PENDING_FINAL_CLOSURE, patch, notify=(role_recipient(RoleCode.HSSE_MANAGER),))
    patch["closure_reason"] = "approved"
    return _Step(S.CLOSED, patch, notify=(RECIPIENT_REPORTER, RECIPIENT_INVESTIGATOR))


def _final_close(event, actor_id, payload, ctx, now):
    _ensure_all_verified(ctx, "final closure")
    if (
        event.event_type == EventType.INCIDENT
        and event.severity == sev.MAX_LEVEL
        and event.closure_approved_by_id == actor_id
    ):
        raise DomainRuleViolation(
            "Level 5 incidents need a second HSSE Manager for final sign-off. Ask another HSSE Manager to close it."
        )
    return _Step(S.CLOSED, {"closure_reason": "final_sign_off"}, notify=(RECIPIENT_REPORTER,))


def _close_on_spot(event, actor_id, payload, ctx, now):
    evidence_ref = _require(payload, "evidence_ref", A.CLOSE_ON_SPOT)
    if event.severity is None or event.severity > 2:
        raise DomainRuleViolation("Only Level 1-2 observations can be closed on the spot.")
    return _Step(S.CLOSED, {"closure_reason": "closed_on_spot"}, note={"evidence_ref": evidence_ref})


def _route_to_dept_rep(event, actor_id, payload, ctx, now):
    return _Step(S.PENDING_DEPT_REP_APPROVAL, notify=(role_recipient(RoleCode.DEPARTMENT_REPRESENTATIVE),))


def _approve_with_actions(event, actor_id, payload, ctx, now):
    if ctx.eligibility.open < 1:
        raise DomainRuleViolation("Add at least one corrective action before approving.")
    return _Step(S.OBSERVATION_ACTIONS_PENDING, notify=(RECIPIENT_REPORTER,))


def _escalate_to_hsse(event, actor_id, payload, ctx, now):
    reason = _require(payload, "reason", A.ESCALATE_TO_HSSE)
    return _Step(
        S.PENDING_HSSE_ESCALATION_REVIEW,
        notify=(role_recipient(RoleCode.HSSE_EXPERT),),
        note={"reason": reason},
    )


def _dept_rep_reject(event, actor_id, payload, ctx, now):
    reason = _require(payload, "reason", A.DEPT_REP_REJECT)
    if event.dept_rep_reject_locked:
        raise DomainRuleViolation(
            "HSSE already overruled a rejection of this observation. Approve with actions or escalate instead."
        )
    return _Step(
        S.PENDING_HSSE_REJECTION_REVIEW,
        notify=(role_recipient(RoleCode.HSSE_EXPERT),),
        note={"reason": reason},
    )


def _accept_as_observation(event, actor_id, payload, ctx, now):
    return _Step(S.ACCEPTED_AS_OBSERVATION, notify=(role_recipient(RoleCode.DEPARTMENT_REPRESENTATIVE),))


def _upgrade_to_incident(event, actor_id, payload, ctx, now):
    note = {"reason": _text(payload, "reason")} if _text(payload, "reason") else {}
    return _Step(S.UPGRADED_TO_INCIDENT, {"event_type": EventType.INCIDENT}, notify=(RECIPIENT_REPORTER,), note=note)


def _return_to_dept_rep(event, actor_id, payload, ctx, now):
    reason = _require(payload, "reason", A.RETURN_TO_DEPT_REP)
    return _Step(S.RETURNED_TO_DEPT_REP, notify=(role_recipient(RoleCode.DEPARTMENT_REPRESENTATIVE),), note={"reason": reason})


def _accept_rejection(event, actor_id, payload, ctx, now):
    return _Step(S.CLOSED, {"closure_reason": "rejection_accepted"}, notify=(RECIPIENT_REPORTER,))


def _require_mandatory_action(event, actor_id, payload, ctx, now):
    reason = _require(payload, "reason", A.REQUIRE_MANDATORY_ACTION)
    return _Step(
        S.PENDING_DEPT_REP_MANDATORY_ACTION,
        {"dept_rep_reject_locked": True},
        notify=(role_recipient(RoleCode.DEPARTMENT_REPRESENTATIVE),),
        note={"reason": reason},
    )


def _submit_for_validation(event, actor_id, payload, ctx, now):
    if not ctx.eligibility.all_completed:
        raise DomainRuleViolation("Every corrective action must be completed before submitting for validation.")
    return _Step(S.PENDING_HSSE_VALIDATION, notify=(role_recipient(RoleCode.HSSE_EXPERT),))


def _validate_actions(event, actor_id, payload, ctx, now):
    if ctx.eligibility.total < 1:
        raise DomainRuleViolation("There are no corrective actions to validate.")
    _ensure_all_verified(ctx, "validating the observation")
    if event.severity == sev.MAX_LEVEL:
        return _Step(S.PENDING_FINAL_CLOSURE, notify=(role_recipient(RoleCode.HSSE_MANAGER),))
    return _Step(S.CLOSED, {"closure_reason": "actions_validated"}, notify=(RECIPIENT_REPORTER,))


def _validation_reject(event, actor_id, payload, ctx, now):
    reason = _require(payload, "reason", A.VALIDATION_REJECT)
    return _Step(
        S.OBSERVATION_ACTIONS_PENDING,
        notify=(role_recipient(RoleCode.DEPARTMENT_REPRESENTATIVE),),
        note={"reason": reason},
    )


def _severity_field(payload: Mapping[str, Any]) -> str:
    return _text(payload, "field") or "severity"


def _clear_proposal(f: str) -> Dict[str, Any]:
    return {
        f"{f}_proposed": None,
        f"{f}_justification": "",
        f"{f}_override_reason": "",
        f"{f}_pending_approval": False,
        f"{f}_proposed_by_id": None,
    }


def _propose_severity(event, actor_id, payload, ctx, now):
    f = _severity_field(payload)
    state = sev.read_state(event, f)
    if isinstance(state, sev.Proposed):
        raise DomainRuleViolation(f"A {f} change is already pending approval. Approve or reject it first.")

    value = sev.coerce_level(payload.get("value"), field_name="value")
    justification = _require(payload, "justification", A.PROPOSE_SEVERITY)
    override_reason = _text(payload, "override_reason")

    if value == state.value:
        raise DomainRuleViolation(f"The proposed {f} equals the current value. Nothing to change.")
    if f == "severity":
        sev.check_actual_severity(event, value, override_reason)

    proposal = sev.Proposed(
        current=state.value,
        proposed=value,
        justification=justification,
        override_reason=override_reason,
        proposed_by_id=actor_id,
    )
    return _Step(
        event.status,
        {
            f"{f}_proposed": proposal.proposed,
            f"{f}_justification": proposal.justification,
            f"{f}_override_reason": proposal.override_reason,
            f"{f}_pending_approval": True,
            f"{f}_proposed_by_id": proposal.proposed_by_id,
        },
        notify=(role_recipient(RoleCode.HSSE_MANAGER),),
        note={"field": f},
    )


def _pending_proposal(event: Event, f: str) -> sev.Proposed:
    state = sev.read_state(event, f)
    if not isinstance(state, sev.Proposed):
        raise DomainRuleViolation(f"There is no pending {f} change to decide on.")
    return state


def _approve_severity(event, actor_id, payload, ctx, now):
    f = _severity_field(payload)
    proposal = _pending_proposal(event, f)
    if f == "severity":
        sev.check_actual_severity(event, proposal.proposed, proposal.override_reason)

    patch = _clear_proposal(f)
    patch.update({f: proposal.proposed, f"{f}_approved_by_id": actor_id, f"{f}_approved_at": now})
    return _Step(
        event.status,
        patch,
        notify=(RECIPIENT_PROPOSER,),
        note={"field": f, "justification": proposal.justification},
    )


def _reject_severity(event, actor_id, payload, ctx, now):
    f = _severity_field(payload)
    reason = _require(payload, "reason", A.REJECT_SEVERITY)
    proposal = _pending_proposal(event, f)
    return _Step(
        event.status,
        _clear_proposal(f),
        notify=(RECIPIENT_PROPOSER,),
        note={"field": f, "reason": reason, "rejected_value": proposal.proposed},
    )


_HANDLERS: Dict[str, Callable[..., _Step]] = {
    A.SUBMIT: _submit,
    A.DEPT_REP_APPROVE: _dept_rep_approve,
    A.RETURN_TO_REPORTER: _return_to_reporter,
    A.RESUBMIT: _resubmit,
    A.EXPERT_REJECT: _expert_reject,
    A.DISPUTE: _dispute,
    A.UPHOLD_REJECTION: _uphold_rejection,
    A.ACCEPT_DISPUTE: _accept_dispute,
    A.ACKNOWLEDGE_REJECTION: _acknowledge_rejection,
    A.EXPERT_APPROVE: _expert_approve,
    A.NO_INVESTIGATION: _no_investigation,
    A.MANAGER_APPROVE: _manager_approve,
    A.MANAGER_REJECT: _manager_reject,
    A.OVERRIDE_REJECTION: _override_rejection,
    A.CONFIRM_REJECTION: _confirm_rejection,
    A.ASSIGN_INVESTIGATOR: _assign_investigator,
    A.START_INVESTIGATION: _start_investigation,
    A.REQUEST_CLOSURE: _request_closure,
    A.REJECT_CLOSURE: _reject_closure,
    A.APPROVE_CLOSURE: _approve_closure,
    A.FINAL_CLOSE: _final_close,
    A.CLOSE_ON_SPOT: _close_on_spot,
    A.ROUTE_TO_DEPT_REP: _route_to_dept_rep,
    A.APPROVE_WITH_ACTIONS: _approve_with_actions,
    A.ESCALATE_TO_HSSE: _escalate_to_hsse,
    A.DEPT_REP_REJECT: _dept_rep_reject,
    A.ACCEPT_AS_OBSERVATION: _accept_as_observation,
    A.UPGRADE_TO_INCIDENT: _upgrade_to_incident,
    A.RETURN_TO_DEPT_REP: _return_to_dept_rep,
    A.ACCEPT_REJECTION: _accept_rejection,
    A.REQUIRE_MANDATORY_ACTION: _require_mandatory_action,
    A.SUBMIT_FOR_VALIDATION: _submit_for_validation,
    A.VALIDATE_ACTIONS: _validate_actions,
    A.VALIDATION_REJECT: _validation_reject,
    A.PROPOSE_SEVERITY: _propose_severity,
    A.APPROVE_SEVERITY: _approve_severity,
    A.REJECT_SEVERITY: _reject_severity,
}


# -------------------------
# Entry point
# -------------------------
def transition(
    event: Event,
    actor_id: int,
    action: str,
    payload: Optional[Mapping[str, Any]],
    context: TransitionContext,
) -> TransitionResult:
    """
    Validate (role, payload, domain rules) and compute the effect of `action`.

    Raises Unauthorized / InvalidPayload / DomainRuleViolation; never mutates `event`.
    Re-sending the action that just succeeded (same actor and payload) returns a
    no-op result so retried deliveries do not double-apply.
    """
    payload = dict(payload or {})

    if action not in A.values:
        raise Unauthorized(f"'{action}' is not a workflow action. Re-check the action name and your permissions.")
    action = A(action)

    fp = fingerprint(action, actor_id, payload)
    if event.last_action_fingerprint and event.last_action_fingerprint == fp:
        return TransitionResult(
            action=action.value,
            from_status=event.status,
            to_status=event.status,
            noop=True,
        )

    permitted = PERMISSIONS.get((event.status, action))
    if not permitted or not (permitted & effective_roles(event, actor_id, context)):
        raise Unauthorized()

    now = context.now or timezone.now()
    step = _HANDLERS[action](event, actor_id, payload, context, now)

    patch = dict(step.patch)
    patch["status"] = step.to_status
    patch["last_action"] = action.value
    patch["last_action_fingerprint"] = fp

    old_value: Dict[str, Any] = {}
    new_value: Dict[str, Any] = {}
    for key, value in patch.items():
        if key in {"last_action", "last_action_fingerprint"}:
            continue
        before = getattr(event, key)
        if before != value:
            old_value[key] = _jsonable(before)
            new_value[key] = _jsonable(value)

    if step.investigation_patch:
        inv = context.investigation
        old_value["investigation"] = {
            k: _jsonable(getattr(inv, k, None)) if inv is not None else None for k in step.investigation_patch
        }
        new_value["investigation"] = {k: _jsonable(v) for k, v in step.investigation_patch.items()}

    new_value.update(step.note)

    return TransitionResult(
        action=action.value,
        from_status=str(event.status),
        to_status=str(step.to_status),
        event_patch=patch,
        investigation_patch=step.investigation_patch,
        audit=AuditDraft(
            action=action.value,
            from_status=str(event.status),
            to_status=str(step.to_status),
            old_value=old_value,
            new_value=new_value,
        ),
        notifications=(NotificationRequest(template_kind=f"event.{action.value}", recipients=step.notify),)
        if step.notify
        else (),
    )
