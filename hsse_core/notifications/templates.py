# hsse_core/notifications/templates.py
from __future__ import annotations

# template_kind -> (title, body); {reference} and {status} are filled in per event
TEMPLATES: dict[str, tuple[str, str]] = {
    "event.submit": ("New report {reference}", "A new report is waiting for your review."),
    "event.resubmit": ("Report {reference} resubmitted", "The reporter resubmitted the report after corrections."),
    "event.dept_rep_approve": ("Report {reference} needs HSSE screening", "The department representative approved it."),
    "event.return_to_reporter": ("Report {reference} returned", "Please correct the report and resubmit it."),
    "event.expert_reject": ("Report {reference} rejected", "HSSE rejected your report. You may dispute it once."),
    "event.dispute": ("Rejection of {reference} disputed", "The reporter disputes the rejection. Review it."),
    "event.uphold_rejection": ("Rejection of {reference} upheld", "HSSE upheld the rejection after your dispute."),
    "event.accept_dispute": ("Dispute on {reference} accepted", "Your report is back in HSSE review."),
    "event.expert_approve": ("Report {reference} needs your approval", "HSSE assigned a severity and requests approval."),
    "event.no_investigation": ("Report {reference} closed", "HSSE closed the report without an investigation."),
    "event.manager_approve": ("Assign an investigator for {reference}", "The manager approved the investigation."),
    "event.manager_reject": ("Manager rejected {reference}", "Decide whether to override or confirm the rejection."),
    "event.override_rejection": ("Rejection overridden on {reference}", "The HSSE Manager approved the investigation."),
    "event.confirm_rejection": ("Report {reference} rejected", "The HSSE Manager confirmed the rejection."),
    "event.assign_investigator": ("Investigation assigned: {reference}", "You have been assigned as investigator."),
    "event.start_investigation": ("Investigation started: {reference}", "The investigator has started work."),
    "event.request_closure": ("Closure requested for {reference}", "All corrective actions are verified."),
    "event.reject_closure": ("Closure rejected for {reference}", "The investigation needs more work."),
    "event.approve_closure": ("Report {reference} closure approved", "Current status: {status}."),
    "event.final_close": ("Report {reference} closed", "Final sign-off is complete."),
    "event.route_to_dept_rep": ("Observation {reference} needs review", "The reporter routed it to you."),
    "event.approve_with_actions": ("Observation {reference} approved", "Corrective actions are now pending."),
    "event.escalate_to_hsse": ("Observation {reference} escalated", "The department representative escalated it."),
    "event.dept_rep_reject": ("Observation {reference} rejected by dept rep", "Review the rejection."),
    "event.accept_as_observation": ("Observation {reference} accepted", "Add corrective actions and approve."),
    "event.upgrade_to_incident": ("Observation {reference} upgraded", "It is now handled as an incident."),
    "event.return_to_dept_rep": ("Observation {reference} returned", "HSSE returned it to the department."),
    "event.accept_rejection": ("Observation {reference} closed", "HSSE accepted the department rejection."),
    "event.require_mandatory_action": ("Action required on {reference}", "HSSE requires a corrective action."),
    "event.submit_for_validation": ("Validate actions on {reference}", "All corrective actions are completed."),
    "event.validate_actions": ("Observation {reference} validated", "Current status: {status}."),
    "event.validation_reject": ("Validation rejected on {reference}", "HSSE did not accept the corrective actions."),
    "event.propose_severity": ("Severity change proposed on {reference}", "Approve or reject the proposal."),
    "event.approve_severity": ("Severity change approved on {reference}", "The proposed value is now in effect."),
    "event.reject_severity": ("Severity change rejected on {reference}", "The previous value is kept."),
}

DEFAULT_TEMPLATE = ("Update on {reference}", "Current status: {status}.")


def render(template_kind: str, *, reference: str = "", status: str = "") -> tuple[str, str]:
    title, body = TEMPLATES.get(template_kind, DEFAULT_TEMPLATE)
    return title.format(reference=reference, status=status), body.format(reference=reference, status=status)
