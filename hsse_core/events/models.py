# hsse_core/events/models.py
from django.db import models
from django.db.models import F, Q

from hsse_core.common.models import TenantScopedModel, TimeStampedModel


class EventType(models.TextChoices):
    INCIDENT = "incident", "Incident"
    OBSERVATION = "observation", "Observation"


class EventStatus(models.TextChoices):
    # Shared / incident path
    NEW = "new", "New"
    PENDING_DEPT_REP_REVIEW = "pending_dept_rep_review", "Pending Dept Rep Review"
    RETURNED_TO_REPORTER = "returned_to_reporter", "Returned to Reporter"
    PENDING_REVIEW = "pending_review", "Pending HSSE Review"
    REJECTED = "rejected", "Rejected"
    REPORTER_DISPUTE = "reporter_dispute", "Reporter Dispute"
    PENDING_MANAGER_APPROVAL = "pending_manager_approval", "Pending Manager Approval"
    HSSE_MANAGER_ESCALATION = "hsse_manager_escalation", "HSSE Manager Escalation"
    INVESTIGATION_PENDING = "investigation_pending", "Investigation Pending"
    INVESTIGATION_IN_PROGRESS = "investigation_in_progress", "Investigation In Progress"
    PENDING_CLOSURE = "pending_closure", "Pending Closure"
    PENDING_FINAL_CLOSURE = "pending_final_closure", "Pending Final Closure"
    CLOSED = "closed", "Closed"
    INVESTIGATION_CLOSED = "investigation_closed", "Investigation Closed"

    # Observation path
    SUBMITTED = "submitted", "Submitted"
    PENDING_DEPT_REP_APPROVAL = "pending_dept_rep_approval", "Pending Dept Rep Approval"
    OBSERVATION_ACTIONS_PENDING = "observation_actions_pending", "Corrective Actions Pending"
    PENDING_HSSE_ESCALATION_REVIEW = "pending_hsse_escalation_review", "Pending HSSE Escalation Review"
    ACCEPTED_AS_OBSERVATION = "accepted_as_observation", "Accepted as Observation"
    UPGRADED_TO_INCIDENT = "upgraded_to_incident", "Upgraded to Incident"
    RETURNED_TO_DEPT_REP = "returned_to_dept_rep", "Returned to Dept Rep"
    PENDING_DEPT_REP_MANDATORY_ACTION = "pending_dept_rep_mandatory_action", "Mandatory Action Required"
    PENDING_HSSE_VALIDATION = "pending_hsse_validation", "Pending HSSE Validation"
    PENDING_HSSE_REJECTION_REVIEW = "pending_hsse_rejection_review", "Pending HSSE Rejection Review"


TERMINAL_STATUSES = frozenset({EventStatus.CLOSED, EventStatus.INVESTIGATION_CLOSED})


class SeverityLevel(models.IntegerChoices):
    LEVEL_1 = 1, "Level 1 - Low"
    LEVEL_2 = 2, "Level 2 - Minor"
    LEVEL_3 = 3, "Level 3 - Serious"
    LEVEL_4 = 4, "Level 4 - Major"
    LEVEL_5 = 5, "Level 5 - Catastrophic"


class InjuryClassification(models.TextChoices):
    NONE = "none", "No Injury"
    FIRST_AID = "first_aid", "First Aid"
    MEDICAL_TREATMENT = "medical_treatment", "Medical Treatment"
    RESTRICTED_WORK = "restricted_work", "Restricted Work"
    LOST_TIME_INJURY = "lost_time_injury", "Lost Time Injury"
    LWDC = "lwdc", "Lost Work Day Case"
    PERMANENT_DISABILITY = "permanent_disability", "Permanent Disability"
    FATALITY = "fatality", "Fatality"


def _pending_change_is_consistent(field: str) -> Q:
    """
    pending_approval => proposed is set, differs from the committed value,
    and carries a justification.
    """
    return Q(**{f"{field}_pending_approval": False}) | (
        Q(**{f"{field}_proposed__isnull": False})
        & ~Q(**{f"{field}_proposed": F(field)})
        & ~Q(**{f"{field}_justification": ""})
    )


class Event(TenantScopedModel):
    """
    An incident or observation. Mutated only through workflow transitions.
    """
    reference = models.CharField(max_length=32)

    event_type = models.CharField(max_length=16, choices=EventType.choices, db_index=True)
    subtype = models.CharField(max_length=64, blank=True, default="")
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    department = models.CharField(max_length=128, blank=True, default="")

    injury_classification = models.CharField(
        max_length=32,
        choices=InjuryClassification.choices,
        default=InjuryClassification.NONE,
    )
    erp_activated = models.BooleanField(default=False)

    status = models.CharField(
        max_length=48,
        choices=EventStatus.choices,
        default=EventStatus.NEW,
        db_index=True,
    )
    status_changed_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)

    # Ownership
    reporter_id = models.BigIntegerField(db_index=True)
    approver_id = models.BigIntegerField(null=True, blank=True, db_index=True)

    # Approval / lock
    investigation_locked = models.BooleanField(default=False)
    approved_by_id = models.BigIntegerField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)

    closure_approved_by_id = models.BigIntegerField(null=True, blank=True)
    closure_approved_at = models.DateTimeField(null=True, blank=True)
    closure_reason = models.CharField(max_length=64, blank=True, default="")

    # Loop counters / flags
    resubmission_count = models.PositiveIntegerField(default=0)
    dispute_count = models.PositiveIntegerField(default=0)
    dept_rep_reject_locked = models.BooleanField(default=False)

    # Idempotence of the last successful action
    last_action = models.CharField(max_length=64, blank=True, default="")
    last_action_fingerprint = models.CharField(max_length=64, blank=True, default="")

    # Actual severity + pending change
    severity = models.PositiveSmallIntegerField(choices=SeverityLevel.choices, null=True, blank=True)
    severity_proposed = models.PositiveSmallIntegerField(choices=SeverityLevel.choices, null=True, blank=True)
    severity_justification = models.TextField(blank=True, default="")
    severity_override_reason = models.TextField(blank=True, default="")
    severity_pending_approval = models.BooleanField(default=False, db_index=True)
    severity_proposed_by_id = models.BigIntegerField(null=True, blank=True)
    severity_approved_by_id = models.BigIntegerField(null=True, blank=True)
    severity_approved_at = models.DateTimeField(null=True, blank=True)

    # Potential severity + pending change
    potential_severity = models.PositiveSmallIntegerField(choices=SeverityLevel.choices, null=True, blank=True)
    potential_severity_proposed = models.PositiveSmallIntegerField(choices=SeverityLevel.choices, null=True, blank=True)
    potential_severity_justification = models.TextField(blank=True, default="")
    potential_severity_override_reason = models.TextField(blank=True, default="")
    potential_severity_pending_approval = models.BooleanField(default=False, db_index=True)
    potential_severity_proposed_by_id = models.BigIntegerField(null=True, blank=True)
    potential_severity_approved_by_id = models.BigIntegerField(null=True, blank=True)
    potential_severity_approved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "events_event"
        indexes = [
            models.Index(fields=["tenant_id", "status"]),
            models.Index(fields=["tenant_id", "event_type", "status"]),
            models.Index(fields=["tenant_id", "reporter_id"]),
        ]
        constraints = [
            models.UniqueConstraint(fields=["tenant_id", "reference"], name="uq_event_reference_per_tenant"),
            models.CheckConstraint(
                condition=_pending_change_is_consistent("severity"),
                name="ck_event_severity_pending_consistent",
            ),
            models.CheckConstraint(
                condition=_pending_change_is_consistent("potential_severity"),
                name="ck_event_potential_severity_pending_consistent",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.reference} [{self.status}]"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_fatality(self) -> bool:
        return self.injury_classification in {
            InjuryClassification.FATALITY,
            InjuryClassification.PERMANENT_DISABILITY,
        }


class Investigation(TimeStampedModel):
    """
    Formal investigation attached to an event once it is escalated.
    started_at distinguishes "assigned" from "active".
    """
    event = models.OneToOneField(Event, on_delete=models.CASCADE, related_name="investigation")
    tenant_id = models.UUIDField(db_index=True)

    investigator_id = models.BigIntegerField(null=True, blank=True, db_index=True)
    assigned_by_id = models.BigIntegerField(null=True, blank=True)
    assignment_date = models.DateTimeField(null=True, blank=True)
    assignment_notes = models.TextField(blank=True, default="")
    started_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "events_investigation"
        constraints = [
            models.CheckConstraint(
                condition=Q(started_at__isnull=True) | Q(investigator_id__isnull=False),
                name="ck_investigation_started_requires_investigator",
            ),
        ]

    def __str__(self) -> str:
        return f"Investigation<{self.event_id}>"

    @property
    def is_active(self) -> bool:
        return self.started_at is not None
