# hsse_core/iam/roles.py
from __future__ import annotations

from django.db import models


class RoleCode(models.TextChoices):
    """
    Tenant-configured roles. Assigned by administrators, never by the workflow.
    """
    DEPARTMENT_REPRESENTATIVE = "department_representative", "Department Representative"
    HSSE_EXPERT = "hsse_expert", "HSSE Expert"
    MANAGER = "manager", "Department Manager"
    HSSE_MANAGER = "hsse_manager", "HSSE Manager"
    INVESTIGATOR = "investigator", "Investigator"


# Contextual roles: derived per event from ownership fields, not stored.
ROLE_REPORTER = "reporter"
ROLE_ASSIGNED_INVESTIGATOR = "assigned_investigator"
ROLE_DESIGNATED_APPROVER = "designated_approver"

CONTEXTUAL_ROLES = frozenset({ROLE_REPORTER, ROLE_ASSIGNED_INVESTIGATOR, ROLE_DESIGNATED_APPROVER})

ALL_ROLE_CODES = frozenset(RoleCode.values) | CONTEXTUAL_ROLES
