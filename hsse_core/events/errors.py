# hsse_core/events/errors.py
from __future__ import annotations

from typing import Any, Optional


class WorkflowError(Exception):
    """
    Base for every failure the workflow engine reports back to a caller.

    `kind` is the stable machine-readable code; `message` is the actionable
    text shown to the actor. Each kind has a default message that tells the
    actor what to do next.
    """

    kind = "workflow_error"
    http_status = 400
    default_message = "The requested workflow action failed."

    def __init__(self, message: Optional[str] = None, *, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def as_dict(self) -> dict[str, Any]:
        return {"status": "error", "kind": self.kind, "message": self.message}


class Unauthorized(WorkflowError):
    kind = "unauthorized"
    http_status = 403
    default_message = "Your roles do not permit this action in the event's current state. Re-check your permissions."


class InvalidPayload(WorkflowError):
    kind = "invalid_payload"
    http_status = 400
    default_message = "A required field is missing or empty. Fill in the required field and try again."


class DomainRuleViolation(WorkflowError):
    kind = "domain_rule_violation"
    http_status = 422
    default_message = "This action violates an HSSE rule for this event."


class Conflict(WorkflowError):
    kind = "conflict"
    http_status = 409
    default_message = "The event was changed by someone else. Refresh and try again."


class NotFound(WorkflowError):
    kind = "not_found"
    http_status = 404
    default_message = "Event not found in this tenant."
