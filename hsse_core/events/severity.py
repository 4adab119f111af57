# hsse_core/events/severity.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from hsse_core.events.errors import DomainRuleViolation, InvalidPayload
from hsse_core.events.models import Event, InjuryClassification

SEVERITY_FIELDS = ("severity", "potential_severity")

MIN_LEVEL = 1
MAX_LEVEL = 5

EMERGENCY_CRISIS_SUBTYPE = "emergency_crisis"

_FATAL_CLASSIFICATIONS = frozenset({
    InjuryClassification.FATALITY,
    InjuryClassification.PERMANENT_DISABILITY,
})
_LOST_TIME_CLASSIFICATIONS = frozenset({
    InjuryClassification.LOST_TIME_INJURY,
    InjuryClassification.LWDC,
})


@dataclass(frozen=True)
class Committed:
    """No change pending: the value is the approved one."""
    value: Optional[int]


@dataclass(frozen=True)
class Proposed:
    """
    A change awaiting approval. `current` is still the committed value,
    so rejecting the proposal means keeping `current`.
    """
    current: Optional[int]
    proposed: int
    justification: str
    override_reason: str = ""
    proposed_by_id: Optional[int] = None

    def __post_init__(self):
        if self.proposed == self.current:
            raise ValueError("A proposed severity must differ from the current value.")
        if not self.justification.strip():
            raise ValueError("A proposed severity requires a justification.")


SeverityState = Union[Committed, Proposed]


def read_state(event: Event, field: str) -> SeverityState:
    if field not in SEVERITY_FIELDS:
        raise InvalidPayload(f"Unknown severity field '{field}'. Use one of: {', '.join(SEVERITY_FIELDS)}.")

    current = getattr(event, field)
    if not getattr(event, f"{field}_pending_approval"):
        return Committed(value=current)

    return Proposed(
        current=current,
        proposed=getattr(event, f"{field}_proposed"),
        justification=getattr(event, f"{field}_justification"),
        override_reason=getattr(event, f"{field}_override_reason"),
        proposed_by_id=getattr(event, f"{field}_proposed_by_id"),
    )


def minimum_severity(event: Event) -> int:
    """
    Floor for the actual severity implied by the event's classification.
    """
    if event.injury_classification in _FATAL_CLASSIFICATIONS:
        return 5
    if event.injury_classification in _LOST_TIME_CLASSIFICATIONS:
        return 4
    if event.erp_activated or event.subtype == EMERGENCY_CRISIS_SUBTYPE:
        return 4
    return MIN_LEVEL


def coerce_level(raw, *, field_name: str = "severity") -> int:
    if raw is None or raw == "":
        raise InvalidPayload(f"'{field_name}' is required. Provide a level from {MIN_LEVEL} to {MAX_LEVEL}.")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidPayload(f"'{field_name}' must be an integer from {MIN_LEVEL} to {MAX_LEVEL}.")
    if isinstance(raw, bool) or not MIN_LEVEL <= value <= MAX_LEVEL:
        raise InvalidPayload(f"'{field_name}' must be an integer from {MIN_LEVEL} to {MAX_LEVEL}.")
    return value


def check_actual_severity(event: Event, value: int, override_reason: str) -> None:
    """
    Fatality / permanent disability never goes below level 5, override or not.
    Any other value under the computed floor needs an override reason.
    """
    if event.injury_classification in _FATAL_CLASSIFICATIONS and value < MAX_LEVEL:
        raise DomainRuleViolation(
            "Fatality and permanent disability events must be rated severity 5. "
            "Correct the injury classification if it is wrong."
        )

    floor = minimum_severity(event)
    if value < floor and not (override_reason or "").strip():
        raise InvalidPayload(
            f"Severity {value} is below the minimum of {floor} for this event. "
            "Provide an override_reason to go below the minimum."
        )
