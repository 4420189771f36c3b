"""Impact phases: when disruption starts and ends, and where a project stands.

Dates are only taken from what the sources actually publish. A start date
derived from a permit rather than an observed start is flagged as estimated;
end dates are never estimated.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Sequence, Tuple

from .models import CanonicalEvent, EventType, ProjectStatus, event_type_value
from .normalize import parse_date, utc_now

# (source, raw field, estimated), checked in order after construction events
START_DATE_FIELDS: Tuple[Tuple[str, str, bool], ...] = (
    ("capital", "mindate", False),
    ("permit-filings", "job_start_date", False),
    ("permit-filings", "first_permit_date", True),
    ("permit-filings", "issuance_date", True),
)

END_DATE_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("capital", "maxdate"),
    ("permit-filings", "certificate_of_occupancy_date"),
    ("permit-filings", "signoff_date"),
)

APPROVAL_DATE_FIELDS: Tuple[Tuple[str, str], ...] = (("zap", "completed_date"),)

PERMIT_SOURCES: frozenset = frozenset({"permit-filings"})

# Filings that imply the work itself was permitted
PERMIT_EVENT_TYPES: frozenset = frozenset({
    EventType.NEW_BUILDING.value,
    EventType.MAJOR_ALTERATION.value,
    EventType.DEMOLITION.value,
})


@dataclass(frozen=True)
class ImpactPhases:
    disruption_start: Optional[datetime] = None
    disruption_end: Optional[datetime] = None
    visible_change_date: Optional[datetime] = None
    is_estimated_start: bool = False
    is_estimated_end: bool = False
    approval_date: Optional[datetime] = None
    permit_expiration: Optional[datetime] = None
    project_status: ProjectStatus = ProjectStatus.PLANNING


def _first_event_date(events: Sequence[CanonicalEvent], event_type: EventType) -> Optional[datetime]:
    for event in events:
        if event_type_value(event.event_type) == event_type.value:
            return event.event_date
    return None


def _raw_date(events: Sequence[CanonicalEvent], source: str, field_name: str) -> Optional[datetime]:
    for event in events:
        if event.source != source:
            continue
        parsed = parse_date(event.raw_payload.get(field_name))
        if parsed is not None:
            return parsed
    return None


def find_start_date(events: Sequence[CanonicalEvent]) -> Tuple[Optional[datetime], bool]:
    """Return ``(start, is_estimated)``."""
    started = _first_event_date(events, EventType.CONSTRUCTION_STARTED)
    if started is not None:
        return started, False

    for source, field_name, estimated in START_DATE_FIELDS:
        found = _raw_date(events, source, field_name)
        if found is not None:
            return found, estimated

    permit_dates = [
        event.event_date for event in events if event_type_value(event.event_type) in PERMIT_EVENT_TYPES
    ]
    if permit_dates:
        return min(permit_dates), True
    return None, False


def find_end_date(events: Sequence[CanonicalEvent]) -> Optional[datetime]:
    completed = _first_event_date(events, EventType.CONSTRUCTION_COMPLETED)
    if completed is not None:
        return completed
    for source, field_name in END_DATE_FIELDS:
        found = _raw_date(events, source, field_name)
        if found is not None:
            return found
    return None


def find_approval_date(events: Sequence[CanonicalEvent]) -> Optional[datetime]:
    for source, field_name in APPROVAL_DATE_FIELDS:
        found = _raw_date(events, source, field_name)
        if found is not None:
            return found
    return None


def find_permit_expiration(events: Sequence[CanonicalEvent]) -> Optional[datetime]:
    """Latest permit expiration across permit filings."""
    dates = [
        parse_date(event.raw_payload.get("expiration_date"))
        for event in events
        if event.source in PERMIT_SOURCES
    ]
    dates = [date for date in dates if date is not None]
    return max(dates) if dates else None


def derive_project_status(
    phases: ImpactPhases,
    events: Sequence[CanonicalEvent],
    as_of: datetime,
) -> ProjectStatus:
    if phases.disruption_end is not None and phases.disruption_end <= as_of:
        return ProjectStatus.COMPLETED
    if phases.permit_expiration is not None and phases.permit_expiration < as_of and phases.disruption_end is None:
        return ProjectStatus.STALLED
    if phases.disruption_start is not None and phases.disruption_start <= as_of:
        return ProjectStatus.ACTIVE
    if phases.approval_date is not None:
        return ProjectStatus.APPROVED
    if any(event_type_value(event.event_type) in PERMIT_EVENT_TYPES for event in events):
        return ProjectStatus.APPROVED
    return ProjectStatus.PLANNING


def estimate_impact_phases(
    events: Sequence[CanonicalEvent],
    *,
    as_of: Optional[datetime] = None,
) -> ImpactPhases:
    if not events:
        return ImpactPhases()

    start, estimated_start = find_start_date(events)
    end = find_end_date(events)
    phases = ImpactPhases(
        disruption_start=start,
        disruption_end=end,
        visible_change_date=end,
        is_estimated_start=estimated_start,
        is_estimated_end=False,
        approval_date=find_approval_date(events),
        permit_expiration=find_permit_expiration(events),
    )
    status = derive_project_status(phases, events, as_of or utc_now())
    return replace(phases, project_status=status)


def is_in_disruption_period(moment: datetime, phases: ImpactPhases) -> bool:
    if phases.disruption_start is None or phases.disruption_end is None:
        return False
    return phases.disruption_start <= moment <= phases.disruption_end


__all__ = [
    "ImpactPhases",
    "estimate_impact_phases",
    "find_start_date",
    "find_end_date",
    "find_approval_date",
    "find_permit_expiration",
    "derive_project_status",
    "is_in_disruption_period",
]
