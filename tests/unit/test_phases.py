from __future__ import annotations

from datetime import datetime, timezone

from urban_change_map.models import CanonicalEvent, EventType, ProjectStatus
from urban_change_map.phases import (
    ImpactPhases,
    estimate_impact_phases,
    find_end_date,
    find_start_date,
    is_in_disruption_period,
)

AS_OF = datetime(2024, 6, 1, tzinfo=timezone.utc)


def when(year, month=1, day=1):
    return datetime(year, month, day, tzinfo=timezone.utc)


def event(event_type, source_id, date, source="permit-filings", **payload):
    return CanonicalEvent(
        source=source,
        source_id=source_id,
        event_type=event_type,
        event_date=date,
        raw_payload=payload,
    )


def test_no_events_means_planning_without_dates():
    phases = estimate_impact_phases([], as_of=AS_OF)
    assert phases == ImpactPhases()
    assert phases.project_status is ProjectStatus.PLANNING


def test_observed_construction_start_wins_and_is_not_estimated():
    events = [
        event(EventType.NEW_BUILDING, "1", when(2023, 3), job_start_date="2023-05-01"),
        event(EventType.CONSTRUCTION_STARTED, "2", when(2023, 9)),
    ]
    assert find_start_date(events) == (when(2023, 9), False)


def test_job_start_date_is_a_real_start():
    events = [event(EventType.NEW_BUILDING, "1", when(2023, 3), job_start_date="2023-05-01")]
    assert find_start_date(events) == (when(2023, 5), False)


def test_permit_issuance_gives_an_estimated_start():
    events = [event(EventType.MAJOR_ALTERATION, "1", when(2023, 3), issuance_date="2023-04-10")]
    assert find_start_date(events) == (when(2023, 4, 10), True)


def test_earliest_permit_filing_is_the_last_resort_start():
    events = [
        event(EventType.DEMOLITION, "1", when(2023, 7)),
        event(EventType.NEW_BUILDING, "2", when(2023, 2)),
        event(EventType.PLUMBING, "3", when(2022, 1)),
    ]
    assert find_start_date(events) == (when(2023, 2), True)


def test_unrelated_events_have_no_start():
    assert find_start_date([event(EventType.SCAFFOLD, "1", when(2023, 2))]) == (None, False)


def test_end_date_comes_from_completion_or_source_fields():
    assert find_end_date([event(EventType.CONSTRUCTION_COMPLETED, "1", when(2024, 2))]) == when(2024, 2)
    capital = [event(EventType.CAPITAL_PROJECT, "c1", when(2022, 1), source="capital", maxdate="2025-12-31")]
    assert find_end_date(capital) == when(2025, 12, 31)
    assert find_end_date([event(EventType.NEW_BUILDING, "1", when(2023, 1))]) is None


def test_past_end_date_means_completed():
    events = [
        event(EventType.NEW_BUILDING, "1", when(2022, 1), job_start_date="2022-02-01", signoff_date="2024-03-01"),
    ]
    phases = estimate_impact_phases(events, as_of=AS_OF)

    assert phases.disruption_start == when(2022, 2)
    assert phases.disruption_end == when(2024, 3)
    assert phases.visible_change_date == when(2024, 3)
    assert phases.is_estimated_end is False
    assert phases.project_status is ProjectStatus.COMPLETED


def test_expired_permit_without_end_means_stalled():
    events = [event(EventType.NEW_BUILDING, "1", when(2021, 1), expiration_date="2022-01-01")]
    phases = estimate_impact_phases(events, as_of=AS_OF)

    assert phases.permit_expiration == when(2022, 1)
    assert phases.project_status is ProjectStatus.STALLED


def test_started_work_is_active():
    events = [event(EventType.MAJOR_ALTERATION, "1", when(2024, 1), expiration_date="2025-01-01")]
    phases = estimate_impact_phases(events, as_of=AS_OF)

    assert phases.is_estimated_start is True
    assert phases.project_status is ProjectStatus.ACTIVE


def test_zoning_approval_without_work_is_approved():
    events = [
        event(EventType.ZAP_APPROVED, "z1", when(2024, 2), source="zap", completed_date="2024-02-15"),
    ]
    phases = estimate_impact_phases(events, as_of=AS_OF)

    assert phases.approval_date == when(2024, 2, 15)
    assert phases.disruption_start is None
    assert phases.project_status is ProjectStatus.APPROVED


def test_future_permit_start_is_approved_not_active():
    events = [event(EventType.NEW_BUILDING, "1", when(2024, 9))]
    assert estimate_impact_phases(events, as_of=AS_OF).project_status is ProjectStatus.APPROVED


def test_zoning_filing_alone_is_planning():
    events = [event(EventType.ULURP_FILED, "z1", when(2024, 2), source="zap")]
    assert estimate_impact_phases(events, as_of=AS_OF).project_status is ProjectStatus.PLANNING


def test_disruption_period_needs_both_ends():
    phases = ImpactPhases(disruption_start=when(2024, 1), disruption_end=when(2024, 12))
    assert is_in_disruption_period(AS_OF, phases)
    assert not is_in_disruption_period(when(2025, 1), phases)
    assert not is_in_disruption_period(AS_OF, ImpactPhases(disruption_start=when(2024, 1)))
