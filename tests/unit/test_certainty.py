from __future__ import annotations

from datetime import datetime, timezone

import pytest

from urban_change_map.certainty import derive_certainty, get_certainty_opacity, should_show_dashed_border
from urban_change_map.models import CanonicalEvent, Certainty, EventType


def event(event_type, source_id="1"):
    return CanonicalEvent(
        source="test",
        source_id=source_id,
        event_type=event_type,
        event_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_certain_outranks_probable():
    events = [event(EventType.NEW_BUILDING, "1"), event(EventType.CONSTRUCTION_STARTED, "2")]
    assert derive_certainty(events) == Certainty.CERTAIN


@pytest.mark.parametrize(
    ("types", "expected"),
    [
        ([EventType.ULURP_FILED], Certainty.DISCUSSION),
        ([EventType.CEQR_EIS_DRAFT, EventType.MAJOR_ALTERATION], Certainty.PROBABLE),
        ([EventType.ZAP_FILED, EventType.ZAP_APPROVED], Certainty.PROBABLE),
        ([EventType.CONSTRUCTION_COMPLETED], Certainty.CERTAIN),
        ([EventType.OTHER, EventType.SCAFFOLD], Certainty.DISCUSSION),
        ([], Certainty.DISCUSSION),
    ],
)
def test_derive_certainty_tiers(types, expected):
    events = [event(event_type, str(index)) for index, event_type in enumerate(types)]
    assert derive_certainty(events) == expected


def test_adding_a_certain_event_always_raises_to_certain():
    for base in ([event(EventType.ULURP_FILED)], [event(EventType.DEMOLITION)]):
        assert derive_certainty(base + [event(EventType.CONSTRUCTION_STARTED, "x")]) == Certainty.CERTAIN


def test_unrecognized_stored_types_fall_back_to_discussion():
    assert derive_certainty([event("tree_planting")]) == Certainty.DISCUSSION
    assert derive_certainty([event("tree_planting"), event("new_building", "2")]) == Certainty.PROBABLE


def test_opacity_and_dashed_border():
    assert get_certainty_opacity("discussion") == 0.4
    assert get_certainty_opacity("probable") == 0.7
    assert get_certainty_opacity(Certainty.CERTAIN) == 1.0
    assert should_show_dashed_border("discussion") is True
    assert should_show_dashed_border(Certainty.PROBABLE) is False
    assert should_show_dashed_border("certain") is False
