"""Certainty derivation: could it happen, is it very likely, or is it happening."""
from __future__ import annotations

from typing import Iterable, Tuple

from .models import CanonicalEvent, Certainty, EventType, event_type_value

# Tiers in the order they are checked; the first tier with a matching event wins.
CERTAINTY_SIGNALS: Tuple[Tuple[Certainty, frozenset], ...] = (
    (
        Certainty.CERTAIN,
        frozenset({
            EventType.CONSTRUCTION_STARTED,
            EventType.CONSTRUCTION_COMPLETED,
        }),
    ),
    (
        Certainty.PROBABLE,
        frozenset({
            EventType.NEW_BUILDING,
            EventType.MAJOR_ALTERATION,
            EventType.DEMOLITION,
            EventType.ZAP_APPROVED,
            EventType.ULURP_APPROVED,
            EventType.CEQR_EIS_FINAL,
            EventType.CEQR_COMPLETED,
        }),
    ),
    (
        Certainty.DISCUSSION,
        frozenset({
            EventType.ULURP_FILED,
            EventType.ZAP_FILED,
            EventType.CEQR_EAS,
            EventType.CEQR_EIS_DRAFT,
        }),
    ),
)

CERTAINTY_OPACITY = {
    Certainty.DISCUSSION: 0.4,
    Certainty.PROBABLE: 0.7,
    Certainty.CERTAIN: 1.0,
}


def derive_certainty(events: Iterable[CanonicalEvent]) -> Certainty:
    """Classify a place's events into a certainty tier.

    No events and only unrecognized event types both fall back to
    ``discussion``.
    """
    event_types = {event_type_value(event.event_type) for event in events}
    for certainty, signals in CERTAINTY_SIGNALS:
        if any(signal.value in event_types for signal in signals):
            return certainty
    return Certainty.DISCUSSION


def get_certainty_opacity(certainty: Certainty | str) -> float:
    return CERTAINTY_OPACITY[Certainty(certainty)]


def should_show_dashed_border(certainty: Certainty | str) -> bool:
    return Certainty(certainty) is Certainty.DISCUSSION


__all__ = [
    "CERTAINTY_SIGNALS",
    "derive_certainty",
    "get_certainty_opacity",
    "should_show_dashed_border",
]
