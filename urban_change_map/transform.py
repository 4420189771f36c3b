"""Transformation state computation: intensity, nature and certainty per place."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from itertools import islice
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar

from . import config
from .certainty import derive_certainty
from .errors import StateComputationError
from .models import CanonicalEvent, Certainty, EventType, Nature, Place, TransformationState, event_type_value
from .normalize import utc_now
from .phases import estimate_impact_phases
from .storage import ChangeDatabase

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Event types that say something about the kind of change; the rest are neutral.
NATURE_MAPPING: Dict[str, Nature] = {
    EventType.NEW_BUILDING.value: Nature.DENSIFICATION,
    EventType.DEMOLITION.value: Nature.DEMOLITION,
    EventType.MAJOR_ALTERATION.value: Nature.RENOVATION,
    EventType.MINOR_ALTERATION.value: Nature.RENOVATION,
    EventType.MECHANICAL.value: Nature.RENOVATION,
    EventType.PLUMBING.value: Nature.RENOVATION,
    EventType.CAPITAL_PROJECT.value: Nature.INFRASTRUCTURE,
    EventType.ULURP_FILED.value: Nature.ZONING,
    EventType.ULURP_APPROVED.value: Nature.ZONING,
    EventType.ULURP_DENIED.value: Nature.ZONING,
    EventType.ZAP_FILED.value: Nature.ZONING,
    EventType.ZAP_APPROVED.value: Nature.ZONING,
    EventType.CEQR_EAS.value: Nature.ZONING,
    EventType.CEQR_EIS_DRAFT.value: Nature.ZONING,
    EventType.CEQR_EIS_FINAL.value: Nature.ZONING,
    EventType.CEQR_COMPLETED.value: Nature.ZONING,
}

# Equal scores go to whichever nature comes first here.
NATURE_PRIORITY: Tuple[Nature, ...] = (
    Nature.DENSIFICATION,
    Nature.DEMOLITION,
    Nature.INFRASTRUCTURE,
    Nature.RENOVATION,
    Nature.ZONING,
)


@dataclass
class ComputationStats:
    places_processed: int = 0
    states_written: int = 0
    failures: List[Tuple[int, str]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, int]:
        return {
            "places_processed": self.places_processed,
            "states_written": self.states_written,
            "failures": len(self.failures),
        }


def compute_intensity(events: Sequence[CanonicalEvent], certainty: Optional[Certainty] = None) -> int:
    """Score 0-100; stronger events and later certainty tiers score higher.

    Minor alterations accumulate; every other event type counts once.
    """
    if not events:
        return 0

    score = 0
    seen: set[str] = set()
    for event in events:
        event_type = event_type_value(event.event_type)
        weight = config.INTENSITY_WEIGHTS.get(event_type, 0)
        if event_type == EventType.MINOR_ALTERATION.value:
            score += weight
        elif event_type not in seen:
            score += weight
            seen.add(event_type)

    certainty = certainty or derive_certainty(events)
    score += config.CERTAINTY_INTENSITY_BONUS[certainty.value]
    return max(0, min(score, config.MAX_INTENSITY))


def derive_nature(events: Iterable[CanonicalEvent]) -> Nature:
    scores: Dict[Nature, int] = {}
    for event in events:
        nature = NATURE_MAPPING.get(event_type_value(event.event_type))
        if nature is not None:
            scores[nature] = scores.get(nature, 0) + config.NATURE_WEIGHTS[nature.value]

    dominant = Nature.MIXED
    best = 0
    for nature in NATURE_PRIORITY:
        if scores.get(nature, 0) > best:
            best = scores[nature]
            dominant = nature
    return dominant


def compute_transformation_state(
    location_id: int,
    events: Sequence[CanonicalEvent],
    *,
    computed_at: Optional[datetime] = None,
) -> TransformationState:
    """Summarize a place's events. Pure: the same events give the same state.

    ``computed_at`` is also the reference time for the project status.
    Raises :class:`StateComputationError` when a stored event has lost its date.
    """
    undated = [event.key for event in events if event.event_date is None]
    if undated:
        raise StateComputationError(f"Place {location_id} has events without a date: {undated}")

    computed_at = computed_at or utc_now()
    certainty = derive_certainty(events)
    dates = [event.event_date for event in events]
    phases = estimate_impact_phases(events, as_of=computed_at)
    return TransformationState(
        location_id=location_id,
        certainty=certainty,
        intensity=compute_intensity(events, certainty),
        nature=derive_nature(events),
        event_count=len(events),
        first_activity=min(dates) if dates else None,
        last_activity=max(dates) if dates else None,
        computed_at=computed_at,
        disruption_start=phases.disruption_start,
        disruption_end=phases.disruption_end,
        visible_change_date=phases.visible_change_date,
        is_estimated_start=phases.is_estimated_start,
        is_estimated_end=phases.is_estimated_end,
        approval_date=phases.approval_date,
        permit_expiration=phases.permit_expiration,
        project_status=phases.project_status,
    )


def _batched(items: Iterable[T], size: int) -> Iterator[List[T]]:
    iterator = iter(items)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield batch


def run_state_computation(
    db: ChangeDatabase,
    *,
    batch_size: int = config.STATE_BATCH_SIZE,
) -> ComputationStats:
    """Recompute the state of every place that has events.

    A place whose computation fails is logged and recorded in the stats;
    its previous state (and ``computed_at``) is left untouched and the run
    moves on to the next place.
    """
    stats = ComputationStats()
    locations: Iterable[Tuple[Place, List[CanonicalEvent]]] = db.find_locations_with_events()
    for batch in _batched(locations, batch_size):
        for place, events in batch:
            stats.places_processed += 1
            try:
                state = compute_transformation_state(place.id, events)
                db.upsert_transformation_state(state)
            except Exception as exc:
                logger.exception("State computation failed for place %s", place.id)
                stats.failures.append((place.id, str(exc)))
                continue
            stats.states_written += 1
        logger.info("Processed %s places (%s failed)", stats.places_processed, len(stats.failures))

    logger.info("Transformation computation completed: %s", stats.as_dict())
    return stats


def run_compute(
    *,
    db_path: Optional[str] = None,
    batch_size: int = config.STATE_BATCH_SIZE,
    resolution: int = config.H3_RESOLUTION,
    output_path: Optional[Path | str] = None,
) -> ComputationStats:
    """Recompute all states, then rebuild the heatmap from them.

    The two phases run strictly in sequence so the aggregation never reads
    states that are still being written.
    """
    from .heatmap import export_heatmap, run_aggregation

    db = ChangeDatabase(db_path or config.DEFAULT_DATABASE_PATH)
    db.initialize()
    stats = run_state_computation(db, batch_size=batch_size)
    run_aggregation(db, resolution=resolution)
    if output_path:
        export_heatmap(db, output_path)
    return stats


__all__ = [
    "NATURE_MAPPING",
    "NATURE_PRIORITY",
    "ComputationStats",
    "compute_intensity",
    "derive_nature",
    "compute_transformation_state",
    "run_state_computation",
    "run_compute",
]
