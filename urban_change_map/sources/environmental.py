"""City Environmental Quality Review (CEQR) projects.

A CEQR project record carries several optional milestone dates and a free
text status. The milestone with the highest priority decides both the event
type and which field supplies the event date.
"""
from __future__ import annotations

from typing import Callable, Optional

from .. import config
from ..models import CanonicalEvent, EventType
from ..normalize import (
    ABBREVIATED_BOROUGHS,
    NAMED_BOROUGHS,
    clean_text,
    normalize_borough,
    parse_date,
    utc_now,
)
from .base import RawRecord, SourceAdapter

BOROUGH_CODES: dict[str, str] = {**ABBREVIATED_BOROUGHS, **NAMED_BOROUGHS}


def _status(raw: RawRecord) -> str:
    return (raw.get("projectstatus") or "").lower()


def _is_completed(raw: RawRecord) -> bool:
    return "complete" in _status(raw) or bool(clean_text(raw.get("projectcompleted")))


def _is_active(raw: RawRecord) -> bool:
    status = _status(raw)
    return "active" in status or "in progress" in status


def _has(field_name: str) -> Callable[[RawRecord], bool]:
    return lambda raw: bool(clean_text(raw.get(field_name)))


# (matches, event type, date field), highest priority first
MILESTONE_PRIORITY: tuple[tuple[Callable[[RawRecord], bool], EventType, str], ...] = (
    (_is_completed, EventType.CEQR_COMPLETED, "projectcompleted"),
    (_has("feissubmitteddate"), EventType.CEQR_EIS_FINAL, "feissubmitteddate"),
    (_has("deissubmitteddate"), EventType.CEQR_EIS_DRAFT, "deissubmitteddate"),
    (_has("eassubmitteddate"), EventType.CEQR_EAS, "eassubmitteddate"),
    (_is_active, EventType.CEQR_EAS, "noaccepteddate"),
)


def classify_milestone(raw: RawRecord) -> Optional[tuple[EventType, str]]:
    for matches, event_type, date_field in MILESTONE_PRIORITY:
        if matches(raw):
            return event_type, date_field
    return None


def map_ceqr_event_type(raw: RawRecord) -> Optional[EventType]:
    milestone = classify_milestone(raw)
    return milestone[0] if milestone else None


class EnvironmentalReviewAdapter(SourceAdapter):
    name = "ceqr"
    endpoint = config.ENDPOINTS["ceqr"]
    batch_size = 10000
    delay_seconds = 0.1
    # The dataset has no reliable modification column: every sync is a full refresh.
    date_column = None

    def normalize(self, raw: RawRecord) -> Optional[CanonicalEvent]:
        ceqr_number = clean_text(raw.get("ceqrnumber") or raw.get("ceqr"))
        project_name = clean_text(raw.get("projectname") or raw.get("project_name"))
        if not ceqr_number or not project_name:
            return None

        milestone = classify_milestone(raw)
        if milestone is None:
            return None
        event_type, date_field = milestone

        return CanonicalEvent(
            source=self.name,
            source_id=ceqr_number,
            event_type=event_type,
            event_date=parse_date(raw.get(date_field)) or utc_now(),
            location_ref=None,
            borough=normalize_borough(raw.get("borough"), BOROUGH_CODES, passthrough=True),
            latitude=None,
            longitude=None,
            community_district=clean_text(raw.get("communitydistrict")),
            raw_payload=dict(raw),
        )


__all__ = [
    "EnvironmentalReviewAdapter",
    "MILESTONE_PRIORITY",
    "classify_milestone",
    "map_ceqr_event_type",
]
