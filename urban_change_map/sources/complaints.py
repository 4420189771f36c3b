"""DOB complaints received."""
from __future__ import annotations

from typing import Optional

from .. import config
from ..models import CanonicalEvent, EventType
from ..normalize import (
    NAMED_BOROUGHS,
    build_address,
    build_location_ref,
    clean_text,
    normalize_borough,
    parse_latitude,
    parse_longitude,
    parse_date,
)
from .base import RawRecord, SourceAdapter


class ComplaintsAdapter(SourceAdapter):
    name = "dob-complaints"
    endpoint = config.ENDPOINTS["dob-complaints"]
    batch_size = 10000
    delay_seconds = 0.1
    # dobrundate is the batch update stamp, so updated complaints are picked up too
    order = "dobrundate DESC"
    date_column = "dobrundate"
    date_style = "timestamp"

    def normalize(self, raw: RawRecord) -> Optional[CanonicalEvent]:
        complaint_number = clean_text(raw.get("complaint_number"))
        if not complaint_number:
            return None

        date_entered = parse_date(raw.get("date_entered"))
        if date_entered is None:
            return None

        return CanonicalEvent(
            source=self.name,
            source_id=complaint_number,
            event_type=EventType.OTHER,
            event_date=date_entered,
            location_ref=build_location_ref(raw.get("bin")),
            borough=normalize_borough(raw.get("borough"), NAMED_BOROUGHS),
            latitude=parse_latitude(raw.get("latitude")),
            longitude=parse_longitude(raw.get("longitude")),
            community_district=clean_text(raw.get("community_board")),
            nta_code=clean_text(raw.get("nta")),
            address=build_address(raw.get("house_number"), raw.get("house_street")),
            raw_payload=dict(raw),
        )


__all__ = ["ComplaintsAdapter"]
