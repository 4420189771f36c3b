"""DOB violations. Violations flag buildings that may be headed for major work."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from .. import config
from ..models import CanonicalEvent, EventType
from ..normalize import (
    NAMED_BOROUGHS,
    NUMERIC_BOROUGHS,
    build_address,
    build_bbl,
    build_location_ref,
    clean_text,
    normalize_borough,
    parse_latitude,
    parse_longitude,
    parse_date,
)
from .base import RawRecord, SourceAdapter

BOROUGH_CODES: dict[str, str] = {**NUMERIC_BOROUGHS, **NAMED_BOROUGHS}


class ViolationsAdapter(SourceAdapter):
    name = "dob-violations"
    endpoint = config.ENDPOINTS["dob-violations"]
    # Smaller, slower pages: this endpoint drops long-running connections
    batch_size = 5000
    delay_seconds = 0.5
    order = "issue_date DESC"
    date_column = "issue_date"
    date_style = "compact"

    def where_clause(self, since_date: Optional[datetime]) -> Optional[str]:
        clause = super().where_clause(since_date)
        if clause is None:
            return None
        return f"{clause} AND issue_date IS NOT NULL"

    def normalize(self, raw: RawRecord) -> Optional[CanonicalEvent]:
        violation_id = clean_text(raw.get("isn_dob_bis_viol"))
        if not violation_id:
            return None

        issue_date = parse_date(raw.get("issue_date"))
        if issue_date is None:
            return None

        bbl = build_bbl(raw.get("boro"), raw.get("block"), raw.get("lot"))
        return CanonicalEvent(
            source=self.name,
            source_id=violation_id,
            event_type=EventType.OTHER,
            event_date=issue_date,
            location_ref=build_location_ref(raw.get("bin"), bbl),
            borough=normalize_borough(raw.get("boro"), BOROUGH_CODES),
            latitude=parse_latitude(raw.get("latitude")),
            longitude=parse_longitude(raw.get("longitude")),
            community_district=clean_text(raw.get("community_board")),
            nta_code=clean_text(raw.get("nta")),
            address=build_address(raw.get("house_number"), raw.get("street")),
            raw_payload=dict(raw),
        )


__all__ = ["ViolationsAdapter"]
