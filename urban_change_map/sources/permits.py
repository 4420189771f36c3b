"""Building-permit job filings (DOB NOW: Build)."""
from __future__ import annotations

from typing import Optional

from .. import config
from ..models import CanonicalEvent, EventType
from ..normalize import (
    NAMED_BOROUGHS,
    NUMERIC_BOROUGHS,
    build_address,
    build_location_ref,
    clean_text,
    first_date,
    normalize_borough,
    parse_latitude,
    parse_longitude,
    utc_now,
)
from .base import RawRecord, SourceAdapter

JOB_TYPE_EVENTS: dict[str, EventType] = {
    "NB": EventType.NEW_BUILDING,
    "A1": EventType.MAJOR_ALTERATION,
    "A2": EventType.MINOR_ALTERATION,
    "DM": EventType.DEMOLITION,
    "SG": EventType.SCAFFOLD,
    "EW": EventType.EQUIPMENT_WORK,
    "PL": EventType.PLUMBING,
}

BOROUGH_CODES: dict[str, str] = {**NUMERIC_BOROUGHS, **NAMED_BOROUGHS}

# Candidate event dates, most specific first
DATE_FIELDS: tuple[str, ...] = ("filing_date", "pre_filing_date", "current_status_date")


def classify_job_type(job_type: Optional[str]) -> EventType:
    if not job_type:
        return EventType.OTHER
    return JOB_TYPE_EVENTS.get(job_type.strip().upper(), EventType.OTHER)


class PermitFilingsAdapter(SourceAdapter):
    name = "permit-filings"
    endpoint = config.ENDPOINTS["permit-filings"]
    batch_size = 10000
    delay_seconds = 0.1
    order = "filing_date DESC"
    date_column = "filing_date"
    date_style = "iso"

    def normalize(self, raw: RawRecord) -> Optional[CanonicalEvent]:
        job_number = clean_text(raw.get("job_filing_number"))
        if not job_number:
            return None

        doc_number = clean_text(raw.get("doc_number"))
        source_id = f"{job_number}-{doc_number}" if doc_number else job_number

        # Some filings carry no usable date at all; they are still recorded
        # as of the moment they were ingested.
        event_date = first_date(raw, DATE_FIELDS) or utc_now()

        return CanonicalEvent(
            source=self.name,
            source_id=source_id,
            event_type=classify_job_type(raw.get("job_type")),
            event_date=event_date,
            location_ref=build_location_ref(raw.get("bin"), raw.get("bbl")),
            borough=normalize_borough(raw.get("borough"), BOROUGH_CODES),
            latitude=parse_latitude(raw.get("latitude")),
            longitude=parse_longitude(raw.get("longitude")),
            community_district=clean_text(raw.get("community_board") or raw.get("commmunity_board")),
            nta_code=clean_text(raw.get("nta")),
            address=build_address(raw.get("house_no"), raw.get("street_name")),
            raw_payload=dict(raw),
        )


__all__ = ["PermitFilingsAdapter", "JOB_TYPE_EVENTS", "classify_job_type"]
