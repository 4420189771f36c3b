"""Zoning Application Portal (ZAP) projects."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from .. import config
from ..models import CanonicalEvent, EventType
from ..normalize import (
    ABBREVIATED_BOROUGHS,
    clean_text,
    first_date,
    format_since_date,
    normalize_borough,
    utc_now,
)
from .base import RawRecord, SourceAdapter

# Keyword rules evaluated top-down against the lower-cased public status.
ULURP_STATUS_RULES: tuple[tuple[tuple[str, ...], EventType], ...] = (
    (("filed", "active"), EventType.ULURP_FILED),
    (("complete", "approved"), EventType.ULURP_APPROVED),
    (("denied", "withdrawn"), EventType.ULURP_DENIED),
)

NON_ULURP_STATUS_RULES: tuple[tuple[tuple[str, ...], EventType], ...] = (
    (("filed", "active"), EventType.ZAP_FILED),
    (("complete", "approved"), EventType.ZAP_APPROVED),
)

# ZAP sends upper-case abbreviations or title-case names, matched exactly;
# anything else (including "bk" or "manhattan") is kept verbatim.
BOROUGH_CODES: dict[str, str] = {**ABBREVIATED_BOROUGHS, **{name: name for name in config.BOROUGHS}}

DATE_FIELDS: tuple[str, ...] = ("certified_referred", "app_filed_date")


def classify_zoning_status(ulurp_flag: Optional[str], public_status: Optional[str]) -> Optional[EventType]:
    rules = ULURP_STATUS_RULES if ulurp_flag == "ULURP" else NON_ULURP_STATUS_RULES
    status = (public_status or "").lower()
    if not status:
        return None
    for keywords, event_type in rules:
        if any(keyword in status for keyword in keywords):
            return event_type
    return None


class ZoningApplicationsAdapter(SourceAdapter):
    name = "zap"
    endpoint = config.ENDPOINTS["zap"]
    batch_size = 1000
    delay_seconds = 0.2
    order = "certified_referred DESC NULLS LAST"
    date_column = "certified_referred"
    date_style = "iso"

    def where_clause(self, since_date: Optional[datetime]) -> Optional[str]:
        if since_date is None:
            return None
        literal = format_since_date(since_date, self.date_style)
        return f"certified_referred >= '{literal}' OR app_filed_date >= '{literal}'"

    def normalize(self, raw: RawRecord) -> Optional[CanonicalEvent]:
        project_id = clean_text(raw.get("project_id"))
        if not project_id:
            return None

        event_type = classify_zoning_status(raw.get("ulurp_non"), raw.get("public_status"))
        if event_type is None:
            return None

        return CanonicalEvent(
            source=self.name,
            source_id=project_id,
            event_type=event_type,
            event_date=first_date(raw, DATE_FIELDS) or utc_now(),
            location_ref=None,
            borough=normalize_borough(raw.get("borough"), BOROUGH_CODES, passthrough=True, case_sensitive=True),
            # The ZAP dataset carries no coordinates
            latitude=None,
            longitude=None,
            community_district=clean_text(raw.get("community_district")),
            raw_payload=dict(raw),
        )


__all__ = ["ZoningApplicationsAdapter", "classify_zoning_status"]
