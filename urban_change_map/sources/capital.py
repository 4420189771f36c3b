"""Capital Projects Database (CPDB): city-funded infrastructure work."""
from __future__ import annotations

from typing import Any, Optional

from .. import config
from ..models import CanonicalEvent, EventType
from ..normalize import clean_text, parse_date, parse_latitude, parse_longitude, utc_now
from .base import RawRecord, SourceAdapter


def first_vertex(geometry: Any) -> tuple[Optional[float], Optional[float]]:
    """Return ``(lat, lng)`` of the first vertex of a GeoJSON-like geometry."""
    if not isinstance(geometry, dict):
        return None, None
    coordinates = geometry.get("coordinates")
    # Descend through nested rings until a point is reached
    while isinstance(coordinates, list) and coordinates and isinstance(coordinates[0], list):
        coordinates = coordinates[0]
    if not isinstance(coordinates, list) or len(coordinates) < 2:
        return None, None
    return parse_latitude(coordinates[1]), parse_longitude(coordinates[0])


class CapitalProjectsAdapter(SourceAdapter):
    name = "capital"
    endpoint = config.ENDPOINTS["capital"]
    batch_size = 10000
    delay_seconds = 0.1
    order = "mindate DESC"
    date_column = "mindate"
    date_style = "iso"

    def normalize(self, raw: RawRecord) -> Optional[CanonicalEvent]:
        project_id = clean_text(raw.get("maprojid"))
        if not project_id:
            return None

        latitude, longitude = first_vertex(raw.get("the_geom"))
        return CanonicalEvent(
            source=self.name,
            source_id=project_id,
            event_type=EventType.CAPITAL_PROJECT,
            event_date=parse_date(raw.get("mindate")) or utc_now(),
            latitude=latitude,
            longitude=longitude,
            raw_payload=dict(raw),
        )


__all__ = ["CapitalProjectsAdapter", "first_vertex"]
