"""Canonical data model shared by every stage of the pipeline."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class EventType(str, Enum):
    NEW_BUILDING = "new_building"
    MAJOR_ALTERATION = "major_alteration"
    MINOR_ALTERATION = "minor_alteration"
    DEMOLITION = "demolition"
    SCAFFOLD = "scaffold"
    EQUIPMENT_WORK = "equipment_work"
    PLUMBING = "plumbing"
    MECHANICAL = "mechanical"
    ULURP_FILED = "ulurp_filed"
    ULURP_APPROVED = "ulurp_approved"
    ULURP_DENIED = "ulurp_denied"
    ZAP_FILED = "zap_filed"
    ZAP_APPROVED = "zap_approved"
    CEQR_EAS = "ceqr_eas"
    CEQR_EIS_DRAFT = "ceqr_eis_draft"
    CEQR_EIS_FINAL = "ceqr_eis_final"
    CEQR_COMPLETED = "ceqr_completed"
    CAPITAL_PROJECT = "capital_project"
    CONSTRUCTION_STARTED = "construction_started"
    CONSTRUCTION_COMPLETED = "construction_completed"
    OTHER = "other"


def event_type_value(event_type: EventType | str) -> str:
    """Plain string form of an event type; stored types unknown to ``EventType`` stay strings."""
    return event_type.value if isinstance(event_type, EventType) else str(event_type)


class Certainty(str, Enum):
    """How likely an observed change is to materialize."""

    DISCUSSION = "discussion"
    PROBABLE = "probable"
    CERTAIN = "certain"


class Nature(str, Enum):
    """Coarse category of the change underway at a place."""

    DENSIFICATION = "densification"
    DEMOLITION = "demolition"
    INFRASTRUCTURE = "infrastructure"
    RENOVATION = "renovation"
    ZONING = "zoning"
    MIXED = "mixed"


class ProjectStatus(str, Enum):
    """Where a place's project stands, as of the computation time."""

    PLANNING = "planning"
    APPROVED = "approved"
    ACTIVE = "active"
    STALLED = "stalled"
    COMPLETED = "completed"


@dataclass(frozen=True)
class CanonicalEvent:
    """One change-relevant occurrence, normalized from a source record.

    ``location_ref`` is a stable parcel/building key (``bin:<BIN>`` or
    ``bbl:<BBL>``) used to attach the event to a place.
    """

    source: str
    source_id: str
    event_type: EventType
    event_date: datetime
    location_ref: Optional[str] = None
    borough: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    community_district: Optional[str] = None
    nta_code: Optional[str] = None
    address: Optional[str] = None
    raw_payload: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.source_id)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class ParcelRecord:
    """Tax-lot context from the land-use registry."""

    bbl: str
    borough: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    community_district: Optional[str] = None
    zip_code: Optional[str] = None
    primary_zoning: Optional[str] = None
    land_use: Optional[str] = None
    building_class: Optional[str] = None
    year_built: Optional[int] = None
    num_floors: Optional[float] = None
    residential_units: Optional[int] = None
    raw_payload: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class BoundaryRecord:
    """An administrative area: NTA, community district or borough."""

    kind: str
    code: str
    name: str
    borough: Optional[str] = None
    geometry: Optional[Dict[str, Any]] = field(default=None, compare=False, hash=False)


@dataclass(frozen=True)
class Place:
    id: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_ref: Optional[str] = None
    borough: Optional[str] = None
    community_district: Optional[str] = None
    nta_code: Optional[str] = None


@dataclass(frozen=True)
class TransformationState:
    location_id: int
    certainty: Certainty
    intensity: int
    nature: Nature
    event_count: int
    first_activity: Optional[datetime]
    last_activity: Optional[datetime]
    # Run metadata: two states computed from the same events compare equal.
    computed_at: datetime = field(compare=False)
    # Impact phases; dates come from source records, flags mark estimates
    disruption_start: Optional[datetime] = None
    disruption_end: Optional[datetime] = None
    visible_change_date: Optional[datetime] = None
    is_estimated_start: bool = False
    is_estimated_end: bool = False
    approval_date: Optional[datetime] = None
    permit_expiration: Optional[datetime] = None
    project_status: ProjectStatus = ProjectStatus.PLANNING

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class HeatmapCell:
    cell_index: str
    center_lat: float
    center_lng: float
    avg_intensity: float
    max_intensity: int
    place_count: int
    dominant_nature: str
    computed_at: datetime

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = [
    "EventType",
    "event_type_value",
    "Certainty",
    "Nature",
    "ProjectStatus",
    "CanonicalEvent",
    "ParcelRecord",
    "BoundaryRecord",
    "Place",
    "TransformationState",
    "HeatmapCell",
]
