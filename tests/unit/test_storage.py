from __future__ import annotations

from datetime import datetime, timezone

import pytest

from urban_change_map.models import (
    BoundaryRecord,
    CanonicalEvent,
    Certainty,
    EventType,
    HeatmapCell,
    Nature,
    ParcelRecord,
    ProjectStatus,
    TransformationState,
)
from urban_change_map.storage import ChangeDatabase


@pytest.fixture
def db(tmp_path):
    database = ChangeDatabase(tmp_path / "change.db")
    database.initialize()
    return database


def event(source_id, **fields):
    values = {
        "source": "permit-filings",
        "source_id": source_id,
        "event_type": EventType.NEW_BUILDING,
        "event_date": datetime(2024, 1, 15, tzinfo=timezone.utc),
    }
    values.update(fields)
    return CanonicalEvent(**values)


def cell(index, intensity):
    return HeatmapCell(
        cell_index=index,
        center_lat=40.7,
        center_lng=-73.9,
        avg_intensity=float(intensity),
        max_intensity=intensity,
        place_count=1,
        dominant_nature="mixed",
        computed_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    )


def test_upsert_is_keyed_on_source_and_source_id(db):
    db.upsert_events([event("1", location_ref="bin:1"), event("1", location_ref="bin:1", event_type=EventType.DEMOLITION)])
    db.upsert_event(event("1", location_ref="bin:1", event_type=EventType.DEMOLITION))

    assert db.count_events() == 1
    [(place, events)] = list(db.find_locations_with_events())
    assert place.location_ref == "bin:1"
    assert events[0].event_type == EventType.DEMOLITION


def test_events_with_same_ref_share_a_place(db):
    first = db.upsert_event(event("1", location_ref="bin:9"))
    second = db.upsert_event(event("2", location_ref="bin:9", latitude=40.7, longitude=-73.9, source="dob-complaints"))

    assert first == second
    [(place, events)] = list(db.find_locations_with_events())
    assert (place.latitude, place.longitude) == (40.7, -73.9)
    assert len(events) == 2


def test_event_without_location_is_kept_unattached(db):
    assert db.upsert_event(event("zap-1", source="zap", event_type=EventType.ULURP_FILED)) is None
    assert db.count_events("zap") == 1
    assert list(db.find_locations_with_events()) == []


def test_replace_heatmap_cells_swaps_snapshot(db):
    db.replace_heatmap_cells([cell("a", 10), cell("b", 20)])
    assert db.replace_heatmap_cells([cell("c", 30)]) == 1
    assert [c.cell_index for c in db.fetch_heatmap_cells()] == ["c"]


def test_failed_swap_keeps_previous_snapshot(db):
    db.replace_heatmap_cells([cell("a", 10)])

    # Duplicate cell indexes violate the primary key midway through the insert
    with pytest.raises(Exception):
        db.replace_heatmap_cells([cell("b", 20), cell("b", 30)])

    assert [c.cell_index for c in db.fetch_heatmap_cells()] == ["a"]


def test_sync_bookkeeping(db):
    synced_at = datetime(2024, 6, 1, tzinfo=timezone.utc)
    db.mark_source_syncing("zap")
    assert db.get_source("zap")["status"] == "syncing"

    db.mark_source_synced("zap", synced_at, 42)
    db.mark_source_failed("zap", "timeout")

    row = db.get_source("zap")
    assert row["status"] == "error"
    assert row["error_message"] == "timeout"
    assert row["last_sync"] == synced_at.isoformat()
    assert row["record_count"] == 42


def test_enrich_places_fills_coordinates_from_parcels(db):
    db.upsert_event(event("v1", source="dob-violations", event_type=EventType.OTHER, location_ref="bbl:1000420007"))
    db.upsert_parcels([ParcelRecord(bbl="1000420007", latitude=40.71, longitude=-74.0, borough="Manhattan")])

    assert db.enrich_places() >= 1
    [(place, _)] = list(db.find_locations_with_events())
    assert (place.latitude, place.longitude, place.borough) == (40.71, -74.0, "Manhattan")


def test_enrich_places_names_community_district_and_fills_borough(db):
    db.upsert_event(event("c1", source="dob-complaints", event_type=EventType.OTHER, location_ref="bin:3001", community_district="301"))
    db.upsert_boundaries(
        [
            BoundaryRecord(kind="community_district", code="301", name="Brooklyn CD 1", borough="Brooklyn"),
            BoundaryRecord(kind="borough", code="3", name="Brooklyn", borough="Brooklyn"),
        ]
    )

    assert db.enrich_places() == 2
    with db.transaction() as conn:
        row = conn.execute("SELECT borough, community_district_name FROM places WHERE location_ref = 'bin:3001'").fetchone()
    assert (row["borough"], row["community_district_name"]) == ("Brooklyn", "Brooklyn CD 1")


def test_transformation_state_round_trips_impact_phases(db):
    place_id = db.upsert_event(event("1", location_ref="bin:1"))
    state = TransformationState(
        location_id=place_id,
        certainty=Certainty.CERTAIN,
        intensity=80,
        nature=Nature.DENSIFICATION,
        event_count=1,
        first_activity=datetime(2024, 1, 15, tzinfo=timezone.utc),
        last_activity=datetime(2024, 1, 15, tzinfo=timezone.utc),
        computed_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
        disruption_start=datetime(2024, 1, 15, tzinfo=timezone.utc),
        is_estimated_start=True,
        permit_expiration=datetime(2025, 1, 15, tzinfo=timezone.utc),
        project_status=ProjectStatus.ACTIVE,
    )

    db.upsert_transformation_state(state)

    stored = db.get_transformation_state(place_id)
    assert stored == state
    assert stored.is_estimated_start is True
    assert stored.project_status is ProjectStatus.ACTIVE


def test_single_cell_writes(db):
    db.insert_heatmap_cell(cell("a", 10))
    db.insert_heatmap_cell(cell("b", 20))
    assert len(db.fetch_heatmap_cells()) == 2

    db.delete_all_heatmap_cells()
    assert db.fetch_heatmap_cells() == []
