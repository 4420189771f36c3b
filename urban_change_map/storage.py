"""Persistence utilities for events, places, derived states and heatmap cells."""
from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from itertools import groupby
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from . import config
from .models import (
    BoundaryRecord,
    CanonicalEvent,
    Certainty,
    EventType,
    HeatmapCell,
    Nature,
    ParcelRecord,
    Place,
    ProjectStatus,
    TransformationState,
    event_type_value,
)
from .normalize import parse_date, utc_now

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS places (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    location_ref TEXT UNIQUE,
    latitude REAL,
    longitude REAL,
    address TEXT,
    borough TEXT,
    community_district TEXT,
    nta_code TEXT,
    nta_name TEXT,
    community_district_name TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_places_coords ON places(latitude, longitude);

CREATE TABLE IF NOT EXISTS raw_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    place_id INTEGER REFERENCES places(id) ON DELETE CASCADE,
    source TEXT NOT NULL,
    source_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    event_date TEXT NOT NULL,
    location_ref TEXT,
    borough TEXT,
    latitude REAL,
    longitude REAL,
    community_district TEXT,
    nta_code TEXT,
    address TEXT,
    raw_payload TEXT NOT NULL,
    ingested_at TEXT NOT NULL,
    UNIQUE (source, source_id)
);
CREATE INDEX IF NOT EXISTS idx_raw_events_place ON raw_events(place_id);

CREATE TABLE IF NOT EXISTS transformation_states (
    place_id INTEGER PRIMARY KEY REFERENCES places(id) ON DELETE CASCADE,
    certainty TEXT NOT NULL,
    intensity INTEGER NOT NULL,
    nature TEXT NOT NULL,
    event_count INTEGER NOT NULL,
    first_activity TEXT,
    last_activity TEXT,
    computed_at TEXT NOT NULL,
    disruption_start TEXT,
    disruption_end TEXT,
    visible_change_date TEXT,
    is_estimated_start INTEGER NOT NULL DEFAULT 0,
    is_estimated_end INTEGER NOT NULL DEFAULT 0,
    approval_date TEXT,
    permit_expiration TEXT,
    project_status TEXT NOT NULL DEFAULT 'planning'
);

CREATE TABLE IF NOT EXISTS heatmap_cells (
    h3_index TEXT PRIMARY KEY,
    center_lat REAL NOT NULL,
    center_lng REAL NOT NULL,
    avg_intensity REAL NOT NULL,
    max_intensity INTEGER NOT NULL,
    place_count INTEGER NOT NULL,
    dominant_nature TEXT NOT NULL,
    computed_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS parcels (
    bbl TEXT PRIMARY KEY,
    borough TEXT,
    address TEXT,
    latitude REAL,
    longitude REAL,
    community_district TEXT,
    zip_code TEXT,
    primary_zoning TEXT,
    land_use TEXT,
    building_class TEXT,
    year_built INTEGER,
    num_floors REAL,
    residential_units INTEGER
);

CREATE TABLE IF NOT EXISTS boundaries (
    kind TEXT NOT NULL,
    code TEXT NOT NULL,
    name TEXT NOT NULL,
    borough TEXT,
    geometry_json TEXT,
    PRIMARY KEY (kind, code)
);

CREATE TABLE IF NOT EXISTS data_sources (
    name TEXT PRIMARY KEY,
    last_sync TEXT,
    record_count INTEGER DEFAULT 0,
    status TEXT DEFAULT 'idle',
    error_message TEXT
);
"""

UPSERT_EVENT_SQL = """
INSERT INTO raw_events (
    place_id, source, source_id, event_type, event_date, location_ref, borough,
    latitude, longitude, community_district, nta_code, address, raw_payload, ingested_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (source, source_id) DO UPDATE SET
    place_id = COALESCE(excluded.place_id, raw_events.place_id),
    event_type = excluded.event_type,
    event_date = excluded.event_date,
    location_ref = excluded.location_ref,
    borough = excluded.borough,
    latitude = excluded.latitude,
    longitude = excluded.longitude,
    community_district = excluded.community_district,
    nta_code = excluded.nta_code,
    address = excluded.address,
    raw_payload = excluded.raw_payload,
    ingested_at = excluded.ingested_at
"""

UPSERT_STATE_SQL = """
INSERT INTO transformation_states (
    place_id, certainty, intensity, nature, event_count, first_activity, last_activity, computed_at,
    disruption_start, disruption_end, visible_change_date, is_estimated_start, is_estimated_end,
    approval_date, permit_expiration, project_status
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (place_id) DO UPDATE SET
    certainty = excluded.certainty,
    intensity = excluded.intensity,
    nature = excluded.nature,
    event_count = excluded.event_count,
    first_activity = excluded.first_activity,
    last_activity = excluded.last_activity,
    computed_at = excluded.computed_at,
    disruption_start = excluded.disruption_start,
    disruption_end = excluded.disruption_end,
    visible_change_date = excluded.visible_change_date,
    is_estimated_start = excluded.is_estimated_start,
    is_estimated_end = excluded.is_estimated_end,
    approval_date = excluded.approval_date,
    permit_expiration = excluded.permit_expiration,
    project_status = excluded.project_status
"""

INSERT_CELL_SQL = """
INSERT INTO heatmap_cells (
    h3_index, center_lat, center_lng, avg_intensity, max_intensity, place_count, dominant_nature, computed_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _event_type(value: str) -> Any:
    # Types this version doesn't know stay plain strings and count as unrecognized.
    try:
        return EventType(value)
    except ValueError:
        return value


class ChangeDatabase:
    """A thin wrapper around SQLite operations for the pipeline's durable store."""

    def __init__(self, path: Path | str = config.DEFAULT_DATABASE_PATH) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.path))
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back on error, always close."""
        conn = self.connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        with self.transaction() as conn:
            conn.executescript(SCHEMA_SQL)

    # -- events and places -------------------------------------------------

    def _resolve_place(self, conn: sqlite3.Connection, event: CanonicalEvent) -> Optional[int]:
        now = utc_now().isoformat()
        if event.location_ref:
            row = conn.execute("SELECT id FROM places WHERE location_ref = ?", (event.location_ref,)).fetchone()
            if row is not None:
                conn.execute(
                    """
                    UPDATE places SET
                        latitude = COALESCE(latitude, ?),
                        longitude = COALESCE(longitude, ?),
                        address = COALESCE(address, ?),
                        borough = COALESCE(borough, ?),
                        community_district = COALESCE(community_district, ?),
                        nta_code = COALESCE(nta_code, ?),
                        updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        event.latitude if event.has_coordinates else None,
                        event.longitude if event.has_coordinates else None,
                        event.address,
                        event.borough,
                        event.community_district,
                        event.nta_code,
                        now,
                        row["id"],
                    ),
                )
                return row["id"]
        else:
            # Re-ingesting an unkeyed event reuses the place it was attached to before
            row = conn.execute(
                "SELECT place_id FROM raw_events WHERE source = ? AND source_id = ?",
                (event.source, event.source_id),
            ).fetchone()
            if row is not None and row["place_id"] is not None:
                return row["place_id"]
            if not event.has_coordinates:
                return None

        cursor = conn.execute(
            """
            INSERT INTO places (
                location_ref, latitude, longitude, address, borough, community_district,
                nta_code, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.location_ref,
                event.latitude if event.has_coordinates else None,
                event.longitude if event.has_coordinates else None,
                event.address,
                event.borough,
                event.community_district,
                event.nta_code,
                now,
                now,
            ),
        )
        return cursor.lastrowid

    def _upsert_event(self, conn: sqlite3.Connection, event: CanonicalEvent) -> Optional[int]:
        if event.event_date is None:
            raise ValueError(f"Event {event.key} has no event date")
        place_id = self._resolve_place(conn, event)
        conn.execute(
            UPSERT_EVENT_SQL,
            (
                place_id,
                event.source,
                event.source_id,
                event_type_value(event.event_type),
                event.event_date.isoformat(),
                event.location_ref,
                event.borough,
                event.latitude,
                event.longitude,
                event.community_district,
                event.nta_code,
                event.address,
                json.dumps(event.raw_payload, sort_keys=True, default=str),
                utc_now().isoformat(),
            ),
        )
        return place_id

    def upsert_event(self, event: CanonicalEvent) -> Optional[int]:
        """Insert or update one event; returns the id of the place it is attached to."""
        with self.transaction() as conn:
            return self._upsert_event(conn, event)

    def upsert_events(self, events: Iterable[CanonicalEvent]) -> int:
        events = list(events)
        if not events:
            return 0
        with self.transaction() as conn:
            for event in events:
                self._upsert_event(conn, event)
        logger.debug("Upserted %s events", len(events))
        return len(events)

    def find_locations_with_events(self) -> Iterator[Tuple[Place, List[CanonicalEvent]]]:
        """Yield every place that owns at least one event, with its events."""
        with self.transaction() as conn:
            rows = conn.execute(
                """
                SELECT
                    p.id AS place_id, p.latitude AS place_latitude, p.longitude AS place_longitude,
                    p.location_ref AS place_ref, p.borough AS place_borough,
                    p.community_district AS place_district, p.nta_code AS place_nta,
                    e.*
                FROM raw_events e
                JOIN places p ON p.id = e.place_id
                ORDER BY p.id, e.event_date, e.id
                """
            ).fetchall()

        for place_id, group in groupby(rows, key=lambda row: row["place_id"]):
            group = list(group)
            first = group[0]
            place = Place(
                id=place_id,
                latitude=first["place_latitude"],
                longitude=first["place_longitude"],
                location_ref=first["place_ref"],
                borough=first["place_borough"],
                community_district=first["place_district"],
                nta_code=first["place_nta"],
            )
            yield place, [self._row_to_event(row) for row in group]

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> CanonicalEvent:
        return CanonicalEvent(
            source=row["source"],
            source_id=row["source_id"],
            event_type=_event_type(row["event_type"]),
            event_date=parse_date(row["event_date"]),
            location_ref=row["location_ref"],
            borough=row["borough"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            community_district=row["community_district"],
            nta_code=row["nta_code"],
            address=row["address"],
            raw_payload=json.loads(row["raw_payload"]),
        )

    def count_events(self, source: Optional[str] = None) -> int:
        query = "SELECT COUNT(*) FROM raw_events"
        params: List[object] = []
        if source is not None:
            query += " WHERE source = ?"
            params.append(source)
        with self.transaction() as conn:
            return conn.execute(query, params).fetchone()[0]

    # -- context -----------------------------------------------------------

    def upsert_parcels(self, parcels: Iterable[ParcelRecord]) -> int:
        rows = [
            (
                p.bbl, p.borough, p.address, p.latitude, p.longitude, p.community_district, p.zip_code,
                p.primary_zoning, p.land_use, p.building_class, p.year_built, p.num_floors, p.residential_units,
            )
            for p in parcels
        ]
        if not rows:
            return 0
        with self.transaction() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO parcels VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
        return len(rows)

    def upsert_boundaries(self, boundaries: Iterable[BoundaryRecord]) -> int:
        rows = [
            (b.kind, b.code, b.name, b.borough, json.dumps(b.geometry) if b.geometry is not None else None)
            for b in boundaries
        ]
        if not rows:
            return 0
        with self.transaction() as conn:
            conn.executemany("INSERT OR REPLACE INTO boundaries VALUES (?, ?, ?, ?, ?)", rows)
        return len(rows)

    def enrich_places(self) -> int:
        """Fill gaps in place attributes from parcels and administrative boundaries."""
        with self.transaction() as conn:
            parcels = conn.execute(
                """
                UPDATE places SET
                    latitude = COALESCE(latitude, (SELECT pa.latitude FROM parcels pa WHERE 'bbl:' || pa.bbl = places.location_ref)),
                    longitude = COALESCE(longitude, (SELECT pa.longitude FROM parcels pa WHERE 'bbl:' || pa.bbl = places.location_ref)),
                    address = COALESCE(address, (SELECT pa.address FROM parcels pa WHERE 'bbl:' || pa.bbl = places.location_ref)),
                    borough = COALESCE(borough, (SELECT pa.borough FROM parcels pa WHERE 'bbl:' || pa.bbl = places.location_ref)),
                    community_district = COALESCE(community_district, (SELECT pa.community_district FROM parcels pa WHERE 'bbl:' || pa.bbl = places.location_ref))
                WHERE location_ref LIKE 'bbl:%'
                  AND EXISTS (SELECT 1 FROM parcels pa WHERE 'bbl:' || pa.bbl = places.location_ref)
                """
            ).rowcount
            ntas = conn.execute(
                """
                UPDATE places SET
                    nta_name = (SELECT b.name FROM boundaries b WHERE b.kind = 'nta' AND b.code = places.nta_code)
                WHERE nta_code IS NOT NULL
                  AND nta_name IS NULL
                  AND EXISTS (SELECT 1 FROM boundaries b WHERE b.kind = 'nta' AND b.code = places.nta_code)
                """
            ).rowcount
            districts = conn.execute(
                """
                UPDATE places SET
                    community_district_name = (
                        SELECT b.name FROM boundaries b
                        WHERE b.kind = 'community_district' AND b.code = places.community_district
                    )
                WHERE community_district IS NOT NULL
                  AND community_district_name IS NULL
                  AND EXISTS (
                      SELECT 1 FROM boundaries b
                      WHERE b.kind = 'community_district' AND b.code = places.community_district
                  )
                """
            ).rowcount
            # Borough code is the first digit of a community district ("301" is Brooklyn)
            boroughs = conn.execute(
                """
                UPDATE places SET
                    borough = (
                        SELECT COALESCE(b.borough, b.name) FROM boundaries b
                        WHERE b.kind = 'borough' AND b.code = substr(places.community_district, 1, 1)
                    )
                WHERE borough IS NULL
                  AND community_district IS NOT NULL
                  AND EXISTS (
                      SELECT 1 FROM boundaries b
                      WHERE b.kind = 'borough' AND b.code = substr(places.community_district, 1, 1)
                  )
                """
            ).rowcount
        logger.info(
            "Enriched %s places from parcels, %s from NTA, %s from community district and %s from borough boundaries",
            parcels,
            ntas,
            districts,
            boroughs,
        )
        return parcels + ntas + districts + boroughs

    # -- transformation states ---------------------------------------------

    def upsert_transformation_state(self, state: TransformationState) -> None:
        with self.transaction() as conn:
            conn.execute(
                UPSERT_STATE_SQL,
                (
                    state.location_id,
                    state.certainty.value,
                    state.intensity,
                    state.nature.value,
                    state.event_count,
                    _iso(state.first_activity),
                    _iso(state.last_activity),
                    state.computed_at.isoformat(),
                    _iso(state.disruption_start),
                    _iso(state.disruption_end),
                    _iso(state.visible_change_date),
                    int(state.is_estimated_start),
                    int(state.is_estimated_end),
                    _iso(state.approval_date),
                    _iso(state.permit_expiration),
                    state.project_status.value,
                ),
            )

    def get_transformation_state(self, place_id: int) -> Optional[TransformationState]:
        with self.transaction() as conn:
            row = conn.execute("SELECT * FROM transformation_states WHERE place_id = ?", (place_id,)).fetchone()
        if row is None:
            return None
        return TransformationState(
            location_id=row["place_id"],
            certainty=Certainty(row["certainty"]),
            intensity=row["intensity"],
            nature=Nature(row["nature"]),
            event_count=row["event_count"],
            first_activity=parse_date(row["first_activity"]),
            last_activity=parse_date(row["last_activity"]),
            computed_at=parse_date(row["computed_at"]),
            disruption_start=parse_date(row["disruption_start"]),
            disruption_end=parse_date(row["disruption_end"]),
            visible_change_date=parse_date(row["visible_change_date"]),
            is_estimated_start=bool(row["is_estimated_start"]),
            is_estimated_end=bool(row["is_estimated_end"]),
            approval_date=parse_date(row["approval_date"]),
            permit_expiration=parse_date(row["permit_expiration"]),
            project_status=ProjectStatus(row["project_status"]),
        )

    def find_geocoded_locations_with_state(self) -> List[Dict[str, Any]]:
        """Places with coordinates and a computed state, in place id order."""
        with self.transaction() as conn:
            rows = conn.execute(
                """
                SELECT p.id AS place_id, p.latitude, p.longitude, s.intensity, s.nature
                FROM places p
                JOIN transformation_states s ON s.place_id = p.id
                WHERE p.latitude IS NOT NULL AND p.longitude IS NOT NULL
                ORDER BY p.id
                """
            ).fetchall()
        return [dict(row) for row in rows]

    # -- heatmap -----------------------------------------------------------

    @staticmethod
    def _cell_row(cell: HeatmapCell) -> Tuple[object, ...]:
        return (
            cell.cell_index,
            cell.center_lat,
            cell.center_lng,
            cell.avg_intensity,
            cell.max_intensity,
            cell.place_count,
            cell.dominant_nature,
            cell.computed_at.isoformat(),
        )

    def delete_all_heatmap_cells(self) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM heatmap_cells")

    def insert_heatmap_cell(self, cell: HeatmapCell) -> None:
        with self.transaction() as conn:
            conn.execute(INSERT_CELL_SQL, self._cell_row(cell))

    def replace_heatmap_cells(self, cells: Iterable[HeatmapCell]) -> int:
        """Swap in a new heatmap snapshot.

        The delete and the inserts share one transaction, so readers see
        either the old snapshot or the new one, never an empty table.
        """
        rows = [self._cell_row(cell) for cell in cells]
        with self.transaction() as conn:
            conn.execute("DELETE FROM heatmap_cells")
            conn.executemany(INSERT_CELL_SQL, rows)
        return len(rows)

    def fetch_heatmap_cells(self) -> List[HeatmapCell]:
        with self.transaction() as conn:
            rows = conn.execute("SELECT * FROM heatmap_cells ORDER BY h3_index").fetchall()
        return [
            HeatmapCell(
                cell_index=row["h3_index"],
                center_lat=row["center_lat"],
                center_lng=row["center_lng"],
                avg_intensity=row["avg_intensity"],
                max_intensity=row["max_intensity"],
                place_count=row["place_count"],
                dominant_nature=row["dominant_nature"],
                computed_at=parse_date(row["computed_at"]),
            )
            for row in rows
        ]

    # -- sync bookkeeping --------------------------------------------------

    def get_source(self, name: str) -> Optional[Dict[str, Any]]:
        with self.transaction() as conn:
            row = conn.execute("SELECT * FROM data_sources WHERE name = ?", (name,)).fetchone()
        return dict(row) if row is not None else None

    def mark_source_syncing(self, name: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO data_sources (name, status) VALUES (?, 'syncing')
                ON CONFLICT (name) DO UPDATE SET status = 'syncing'
                """,
                (name,),
            )

    def mark_source_synced(self, name: str, synced_at: datetime, record_count: int) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO data_sources (name, last_sync, record_count, status, error_message)
                VALUES (?, ?, ?, 'idle', NULL)
                ON CONFLICT (name) DO UPDATE SET
                    last_sync = excluded.last_sync,
                    record_count = excluded.record_count,
                    status = 'idle',
                    error_message = NULL
                """,
                (name, synced_at.isoformat(), record_count),
            )

    def mark_source_failed(self, name: str, message: str) -> None:
        """Record a failure without moving the sync watermark."""
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO data_sources (name, status, error_message) VALUES (?, 'error', ?)
                ON CONFLICT (name) DO UPDATE SET status = 'error', error_message = excluded.error_message
                """,
                (name, message),
            )


__all__ = ["ChangeDatabase"]
