from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest
import requests

from urban_change_map import config
from urban_change_map.ingest import run_ingestion
from urban_change_map.storage import ChangeDatabase


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self.payload


class RoutedSession:
    """Serves queued responses per endpoint URL."""

    def __init__(self, routes):
        self.routes = {url: list(responses) for url, responses in routes.items()}
        self.calls = []

    def get(self, url, *, headers=None, params=None, timeout=None):
        self.calls.append((url, params))
        response = self.routes[url].pop(0)
        if isinstance(response, Exception):
            raise response
        return FakeResponse(response)


def permit(number, job_type="NB"):
    return {
        "job_filing_number": number,
        "job_type": job_type,
        "filing_date": "2024-05-01",
        "borough": "1",
        "bin": f"10000{number}",
        "latitude": "40.7580",
        "longitude": "-73.9855",
    }


PERMITS = config.ENDPOINTS["permit-filings"]
CEQR = config.ENDPOINTS["ceqr"]


@pytest.mark.integration
def test_ingest_persists_events_and_advances_watermark(tmp_path: Path):
    db_path = tmp_path / "change.db"
    session = RoutedSession({PERMITS: [[permit("1"), {"job_type": "NB"}], [permit("2")]]})

    [stats] = run_ingestion(db_path=str(db_path), sources=["permit-filings"], page_size=2, session=session)

    assert stats.complete
    assert stats.records_fetched == 3
    assert stats.records_rejected == 1
    assert stats.records_persisted == 2
    db = ChangeDatabase(db_path)
    assert db.count_events("permit-filings") == 2
    row = db.get_source("permit-filings")
    assert row["status"] == "idle"
    assert row["record_count"] == 2
    assert row["last_sync"] is not None
    assert "$where" in session.calls[0][1]

    [again] = run_ingestion(db_path=str(db_path), sources=["permit-filings"], session=session)
    assert again.skipped
    assert len(session.calls) == 2


@pytest.mark.integration
def test_fetch_error_keeps_watermark_and_partial_data(tmp_path: Path):
    db_path = tmp_path / "change.db"
    db = ChangeDatabase(db_path)
    db.initialize()
    watermark = datetime(2024, 1, 1, tzinfo=timezone.utc)
    db.mark_source_synced("permit-filings", watermark, 10)

    session = RoutedSession({PERMITS: [[permit("1"), permit("2")], requests.Timeout("read timed out")]})
    [stats] = run_ingestion(db_path=str(db_path), sources=["permit-filings"], page_size=2, session=session)

    assert not stats.complete
    assert stats.records_persisted == 2
    assert session.calls[0][1]["$where"] == "filing_date >= '2024-01-01'"
    row = db.get_source("permit-filings")
    assert row["status"] == "error"
    assert row["last_sync"] == watermark.isoformat()


@pytest.mark.integration
def test_failing_source_does_not_stop_the_others(tmp_path: Path):
    db_path = tmp_path / "change.db"
    session = RoutedSession({CEQR: [RuntimeError("unexpected")], PERMITS: [[permit("1")]]})

    results = run_ingestion(db_path=str(db_path), sources=["ceqr", "permit-filings"], session=session)

    assert [stats.complete for stats in results] == [False, True]
    db = ChangeDatabase(db_path)
    assert db.get_source("ceqr")["status"] == "error"
    assert db.count_events("permit-filings") == 1


@pytest.mark.integration
def test_dry_run_writes_snapshot_only(tmp_path: Path):
    db_path = tmp_path / "change.db"
    snapshot = tmp_path / "snapshot.ndjson"
    session = RoutedSession({PERMITS: [[permit("1")]]})

    [stats] = run_ingestion(
        db_path=str(db_path),
        sources=["permit-filings"],
        dry_run=True,
        snapshot_path=str(snapshot),
        session=session,
    )

    assert stats.records_normalized == 1
    assert stats.records_persisted == 0
    assert ChangeDatabase(db_path).count_events() == 0
    assert ChangeDatabase(db_path).get_source("permit-filings") is None
    lines = snapshot.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["job_filing_number"] == "1"


def test_unknown_source_is_rejected(tmp_path: Path):
    with pytest.raises(ValueError):
        run_ingestion(db_path=str(tmp_path / "change.db"), sources=["parking-tickets"], session=RoutedSession({}))
