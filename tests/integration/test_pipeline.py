from __future__ import annotations

from pathlib import Path

import h3
import pandas as pd
import pytest

from urban_change_map import cli, config
from urban_change_map.ingest import run_ingestion
from urban_change_map.models import Certainty, Nature
from urban_change_map.storage import ChangeDatabase
from urban_change_map.transform import run_compute


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, payload):
        self.payload = payload

    def get(self, url, **_kwargs):
        return FakeResponse(self.payload)


PERMITS = [
    {
        "job_filing_number": "M001",
        "job_type": "NB",
        "filing_date": "2024-05-01",
        "borough": "MANHATTAN",
        "bin": "1000001",
        "latitude": "40.7580",
        "longitude": "-73.9855",
    },
    {
        "job_filing_number": "M002",
        "job_type": "A1",
        "filing_date": "2024-05-02",
        "borough": "1",
        "bin": "1000002",
        "latitude": "40.7580",
        "longitude": "-73.9855",
    },
]


def ingest(db_path: Path) -> None:
    run_ingestion(db_path=str(db_path), sources=["permit-filings"], session=FakeSession(PERMITS))


@pytest.mark.integration
def test_ingest_compute_aggregate_export(tmp_path: Path):
    db_path = tmp_path / "change.db"
    output = tmp_path / "derived" / "heatmap.parquet"
    ingest(db_path)

    stats = run_compute(db_path=str(db_path), output_path=output)

    assert stats.states_written == 2
    assert not stats.failures
    db = ChangeDatabase(db_path)
    [cell] = db.fetch_heatmap_cells()
    assert cell.cell_index == h3.latlng_to_cell(40.7580, -73.9855, config.H3_RESOLUTION)
    assert cell.place_count == 2
    assert cell.max_intensity == 55
    assert cell.avg_intensity == 45
    assert cell.dominant_nature == Nature.DENSIFICATION.value

    states = [db.get_transformation_state(place.id) for place, _ in db.find_locations_with_events()]
    assert {state.certainty for state in states} == {Certainty.PROBABLE}

    exported = pd.read_parquet(output)
    assert list(exported["cell_index"]) == [cell.cell_index]


@pytest.mark.integration
def test_recompute_leaves_states_unchanged(tmp_path: Path):
    db_path = tmp_path / "change.db"
    ingest(db_path)
    db = ChangeDatabase(db_path)

    run_compute(db_path=str(db_path))
    first = [db.get_transformation_state(place.id) for place, _ in db.find_locations_with_events()]
    run_compute(db_path=str(db_path))
    second = [db.get_transformation_state(place.id) for place, _ in db.find_locations_with_events()]

    assert first == second


@pytest.mark.integration
def test_cli_compute_and_export(tmp_path: Path):
    db_path = tmp_path / "change.db"
    output = tmp_path / "cells.parquet"
    ingest(db_path)

    assert cli.main(["compute", "--db", str(db_path)]) == 0
    assert cli.main(["aggregate", "--db", str(db_path)]) == 0
    assert cli.main(["export", "--db", str(db_path), "--output", str(output)]) == 0
    assert len(pd.read_parquet(output)) == 1


def test_cli_reads_app_token_from_environment(monkeypatch):
    monkeypatch.setenv(config.APP_TOKEN_ENV, "token-123")
    args = cli.parse_args(["ingest", "--source", "zap", "--source", "ceqr"])
    assert args.app_token == "token-123"
    assert args.sources == ["zap", "ceqr"]
