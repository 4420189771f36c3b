from __future__ import annotations

import math
from datetime import datetime, timezone

import pytest

from urban_change_map import config
from urban_change_map.normalize import (
    ABBREVIATED_BOROUGHS,
    NAMED_BOROUGHS,
    NUMERIC_BOROUGHS,
    build_bbl,
    build_location_ref,
    first_date,
    format_since_date,
    normalize_borough,
    parse_coordinate,
    parse_date,
    parse_latitude,
    parse_longitude,
)


def test_parse_date_compact_and_iso():
    assert parse_date("20240115") == datetime(2024, 1, 15, tzinfo=timezone.utc)
    assert parse_date("2024-01-15T10:30:00.000") == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
    assert parse_date("2024-01-15T10:30:00Z") == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
    assert parse_date("01/15/2024") == datetime(2024, 1, 15, tzinfo=timezone.utc)
    assert parse_date("20240115093000") == datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [None, "", "   ", "not a date", "20241332", "2024-13-45"])
def test_parse_date_returns_none_for_unparseable_values(value):
    assert parse_date(value) is None


def test_first_date_skips_unparseable_fields():
    record = {"filing_date": "garbage", "pre_filing_date": "2023-06-01"}
    assert first_date(record, ("filing_date", "pre_filing_date")) == datetime(2023, 6, 1, tzinfo=timezone.utc)
    assert first_date({}, ("filing_date",)) is None


def test_parse_coordinate_never_defaults_to_zero():
    assert parse_coordinate("40.7128") == pytest.approx(40.7128)
    assert parse_coordinate("") is None
    assert parse_coordinate("abc") is None
    assert parse_coordinate(float("nan")) is None
    assert parse_coordinate(None) is None
    assert parse_coordinate(0) == 0.0
    assert not math.isnan(parse_coordinate("-73.9"))


def test_out_of_range_coordinates_are_absent():
    assert parse_latitude("4075.8") is None
    assert parse_latitude("-90.5") is None
    assert parse_latitude("90") == 90.0
    assert parse_longitude("-200") is None
    assert parse_longitude("-73.9442") == pytest.approx(-73.9442)


def test_borough_tables_map_to_canonical_names():
    canonical = set(config.BOROUGHS)
    for table in (NUMERIC_BOROUGHS, ABBREVIATED_BOROUGHS, NAMED_BOROUGHS):
        for token in table:
            assert normalize_borough(token, table) in canonical


def test_normalize_borough_unknown_token_policy():
    assert normalize_borough("9", NUMERIC_BOROUGHS) is None
    assert normalize_borough("Citywide", ABBREVIATED_BOROUGHS, passthrough=True) == "Citywide"
    assert normalize_borough("  ", ABBREVIATED_BOROUGHS, passthrough=True) is None
    assert normalize_borough("brooklyn", NAMED_BOROUGHS) == "Brooklyn"


def test_normalize_borough_case_sensitive_mode():
    assert normalize_borough("BK", ABBREVIATED_BOROUGHS, passthrough=True, case_sensitive=True) == "Brooklyn"
    assert normalize_borough("bk", ABBREVIATED_BOROUGHS, passthrough=True, case_sensitive=True) == "bk"
    assert normalize_borough("bk", ABBREVIATED_BOROUGHS, case_sensitive=True) is None


def test_format_since_date_styles():
    since = datetime(2024, 3, 5, tzinfo=timezone.utc)
    assert format_since_date(since, "iso") == "2024-03-05"
    assert format_since_date(since, "compact") == "20240305"
    assert format_since_date(since, "timestamp") == "20240305000000"
    assert format_since_date(since, "us") == "03/05/2024"
    with pytest.raises(ValueError):
        format_since_date(since, "epoch")


def test_location_ref_prefers_bin_and_strips_bbl_decimals():
    assert build_location_ref("1012345", "1000010001") == "bin:1012345"
    assert build_location_ref(None, "4110150001.00000000") == "bbl:4110150001"
    assert build_location_ref("", "") is None


def test_build_bbl_pads_block_and_lot():
    assert build_bbl("3", "123", "45") == "3001230045"
    assert build_bbl("3", None, "45") is None
