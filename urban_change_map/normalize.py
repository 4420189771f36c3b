"""Pure helpers shared by the source adapters: dates, coordinates, boroughs."""
from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

_COMPACT_DATE = re.compile(r"^\d{8}$")
_COMPACT_TIMESTAMP = re.compile(r"^\d{14}$")
_US_DATE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")

# Borough lookup tables; keys are upper-cased source tokens.
NUMERIC_BOROUGHS: dict[str, str] = {
    "1": "Manhattan",
    "2": "Bronx",
    "3": "Brooklyn",
    "4": "Queens",
    "5": "Staten Island",
}

ABBREVIATED_BOROUGHS: dict[str, str] = {
    "MN": "Manhattan",
    "BX": "Bronx",
    "BK": "Brooklyn",
    "QN": "Queens",
    "SI": "Staten Island",
}

NAMED_BOROUGHS: dict[str, str] = {
    "MANHATTAN": "Manhattan",
    "BRONX": "Bronx",
    "BROOKLYN": "Brooklyn",
    "QUEENS": "Queens",
    "STATEN ISLAND": "Staten Island",
}

SINCE_DATE_FORMATS: dict[str, str] = {
    "iso": "%Y-%m-%d",
    "compact": "%Y%m%d",
    "timestamp": "%Y%m%d000000",
    "us": "%m/%d/%Y",
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_date(value: Any) -> Optional[datetime]:
    """Parse a source date into an aware UTC datetime.

    Accepts ISO-8601 dates and timestamps, bare ``YYYYMMDD``,
    ``YYYYMMDDHHMMSS`` and ``MM/DD/YYYY``. Anything else, including
    calendar-invalid values such as ``20241332``, returns ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            if _COMPACT_DATE.match(text):
                parsed = datetime.strptime(text, "%Y%m%d")
            elif _COMPACT_TIMESTAMP.match(text):
                parsed = datetime.strptime(text, "%Y%m%d%H%M%S")
            elif _US_DATE.match(text):
                parsed = datetime.strptime(text, "%m/%d/%Y")
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def first_date(record: Mapping[str, Any], fields: Iterable[str]) -> Optional[datetime]:
    """Return the first parseable date among ``fields``, in order."""
    for name in fields:
        parsed = parse_date(record.get(name))
        if parsed is not None:
            return parsed
    return None


def parse_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_int(value: Any) -> Optional[int]:
    number = parse_number(value)
    return int(number) if number is not None else None


def parse_coordinate(value: Any, limit: float = 180.0) -> Optional[float]:
    """Coordinates that are missing, non-numeric, NaN or beyond ``limit`` become ``None``, never 0."""
    if isinstance(value, str) and not value.strip():
        return None
    number = parse_number(value)
    if number is None or abs(number) > limit:
        return None
    return number


def parse_latitude(value: Any) -> Optional[float]:
    return parse_coordinate(value, 90.0)


def parse_longitude(value: Any) -> Optional[float]:
    return parse_coordinate(value, 180.0)


def normalize_borough(
    token: Any,
    table: Mapping[str, str],
    *,
    passthrough: bool = False,
    case_sensitive: bool = False,
) -> Optional[str]:
    """Map a source borough token to its canonical name.

    Unknown tokens return ``None``; sources with ``passthrough`` set keep
    the raw token instead. Lookups upper-case the token unless
    ``case_sensitive`` is set, in which case ``table`` keys must match exactly.
    """
    if token is None:
        return None
    raw = str(token).strip()
    if not raw:
        return None
    mapped = table.get(raw if case_sensitive else raw.upper())
    if mapped is not None:
        return mapped
    return raw if passthrough else None


def format_since_date(since_date: datetime, style: str) -> str:
    """Render ``since_date`` as the date literal a source filters on."""
    try:
        pattern = SINCE_DATE_FORMATS[style]
    except KeyError:
        raise ValueError(f"Unsupported date style: {style}") from None
    return since_date.strftime(pattern)


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def build_address(house_number: Any, street: Any) -> Optional[str]:
    house = clean_text(house_number)
    street_name = clean_text(street)
    if not house or not street_name:
        return None
    return f"{house} {street_name}"


def build_location_ref(bin_number: Any = None, bbl: Any = None) -> Optional[str]:
    bin_value = clean_text(bin_number)
    if bin_value:
        return f"bin:{bin_value}"
    bbl_value = clean_text(bbl)
    if bbl_value:
        return f"bbl:{bbl_value.split('.')[0]}"
    return None


def build_bbl(borough_code: Any, block: Any, lot: Any) -> Optional[str]:
    boro = clean_text(borough_code)
    block_value = clean_text(block)
    lot_value = clean_text(lot)
    if not boro or not block_value or not lot_value:
        return None
    return f"{boro}{block_value.zfill(5)}{lot_value.zfill(4)}"


__all__ = [
    "NUMERIC_BOROUGHS",
    "ABBREVIATED_BOROUGHS",
    "NAMED_BOROUGHS",
    "utc_now",
    "parse_date",
    "first_date",
    "parse_number",
    "parse_int",
    "parse_coordinate",
    "parse_latitude",
    "parse_longitude",
    "normalize_borough",
    "format_since_date",
    "clean_text",
    "build_address",
    "build_location_ref",
    "build_bbl",
]
