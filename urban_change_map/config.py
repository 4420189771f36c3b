"""Configuration constants for the urban change data pipeline."""
from __future__ import annotations

from pathlib import Path

# Base URL for NYC Open Data (Socrata) resources
NYC_OPEN_DATA_BASE: str = "https://data.cityofnewyork.us/resource"

ENDPOINTS: dict[str, str] = {
    "permit-filings": f"{NYC_OPEN_DATA_BASE}/w9ak-ipjd.json",
    "dob-violations": f"{NYC_OPEN_DATA_BASE}/3h2n-5cm9.json",
    "dob-complaints": f"{NYC_OPEN_DATA_BASE}/eabe-havv.json",
    "zap": f"{NYC_OPEN_DATA_BASE}/hgx4-8ukb.json",
    "ceqr": f"{NYC_OPEN_DATA_BASE}/gezn-7mgk.json",
    "capital": f"{NYC_OPEN_DATA_BASE}/h2ic-zdws.json",
    "pluto": f"{NYC_OPEN_DATA_BASE}/64uk-42ks.json",
    "ntas": f"{NYC_OPEN_DATA_BASE}/9nt8-h7nd.json",
    "community-districts": f"{NYC_OPEN_DATA_BASE}/jp9i-3b7y.json",
    "boroughs": f"{NYC_OPEN_DATA_BASE}/7t3b-ywvw.json",
}

# Environment variable holding the optional Socrata app token
APP_TOKEN_ENV: str = "NYC_OPEN_DATA_TOKEN"

# Default path for the SQLite database (events, places, states, heatmap)
DEFAULT_DATABASE_PATH: Path = Path("data/urban_change.db")

# Directory for derived datasets (heatmap exports)
DERIVED_DATA_DIR: Path = Path("data/derived")

# Timeout (seconds) for HTTP requests to the Socrata endpoints
HTTP_TIMEOUT: int = 120

# Default page size and inter-page delay for adapters that don't override them
DEFAULT_PAGE_SIZE: int = 10000
DEFAULT_SLEEP_SECONDS: float = 0.1

# Sources synced more recently than this are skipped unless forced
MIN_SYNC_INTERVAL_HOURS: float = 12.0

# First sync of a source looks back this many days
DEFAULT_LOOKBACK_DAYS: int = 365

# Places are processed in batches of this size when computing states
STATE_BATCH_SIZE: int = 100

# H3 resolution 8 hexagons have an edge of roughly 460 meters
H3_RESOLUTION: int = 8

# Canonical borough names
BOROUGHS: tuple[str, ...] = (
    "Manhattan",
    "Bronx",
    "Brooklyn",
    "Queens",
    "Staten Island",
)

# Intensity contribution of each event type. Minor alterations are
# cumulative; every other type counts once per place.
INTENSITY_WEIGHTS: dict[str, int] = {
    "scaffold": 3,
    "equipment_work": 3,
    "plumbing": 5,
    "mechanical": 5,
    "minor_alteration": 10,
    "major_alteration": 30,
    "demolition": 35,
    "new_building": 50,
    "zap_filed": 8,
    "zap_approved": 20,
    "ulurp_filed": 10,
    "ulurp_approved": 25,
    "ulurp_denied": 0,
    "ceqr_eas": 12,
    "ceqr_eis_draft": 18,
    "ceqr_eis_final": 22,
    "ceqr_completed": 15,
    "capital_project": 25,
    "construction_started": 0,
    "construction_completed": 0,
    "other": 0,
}

# Added to the event score once a place reaches a certainty tier
CERTAINTY_INTENSITY_BONUS: dict[str, int] = {
    "discussion": 0,
    "probable": 5,
    "certain": 10,
}

MAX_INTENSITY: int = 100

# Relative weight of each nature when picking the dominant one for a place
NATURE_WEIGHTS: dict[str, int] = {
    "densification": 5,
    "demolition": 4,
    "infrastructure": 3,
    "renovation": 2,
    "zoning": 1,
}

# PLUTO land use codes
LAND_USE_CODES: dict[str, str] = {
    "01": "One & Two Family Buildings",
    "02": "Multi-Family Walk-Up Buildings",
    "03": "Multi-Family Elevator Buildings",
    "04": "Mixed Residential & Commercial Buildings",
    "05": "Commercial & Office Buildings",
    "06": "Industrial & Manufacturing",
    "07": "Transportation & Utility",
    "08": "Public Facilities & Institutions",
    "09": "Open Space & Recreation",
    "10": "Parking Facilities",
    "11": "Vacant Land",
}
