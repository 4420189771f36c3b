"""PLUTO tax lots: what stands on a parcel before anything changes."""
from __future__ import annotations

from typing import Optional

from .. import config
from ..models import ParcelRecord
from ..normalize import (
    ABBREVIATED_BOROUGHS,
    clean_text,
    normalize_borough,
    parse_int,
    parse_latitude,
    parse_longitude,
    parse_number,
)
from .base import RawRecord, SourceAdapter


class ParcelsAdapter(SourceAdapter):
    name = "pluto"
    endpoint = config.ENDPOINTS["pluto"]
    batch_size = 10000
    delay_seconds = 0.1
    date_column = None
    produces = "parcel"

    def normalize(self, raw: RawRecord) -> Optional[ParcelRecord]:
        bbl = clean_text(raw.get("bbl"))
        if not bbl:
            return None
        # The API returns BBLs like "4110150001.00000000"
        bbl = bbl.split(".")[0]

        land_use = clean_text(raw.get("landuse"))
        return ParcelRecord(
            bbl=bbl,
            borough=normalize_borough(raw.get("borough"), ABBREVIATED_BOROUGHS),
            address=clean_text(raw.get("address")),
            latitude=parse_latitude(raw.get("latitude")),
            longitude=parse_longitude(raw.get("longitude")),
            community_district=clean_text(raw.get("cd")),
            zip_code=clean_text(raw.get("zipcode")),
            primary_zoning=clean_text(raw.get("zonedist1")),
            land_use=config.LAND_USE_CODES.get(land_use, land_use) if land_use else None,
            building_class=clean_text(raw.get("bldgclass")),
            year_built=parse_int(raw.get("yearbuilt")),
            num_floors=parse_number(raw.get("numfloors")),
            residential_units=parse_int(raw.get("unitsres")),
            raw_payload=dict(raw),
        )


__all__ = ["ParcelsAdapter"]
