"""Administrative boundaries: NTAs, community districts and boroughs.

Each boundary dataset is small enough to arrive in a single page.
"""
from __future__ import annotations

from typing import Optional

from .. import config
from ..models import BoundaryRecord
from ..normalize import NUMERIC_BOROUGHS, clean_text, normalize_borough
from .base import RawRecord, SourceAdapter


class _BoundaryAdapter(SourceAdapter):
    date_column = None
    produces = "boundary"
    delay_seconds = 0.1


class NtaBoundariesAdapter(_BoundaryAdapter):
    name = "ntas"
    endpoint = config.ENDPOINTS["ntas"]
    batch_size = 500

    def normalize(self, raw: RawRecord) -> Optional[BoundaryRecord]:
        # Older releases use ntacode, the 2020 release nta2020
        code = clean_text(raw.get("ntacode") or raw.get("nta2020"))
        name = clean_text(raw.get("ntaname"))
        if not code or not name:
            return None
        return BoundaryRecord(
            kind="nta",
            code=code,
            name=name,
            borough=clean_text(raw.get("boroname")),
            geometry=raw.get("the_geom"),
        )


class CommunityDistrictsAdapter(_BoundaryAdapter):
    name = "community-districts"
    endpoint = config.ENDPOINTS["community-districts"]
    batch_size = 100

    def normalize(self, raw: RawRecord) -> Optional[BoundaryRecord]:
        boro_cd = clean_text(raw.get("boro_cd"))
        if not boro_cd:
            return None
        borough = normalize_borough(boro_cd[:1], NUMERIC_BOROUGHS)
        district_number = boro_cd[1:]
        if borough and district_number.isdigit():
            name = f"{borough} CD {int(district_number)}"
        else:
            name = boro_cd
        return BoundaryRecord(
            kind="community_district",
            code=boro_cd,
            name=name,
            borough=borough,
            geometry=raw.get("the_geom"),
        )


class BoroughBoundariesAdapter(_BoundaryAdapter):
    name = "boroughs"
    endpoint = config.ENDPOINTS["boroughs"]
    batch_size = 10

    def normalize(self, raw: RawRecord) -> Optional[BoundaryRecord]:
        code = clean_text(raw.get("boro_code"))
        name = clean_text(raw.get("boro_name"))
        if not code or not name:
            return None
        return BoundaryRecord(
            kind="borough",
            code=code,
            name=name,
            borough=normalize_borough(code, NUMERIC_BOROUGHS),
            geometry=raw.get("the_geom"),
        )


__all__ = ["NtaBoundariesAdapter", "CommunityDistrictsAdapter", "BoroughBoundariesAdapter"]
