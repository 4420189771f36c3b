"""Spatial aggregation of transformation states into H3 heatmap cells."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import h3
import pandas as pd

from . import config
from .errors import AggregationError
from .models import HeatmapCell, Nature
from .normalize import utc_now
from .storage import ChangeDatabase

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    places_processed: int
    cells_written: int
    output_path: Optional[Path] = None


def _dominant_nature(values: Iterable[Optional[str]]) -> str:
    """Most frequent label; equal counts go to the label seen first."""
    counts: Dict[str, int] = {}
    for value in values:
        if value is None or pd.isna(value):
            continue
        counts[value] = counts.get(value, 0) + 1
    if not counts:
        return Nature.MIXED.value
    return max(counts, key=counts.__getitem__)


def build_heatmap_cells(
    places: Iterable[Mapping[str, Any]],
    *,
    resolution: int = config.H3_RESOLUTION,
    computed_at: Optional[datetime] = None,
) -> List[HeatmapCell]:
    """Bin geocoded places into hexagonal cells.

    ``places`` are mappings with ``latitude``, ``longitude``, ``intensity``
    and ``nature``. Cells come back in the order their first place was seen.
    """
    df = pd.DataFrame(list(places), columns=["place_id", "latitude", "longitude", "intensity", "nature"])
    df = df.dropna(subset=["latitude", "longitude", "intensity"])
    if df.empty:
        return []

    computed_at = computed_at or utc_now()
    df["cell_index"] = [
        h3.latlng_to_cell(float(lat), float(lng), resolution)
        for lat, lng in zip(df["latitude"], df["longitude"])
    ]

    grouped = (
        df.groupby("cell_index", sort=False)
        .agg(
            avg_intensity=("intensity", "mean"),
            max_intensity=("intensity", "max"),
            place_count=("intensity", "count"),
            dominant_nature=("nature", _dominant_nature),
        )
        .reset_index()
    )

    cells = []
    for row in grouped.itertuples(index=False):
        center_lat, center_lng = h3.cell_to_latlng(row.cell_index)
        cells.append(
            HeatmapCell(
                cell_index=row.cell_index,
                center_lat=center_lat,
                center_lng=center_lng,
                avg_intensity=float(row.avg_intensity),
                max_intensity=int(row.max_intensity),
                place_count=int(row.place_count),
                dominant_nature=row.dominant_nature,
                computed_at=computed_at,
            )
        )
    return cells


def run_aggregation(
    db: ChangeDatabase,
    *,
    resolution: int = config.H3_RESOLUTION,
) -> AggregationResult:
    """Rebuild the whole heatmap from current states.

    The new snapshot is built in memory before the table is touched; if
    anything fails the previous snapshot stays in place.
    """
    try:
        places = db.find_geocoded_locations_with_state()
        cells = build_heatmap_cells(places, resolution=resolution)
        written = db.replace_heatmap_cells(cells)
    except Exception as exc:
        logger.exception("Heatmap aggregation failed; keeping previous snapshot")
        raise AggregationError(str(exc)) from exc

    if not places:
        logger.warning("No geocoded places with a transformation state. Heatmap is empty.")
    logger.info("Aggregated %s places into %s cells (resolution %s)", len(places), written, resolution)
    return AggregationResult(places_processed=len(places), cells_written=written)


def export_heatmap(db: ChangeDatabase, output_path: Path | str | None = None) -> AggregationResult:
    output_path = Path(output_path) if output_path else config.DERIVED_DATA_DIR / "heatmap_cells.parquet"
    output_path.parent.mkdir(parents=True, exist_ok=True)

    cells = db.fetch_heatmap_cells()
    df = pd.DataFrame([cell.as_dict() for cell in cells], columns=list(HeatmapCell.__dataclass_fields__))
    df.to_parquet(output_path, index=False)
    logger.info("Wrote heatmap dataset to %s (%s rows)", output_path, len(df))
    return AggregationResult(places_processed=0, cells_written=len(df), output_path=output_path)


__all__ = [
    "AggregationResult",
    "build_heatmap_cells",
    "run_aggregation",
    "export_heatmap",
]
