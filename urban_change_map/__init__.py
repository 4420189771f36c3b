"""NYC urban change heatmap data pipeline."""

from .certainty import derive_certainty
from .cli import main as cli_main
from .heatmap import build_heatmap_cells, export_heatmap, run_aggregation
from .ingest import IngestionStats, SourceIngestor, run_ingestion
from .models import CanonicalEvent, Certainty, EventType, Nature
from .storage import ChangeDatabase
from .transform import compute_transformation_state, run_compute, run_state_computation

__all__ = [
    "cli_main",
    "CanonicalEvent",
    "Certainty",
    "EventType",
    "Nature",
    "ChangeDatabase",
    "IngestionStats",
    "SourceIngestor",
    "run_ingestion",
    "derive_certainty",
    "compute_transformation_state",
    "run_state_computation",
    "run_compute",
    "build_heatmap_cells",
    "run_aggregation",
    "export_heatmap",
]
