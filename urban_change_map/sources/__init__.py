"""Source adapters, one per NYC Open Data feed."""
from __future__ import annotations

from typing import Dict, Type

from .base import PageResult, RawRecord, SourceAdapter
from .boundaries import BoroughBoundariesAdapter, CommunityDistrictsAdapter, NtaBoundariesAdapter
from .capital import CapitalProjectsAdapter
from .complaints import ComplaintsAdapter
from .environmental import EnvironmentalReviewAdapter
from .parcels import ParcelsAdapter
from .permits import PermitFilingsAdapter
from .violations import ViolationsAdapter
from .zoning import ZoningApplicationsAdapter

# Event sources, in the order a full ingestion run visits them
EVENT_SOURCES: Dict[str, Type[SourceAdapter]] = {
    PermitFilingsAdapter.name: PermitFilingsAdapter,
    ComplaintsAdapter.name: ComplaintsAdapter,
    ViolationsAdapter.name: ViolationsAdapter,
    ZoningApplicationsAdapter.name: ZoningApplicationsAdapter,
    CapitalProjectsAdapter.name: CapitalProjectsAdapter,
    EnvironmentalReviewAdapter.name: EnvironmentalReviewAdapter,
}

# Context sources enrich places rather than producing events
CONTEXT_SOURCES: Dict[str, Type[SourceAdapter]] = {
    ParcelsAdapter.name: ParcelsAdapter,
    NtaBoundariesAdapter.name: NtaBoundariesAdapter,
    CommunityDistrictsAdapter.name: CommunityDistrictsAdapter,
    BoroughBoundariesAdapter.name: BoroughBoundariesAdapter,
}

ADAPTERS: Dict[str, Type[SourceAdapter]] = {**EVENT_SOURCES, **CONTEXT_SOURCES}


def get_adapter(name: str, **kwargs) -> SourceAdapter:
    try:
        adapter_cls = ADAPTERS[name]
    except KeyError:
        raise ValueError(f"Unknown source: {name}") from None
    return adapter_cls(**kwargs)


__all__ = [
    "ADAPTERS",
    "EVENT_SOURCES",
    "CONTEXT_SOURCES",
    "PageResult",
    "RawRecord",
    "SourceAdapter",
    "get_adapter",
    "PermitFilingsAdapter",
    "ZoningApplicationsAdapter",
    "EnvironmentalReviewAdapter",
    "ViolationsAdapter",
    "ComplaintsAdapter",
    "CapitalProjectsAdapter",
    "ParcelsAdapter",
    "NtaBoundariesAdapter",
    "CommunityDistrictsAdapter",
    "BoroughBoundariesAdapter",
]
