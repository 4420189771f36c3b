"""Utilities to ingest change signals from the NYC Open Data API."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import requests

from . import config
from .normalize import parse_date, utc_now
from .sources import ADAPTERS, CONTEXT_SOURCES, EVENT_SOURCES, SourceAdapter, get_adapter
from .storage import ChangeDatabase

logger = logging.getLogger(__name__)


@dataclass
class IngestionStats:
    """Capture summary statistics for one source's ingestion run."""

    source: str
    records_fetched: int = 0
    records_normalized: int = 0
    records_rejected: int = 0
    records_persisted: int = 0
    pages_fetched: int = 0
    fetch_errors: List[str] = field(default_factory=list)
    skipped: bool = False
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def complete(self) -> bool:
        return not self.fetch_errors

    def as_dict(self) -> Dict[str, object]:
        return {
            "source": self.source,
            "records_fetched": self.records_fetched,
            "records_normalized": self.records_normalized,
            "records_rejected": self.records_rejected,
            "records_persisted": self.records_persisted,
            "pages_fetched": self.pages_fetched,
            "fetch_errors": len(self.fetch_errors),
            "skipped": self.skipped,
            "duration_seconds": int((datetime.now(timezone.utc) - self.start_time).total_seconds()),
        }


class SourceIngestor:
    """Fetches one source's records, normalizes them and writes them to the database."""

    def __init__(
        self,
        db: ChangeDatabase,
        adapter: SourceAdapter,
        *,
        app_token: Optional[str] = None,
    ) -> None:
        self.db = db
        self.adapter = adapter
        self.app_token = app_token

    def _persist(self, records: List[object]) -> int:
        if self.adapter.produces == "parcel":
            return self.db.upsert_parcels(records)
        if self.adapter.produces == "boundary":
            return self.db.upsert_boundaries(records)
        return self.db.upsert_events(records)

    def ingest(
        self,
        *,
        since_date: Optional[datetime] = None,
        page_size: Optional[int] = None,
        dry_run: bool = False,
        snapshot_path: Optional[str] = None,
    ) -> IngestionStats:
        stats = IngestionStats(source=self.adapter.name)
        snapshot_handle = open(snapshot_path, "a", encoding="utf-8") if snapshot_path else None
        try:
            for page in self.adapter.iter_pages(since_date, app_token=self.app_token, page_size=page_size):
                if page.failed:
                    # A failed page is not the end of the data: later pages were never seen.
                    stats.fetch_errors.append(page.error)
                    logger.error(
                        "%s: page at offset %s failed (%s); stopping this source",
                        self.adapter.name,
                        page.offset,
                        page.error,
                    )
                    break

                stats.pages_fetched += 1
                stats.records_fetched += len(page)

                if snapshot_handle:
                    for record in page.records:
                        snapshot_handle.write(json.dumps(record))
                        snapshot_handle.write("\n")

                normalized = []
                for record in page.records:
                    result = self.adapter.normalize(record)
                    if result is None:
                        stats.records_rejected += 1
                        continue
                    normalized.append(result)
                stats.records_normalized += len(normalized)
                logger.info(
                    "%s: fetched %s records (page %s, %s rejected so far)",
                    self.adapter.name,
                    len(page),
                    stats.pages_fetched,
                    stats.records_rejected,
                )

                if dry_run:
                    continue

                stats.records_persisted += self._persist(normalized)
        finally:
            if snapshot_handle:
                snapshot_handle.close()

        logger.info("Ingestion of %s completed: %s", self.adapter.name, stats.as_dict())
        return stats


def _resolve_since_date(source_row: Optional[Dict[str, object]], now: datetime) -> datetime:
    last_sync = parse_date(source_row.get("last_sync")) if source_row else None
    return last_sync or now - timedelta(days=config.DEFAULT_LOOKBACK_DAYS)


def _recently_synced(source_row: Optional[Dict[str, object]], now: datetime, min_interval_hours: float) -> bool:
    if not source_row or source_row.get("status") != "idle":
        return False
    last_sync = parse_date(source_row.get("last_sync"))
    if last_sync is None:
        return False
    return now - last_sync < timedelta(hours=min_interval_hours)


def ingest_source(
    db: ChangeDatabase,
    adapter: SourceAdapter,
    *,
    app_token: Optional[str] = None,
    force: bool = False,
    since_date: Optional[datetime] = None,
    page_size: Optional[int] = None,
    dry_run: bool = False,
    snapshot_path: Optional[str] = None,
    min_interval_hours: float = config.MIN_SYNC_INTERVAL_HOURS,
) -> IngestionStats:
    """Run one source with sync bookkeeping.

    The sync watermark only advances when every page was fetched; a fetch
    error leaves the previous watermark so the next run covers the gap.
    """
    started_at = utc_now()
    source_row = db.get_source(adapter.name)

    if not force and _recently_synced(source_row, started_at, min_interval_hours):
        logger.info(
            "Skipping %s: last synced at %s (threshold %sh)",
            adapter.name,
            source_row.get("last_sync"),
            min_interval_hours,
        )
        return IngestionStats(source=adapter.name, skipped=True)

    if since_date is None and adapter.date_column:
        since_date = _resolve_since_date(source_row, started_at)
    logger.info("Fetching %s since %s", adapter.name, since_date.isoformat() if since_date else "the beginning")

    if not dry_run:
        db.mark_source_syncing(adapter.name)
    try:
        stats = SourceIngestor(db, adapter, app_token=app_token).ingest(
            since_date=since_date,
            page_size=page_size,
            dry_run=dry_run,
            snapshot_path=snapshot_path,
        )
    except Exception as exc:
        if not dry_run:
            db.mark_source_failed(adapter.name, str(exc))
        raise

    if not dry_run:
        if stats.complete:
            db.mark_source_synced(adapter.name, started_at, stats.records_persisted)
        else:
            db.mark_source_failed(adapter.name, "; ".join(stats.fetch_errors))
    return stats


def run_ingestion(
    *,
    db_path: Optional[str] = None,
    sources: Optional[Sequence[str]] = None,
    app_token: Optional[str] = None,
    force: bool = False,
    since_date: Optional[datetime] = None,
    page_size: Optional[int] = None,
    dry_run: bool = False,
    snapshot_path: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> List[IngestionStats]:
    """Ingest the selected sources one after another.

    A source that raises is logged and recorded as failed; the remaining
    sources still run. Context sources are followed by place enrichment.
    """
    db = ChangeDatabase(db_path or config.DEFAULT_DATABASE_PATH)
    db.initialize()
    session = session or requests.Session()

    names: List[str] = list(sources) if sources else list(EVENT_SOURCES) + list(CONTEXT_SOURCES)
    results: List[IngestionStats] = []
    for name in names:
        if name not in ADAPTERS:
            raise ValueError(f"Unknown source: {name}")
        adapter = get_adapter(name, session=session)
        try:
            stats = ingest_source(
                db,
                adapter,
                app_token=app_token,
                force=force,
                since_date=since_date,
                page_size=page_size,
                dry_run=dry_run,
                snapshot_path=snapshot_path,
            )
        except Exception:
            logger.exception("%s ingestion failed", name)
            stats = IngestionStats(source=name, fetch_errors=["ingestion failed"])
        results.append(stats)

    if not dry_run and any(name in CONTEXT_SOURCES for name in names):
        db.enrich_places()

    rejected = sum(stats.records_rejected for stats in results)
    failed = [stats.source for stats in results if not stats.complete]
    logger.info("All sources done: %s rejected records, failed sources: %s", rejected, failed or "none")
    return results


__all__ = ["IngestionStats", "SourceIngestor", "ingest_source", "run_ingestion"]
