"""Common paging and HTTP behaviour for NYC Open Data source adapters."""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

import requests

from .. import config
from ..normalize import format_since_date

logger = logging.getLogger(__name__)

RawRecord = Dict[str, Any]


@dataclass
class PageResult:
    """One page of raw records.

    A page that could not be fetched carries ``error`` and no records; it is
    never mistaken for the short page that marks the end of the data.
    """

    offset: int
    records: List[RawRecord] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def __len__(self) -> int:
        return len(self.records)


class SourceAdapter(ABC):
    """Fetches paginated raw records from one feed and normalizes them.

    Subclasses set the class attributes describing the feed and implement
    :meth:`normalize`, which must be pure and return ``None`` for records
    that fail validation.
    """

    name: str = ""
    endpoint: str = ""
    batch_size: int = config.DEFAULT_PAGE_SIZE
    delay_seconds: float = config.DEFAULT_SLEEP_SECONDS
    order: Optional[str] = None
    # Column filtered by ``since_date`` and the literal format it expects
    date_column: Optional[str] = None
    date_style: str = "iso"
    # "event", "parcel" or "boundary"
    produces: str = "event"

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = config.HTTP_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout
        self._sleep = sleep

    def _build_headers(self, app_token: Optional[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {"Accept": "application/json"}
        if app_token:
            headers["X-App-Token"] = app_token
        return headers

    def where_clause(self, since_date: Optional[datetime]) -> Optional[str]:
        if since_date is None or not self.date_column:
            return None
        literal = format_since_date(since_date, self.date_style)
        return f"{self.date_column} >= '{literal}'"

    def build_params(self, since_date: Optional[datetime], *, limit: int, offset: int) -> Dict[str, str]:
        params: Dict[str, str] = {
            "$limit": str(limit),
            "$offset": str(offset),
        }
        if self.order:
            params["$order"] = self.order
        where = self.where_clause(since_date)
        if where:
            params["$where"] = where
        return params

    def fetch_page(
        self,
        since_date: Optional[datetime] = None,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
        app_token: Optional[str] = None,
    ) -> PageResult:
        limit = limit or self.batch_size
        params = self.build_params(since_date, limit=limit, offset=offset)
        try:
            response = self.session.get(
                self.endpoint,
                headers=self._build_headers(app_token),
                params=params,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.Timeout:
            logger.error("%s fetch timed out after %ss (offset %s)", self.name, self.timeout, offset)
            return PageResult(offset=offset, error=f"timeout after {self.timeout}s")
        except requests.RequestException as exc:
            logger.error("%s fetch failed (offset %s): %s", self.name, offset, exc)
            return PageResult(offset=offset, error=str(exc))
        except ValueError:
            logger.error("%s returned an invalid JSON payload (offset %s)", self.name, offset)
            return PageResult(offset=offset, error="invalid JSON payload")

        if not isinstance(data, list):
            logger.error("%s returned an unexpected payload type: %s", self.name, type(data).__name__)
            return PageResult(offset=offset, error="unexpected payload from Socrata API")
        return PageResult(offset=offset, records=data)

    def iter_pages(
        self,
        since_date: Optional[datetime] = None,
        *,
        app_token: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> Iterator[PageResult]:
        """Yield pages until a short page or a failed page.

        Pages are fetched sequentially with ``delay_seconds`` between them.
        """
        limit = page_size or self.batch_size
        offset = 0
        while True:
            page = self.fetch_page(since_date, limit=limit, offset=offset, app_token=app_token)
            yield page
            if page.failed or len(page) < limit:
                break
            offset += limit
            if self.delay_seconds:
                self._sleep(self.delay_seconds)

    @abstractmethod
    def normalize(self, raw: RawRecord) -> Optional[Any]:
        """Map a raw record to a canonical record, or ``None`` to reject it."""


__all__ = ["RawRecord", "PageResult", "SourceAdapter"]
