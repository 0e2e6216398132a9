"""Abstract per-source unit fetcher."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from solsync.core.logging import get_logger
from solsync.schemas.records import NormalizedRecord
from .client import FeedClient
from .errors import ItemSkipped, PayloadError

if TYPE_CHECKING:
    from solsync.services.record_writer import RecordWriter

log = get_logger("ingestion.base")

# Width of unit_records.external_id
EXTERNAL_ID_MAX_LENGTH = 100


class UnitFetcher(ABC):
    """Fetches every upstream item of one unit (sol) for a single source."""

    name: str
    page_size: int
    items_key: str

    def __init__(self, client: FeedClient):
        self.client = client

    @abstractmethod
    async def fetch_latest_unit(self) -> Optional[int]:
        """Latest unit the upstream has published, or None if it cannot say."""

    @abstractmethod
    async def fetch_unit_page(self, unit: int, page: int) -> Tuple[List[Dict[str, Any]], bool]:
        """One page of raw items for ``unit`` and whether another page follows."""

    @abstractmethod
    def parse_item(self, raw: Dict[str, Any], unit: int) -> NormalizedRecord:
        """Normalize one raw item; raises ItemSkipped when it cannot be keyed."""

    async def fetch_unit_items(self, unit: int) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 0
        has_more = True
        while has_more:
            batch, has_more = await self.fetch_unit_page(unit, page)
            items.extend(batch)
            page += 1
        log.debug(f"Source={self.name} unit={unit} pages={page} items={len(items)}")
        return items

    async def sync_unit(self, unit: int, writer: "RecordWriter") -> int:
        """Fetch, parse and store one unit. Returns the number of new records."""
        items = await self.fetch_unit_items(unit)
        if not items:
            log.info(f"No items found for {self.name} unit {unit}")
            return 0
        result = writer.write(self.name, unit, items, self.parse_item)
        return result.inserted

    def _extract_items(self, document: Any, unit: int, page: int) -> List[Dict[str, Any]]:
        if not isinstance(document, dict):
            raise PayloadError(f"Expected an object for {self.name} unit {unit} page {page}")
        items = document.get(self.items_key)
        if items is None:
            raise PayloadError(f"No '{self.items_key}' array for {self.name} unit {unit} page {page}")
        if not isinstance(items, list):
            raise PayloadError(f"'{self.items_key}' is not an array for {self.name} unit {unit} page {page}")
        return items

    def _latest_from(self, document: Any) -> Optional[int]:
        if not isinstance(document, dict):
            return None
        items = document.get(self.items_key) or []
        if not items or not isinstance(items[0], dict):
            return None
        sol = items[0].get("sol")
        return sol if isinstance(sol, int) else None

    @staticmethod
    def _require_id(raw: Dict[str, Any], key: str) -> str:
        value = raw.get(key)
        if value is None or value == "":
            raise ItemSkipped(f"item missing '{key}'")
        external_id = str(value)
        if len(external_id) > EXTERNAL_ID_MAX_LENGTH:
            raise ItemSkipped(f"item '{key}' longer than {EXTERNAL_ID_MAX_LENGTH} characters")
        return external_id

    @staticmethod
    def _require_timestamp(raw: Dict[str, Any], key: str, external_id: str) -> datetime:
        ts = UnitFetcher._parse_timestamp(raw.get(key))
        if not ts:
            raise ItemSkipped(f"item {external_id} has no usable '{key}'")
        return ts

    @staticmethod
    def _nested(raw: Dict[str, Any], key: str, nested: str) -> Optional[str]:
        value = raw.get(key)
        if not isinstance(value, dict):
            return None
        inner = value.get(nested)
        return str(inner) if inner is not None else None

    @staticmethod
    def _parse_timestamp(value: Any) -> Optional[datetime]:
        if not value:
            return None
        try:
            if isinstance(value, str):
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            elif isinstance(value, datetime):
                parsed = value
            else:
                return None
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
