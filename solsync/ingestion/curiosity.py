"""Curiosity raw_image_items API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from solsync.core.logging import get_logger
from solsync.schemas.records import NormalizedRecord
from .base import UnitFetcher
from .errors import ItemSkipped

log = get_logger("ingestion.curiosity")


class CuriosityFetcher(UnitFetcher):
    """Queries the MSL raw image items API, 200 items per page."""

    name = "curiosity"
    page_size = 200
    items_key = "items"

    BASE_URL = "https://mars.nasa.gov/api/v1/raw_image_items/"

    async def fetch_latest_unit(self) -> Optional[int]:
        params = {"order": "sol desc", "per_page": 1, "condition_1": "msl:mission"}
        document = await self.client.get_json(self.BASE_URL, params=params)
        return self._latest_from(document)

    async def fetch_unit_page(self, unit: int, page: int) -> Tuple[List[Dict[str, Any]], bool]:
        params = {
            "order": "sol desc",
            "per_page": self.page_size,
            "page": page,
            "condition_1": "msl:mission",
            "condition_2": f"{unit}:sol:in",
        }
        document = await self.client.get_json(self.BASE_URL, params=params, allow_not_found=True)
        if document is None:
            return [], False

        items = self._extract_items(document, unit, page)
        if page == 0 and isinstance(document.get("total"), int):
            log.info(f"Unit {unit} has {document['total']} items upstream")
        return items, len(items) == self.page_size

    def parse_item(self, raw: Dict[str, Any], unit: int) -> NormalizedRecord:
        external_id = self._require_id(raw, "id")
        sample_type = self._nested(raw, "extended", "sample_type")
        if sample_type and sample_type.lower() == "thumbnail":
            raise ItemSkipped(f"item {external_id} is a thumbnail")
        sol = raw.get("sol")
        return NormalizedRecord(
            external_id=external_id,
            unit=sol if isinstance(sol, int) else unit,
            taken_at=self._require_timestamp(raw, "date_taken", external_id),
            received_at=self._parse_timestamp(raw.get("date_received")),
            camera=raw.get("instrument"),
            image_url=raw.get("https_url") or raw.get("url"),
            title=raw.get("title"),
            payload=raw,
        )
