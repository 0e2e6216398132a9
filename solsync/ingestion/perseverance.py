"""Perseverance raw-images feed."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from solsync.core.logging import get_logger
from solsync.schemas.records import NormalizedRecord
from .base import UnitFetcher

log = get_logger("ingestion.perseverance")


class PerseveranceFetcher(UnitFetcher):
    """Pages through the mars2020 raw_images feed, 100 images per page."""

    name = "perseverance"
    page_size = 100
    items_key = "images"

    BASE_URL = "https://mars.nasa.gov/rss/api/"
    BASE_PARAMS = {"feed": "raw_images", "category": "mars2020", "feedtype": "json"}

    async def fetch_latest_unit(self) -> Optional[int]:
        document = await self.client.get_json(self.BASE_URL, params={**self.BASE_PARAMS, "num": 1})
        return self._latest_from(document)

    async def fetch_unit_page(self, unit: int, page: int) -> Tuple[List[Dict[str, Any]], bool]:
        params = {**self.BASE_PARAMS, "sol": unit, "num": self.page_size, "page": page}
        document = await self.client.get_json(self.BASE_URL, params=params, allow_not_found=True)
        if document is None:
            return [], False

        images = self._extract_items(document, unit, page)
        log.debug(f"Unit {unit} page {page}: {len(images)} images")
        return images, len(images) == self.page_size

    def parse_item(self, raw: Dict[str, Any], unit: int) -> NormalizedRecord:
        external_id = self._require_id(raw, "imageid")
        sol = raw.get("sol")
        return NormalizedRecord(
            external_id=external_id,
            unit=sol if isinstance(sol, int) else unit,
            taken_at=self._require_timestamp(raw, "date_taken", external_id),
            received_at=self._parse_timestamp(raw.get("date_received")),
            camera=self._nested(raw, "camera", "instrument"),
            image_url=self._nested(raw, "image_files", "full_res"),
            title=raw.get("title"),
            payload=raw,
        )
