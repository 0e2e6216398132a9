"""Normalized record produced by per-source parsers."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class NormalizedRecord(BaseModel):
    external_id: str
    unit: int
    taken_at: datetime
    received_at: Optional[datetime] = None
    camera: Optional[str] = None
    image_url: Optional[str] = None
    title: Optional[str] = None
    payload: dict
