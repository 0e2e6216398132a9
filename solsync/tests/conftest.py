"""Shared fixtures: an in-memory store and scripted upstream fetchers."""

import asyncio
import os

# Settings are read at import time; give the package a throwaway store.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ACTIVE_SOURCES", "perseverance,curiosity")
os.environ.setdefault("SYNC_ENABLED", "false")
os.environ.setdefault("LOG_DIR", "")

from collections import defaultdict  # noqa: E402
from typing import Any, Dict, List, Optional, Tuple  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from solsync.ingestion.base import UnitFetcher  # noqa: E402
from solsync.models import Base  # noqa: E402
from solsync.schemas.records import NormalizedRecord  # noqa: E402

TAKEN_AT = "2024-03-01T10:15:00Z"


def make_item(unit: int, index: int) -> Dict[str, Any]:
    return {
        "id": f"{unit}-{index}",
        "sol": unit,
        "date_taken": TAKEN_AT,
        "instrument": "NAV_LEFT_B",
        "https_url": f"https://example.test/{unit}/{index}.jpg",
    }


class FakeFetcher(UnitFetcher):
    """Scripted fetcher: ``failures`` maps a unit to an exception, or to a list
    of exceptions consumed one per attempt (None in the list means succeed)."""

    name = "alpha"
    page_size = 2
    items_key = "items"

    def __init__(
        self,
        latest: Optional[int] = 200,
        items_per_unit: int = 3,
        failures: Optional[Dict[int, Any]] = None,
        latest_error: Optional[BaseException] = None,
        name: str = "alpha",
    ):
        super().__init__(client=None)
        self.name = name
        self.latest = latest
        self.items_per_unit = items_per_unit
        self.failures = failures or {}
        self.latest_error = latest_error
        self.latest_calls = 0
        self.attempts: Dict[int, int] = defaultdict(int)
        self.order: List[int] = []

    async def fetch_latest_unit(self) -> Optional[int]:
        self.latest_calls += 1
        if self.latest_error is not None:
            raise self.latest_error
        return self.latest

    async def fetch_unit_page(self, unit: int, page: int) -> Tuple[List[Dict[str, Any]], bool]:
        if page == 0:
            self.attempts[unit] += 1
            self.order.append(unit)
            failure = self.failures.get(unit)
            if isinstance(failure, list):
                failure = failure.pop(0) if failure else None
            if failure is not None:
                raise failure

        items = [make_item(unit, i) for i in range(self.items_per_unit)]
        batch = items[page * self.page_size:(page + 1) * self.page_size]
        return batch, len(batch) == self.page_size

    def parse_item(self, raw: Dict[str, Any], unit: int) -> NormalizedRecord:
        external_id = self._require_id(raw, "id")
        return NormalizedRecord(
            external_id=external_id,
            unit=unit,
            taken_at=self._require_timestamp(raw, "date_taken", external_id),
            camera=raw.get("instrument"),
            image_url=raw.get("https_url"),
            payload=raw,
        )


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers every requested delay."""

    def __init__(self, cancel_on: Optional[int] = None):
        self.delays: List[float] = []
        self.cancel_on = cancel_on

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.cancel_on is not None and len(self.delays) == self.cancel_on:
            raise asyncio.CancelledError()


class NullClient:
    """Async context manager standing in for FeedClient when fetchers are fakes."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture()
def sleep():
    return RecordingSleep()
