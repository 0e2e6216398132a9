"""Current-position resolution with retry and a local-store fallback."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, NamedTuple, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from solsync.core.config import settings
from solsync.core.logging import get_logger
from solsync.ingestion.base import UnitFetcher
from solsync.models.records import UnitRecord

log = get_logger("services.position")


class ResolvedPosition(NamedTuple):
    unit: int
    degraded: bool


class UnitWindow(NamedTuple):
    start: int
    end: int

    @property
    def units(self) -> range:
        return range(self.start, self.end + 1)

    def __len__(self) -> int:
        return self.end - self.start + 1


def compute_window(current_unit: int, lookback: int) -> UnitWindow:
    """Trailing window [max(1, current - lookback), current]."""
    return UnitWindow(max(1, current_unit - lookback), current_unit)


class PositionResolver:
    """Finds the latest unit a source has published.

    The upstream "latest" query is tried ``attempts`` times, sleeping
    2^attempt seconds between tries. When all of them fail the highest unit
    already stored for the source, plus one, is used and the result is
    flagged as degraded. If the store has nothing either the position is
    unresolved and ``resolve`` returns None.

    The fallback only ever advances one unit per run. A long upstream outage
    therefore delays, but does not lose, the units published meanwhile: the
    real position is picked up again once the upstream recovers.
    """

    def __init__(
        self,
        db: Session,
        attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.attempts = attempts if attempts is not None else settings.POSITION_RESOLVE_ATTEMPTS
        self.sleep = sleep

    async def resolve(self, fetcher: UnitFetcher) -> Optional[ResolvedPosition]:
        source = fetcher.name
        for attempt in range(1, self.attempts + 1):
            unit = await self._fetch_latest(fetcher)
            if unit is not None:
                return ResolvedPosition(unit, False)

            if attempt < self.attempts:
                delay = 2 ** attempt
                log.warning(
                    f"Upstream latest unit failed for {source} (attempt {attempt}/{self.attempts}). "
                    f"Retrying in {delay}s..."
                )
                await self.sleep(delay)

        log.warning(f"Upstream latest unit failed for {source} after {self.attempts} attempts. Falling back to stored max unit")

        max_unit = self.max_stored_unit(source)
        if max_unit is not None:
            return ResolvedPosition(max_unit + 1, True)

        log.error(f"No stored records for {source}; current position cannot be determined")
        return None

    def max_stored_unit(self, source: str) -> Optional[int]:
        stmt = select(func.max(UnitRecord.unit)).where(UnitRecord.source == source)
        max_unit = self.db.execute(stmt).scalar()
        if max_unit is not None:
            log.info(f"Stored max unit for {source}: {max_unit}")
        return max_unit

    async def _fetch_latest(self, fetcher: UnitFetcher) -> Optional[int]:
        try:
            return await fetcher.fetch_latest_unit()
        except Exception as exc:  # noqa: BLE001
            log.error(f"Error getting latest unit for {fetcher.name}: {exc}")
            return None
