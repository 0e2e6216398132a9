"""Unit-fetch error classification and round-based retry of failed units."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, List, NamedTuple, Union

import httpx
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from solsync.core.logging import get_logger
from solsync.ingestion.base import UnitFetcher
from solsync.ingestion.errors import PayloadError
from solsync.schemas.sync import CANCELLED, FailedUnitInfo
from solsync.services.record_writer import RecordWriter

log = get_logger("services.retry")

ERROR_MESSAGE_LIMIT = 200

UnitOutcome = Union[int, FailedUnitInfo]
UnitAttempt = Callable[[int], Awaitable[UnitOutcome]]
Sleep = Callable[[float], Awaitable[None]]


def classify_exception(exc: BaseException) -> str:
    """Map a unit-fetch exception onto the error type recorded in run history."""
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP_{exc.response.status_code}"
    if isinstance(exc, (httpx.TimeoutException, TimeoutError, asyncio.TimeoutError)):
        return "Timeout"
    if isinstance(exc, asyncio.CancelledError):
        return CANCELLED
    if isinstance(exc, (PayloadError, ValidationError)):
        return "ParseError"
    if isinstance(exc, httpx.TransportError):
        return "NetworkError"
    return "Unknown"


def concise_message(exc: BaseException) -> str:
    message = str(exc) or exc.__class__.__name__
    if len(message) > ERROR_MESSAGE_LIMIT:
        message = message[:ERROR_MESSAGE_LIMIT] + "..."
    return message


def failure_from_exception(unit: int, exc: BaseException) -> FailedUnitInfo:
    return FailedUnitInfo(unit=unit, error_type=classify_exception(exc), error_message=concise_message(exc))


async def fetch_with_classification(fetcher: UnitFetcher, unit: int, writer: RecordWriter) -> UnitOutcome:
    """Sync one unit, turning any failure into a FailedUnitInfo.

    Store errors are not unit failures: they propagate and abort the run.
    """
    try:
        return await fetcher.sync_unit(unit, writer)
    except SQLAlchemyError:
        raise
    except (Exception, asyncio.CancelledError) as exc:  # noqa: BLE001
        failure = failure_from_exception(unit, exc)
        log.debug(f"Unit {unit} exception details: {exc!r}")
        return failure


class RoundResult(NamedTuple):
    failures: List[FailedUnitInfo]
    recovered: Dict[int, int]
    cancelled: bool


class RetryOutcome(NamedTuple):
    failures: List[FailedUnitInfo]
    recovered: Dict[int, int]
    delays: List[float]
    rounds: int
    cancelled: bool


def round_delay(round_no: int, base_delay: float) -> float:
    """Backoff before retry round ``round_no`` (1-based): base, 2×base, 4×base..."""
    return base_delay * 2 ** (round_no - 1)


async def retry_round(failures: List[FailedUnitInfo], attempt: UnitAttempt, round_no: int) -> RoundResult:
    """Re-attempt every failed unit once; returns the failures that remain."""
    remaining: List[FailedUnitInfo] = []
    recovered: Dict[int, int] = {}
    for index, previous in enumerate(failures):
        outcome = await attempt(previous.unit)
        if isinstance(outcome, FailedUnitInfo):
            remaining.append(outcome)
            log.warning(f"Unit {previous.unit}: RETRY {round_no} FAILED - {outcome.error_type}")
            if outcome.cancelled:
                remaining.extend(failures[index + 1:])
                return RoundResult(remaining, recovered, True)
        else:
            recovered[previous.unit] = outcome
            log.info(f"Unit {previous.unit}: RETRY SUCCESS ({outcome} records)")
    return RoundResult(remaining, recovered, False)


async def retry_failed_units(
    failures: List[FailedUnitInfo],
    attempt: UnitAttempt,
    *,
    max_rounds: int,
    base_delay: float,
    sleep: Sleep = asyncio.sleep,
    label: str = "",
) -> RetryOutcome:
    """Fold retry rounds over the failure list until it is empty or rounds run out."""
    recovered: Dict[int, int] = {}
    delays: List[float] = []
    rounds = 0

    for round_no in range(1, max_rounds + 1):
        if not failures:
            break
        delay = round_delay(round_no, base_delay)
        log.info(
            f"Retry {round_no}/{max_rounds}: retrying {len(failures)} failed units {label}in {delay:g}s"
        )
        delays.append(delay)
        try:
            await sleep(delay)
        except asyncio.CancelledError:
            log.warning(f"Retry {round_no}/{max_rounds} cancelled while waiting")
            return RetryOutcome(failures, recovered, delays, rounds, True)

        rounds = round_no
        result = await retry_round(failures, attempt, round_no)
        recovered.update(result.recovered)
        failures = result.failures
        if result.cancelled:
            return RetryOutcome(failures, recovered, delays, rounds, True)

    return RetryOutcome(failures, recovered, delays, rounds, False)
