from solsync.ingestion.base import UnitFetcher
from solsync.ingestion.client import FeedClient
from solsync.ingestion.errors import ItemSkipped, PayloadError, UnknownSourceError
from solsync.ingestion.registry import FETCHERS, get_fetcher

__all__ = [
    "UnitFetcher",
    "FeedClient",
    "FETCHERS",
    "get_fetcher",
    "ItemSkipped",
    "PayloadError",
    "UnknownSourceError",
]
