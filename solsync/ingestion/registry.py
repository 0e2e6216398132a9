"""Static lookup of fetcher variants keyed on source id."""

from __future__ import annotations

from typing import Dict, Type

from .base import UnitFetcher
from .client import FeedClient
from .curiosity import CuriosityFetcher
from .errors import UnknownSourceError
from .perseverance import PerseveranceFetcher

FETCHERS: Dict[str, Type[UnitFetcher]] = {
    PerseveranceFetcher.name: PerseveranceFetcher,
    CuriosityFetcher.name: CuriosityFetcher,
}


def get_fetcher(source: str, client: FeedClient) -> UnitFetcher:
    try:
        fetcher_cls = FETCHERS[source.lower()]
    except KeyError:
        raise UnknownSourceError(source) from None
    return fetcher_cls(client)
