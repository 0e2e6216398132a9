"""Exceptions raised by upstream fetchers and item parsers."""


class PayloadError(ValueError):
    """Upstream response is not the structure the feed promises."""


class ItemSkipped(ValueError):
    """A single upstream item cannot be normalized (missing id or timestamp)."""


class UnknownSourceError(KeyError):
    """No fetcher is registered for a configured source id."""

    def __str__(self) -> str:
        return f"No fetcher registered for source '{self.args[0]}'"
