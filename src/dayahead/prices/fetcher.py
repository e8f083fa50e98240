"""Provider selection over several upstream price sources."""

from __future__ import annotations

import logging
from datetime import date

from dayahead.core.exceptions import ProviderUnavailable
from dayahead.core.models import PriceResolution, UpstreamPrices
from dayahead.prices.provider import UpstreamPriceSource

logger = logging.getLogger(__name__)


class PriceFetcher:
    """UpstreamPriceSource that routes to a named source, then falls back.

    The preferred source is asked first; on ``ProviderUnavailable`` the
    remaining sources are tried in registration order. The last failure is
    re-raised when every source fails.

    Parameters
    ----------
    sources : dict[str, UpstreamPriceSource]
        Sources keyed by provider name (``nordpool``, ``entsoe``).
    """

    def __init__(self, sources: dict[str, UpstreamPriceSource]) -> None:
        if not sources:
            raise ValueError("PriceFetcher needs at least one source")
        self._sources = dict(sources)

    @property
    def providers(self) -> list[str]:
        return list(self._sources)

    def order(self, preferred_provider: str | None) -> list[str]:
        """Provider names in the order they will be tried."""
        preferred = (preferred_provider or "").lower()
        names = list(self._sources)
        if preferred in self._sources:
            names.remove(preferred)
            names.insert(0, preferred)
        elif preferred:
            logger.warning(
                "Preferred provider %r not configured; trying %s",
                preferred_provider,
                ", ".join(names),
            )
        return names

    async def fetch(
        self,
        price_date: date,
        interval: PriceResolution,
        preferred_provider: str,
    ) -> UpstreamPrices:
        last_error: ProviderUnavailable | None = None
        for name in self.order(preferred_provider):
            try:
                return await self._sources[name].fetch(price_date, interval, name)
            except ProviderUnavailable as e:
                logger.warning("%s failed for %s: %s", name, price_date, e)
                last_error = e
        assert last_error is not None
        raise last_error
