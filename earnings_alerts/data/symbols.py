"""
Exchange symbol directory and per-symbol classification.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import requests

from earnings_alerts.data.fetcher import FINNHUB_BASE_URL, ProviderError

logger = logging.getLogger(__name__)


@dataclass
class Listing:
    """One symbol as listed by an exchange directory."""

    symbol: str
    description: str


@dataclass
class Classification:
    """Industry classification for a symbol. industry is None when unknown."""

    industry: Optional[str] = None


class ExchangeDirectoryProvider(ABC):
    """Source of exchange listings and symbol profiles."""

    @abstractmethod
    def list_symbols(self, exchange: str) -> list[Listing]:
        """
        Full current listing for an exchange.

        Raises:
            ProviderError: If the listing could not be fetched
        """
        pass

    @abstractmethod
    def classify(self, symbol: str) -> Optional[Classification]:
        """
        Industry classification for a symbol.

        Returns:
            Classification (possibly with industry unset), or None if the
            provider could not be reached
        """
        pass


class FinnhubDirectory(ExchangeDirectoryProvider):
    """Exchange directory backed by Finnhub. Exchanges are given by MIC code."""

    def __init__(self, api_key: str, timeout: float = 30):
        self.api_key = api_key
        self.timeout = timeout

    def list_symbols(self, exchange: str) -> list[Listing]:
        """Fetch all symbols listed on a US exchange (e.g. "XNAS")."""
        try:
            response = requests.get(
                f"{FINNHUB_BASE_URL}/stock/symbol",
                params={"exchange": "US", "mic": exchange, "token": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ProviderError(f"Failed to fetch symbols for {exchange}: {e}") from e

        if not isinstance(data, list):
            return []
        return self._parse_listings(data)

    def classify(self, symbol: str) -> Optional[Classification]:
        """Fetch the company profile and read its industry."""
        try:
            response = requests.get(
                f"{FINNHUB_BASE_URL}/stock/profile2",
                params={"symbol": symbol, "token": self.api_key},
                timeout=self.timeout,
            )
            if not response.ok:
                logger.warning(f"Profile lookup for {symbol} returned HTTP {response.status_code}")
                # Client errors are a final answer; rate limits and 5xx are not
                if 400 <= response.status_code < 500 and response.status_code != 429:
                    return Classification()
                return None
            profile = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Profile lookup for {symbol} failed: {e}")
            return None

        if not isinstance(profile, dict):
            return Classification()
        return Classification(industry=profile.get("finnhubIndustry") or None)

    def _parse_listings(self, rows: list[dict]) -> list[Listing]:
        """Parse Finnhub symbol list response."""
        listings = []
        for row in rows:
            symbol = str(row.get("symbol") or "").strip()
            # Skip empty tickers
            if not symbol:
                continue
            description = row.get("description") or row.get("displaySymbol") or symbol
            listings.append(Listing(symbol=symbol, description=description))
        return listings
