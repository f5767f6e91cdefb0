"""
Earnings calendar and report data fetchers.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Optional

import requests
import yfinance as yf

logger = logging.getLogger(__name__)

FINNHUB_BASE_URL = "https://finnhub.io/api/v1"


class ProviderError(Exception):
    """Raised when an external data provider fails or returns bad data."""

    pass


def parse_eps(value: Any) -> Optional[float]:
    """
    Parse an EPS figure from a provider response.

    Accepts numbers and numeric strings. Returns None for missing, blank or
    unparseable values, never NaN.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = float(text)
        except ValueError:
            return None
        return None if math.isnan(parsed) else parsed
    return None


def calculate_surprise(
    actual: Optional[float], estimate: Optional[float]
) -> tuple[Optional[float], Optional[float]]:
    """
    Earnings surprise and surprise percentage.

    The percentage is relative to abs(estimate) and is None when the
    estimate is zero.
    """
    if actual is None or estimate is None:
        return None, None
    if math.isnan(actual) or math.isnan(estimate):
        return None, None
    surprise = actual - estimate
    surprise_percent = (surprise / abs(estimate)) * 100 if estimate != 0 else None
    return surprise, surprise_percent


@dataclass
class EarningsReport:
    """Reported results for one quarter. Any figure may be unknown."""

    symbol: str
    actual: Optional[float] = None
    estimate: Optional[float] = None
    surprise: Optional[float] = None
    surprise_percent: Optional[float] = None

    @property
    def has_data(self) -> bool:
        return any(
            v is not None
            for v in (self.actual, self.estimate, self.surprise, self.surprise_percent)
        )


class EarningsCalendarProvider(ABC):
    """Source of upcoming earnings dates."""

    @abstractmethod
    def next_earnings_date(self, symbol: str, after: date) -> Optional[date]:
        """
        Next known earnings date strictly after the given date.

        Raises:
            ProviderError: If the provider could not be queried
        """
        pass


class FinnhubEarningsCalendar(EarningsCalendarProvider):
    """Earnings calendar backed by Finnhub."""

    def __init__(self, api_key: str, lookahead_days: int = 120, timeout: float = 15):
        self.api_key = api_key
        self.lookahead_days = lookahead_days
        self.timeout = timeout

    def next_earnings_date(self, symbol: str, after: date) -> Optional[date]:
        """Query the calendar window following `after`."""
        params = {
            "from": (after + timedelta(days=1)).isoformat(),
            "to": (after + timedelta(days=self.lookahead_days)).isoformat(),
            "symbol": symbol.upper(),
            "token": self.api_key,
        }
        try:
            response = requests.get(
                f"{FINNHUB_BASE_URL}/calendar/earnings",
                params=params,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ProviderError(f"Earnings calendar lookup failed for {symbol}: {e}") from e

        entries = []
        if isinstance(data, dict):
            entries = data.get("earningsCalendar") or []

        dates = []
        for entry in entries:
            if str(entry.get("symbol", "")).upper() != symbol.upper():
                continue
            try:
                candidate = date.fromisoformat(str(entry.get("date", ""))[:10])
            except ValueError:
                continue
            if candidate > after:
                dates.append(candidate)
        return min(dates) if dates else None


class YahooEarningsCalendar(EarningsCalendarProvider):
    """Earnings calendar backed by Yahoo Finance."""

    def __init__(self, limit: int = 12):
        self.limit = limit

    def next_earnings_date(self, symbol: str, after: date) -> Optional[date]:
        """Pick the earliest listed earnings date after `after`."""
        try:
            frame = yf.Ticker(symbol).get_earnings_dates(limit=self.limit)
        except Exception as e:
            raise ProviderError(f"Earnings calendar lookup failed for {symbol}: {e}") from e

        if frame is None or frame.empty:
            return None

        dates = [ts.date() for ts in frame.index if ts.date() > after]
        return min(dates) if dates else None


class ReportDataFetcher:
    """Fetches reported EPS for the quarter containing an earnings date."""

    def __init__(self, api_key: Optional[str], timeout: float = 15):
        self.api_key = api_key
        self.timeout = timeout

    def get_report(self, symbol: str, earnings_date: date) -> EarningsReport:
        """
        Best-effort report lookup.

        Returns an empty report on any failure; missing figures only degrade
        the message.
        """
        empty = EarningsReport(symbol=symbol)
        if not self.api_key:
            return empty

        try:
            response = requests.get(
                f"{FINNHUB_BASE_URL}/stock/earnings",
                params={"symbol": symbol.upper(), "token": self.api_key},
                timeout=self.timeout,
            )
            if not response.ok:
                return empty
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching earnings data for {symbol}: {e}")
            return empty

        quarter = (earnings_date.month - 1) // 3 + 1
        rows = data if isinstance(data, list) else []
        match = next(
            (
                r
                for r in rows
                if r.get("year") == earnings_date.year and r.get("quarter") == quarter
            ),
            None,
        )
        if match is None:
            return empty

        actual = parse_eps(match.get("actual"))
        estimate = parse_eps(match.get("estimate"))
        surprise = parse_eps(match.get("surprise"))
        surprise_percent = parse_eps(match.get("surprisePercent"))
        if surprise is None and surprise_percent is None:
            surprise, surprise_percent = calculate_surprise(actual, estimate)

        return EarningsReport(
            symbol=symbol,
            actual=actual,
            estimate=estimate,
            surprise=surprise,
            surprise_percent=surprise_percent,
        )
