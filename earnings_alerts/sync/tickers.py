"""
Daily reconciliation of the ticker universe against exchange listings.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from earnings_alerts.data.sectors import map_industry_to_sector
from earnings_alerts.data.symbols import ExchangeDirectoryProvider
from earnings_alerts.database.base import TickerStore
from earnings_alerts.database.models import Ticker
from earnings_alerts.scheduling.dates import utc_now

logger = logging.getLogger(__name__)


def normalize_symbol(symbol: str) -> str:
    """Directory symbols can arrive mixed-case (e.g. "FLGpU")."""
    return symbol.strip().upper()


@dataclass
class Exchange:
    """Exchange to sync: provider code and the name stored on tickers."""

    mic: str
    name: str


@dataclass
class TickerSyncResult:
    """Counts from one reconciliation run."""

    current_symbols: int = 0
    stored_symbols: int = 0
    new_symbols: int = 0
    inserted: int = 0
    delisted_symbols: int = 0
    delisted_marked: int = 0
    enrichment_candidates: int = 0
    enriched: int = 0
    failed: int = 0
    failed_exchanges: list[str] = field(default_factory=list)
    duration_ms: int = 0


class TickerSyncJob:
    """Diffs listings against the store, then enriches a bounded batch."""

    def __init__(
        self,
        store: TickerStore,
        directory: ExchangeDirectoryProvider,
        exchanges: list[Exchange],
        batch_size: int = 50,
        delay_seconds: float = 1.1,
        retry_days: int = 30,
        time_budget_seconds: float = 300,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize sync job.

        Args:
            store: Ticker persistence
            directory: Listing and classification provider
            exchanges: Exchanges to reconcile
            batch_size: Max tickers enriched per run
            delay_seconds: Pause between classification calls
            retry_days: Days before a failed classification is retried
            time_budget_seconds: Upper bound on time spent pausing for enrichment
            sleep: Pause function
            clock: Returns the current UTC instant
        """
        self.store = store
        self.directory = directory
        self.exchanges = exchanges
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds
        self.retry_days = retry_days
        self.time_budget_seconds = time_budget_seconds
        self.sleep = sleep
        self.clock = clock

    @property
    def effective_batch_size(self) -> int:
        """Batch size capped so the pauses fit within the time budget."""
        if self.delay_seconds <= 0:
            return self.batch_size
        return max(0, min(self.batch_size, int(self.time_budget_seconds // self.delay_seconds)))

    def run(self) -> TickerSyncResult:
        """Run reconciliation then enrichment. Never raises."""
        started = time.monotonic()
        result = TickerSyncResult()

        try:
            self._reconcile(result)
        except Exception as e:
            result.failed += 1
            logger.error(f"Ticker reconciliation failed: {e}")

        try:
            self._enrich(result)
        except Exception as e:
            result.failed += 1
            logger.error(f"Ticker enrichment failed: {e}")

        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Ticker sync complete in {result.duration_ms}ms. "
            f"Inserted: {result.inserted}, Delisted: {result.delisted_marked}, "
            f"Enriched: {result.enriched}"
        )
        return result

    def _fetch_listings(self, result: TickerSyncResult) -> dict[str, Ticker]:
        """Current listings keyed by normalized symbol. First exchange wins."""
        current: dict[str, Ticker] = {}
        for exchange in self.exchanges:
            try:
                listings = self.directory.list_symbols(exchange.mic)
            except Exception as e:
                result.failed_exchanges.append(exchange.name)
                logger.error(f"Failed to fetch {exchange.name} symbols: {e}")
                continue

            if not listings:
                result.failed_exchanges.append(exchange.name)
                logger.warning(f"{exchange.name} returned no symbols, treating as failed")
                continue

            for listing in listings:
                symbol = normalize_symbol(listing.symbol)
                if not symbol or symbol in current:
                    continue
                current[symbol] = Ticker(
                    symbol=symbol,
                    exchange=exchange.name,
                    description=listing.description or symbol,
                )
            logger.info(f"Fetched {len(listings)} symbols from {exchange.name}")
        return current

    def _reconcile(self, result: TickerSyncResult) -> None:
        current = self._fetch_listings(result)
        stored = {
            normalize_symbol(symbol): exchange
            for symbol, exchange in self.store.get_active_exchanges().items()
        }
        result.current_symbols = len(current)
        result.stored_symbols = len(stored)
        logger.info(f"Found {len(stored)} stored active symbols")

        new_symbols = sorted(set(current) - set(stored))
        # Tickers of an exchange without a listing this run are left alone
        if len(result.failed_exchanges) == len(self.exchanges):
            delisted_symbols = []
            logger.warning("Skipping delisting: no exchange listings available")
        else:
            if result.failed_exchanges:
                logger.warning(
                    f"Skipping delisting for {', '.join(result.failed_exchanges)}: "
                    "listings unavailable"
                )
            delisted_symbols = sorted(
                symbol
                for symbol, exchange in stored.items()
                if symbol not in current and exchange not in result.failed_exchanges
            )

        result.new_symbols = len(new_symbols)
        result.delisted_symbols = len(delisted_symbols)
        logger.info(
            f"Found {len(new_symbols)} new symbols, {len(delisted_symbols)} delisted"
        )

        for symbol in new_symbols:
            try:
                self.store.upsert(current[symbol])
                result.inserted += 1
            except Exception as e:
                result.failed += 1
                logger.error(f"Failed to insert ticker {symbol}: {e}")

        for symbol in delisted_symbols:
            try:
                if self.store.mark_inactive(symbol):
                    result.delisted_marked += 1
            except Exception as e:
                result.failed += 1
                logger.error(f"Failed to mark {symbol} inactive: {e}")

    def _enrich(self, result: TickerSyncResult) -> None:
        batch_size = self.effective_batch_size
        if batch_size == 0:
            return

        retry_before = self.clock() - timedelta(days=self.retry_days)
        candidates = self.store.get_unenriched(batch_size, retry_before)
        result.enrichment_candidates = len(candidates)
        logger.info(f"Enriching {len(candidates)} tickers")

        for i, ticker in enumerate(candidates):
            if i > 0 and self.delay_seconds > 0:
                self.sleep(self.delay_seconds)
            try:
                if self._enrich_one(ticker):
                    result.enriched += 1
            except Exception as e:
                result.failed += 1
                logger.error(f"Failed to enrich {ticker.symbol}: {e}")

    def _enrich_one(self, ticker: Ticker) -> bool:
        """
        Classify one ticker and record the attempt.

        An answer without an industry is still recorded so the retry window
        starts. An unreachable provider only moves the ticker to the back of
        the never-enriched queue.
        """
        classification = self.directory.classify(ticker.symbol)
        if classification is None:
            self.store.record_lookup_failure(ticker.symbol, self.clock())
            return False

        industry = classification.industry
        sector = map_industry_to_sector(industry)
        self.store.update_profile(ticker.symbol, industry, sector, self.clock())
        if industry is None:
            logger.debug(f"No industry available for {ticker.symbol}")
        return True
