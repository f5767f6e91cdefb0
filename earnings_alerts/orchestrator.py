"""
Daily entry point: runs the after-alert sweep and the ticker sync.
"""

import hmac
import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from earnings_alerts.alerts.after import AfterAlertProcessor
from earnings_alerts.config import AppConfig
from earnings_alerts.data.fetcher import (
    EarningsCalendarProvider,
    FinnhubEarningsCalendar,
    ReportDataFetcher,
    YahooEarningsCalendar,
)
from earnings_alerts.data.symbols import FinnhubDirectory
from earnings_alerts.database.connection import Database
from earnings_alerts.database.repository import (
    AlertRepository,
    TickerRepository,
    UserRepository,
)
from earnings_alerts.notifiers.email import AlertEmailBuilder
from earnings_alerts.notifiers.resend import ResendEmailScheduler
from earnings_alerts.sync.tickers import Exchange, TickerSyncJob

logger = logging.getLogger(__name__)


class UnauthorizedTrigger(Exception):
    """Raised when the trigger secret does not match."""

    pass


class ConfigurationError(Exception):
    """Raised when required credentials are missing at run time."""

    pass


def authorize_trigger(secret: Optional[str], provided_secret: Optional[str]) -> None:
    """
    Check the trigger secret.

    Raises:
        UnauthorizedTrigger: If a secret is configured and does not match
    """
    if not secret:
        return
    if provided_secret is None or not hmac.compare_digest(
        provided_secret.encode(), secret.encode()
    ):
        raise UnauthorizedTrigger("Unauthorized")


@dataclass
class DailySummary:
    """Outcome of one daily run."""

    success: bool = True
    alerts_processed: int = 0
    emails_sent: int = 0
    alerts_renewed: int = 0
    new_tickers: int = 0
    delisted_tickers: int = 0
    enriched_tickers: int = 0
    duration_ms: int = 0
    alerts_failed: bool = False
    tickers_failed: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Summary record for logs and the trigger response."""
        return {
            "success": self.success,
            "alertsProcessed": self.alerts_processed,
            "emailsSent": self.emails_sent,
            "alertsRenewed": self.alerts_renewed,
            "newTickers": self.new_tickers,
            "delistedTickers": self.delisted_tickers,
            "enrichedTickers": self.enriched_tickers,
            "durationMs": self.duration_ms,
            "alertsFailed": self.alerts_failed,
            "tickersFailed": self.tickers_failed,
            "error": self.error,
        }


class DailyOrchestrator:
    """Runs both daily jobs, isolating failures between them."""

    def __init__(
        self,
        after_processor: AfterAlertProcessor,
        ticker_sync: Optional[TickerSyncJob] = None,
        secret: Optional[str] = None,
        credentials: Optional[dict[str, str]] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            after_processor: After-alert sweep
            ticker_sync: Ticker reconciliation, or None when disabled
            secret: Shared secret the trigger must present, if any
            credentials: Required credential name to value; any empty value
                fails the run before any processing
        """
        self.after_processor = after_processor
        self.ticker_sync = ticker_sync
        self.secret = secret
        self.credentials = credentials or {}

    def authorize(self, provided_secret: Optional[str]) -> None:
        authorize_trigger(self.secret, provided_secret)

    def check_credentials(self) -> None:
        """
        Raises:
            ConfigurationError: If any required credential is empty
        """
        missing = sorted(name for name, value in self.credentials.items() if not value)
        if missing:
            raise ConfigurationError(f"{', '.join(missing)} not configured")

    def run(
        self, provided_secret: Optional[str] = None, today: Optional[date] = None
    ) -> DailySummary:
        """Run the daily jobs. Always returns a summary, never raises."""
        started = time.monotonic()
        summary = DailySummary()

        try:
            self.authorize(provided_secret)
            self.check_credentials()
        except (UnauthorizedTrigger, ConfigurationError) as e:
            logger.error(f"Daily run rejected: {e}")
            summary.success = False
            summary.error = str(e)
            return summary

        try:
            alerts = self.after_processor.run(today=today)
            summary.alerts_processed = alerts.processed
            summary.emails_sent = alerts.sent
            summary.alerts_renewed = alerts.renewed
        except Exception as e:
            summary.alerts_failed = True
            logger.error(f"After-alert sweep failed: {e}")

        if self.ticker_sync is not None:
            try:
                tickers = self.ticker_sync.run()
                summary.new_tickers = tickers.inserted
                summary.delisted_tickers = tickers.delisted_marked
                summary.enriched_tickers = tickers.enriched
            except Exception as e:
                summary.tickers_failed = True
                logger.error(f"Ticker sync failed: {e}")

        summary.success = not (summary.alerts_failed or summary.tickers_failed)
        if not summary.success:
            summary.error = "One or more daily jobs failed"
        summary.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Daily run summary: {summary.to_dict()}")
        return summary


def build_calendar(config: AppConfig) -> EarningsCalendarProvider:
    """Calendar provider selected by providers.calendar."""
    providers = config.providers
    if providers.calendar == "yahoo_finance":
        return YahooEarningsCalendar()
    return FinnhubEarningsCalendar(
        api_key=providers.finnhub_api_key,
        lookahead_days=config.alerts.calendar_lookahead_days,
        timeout=providers.request_timeout_seconds,
    )


def build_orchestrator(config: AppConfig, db: Database) -> DailyOrchestrator:
    """Wire the daily jobs from configuration."""
    providers = config.providers
    email_scheduler = ResendEmailScheduler(
        api_key=providers.resend_api_key,
        from_address=providers.from_address,
        timeout=providers.request_timeout_seconds,
    )

    after_processor = AfterAlertProcessor(
        alerts=AlertRepository(db),
        users=UserRepository(db),
        email_scheduler=email_scheduler,
        calendar=build_calendar(config),
        email_builder=AlertEmailBuilder(app_url=providers.app_url),
        report_fetcher=ReportDataFetcher(
            api_key=providers.finnhub_api_key,
            timeout=providers.request_timeout_seconds,
        ),
    )

    credentials = {"RESEND_API_KEY": providers.resend_api_key}
    needs_finnhub = config.ticker_sync.enabled or providers.calendar == "finnhub"
    if needs_finnhub:
        credentials["FINNHUB_API_KEY"] = providers.finnhub_api_key

    ticker_sync = None
    if config.ticker_sync.enabled:
        sync = config.ticker_sync
        ticker_sync = TickerSyncJob(
            store=TickerRepository(db),
            directory=FinnhubDirectory(
                api_key=providers.finnhub_api_key,
                timeout=providers.request_timeout_seconds,
            ),
            exchanges=[Exchange(mic=e.mic, name=e.exchange) for e in sync.exchanges],
            batch_size=sync.enrichment_batch_size,
            delay_seconds=sync.enrichment_delay_seconds,
            retry_days=sync.enrichment_retry_days,
            time_budget_seconds=sync.enrichment_time_budget_seconds,
        )

    return DailyOrchestrator(
        after_processor=after_processor,
        ticker_sync=ticker_sync,
        secret=config.cron.secret,
        credentials=credentials,
    )
