"""
Daily sweep of after-earnings alerts.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from earnings_alerts.data.fetcher import (
    EarningsCalendarProvider,
    EarningsReport,
    ReportDataFetcher,
)
from earnings_alerts.database.base import AlertStore, UserStore
from earnings_alerts.database.models import Alert, AlertStatus, AlertType, User
from earnings_alerts.notifiers.base import EmailScheduler
from earnings_alerts.notifiers.email import AlertEmailBuilder
from earnings_alerts.scheduling.dates import is_due, trigger_date, utc_today

logger = logging.getLogger(__name__)


@dataclass
class AlertSweepResult:
    """Counts from one sweep."""

    processed: int = 0
    sent: int = 0
    renewed: int = 0
    closed: int = 0
    not_due: int = 0
    failed: int = 0


class AfterAlertProcessor:
    """Sends due after-alerts, then closes or renews them."""

    def __init__(
        self,
        alerts: AlertStore,
        users: UserStore,
        email_scheduler: EmailScheduler,
        calendar: EarningsCalendarProvider,
        email_builder: AlertEmailBuilder,
        report_fetcher: Optional[ReportDataFetcher] = None,
    ):
        self.alerts = alerts
        self.users = users
        self.email_scheduler = email_scheduler
        self.calendar = calendar
        self.email_builder = email_builder
        self.report_fetcher = report_fetcher

    def run(self, today: Optional[date] = None) -> AlertSweepResult:
        """
        Process every active after-alert that is due on or before today.

        A failure on one alert is logged and never stops the sweep.
        """
        today = today or utc_today()
        result = AlertSweepResult()

        candidates = self.alerts.list_by_status_and_type(
            AlertStatus.ACTIVE, AlertType.AFTER
        )
        logger.info(f"Found {len(candidates)} active after alerts")

        for alert in candidates:
            if not is_due(trigger_date(alert.earnings_date, alert.days_after), today):
                result.not_due += 1
                continue

            result.processed += 1
            try:
                self._process(alert, today, result)
            except Exception as e:
                result.failed += 1
                logger.error(f"Error processing alert {alert.id} ({alert.symbol}): {e}")

        logger.info(
            f"Processed {result.processed} alerts, sent {result.sent} emails, "
            f"renewed {result.renewed}, closed {result.closed}, failed {result.failed}"
        )
        return result

    def _process(self, alert: Alert, today: date, result: AlertSweepResult) -> None:
        """Send (when possible) and apply the close-or-renew transition."""
        # Resolved before sending so a calendar outage leaves the alert
        # untouched for tomorrow instead of sending now and never renewing.
        next_date = None
        if alert.recurring:
            next_date = self._find_next_earnings(alert, today)

        user = self.users.get_by_id(alert.user_id)
        if user is None:
            logger.info(f"Owner of alert {alert.id} not found, skipping send")
        elif not user.email_enabled:
            logger.info(f"User {user.id} has email disabled, skipping send for alert {alert.id}")
        elif self._send(alert, user):
            result.sent += 1

        if next_date is not None:
            logger.info(
                f"Renewing alert {alert.id} ({alert.symbol}) from "
                f"{alert.earnings_date.isoformat()} to {next_date.isoformat()}"
            )
            alert.earnings_date = next_date
            alert.status = AlertStatus.ACTIVE
            self.alerts.update(alert)
            result.renewed += 1
        else:
            alert.status = AlertStatus.SENT
            self.alerts.update(alert)
            result.closed += 1

    def _find_next_earnings(self, alert: Alert, today: date) -> Optional[date]:
        """
        Next earnings date to renew against, or None if there is none.

        The search starts no earlier than the date whose trigger is today, so
        a renewed alert is never immediately due again.
        """
        after = max(alert.earnings_date, today - timedelta(days=alert.days_after))
        next_date = self.calendar.next_earnings_date(alert.symbol, after)
        if next_date is not None and next_date <= after:
            logger.warning(
                f"Calendar returned non-future date {next_date.isoformat()} for {alert.symbol}"
            )
            return None
        return next_date

    def _send(self, alert: Alert, user: User) -> bool:
        """Immediate send. Failures are logged and reported as False."""
        report = self._fetch_report(alert)
        message = self.email_builder.build_after(alert, user, report)
        try:
            email_id = self.email_scheduler.schedule(message)
        except Exception as e:
            logger.error(f"Failed to send after alert {alert.id} to user {user.id}: {e}")
            return False
        logger.info(f"Sent {alert.symbol} results email {email_id} for alert {alert.id}")
        return True

    def _fetch_report(self, alert: Alert) -> Optional[EarningsReport]:
        if self.report_fetcher is None:
            return None
        try:
            return self.report_fetcher.get_report(alert.symbol, alert.earnings_date)
        except Exception as e:
            logger.warning(f"Report data unavailable for {alert.symbol}: {e}")
            return None
