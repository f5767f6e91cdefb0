"""
Forward-dated scheduling of before-earnings reminders.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from earnings_alerts.database.models import Alert, AlertType, User
from earnings_alerts.notifiers.base import EmailScheduler
from earnings_alerts.notifiers.email import AlertEmailBuilder
from earnings_alerts.scheduling.dates import (
    is_future,
    scheduled_send_date,
    start_of_day_utc,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class ScheduleResult:
    """Outcome of a scheduling attempt. Not being scheduled is not an error."""

    scheduled: bool
    email_id: Optional[str] = None
    send_at: Optional[datetime] = None
    reason: Optional[str] = None


class BeforeAlertScheduler:
    """Queues a single forward-dated send for a before alert."""

    REASON_ELAPSED = "send time already passed"
    REASON_FAILED = "email provider failed"

    def __init__(
        self,
        email_scheduler: EmailScheduler,
        email_builder: AlertEmailBuilder,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize scheduler.

        Args:
            email_scheduler: Provider accepting forward-dated sends
            email_builder: Renders the reminder content
            clock: Returns the current UTC instant
        """
        self.email_scheduler = email_scheduler
        self.email_builder = email_builder
        self.clock = clock

    def schedule(self, alert: Alert, user: User) -> ScheduleResult:
        """
        Schedule the reminder and record its send id on the alert.

        The alert is mutated in memory only; persisting it is the caller's job
        and must happen whatever the result.

        Raises:
            ValueError: If the alert is not a before alert
        """
        if alert.alert_type != AlertType.BEFORE:
            raise ValueError(f"Alert {alert.id} is not a before alert")

        send_day = scheduled_send_date(alert.earnings_date, alert.days_before)
        send_at = start_of_day_utc(send_day)

        if not is_future(send_at, self.clock()):
            logger.info(
                f"Not scheduling {alert.symbol} reminder for alert {alert.id}: "
                f"{send_day.isoformat()} is not in the future"
            )
            return ScheduleResult(
                scheduled=False, send_at=send_at, reason=self.REASON_ELAPSED
            )

        message = self.email_builder.build_before(alert, user)
        try:
            email_id = self.email_scheduler.schedule(message, send_at=send_at)
        except Exception as e:
            logger.warning(f"Failed to schedule email for alert {alert.id}: {e}")
            return ScheduleResult(
                scheduled=False, send_at=send_at, reason=self.REASON_FAILED
            )

        alert.scheduled_email_id = email_id
        logger.info(
            f"Scheduled {alert.symbol} reminder {email_id} for {send_at.isoformat()}"
        )
        return ScheduleResult(scheduled=True, email_id=email_id, send_at=send_at)
