"""
Alert create/edit/cancel operations used by the request path and admin CLI.
"""

import dataclasses
import logging
from datetime import date
from typing import Optional

from earnings_alerts.database.base import AlertStore, UserStore
from earnings_alerts.database.models import Alert, AlertStatus, AlertType
from earnings_alerts.notifiers.base import EmailScheduler
from earnings_alerts.alerts.before import BeforeAlertScheduler

logger = logging.getLogger(__name__)


class AlertNotFound(Exception):
    """Raised when an alert or its owner does not exist."""

    pass


class AlertService:
    """Creates, edits and cancels alerts, keeping reminders scheduled."""

    def __init__(
        self,
        alerts: AlertStore,
        users: UserStore,
        before_scheduler: BeforeAlertScheduler,
        email_scheduler: EmailScheduler,
    ):
        self.alerts = alerts
        self.users = users
        self.before_scheduler = before_scheduler
        self.email_scheduler = email_scheduler

    def create_alert(
        self,
        user_id: str,
        symbol: str,
        alert_type: AlertType,
        earnings_date: date,
        days_before: Optional[int] = None,
        days_after: Optional[int] = None,
        recurring: bool = False,
    ) -> Alert:
        """
        Validate and persist a new alert.

        Before alerts get a forward-dated reminder when possible; a failed or
        skipped schedule never prevents the alert from being saved.

        Raises:
            AlertNotFound: If the user does not exist
            ValueError: If the alert fields are inconsistent
        """
        user = self.users.get_by_id(user_id)
        if user is None:
            raise AlertNotFound(f"User not found: {user_id}")

        alert = Alert(
            user_id=user_id,
            symbol=symbol,
            alert_type=alert_type,
            earnings_date=earnings_date,
            days_before=days_before,
            days_after=days_after,
            recurring=recurring,
        )
        # Needed up front so the idempotency key is stable
        alert = self.alerts.create(alert)

        if alert.alert_type == AlertType.BEFORE:
            result = self.before_scheduler.schedule(alert, user)
            if result.scheduled:
                self.alerts.update(alert)

        return alert

    def update_alert(
        self,
        alert_id: str,
        earnings_date: Optional[date] = None,
        days_before: Optional[int] = None,
        days_after: Optional[int] = None,
        recurring: Optional[bool] = None,
    ) -> Alert:
        """
        Edit an active alert.

        A before alert whose date or lead time changes is scheduled again. The
        previous send is not cancelled.

        Raises:
            AlertNotFound: If the alert does not exist
            ValueError: If the alert is no longer active or the edit is invalid
        """
        alert = self.alerts.get_by_id(alert_id)
        if alert is None:
            raise AlertNotFound(f"Alert not found: {alert_id}")
        if alert.is_terminal:
            raise ValueError(f"Alert {alert_id} is {alert.status.value} and cannot be edited")

        changes = {}
        if earnings_date is not None:
            changes["earnings_date"] = earnings_date
        if days_before is not None:
            changes["days_before"] = days_before
        if days_after is not None:
            changes["days_after"] = days_after
        if recurring is not None:
            changes["recurring"] = recurring

        updated = dataclasses.replace(alert, **changes)

        reschedule = updated.alert_type == AlertType.BEFORE and (
            updated.earnings_date != alert.earnings_date
            or updated.days_before != alert.days_before
        )
        if reschedule:
            user = self.users.get_by_id(updated.user_id)
            if user is None:
                logger.warning(f"Owner of alert {alert_id} not found, reminder not rescheduled")
                updated.scheduled_email_id = None
            elif not self.before_scheduler.schedule(updated, user).scheduled:
                # The previous send id refers to the old date
                updated.scheduled_email_id = None

        self.alerts.update(updated)
        return updated

    def cancel_alert(self, alert_id: str) -> Alert:
        """
        Cancel an active alert and try to withdraw its pending reminder.

        Raises:
            AlertNotFound: If the alert does not exist
        """
        alert = self.alerts.get_by_id(alert_id)
        if alert is None:
            raise AlertNotFound(f"Alert not found: {alert_id}")
        if alert.is_terminal:
            return alert

        self._withdraw_reminder(alert)
        alert.status = AlertStatus.CANCELLED
        self.alerts.update(alert)
        return alert

    def delete_alert(self, alert_id: str) -> None:
        """Delete an alert, withdrawing its pending reminder if it has one."""
        alert = self.alerts.get_by_id(alert_id)
        if alert is None:
            raise AlertNotFound(f"Alert not found: {alert_id}")
        if not alert.is_terminal:
            self._withdraw_reminder(alert)
        self.alerts.delete(alert_id)

    def _withdraw_reminder(self, alert: Alert) -> None:
        if not alert.scheduled_email_id:
            return
        try:
            cancelled = self.email_scheduler.cancel(alert.scheduled_email_id)
        except Exception as e:
            logger.warning(
                f"Could not cancel reminder {alert.scheduled_email_id} "
                f"for alert {alert.id}: {e}"
            )
            return
        if not cancelled:
            logger.warning(
                f"Reminder {alert.scheduled_email_id} for alert {alert.id} "
                f"may still be delivered"
            )
