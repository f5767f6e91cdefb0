"""
After-alert sweep tests.
"""

import pytest
from datetime import date
from unittest.mock import Mock

from earnings_alerts.alerts.after import AfterAlertProcessor
from earnings_alerts.data.fetcher import EarningsReport, ProviderError, ReportDataFetcher
from earnings_alerts.database.base import UserStore
from earnings_alerts.database.models import AlertStatus
from earnings_alerts.notifiers.base import EmailSchedulingError

SWEEP_DAY = date(2024, 12, 16)


@pytest.fixture
def processor(alert_repo, user_repo, email_scheduler, calendar, email_builder):
    return AfterAlertProcessor(
        alerts=alert_repo,
        users=user_repo,
        email_scheduler=email_scheduler,
        calendar=calendar,
        email_builder=email_builder,
    )


class TestDueSelection:
    """Which alerts the sweep picks up."""

    def test_due_alert_sent_and_closed(self, processor, make_after_alert, alert_repo, email_scheduler):
        """Should send once and mark a one-shot alert sent."""
        alert = make_after_alert(earnings_date=date(2024, 12, 15), days_after=1)

        result = processor.run(today=SWEEP_DAY)

        assert result.processed == 1
        assert result.sent == 1
        assert result.closed == 1
        email_scheduler.schedule.assert_called_once()
        assert alert_repo.get_by_id(alert.id).status == AlertStatus.SENT

    def test_send_is_immediate(self, processor, make_after_alert, email_scheduler):
        make_after_alert()
        processor.run(today=SWEEP_DAY)

        message = email_scheduler.schedule.call_args.args[0]
        assert email_scheduler.schedule.call_args.kwargs.get("send_at") is None
        assert message.to == "jane.doe@example.com"
        assert message.subject == "Earnings Results: AAPL has reported"

    def test_not_yet_due(self, processor, make_after_alert, alert_repo, email_scheduler):
        """Should leave alerts whose trigger is in the future untouched."""
        alert = make_after_alert(earnings_date=date(2024, 12, 15), days_after=3)

        result = processor.run(today=SWEEP_DAY)

        assert result.processed == 0
        assert result.not_due == 1
        email_scheduler.schedule.assert_not_called()
        assert alert_repo.get_by_id(alert.id).status == AlertStatus.ACTIVE

    def test_overdue_alert_is_processed(self, processor, make_after_alert):
        """Should catch up on alerts missed on earlier days."""
        make_after_alert(earnings_date=date(2024, 12, 1), days_after=1)
        result = processor.run(today=SWEEP_DAY)
        assert result.sent == 1

    def test_same_day_trigger(self, processor, make_after_alert):
        make_after_alert(earnings_date=SWEEP_DAY, days_after=0)
        assert processor.run(today=SWEEP_DAY).sent == 1

    def test_second_run_same_day_sends_nothing(self, processor, make_after_alert, email_scheduler):
        """Should never send twice for one occurrence."""
        make_after_alert()

        processor.run(today=SWEEP_DAY)
        second = processor.run(today=SWEEP_DAY)

        assert second.processed == 0
        assert email_scheduler.schedule.call_count == 1

    def test_cancelled_alerts_ignored(self, processor, make_after_alert, alert_repo, email_scheduler):
        alert = make_after_alert()
        alert.status = AlertStatus.CANCELLED
        alert_repo.update(alert)

        assert processor.run(today=SWEEP_DAY).processed == 0
        email_scheduler.schedule.assert_not_called()


class TestRecurring:
    """Renewal of recurring alerts."""

    def test_renews_to_next_earnings(self, processor, make_after_alert, alert_repo, calendar):
        """Should stay active and move to the next earnings date."""
        calendar.next_earnings_date.return_value = date(2025, 3, 15)
        alert = make_after_alert(recurring=True)

        result = processor.run(today=SWEEP_DAY)

        assert result.sent == 1
        assert result.renewed == 1
        assert result.closed == 0
        stored = alert_repo.get_by_id(alert.id)
        assert stored.status == AlertStatus.ACTIVE
        assert stored.earnings_date == date(2025, 3, 15)
        calendar.next_earnings_date.assert_called_once_with("AAPL", date(2024, 12, 15))

    def test_renewed_alert_not_due_again(self, processor, make_after_alert, calendar, email_scheduler):
        calendar.next_earnings_date.return_value = date(2025, 3, 15)
        make_after_alert(recurring=True)

        processor.run(today=SWEEP_DAY)
        second = processor.run(today=SWEEP_DAY)

        assert second.processed == 0
        assert second.not_due == 1
        assert email_scheduler.schedule.call_count == 1

    def test_overdue_search_starts_from_today(self, processor, make_after_alert, calendar):
        """Should not renew onto a date whose trigger has already passed."""
        calendar.next_earnings_date.return_value = date(2025, 3, 15)
        make_after_alert(earnings_date=date(2024, 9, 1), days_after=1, recurring=True)

        processor.run(today=SWEEP_DAY)

        calendar.next_earnings_date.assert_called_once_with("AAPL", date(2024, 12, 15))

    def test_no_next_date_closes(self, processor, make_after_alert, alert_repo, calendar):
        """Should close a recurring alert when no next date is known."""
        calendar.next_earnings_date.return_value = None
        alert = make_after_alert(recurring=True)

        result = processor.run(today=SWEEP_DAY)

        assert result.closed == 1
        assert result.renewed == 0
        assert alert_repo.get_by_id(alert.id).status == AlertStatus.SENT

    def test_non_future_date_from_calendar_closes(self, processor, make_after_alert, alert_repo, calendar):
        calendar.next_earnings_date.return_value = date(2024, 12, 15)
        alert = make_after_alert(recurring=True)

        processor.run(today=SWEEP_DAY)

        stored = alert_repo.get_by_id(alert.id)
        assert stored.status == AlertStatus.SENT
        assert stored.earnings_date == date(2024, 12, 15)

    def test_calendar_failure_leaves_alert_untouched(
        self, processor, make_after_alert, alert_repo, calendar, email_scheduler
    ):
        """Should retry tomorrow rather than send without renewing."""
        calendar.next_earnings_date.side_effect = ProviderError("calendar down")
        alert = make_after_alert(recurring=True)

        result = processor.run(today=SWEEP_DAY)

        assert result.failed == 1
        assert result.sent == 0
        email_scheduler.schedule.assert_not_called()
        stored = alert_repo.get_by_id(alert.id)
        assert stored.status == AlertStatus.ACTIVE
        assert stored.earnings_date == date(2024, 12, 15)

    def test_calendar_not_consulted_for_one_shot(self, processor, make_after_alert, calendar):
        make_after_alert(recurring=False)
        processor.run(today=SWEEP_DAY)
        calendar.next_earnings_date.assert_not_called()


class TestSendOutcomes:
    """Transitions when the send does not happen."""

    def test_send_failure_still_closes(self, processor, make_after_alert, alert_repo, email_scheduler):
        email_scheduler.schedule.side_effect = EmailSchedulingError("HTTP 500")
        alert = make_after_alert()

        result = processor.run(today=SWEEP_DAY)

        assert result.sent == 0
        assert result.closed == 1
        assert result.failed == 0
        assert alert_repo.get_by_id(alert.id).status == AlertStatus.SENT

    def test_send_failure_still_renews(self, processor, make_after_alert, alert_repo, email_scheduler, calendar):
        email_scheduler.schedule.side_effect = EmailSchedulingError("HTTP 500")
        calendar.next_earnings_date.return_value = date(2025, 3, 15)
        alert = make_after_alert(recurring=True)

        result = processor.run(today=SWEEP_DAY)

        assert result.renewed == 1
        assert alert_repo.get_by_id(alert.id).earnings_date == date(2025, 3, 15)

    def test_email_disabled_skips_send(self, processor, make_after_alert, alert_repo, user_repo, user, email_scheduler):
        """Should transition without sending for opted-out users."""
        user_repo.set_email_enabled(user.id, False)
        alert = make_after_alert()

        result = processor.run(today=SWEEP_DAY)

        email_scheduler.schedule.assert_not_called()
        assert result.sent == 0
        assert result.closed == 1
        assert alert_repo.get_by_id(alert.id).status == AlertStatus.SENT

    def test_missing_user_still_renews(self, make_after_alert, alert_repo, email_scheduler, calendar, email_builder):
        users = Mock(spec=UserStore)
        users.get_by_id.return_value = None
        calendar.next_earnings_date.return_value = date(2025, 3, 15)
        alert = make_after_alert(recurring=True)
        processor = AfterAlertProcessor(
            alerts=alert_repo,
            users=users,
            email_scheduler=email_scheduler,
            calendar=calendar,
            email_builder=email_builder,
        )

        result = processor.run(today=SWEEP_DAY)

        email_scheduler.schedule.assert_not_called()
        assert result.renewed == 1
        stored = alert_repo.get_by_id(alert.id)
        assert stored.status == AlertStatus.ACTIVE
        assert stored.earnings_date == date(2025, 3, 15)

    def test_one_failure_does_not_stop_sweep(self, make_after_alert, alert_repo, email_scheduler, calendar, email_builder):
        """Should keep going when one alert raises."""
        first = make_after_alert(symbol="AAPL")
        second = make_after_alert(symbol="MSFT")
        users = Mock(spec=UserStore)
        users.get_by_id.side_effect = [RuntimeError("db locked"), None]
        processor = AfterAlertProcessor(
            alerts=alert_repo,
            users=users,
            email_scheduler=email_scheduler,
            calendar=calendar,
            email_builder=email_builder,
        )

        result = processor.run(today=SWEEP_DAY)

        assert result.processed == 2
        assert result.failed == 1
        assert result.closed == 1
        statuses = {alert_repo.get_by_id(a.id).status for a in (first, second)}
        assert statuses == {AlertStatus.ACTIVE, AlertStatus.SENT}


class TestReportData:
    """Result figures in the email."""

    def test_includes_report_figures(self, alert_repo, user_repo, make_after_alert, email_scheduler, calendar, email_builder):
        fetcher = Mock(spec=ReportDataFetcher)
        fetcher.get_report.return_value = EarningsReport(
            symbol="AAPL", actual=2.40, estimate=2.35, surprise=0.05, surprise_percent=2.13
        )
        make_after_alert()
        processor = AfterAlertProcessor(
            alerts=alert_repo,
            users=user_repo,
            email_scheduler=email_scheduler,
            calendar=calendar,
            email_builder=email_builder,
            report_fetcher=fetcher,
        )

        processor.run(today=SWEEP_DAY)

        fetcher.get_report.assert_called_once_with("AAPL", date(2024, 12, 15))
        message = email_scheduler.schedule.call_args.args[0]
        assert "Actual: $2.40" in message.text
        assert "Surprise %: +2.13%" in message.text

    def test_report_failure_still_sends(self, alert_repo, user_repo, make_after_alert, email_scheduler, calendar, email_builder):
        fetcher = Mock(spec=ReportDataFetcher)
        fetcher.get_report.side_effect = RuntimeError("boom")
        make_after_alert()
        processor = AfterAlertProcessor(
            alerts=alert_repo,
            users=user_repo,
            email_scheduler=email_scheduler,
            calendar=calendar,
            email_builder=email_builder,
            report_fetcher=fetcher,
        )

        result = processor.run(today=SWEEP_DAY)

        assert result.sent == 1
        message = email_scheduler.schedule.call_args.args[0]
        assert "being processed" in message.text
