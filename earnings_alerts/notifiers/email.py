"""
Earnings alert email content.
"""

from datetime import date
from html import escape
from typing import Optional

from earnings_alerts.data.fetcher import EarningsReport
from earnings_alerts.database.models import Alert, User
from earnings_alerts.notifiers.base import EmailMessage


def idempotency_key(alert: Alert) -> str:
    """Stable key for one logical send of an alert against one earnings date."""
    return (
        f"{alert.id}:{alert.alert_type.value}:"
        f"{alert.earnings_date.isoformat()}:{alert.offset_days}"
    )


def _plural_days(n: int) -> str:
    return f"{n} day{'s' if n != 1 else ''}"


def _long_date(day: date) -> str:
    return f"{day.strftime('%A, %B')} {day.day}, {day.year}"


def _signed(value: float, prefix: str = "", suffix: str = "") -> str:
    sign = "+" if value >= 0 else "-"
    return f"{sign}{prefix}{abs(value):.2f}{suffix}"


class AlertEmailBuilder:
    """Builds before/after earnings emails."""

    def __init__(self, app_url: str = ""):
        self.app_url = app_url

    def build_before(self, alert: Alert, user: User) -> EmailMessage:
        """Reminder that a company reports in alert.days_before days."""
        subject = (
            f"Earnings Alert: {alert.symbol} reporting in "
            f"{_plural_days(alert.days_before)}"
        )
        text = f"""
Hi {user.display_name},

This is a reminder that {alert.symbol} is scheduled to report earnings soon.

Earnings Date: {_long_date(alert.earnings_date)}
Days Until Earnings: {_plural_days(alert.days_before)}

{self.app_url}
"""
        html = self._wrap(
            user,
            title=f"Upcoming Earnings: {escape(alert.symbol)}",
            body=f"""
        <p>This is a reminder that <strong>{escape(alert.symbol)}</strong> is scheduled to report earnings soon.</p>
        <div class="info-box">
            <div class="symbol">{escape(alert.symbol)}</div>
            <p><strong>Earnings Date:</strong> {_long_date(alert.earnings_date)}</p>
            <p><strong>Days Until Earnings:</strong> {_plural_days(alert.days_before)}</p>
        </div>""",
        )
        return EmailMessage(
            to=user.email,
            subject=subject,
            text=text,
            html=html,
            idempotency_key=idempotency_key(alert),
        )

    def build_after(
        self, alert: Alert, user: User, report: Optional[EarningsReport] = None
    ) -> EmailMessage:
        """Notice that a company has reported, with results when known."""
        subject = f"Earnings Results: {alert.symbol} has reported"
        lines = self._result_lines(report)
        results_text = (
            "\n".join(lines)
            if lines
            else "Earnings results are being processed. Check back soon for detailed information."
        )
        text = f"""
Hi {user.display_name},

{alert.symbol} has reported earnings.

Earnings Date: {_long_date(alert.earnings_date)}

{results_text}

{self.app_url}
"""
        if lines:
            rows = "".join(
                f"<tr><td>{escape(label)}</td><td>{escape(value)}</td></tr>"
                for label, value in (line.split(": ", 1) for line in lines)
            )
            results_html = f'<table class="results-table">{rows}</table>'
        else:
            results_html = f"<p>{results_text}</p>"

        html = self._wrap(
            user,
            title=f"Earnings Reported: {escape(alert.symbol)}",
            body=f"""
        <p><strong>{escape(alert.symbol)}</strong> has reported earnings.</p>
        <div class="info-box">
            <div class="symbol">{escape(alert.symbol)}</div>
            <p><strong>Earnings Date:</strong> {_long_date(alert.earnings_date)}</p>
        </div>
        {results_html}""",
        )
        return EmailMessage(
            to=user.email,
            subject=subject,
            text=text,
            html=html,
            idempotency_key=idempotency_key(alert),
        )

    def _result_lines(self, report: Optional[EarningsReport]) -> list[str]:
        if report is None or not report.has_data:
            return []
        lines = []
        if report.estimate is not None:
            lines.append(f"Estimate: ${report.estimate:.2f}")
        if report.actual is not None:
            lines.append(f"Actual: ${report.actual:.2f}")
        if report.surprise is not None:
            lines.append(f"Surprise: {_signed(report.surprise, prefix='$')}")
        if report.surprise_percent is not None:
            lines.append(f"Surprise %: {_signed(report.surprise_percent, suffix='%')}")
        return lines

    def _wrap(self, user: User, title: str, body: str) -> str:
        """Create HTML email body."""
        link = ""
        if self.app_url:
            link = f'<p><a href="{escape(self.app_url)}">View earnings details</a></p>'
        return f"""
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; margin: 0; padding: 20px; color: #333; }}
        .info-box {{ background-color: #f1f3f5; padding: 15px; margin: 20px 0; }}
        .symbol {{ font-size: 24px; font-weight: bold; color: #667eea; }}
        .results-table td {{ padding: 8px; border-bottom: 1px solid #dee2e6; }}
        .footer {{ color: #888; font-size: 12px; }}
    </style>
</head>
<body>
    <h2>{title}</h2>
    <p>Hi {escape(user.display_name)},</p>
    {body}
    {link}
    <p class="footer">This email was sent to {escape(user.email)}</p>
</body>
</html>
"""
