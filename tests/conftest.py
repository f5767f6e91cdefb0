"""
Pytest configuration and shared fixtures.
"""

import pytest
from datetime import date, datetime, timezone
from unittest.mock import Mock

from earnings_alerts.database.connection import Database
from earnings_alerts.database.models import Alert, AlertType, User
from earnings_alerts.database.repository import (
    AlertRepository,
    TickerRepository,
    UserRepository,
)
from earnings_alerts.data.fetcher import EarningsCalendarProvider
from earnings_alerts.notifiers.base import EmailScheduler
from earnings_alerts.notifiers.email import AlertEmailBuilder


@pytest.fixture
def db():
    """In-memory database with schema."""
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def user_repo(db):
    return UserRepository(db)


@pytest.fixture
def alert_repo(db):
    return AlertRepository(db)


@pytest.fixture
def ticker_repo(db):
    return TickerRepository(db)


@pytest.fixture
def user(user_repo):
    """Persisted user with email notifications on."""
    return user_repo.create(User(email="jane.doe@example.com"))


@pytest.fixture
def email_scheduler():
    """Email provider double that accepts everything."""
    scheduler = Mock(spec=EmailScheduler)
    scheduler.schedule.side_effect = lambda message, send_at=None: f"email-{scheduler.schedule.call_count}"
    scheduler.cancel.return_value = True
    return scheduler


@pytest.fixture
def calendar():
    """Earnings calendar double with no upcoming dates."""
    provider = Mock(spec=EarningsCalendarProvider)
    provider.next_earnings_date.return_value = None
    return provider


@pytest.fixture
def email_builder():
    return AlertEmailBuilder(app_url="https://earnings.example.com")


@pytest.fixture
def fixed_now():
    return datetime(2024, 12, 10, 14, 30, tzinfo=timezone.utc)


@pytest.fixture
def make_after_alert(alert_repo, user):
    """Factory persisting an active after alert."""

    def _make(
        earnings_date=date(2024, 12, 15),
        days_after=1,
        recurring=False,
        symbol="AAPL",
        user_id=None,
    ):
        return alert_repo.create(
            Alert(
                user_id=user_id or user.id,
                symbol=symbol,
                alert_type=AlertType.AFTER,
                earnings_date=earnings_date,
                days_after=days_after,
                recurring=recurring,
            )
        )

    return _make
