"""
Store interfaces consumed by the alert and ticker jobs.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from earnings_alerts.database.models import Alert, AlertStatus, AlertType, Ticker, User


class UserStore(ABC):
    """Read access to alert owners."""

    @abstractmethod
    def get_by_id(self, user_id: str) -> Optional[User]:
        """Return the user, or None if it no longer exists."""


class AlertStore(ABC):
    """Persistence for Alert records."""

    @abstractmethod
    def create(self, alert: Alert) -> Alert:
        pass

    @abstractmethod
    def get_by_id(self, alert_id: str) -> Optional[Alert]:
        pass

    @abstractmethod
    def list_by_status_and_type(
        self, status: AlertStatus, alert_type: AlertType
    ) -> list[Alert]:
        pass

    @abstractmethod
    def list_by_user(self, user_id: str) -> list[Alert]:
        pass

    @abstractmethod
    def update(self, alert: Alert) -> None:
        """Write back every mutable field of the alert."""

    @abstractmethod
    def delete(self, alert_id: str) -> None:
        pass


class TickerStore(ABC):
    """Persistence for the ticker universe."""

    @abstractmethod
    def get_active_symbols(self) -> set[str]:
        pass

    @abstractmethod
    def get_active_exchanges(self) -> dict[str, str]:
        """Active symbols mapped to the exchange they were listed on."""

    @abstractmethod
    def get_unenriched(
        self, limit: int, retry_before: datetime
    ) -> list[Ticker]:
        """
        Active tickers needing enrichment.

        A ticker qualifies if it was never answered for, or if it has no
        industry and its last answer is older than retry_before. Unanswered
        lookups move a ticker behind the ones not yet tried.
        """

    @abstractmethod
    def upsert(self, ticker: Ticker) -> None:
        pass

    @abstractmethod
    def mark_inactive(self, symbol: str) -> bool:
        """Return True if an active ticker was deactivated."""

    @abstractmethod
    def update_profile(
        self,
        symbol: str,
        industry: Optional[str],
        sector: Optional[str],
        fetched_at: datetime,
    ) -> None:
        pass

    @abstractmethod
    def record_lookup_failure(self, symbol: str, attempted_at: datetime) -> None:
        """Note an unanswered lookup without starting the retry window."""
