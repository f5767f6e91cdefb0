"""
Data models for the earnings alert service.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional


class AlertType(str, Enum):
    """When an alert fires relative to the earnings date."""

    BEFORE = "before"
    AFTER = "after"


class AlertStatus(str, Enum):
    """Alert lifecycle state. SENT and CANCELLED are terminal."""

    ACTIVE = "active"
    SENT = "sent"
    CANCELLED = "cancelled"


@dataclass
class User:
    """Owner of alerts, with notification settings."""

    email: str
    id: Optional[str] = None
    email_enabled: bool = True
    created_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        """Local part of the email address."""
        return self.email.split("@")[0]


@dataclass
class Alert:
    """
    Earnings reminder configured by a user.

    Exactly one of days_before/days_after is set, matching alert_type.
    """

    user_id: str
    symbol: str
    alert_type: AlertType
    earnings_date: date
    days_before: Optional[int] = None
    days_after: Optional[int] = None
    recurring: bool = False
    scheduled_email_id: Optional[str] = None
    status: AlertStatus = AlertStatus.ACTIVE
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.alert_type = AlertType(self.alert_type)
        self.status = AlertStatus(self.status)
        self.symbol = self.symbol.strip().upper()
        if not self.symbol:
            raise ValueError("Alert symbol cannot be empty")
        if isinstance(self.earnings_date, datetime):
            raise ValueError("earnings_date must be a calendar date, not a timestamp")
        if not isinstance(self.earnings_date, date):
            raise ValueError(f"Invalid earnings_date: {self.earnings_date!r}")

        if self.alert_type == AlertType.BEFORE:
            if self.days_before is None or self.days_before < 0:
                raise ValueError("days_before must be a non-negative integer for before alerts")
            if self.days_after is not None:
                raise ValueError("days_after is not allowed on before alerts")
        else:
            if self.days_after is None or self.days_after < 0:
                raise ValueError("days_after must be a non-negative integer for after alerts")
            if self.days_before is not None:
                raise ValueError("days_before is not allowed on after alerts")

    @property
    def offset_days(self) -> int:
        """The populated day offset for this alert's type."""
        if self.alert_type == AlertType.BEFORE:
            return self.days_before
        return self.days_after

    @property
    def is_terminal(self) -> bool:
        return self.status != AlertStatus.ACTIVE


@dataclass
class Ticker:
    """Listed symbol with optional industry classification."""

    symbol: str
    exchange: str
    description: Optional[str] = None
    industry: Optional[str] = None
    sector: Optional[str] = None
    is_active: bool = True
    profile_fetched_at: Optional[datetime] = None
    profile_attempted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
