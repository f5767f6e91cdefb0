"""
SQLite-backed repositories for users, alerts and tickers.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from earnings_alerts.database.base import AlertStore, TickerStore, UserStore
from earnings_alerts.database.connection import Database
from earnings_alerts.database.models import Alert, AlertStatus, AlertType, Ticker, User

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize as fixed-width UTC so stored timestamps sort as strings."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class UserRepository(UserStore):
    """CRUD operations for users."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, user: User) -> User:
        """Create a new user."""
        user.id = user.id or str(uuid.uuid4())
        user.created_at = user.created_at or _now()
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO users (id, email, email_enabled, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (user.id, user.email, 1 if user.email_enabled else 0, _to_iso(user.created_at)),
        )
        self.db.connection.commit()
        return user

    def get_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email, case-insensitively."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM users WHERE lower(email) = lower(?)", (email,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def set_email_enabled(self, user_id: str, enabled: bool) -> None:
        """Toggle email notifications for a user."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "UPDATE users SET email_enabled = ? WHERE id = ?",
            (1 if enabled else 0, user_id),
        )
        self.db.connection.commit()

    def delete(self, user_id: str) -> None:
        """Delete user. Their alerts are removed by cascade."""
        cursor = self.db.connection.cursor()
        cursor.execute("DELETE FROM users WHERE id = ?", (user_id,))
        self.db.connection.commit()

    def list_all(self) -> list[User]:
        """List all users."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM users ORDER BY created_at, email")
        return [self._row_to_user(row) for row in cursor.fetchall()]

    def _row_to_user(self, row) -> User:
        """Convert database row to User."""
        return User(
            id=row["id"],
            email=row["email"],
            email_enabled=bool(row["email_enabled"]),
            created_at=_from_iso(row["created_at"]),
        )


class AlertRepository(AlertStore):
    """CRUD operations for alerts."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, alert: Alert) -> Alert:
        """Create a new alert."""
        now = _now()
        alert.id = alert.id or str(uuid.uuid4())
        alert.created_at = alert.created_at or now
        alert.updated_at = now
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO alerts
            (id, user_id, symbol, alert_type, days_before, days_after, recurring,
             earnings_date, scheduled_email_id, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                alert.id,
                alert.user_id,
                alert.symbol,
                alert.alert_type.value,
                alert.days_before,
                alert.days_after,
                1 if alert.recurring else 0,
                alert.earnings_date.isoformat(),
                alert.scheduled_email_id,
                alert.status.value,
                _to_iso(alert.created_at),
                _to_iso(alert.updated_at),
            ),
        )
        self.db.connection.commit()
        return alert

    def get_by_id(self, alert_id: str) -> Optional[Alert]:
        """Get alert by ID."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_alert(row)

    def list_by_status_and_type(
        self, status: AlertStatus, alert_type: AlertType
    ) -> list[Alert]:
        """List alerts in a given state, oldest earnings date first."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM alerts
            WHERE status = ? AND alert_type = ?
            ORDER BY earnings_date, created_at
            """,
            (AlertStatus(status).value, AlertType(alert_type).value),
        )
        return [self._row_to_alert(row) for row in cursor.fetchall()]

    def list_by_user(self, user_id: str) -> list[Alert]:
        """List all alerts for a user."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM alerts WHERE user_id = ? ORDER BY created_at",
            (user_id,),
        )
        return [self._row_to_alert(row) for row in cursor.fetchall()]

    def update(self, alert: Alert) -> None:
        """Persist the alert's mutable fields."""
        alert.updated_at = _now()
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            UPDATE alerts
            SET days_before = ?, days_after = ?, recurring = ?, earnings_date = ?,
                scheduled_email_id = ?, status = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                alert.days_before,
                alert.days_after,
                1 if alert.recurring else 0,
                alert.earnings_date.isoformat(),
                alert.scheduled_email_id,
                alert.status.value,
                _to_iso(alert.updated_at),
                alert.id,
            ),
        )
        self.db.connection.commit()

    def delete(self, alert_id: str) -> None:
        """Delete an alert."""
        cursor = self.db.connection.cursor()
        cursor.execute("DELETE FROM alerts WHERE id = ?", (alert_id,))
        self.db.connection.commit()

    def _row_to_alert(self, row) -> Alert:
        """Convert database row to Alert."""
        return Alert(
            id=row["id"],
            user_id=row["user_id"],
            symbol=row["symbol"],
            alert_type=AlertType(row["alert_type"]),
            days_before=row["days_before"],
            days_after=row["days_after"],
            recurring=bool(row["recurring"]),
            earnings_date=date.fromisoformat(row["earnings_date"]),
            scheduled_email_id=row["scheduled_email_id"],
            status=AlertStatus(row["status"]),
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )


class TickerRepository(TickerStore):
    """CRUD operations for the ticker universe."""

    def __init__(self, db: Database):
        self.db = db

    def get_by_symbol(self, symbol: str) -> Optional[Ticker]:
        """Get ticker by symbol."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM tickers WHERE symbol = ?", (symbol.strip().upper(),)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_ticker(row)

    def get_active_symbols(self) -> set[str]:
        """All active symbols."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT symbol FROM tickers WHERE is_active = 1")
        return {row["symbol"] for row in cursor.fetchall()}

    def get_active_exchanges(self) -> dict[str, str]:
        """Active symbols with their listing exchange."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT symbol, exchange FROM tickers WHERE is_active = 1")
        return {row["symbol"]: row["exchange"] for row in cursor.fetchall()}

    def list_all(
        self,
        sector: Optional[str] = None,
        active_only: bool = True,
    ) -> list[Ticker]:
        """List tickers, optionally filtered by sector."""
        query = "SELECT * FROM tickers WHERE 1 = 1"
        params: list = []
        if active_only:
            query += " AND is_active = 1"
        if sector:
            query += " AND sector = ?"
            params.append(sector)
        query += " ORDER BY symbol"

        cursor = self.db.connection.cursor()
        cursor.execute(query, params)
        return [self._row_to_ticker(row) for row in cursor.fetchall()]

    def get_unenriched(self, limit: int, retry_before: datetime) -> list[Ticker]:
        """Never-attempted tickers first, then least recently attempted."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM tickers
            WHERE is_active = 1
              AND (
                profile_fetched_at IS NULL
                OR (industry IS NULL AND profile_fetched_at < ?)
              )
            ORDER BY profile_fetched_at IS NOT NULL,
                     profile_attempted_at IS NOT NULL,
                     profile_attempted_at,
                     symbol
            LIMIT ?
            """,
            (_to_iso(retry_before), limit),
        )
        return [self._row_to_ticker(row) for row in cursor.fetchall()]

    def upsert(self, ticker: Ticker) -> None:
        """Insert a ticker, or refresh and reactivate an existing one."""
        now = _to_iso(_now())
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO tickers
            (symbol, description, exchange, industry, sector, is_active,
             profile_fetched_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(symbol) DO UPDATE SET
                description = COALESCE(excluded.description, tickers.description),
                exchange = excluded.exchange,
                industry = COALESCE(excluded.industry, tickers.industry),
                sector = COALESCE(excluded.sector, tickers.sector),
                is_active = excluded.is_active,
                profile_fetched_at = COALESCE(
                    excluded.profile_fetched_at, tickers.profile_fetched_at
                ),
                updated_at = excluded.updated_at
            """,
            (
                ticker.symbol.strip().upper(),
                ticker.description,
                ticker.exchange,
                ticker.industry,
                ticker.sector,
                1 if ticker.is_active else 0,
                _to_iso(ticker.profile_fetched_at),
                now,
                now,
            ),
        )
        self.db.connection.commit()

    def mark_inactive(self, symbol: str) -> bool:
        """Deactivate a delisted ticker."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            UPDATE tickers SET is_active = 0, updated_at = ?
            WHERE symbol = ? AND is_active = 1
            """,
            (_to_iso(_now()), symbol.strip().upper()),
        )
        self.db.connection.commit()
        return cursor.rowcount > 0

    def update_profile(
        self,
        symbol: str,
        industry: Optional[str],
        sector: Optional[str],
        fetched_at: datetime,
    ) -> None:
        """Record an enrichment attempt."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            UPDATE tickers
            SET industry = ?, sector = ?, profile_fetched_at = ?,
                profile_attempted_at = ?, updated_at = ?
            WHERE symbol = ?
            """,
            (
                industry,
                sector,
                _to_iso(fetched_at),
                _to_iso(fetched_at),
                _to_iso(_now()),
                symbol,
            ),
        )
        self.db.connection.commit()

    def record_lookup_failure(self, symbol: str, attempted_at: datetime) -> None:
        """Stamp the attempt only, leaving profile_fetched_at unset."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "UPDATE tickers SET profile_attempted_at = ? WHERE symbol = ?",
            (_to_iso(attempted_at), symbol),
        )
        self.db.connection.commit()

    def count(self, active_only: bool = True, enriched: Optional[bool] = None) -> int:
        """Count tickers, optionally by enrichment state."""
        query = "SELECT COUNT(*) AS n FROM tickers WHERE 1 = 1"
        if active_only:
            query += " AND is_active = 1"
        if enriched is True:
            query += " AND profile_fetched_at IS NOT NULL"
        elif enriched is False:
            query += " AND profile_fetched_at IS NULL"
        cursor = self.db.connection.cursor()
        cursor.execute(query)
        return cursor.fetchone()["n"]

    def _row_to_ticker(self, row) -> Ticker:
        """Convert database row to Ticker."""
        return Ticker(
            symbol=row["symbol"],
            exchange=row["exchange"],
            description=row["description"],
            industry=row["industry"],
            sector=row["sector"],
            is_active=bool(row["is_active"]),
            profile_fetched_at=_from_iso(row["profile_fetched_at"]),
            profile_attempted_at=_from_iso(row["profile_attempted_at"]),
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )
