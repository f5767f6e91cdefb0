"""
Integration tests.
End-to-end tests for the daily run and admin CLI with mocked HTTP.
"""

import json
import pytest
from unittest.mock import MagicMock, patch
from datetime import date

from earnings_alerts.database.connection import Database
from earnings_alerts.database.models import Alert, AlertStatus, AlertType, Ticker, User
from earnings_alerts.database.repository import (
    AlertRepository,
    TickerRepository,
    UserRepository,
)

CONFIG_TEMPLATE = """
database:
  path: "{db_path}"

providers:
  finnhub_api_key: fh_test
  resend_api_key: re_test
  app_url: "https://earnings.example.com"
  calendar: finnhub

ticker_sync:
  enabled: true
  exchanges:
    - mic: XNAS
      exchange: NASDAQ
  enrichment_delay_seconds: 0

cron:
  secret: s3cret
"""


def _response(payload, ok=True):
    response = MagicMock()
    response.ok = ok
    response.status_code = 200 if ok else 500
    response.json.return_value = payload
    return response


def fake_finnhub(url, params=None, timeout=None):
    """Route Finnhub GET requests to canned payloads."""
    if url.endswith("/stock/symbol"):
        return _response(
            [
                {"symbol": "AAPL", "description": "APPLE INC"},
                {"symbol": "MSFT", "description": "MICROSOFT CORP"},
            ]
        )
    if url.endswith("/stock/profile2"):
        return _response({"finnhubIndustry": "Technology"})
    if url.endswith("/calendar/earnings"):
        return _response(
            {"earningsCalendar": [{"symbol": params["symbol"], "date": "2025-03-15"}]}
        )
    if url.endswith("/stock/earnings"):
        return _response(
            [{"year": 2024, "quarter": 4, "actual": 2.40, "estimate": 2.35}]
        )
    raise AssertionError(f"Unexpected request: {url}")


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "alerts.db"


@pytest.fixture
def config_path(tmp_path, db_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(CONFIG_TEMPLATE.format(db_path=db_path))
    return str(config_file)


@pytest.fixture
def seeded(db_path):
    """A user with a recurring after alert and a stale stored ticker."""
    db = Database(str(db_path))
    db.initialize()
    user = UserRepository(db).create(User(email="jane.doe@example.com"))
    alert = AlertRepository(db).create(
        Alert(
            user_id=user.id,
            symbol="AAPL",
            alert_type=AlertType.AFTER,
            earnings_date=date(2024, 12, 15),
            days_after=1,
            recurring=True,
        )
    )
    TickerRepository(db).upsert(Ticker(symbol="GONE", exchange="NASDAQ"))
    db.close()
    return {"user": user, "alert": alert}


class TestDailyRun:
    """Test the daily entry point end to end."""

    def test_daily_run(self, config_path, db_path, seeded, capsys):
        """Should send, renew, reconcile and enrich in one run."""
        from earnings_alerts.main import main

        with patch("requests.get", side_effect=fake_finnhub), patch(
            "requests.post"
        ) as mock_post:
            mock_post.return_value.ok = True
            mock_post.return_value.status_code = 200
            mock_post.return_value.json.return_value = {"id": "email-1"}

            exit_code = main(
                ["--config", config_path, "--date", "2024-12-16", "--secret", "s3cret"]
            )

        assert exit_code == 0
        summary = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert summary["success"] is True
        assert summary["alertsProcessed"] == 1
        assert summary["emailsSent"] == 1
        assert summary["alertsRenewed"] == 1
        assert summary["newTickers"] == 2
        assert summary["delistedTickers"] == 1
        assert summary["enrichedTickers"] == 2

        payload = mock_post.call_args.kwargs["json"]
        assert payload["subject"] == "Earnings Results: AAPL has reported"
        assert "Actual: $2.40" in payload["text"]

        db = Database(str(db_path))
        alert = AlertRepository(db).get_by_id(seeded["alert"].id)
        assert alert.status == AlertStatus.ACTIVE
        assert alert.earnings_date == date(2025, 3, 15)
        tickers = TickerRepository(db)
        assert tickers.get_active_symbols() == {"AAPL", "MSFT"}
        assert tickers.get_by_symbol("MSFT").sector == "Technology"
        db.close()

    def test_wrong_secret_does_nothing(self, config_path, db_path, seeded, capsys):
        from earnings_alerts.main import main

        with patch("requests.get") as mock_get, patch("requests.post") as mock_post:
            exit_code = main(
                ["--config", config_path, "--date", "2024-12-16", "--secret", "nope"]
            )

        assert exit_code == 1
        mock_get.assert_not_called()
        mock_post.assert_not_called()
        summary = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert summary["success"] is False
        assert summary["error"] == "Unauthorized"

    def test_wrong_secret_leaves_no_database(self, config_path, db_path, capsys):
        """Should reject before creating or migrating the database file."""
        from earnings_alerts.main import main

        exit_code = main(["--config", config_path, "--secret", "nope"])

        assert exit_code == 1
        assert not db_path.exists()
        summary = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert summary["error"] == "Unauthorized"

    def test_dry_run_with_wrong_secret_fails(self, config_path, db_path):
        from earnings_alerts.main import main

        assert main(["--config", config_path, "--dry-run", "--secret", "nope"]) == 1
        assert not db_path.exists()

    def test_dry_run(self, config_path, seeded):
        from earnings_alerts.main import main

        with patch("requests.get") as mock_get, patch("requests.post") as mock_post:
            assert main(["--config", config_path, "--dry-run", "--secret", "s3cret"]) == 0

        mock_get.assert_not_called()
        mock_post.assert_not_called()


class TestCLICommands:
    """Test admin CLI command functionality."""

    @pytest.fixture
    def db(self, db_path):
        db = Database(str(db_path))
        db.initialize()
        yield db
        db.close()

    def test_add_user_command(self, db):
        """Should add user via CLI helper."""
        from earnings_alerts.cli import add_user

        result = add_user(db, email="test@example.com")

        assert result.id is not None
        user = UserRepository(db).get_by_id(result.id)
        assert user.email == "test@example.com"

    def test_user_and_after_alert_commands(self, tmp_path, db_path, db):
        from earnings_alerts.cli import main

        missing_config = str(tmp_path / "none.yaml")
        base = ["--config", missing_config, "--db", str(db_path)]

        assert main(base + ["user", "add", "--email", "cli@example.com"]) == 0
        user = UserRepository(db).get_by_email("cli@example.com")
        assert user is not None

        with patch("requests.post") as mock_post:
            exit_code = main(
                base
                + [
                    "alert", "add",
                    "--user", user.id,
                    "--symbol", "nvda",
                    "--type", "after",
                    "--earnings-date", "2025-02-26",
                    "--days", "1",
                    "--recurring",
                ]
            )

        assert exit_code == 0
        mock_post.assert_not_called()
        alerts = AlertRepository(db).list_by_user(user.id)
        assert len(alerts) == 1
        assert alerts[0].symbol == "NVDA"
        assert alerts[0].days_after == 1
        assert alerts[0].recurring is True

    def test_before_alert_command_schedules_reminder(self, tmp_path, db_path, db):
        from earnings_alerts.cli import main

        user = UserRepository(db).create(User(email="before@example.com"))
        base = ["--config", str(tmp_path / "none.yaml"), "--db", str(db_path)]

        with patch("requests.post") as mock_post:
            mock_post.return_value.ok = True
            mock_post.return_value.json.return_value = {"id": "email-42"}
            exit_code = main(
                base
                + [
                    "alert", "add",
                    "--user", user.id,
                    "--symbol", "AAPL",
                    "--type", "before",
                    "--earnings-date", "2099-01-15",
                    "--days", "2",
                ]
            )

        assert exit_code == 0
        assert mock_post.call_args.kwargs["json"]["scheduled_at"] == "2099-01-13T00:00:00+00:00"
        alert = AlertRepository(db).list_by_user(user.id)[0]
        assert alert.scheduled_email_id == "email-42"

    def test_alert_for_unknown_user_fails(self, tmp_path, db_path, db):
        from earnings_alerts.cli import main

        base = ["--config", str(tmp_path / "none.yaml"), "--db", str(db_path)]
        exit_code = main(
            base
            + [
                "alert", "add",
                "--user", "missing",
                "--symbol", "AAPL",
                "--type", "after",
                "--earnings-date", "2025-02-26",
                "--days", "1",
            ]
        )
        assert exit_code == 1

    def test_cancel_command(self, tmp_path, db_path, db):
        from earnings_alerts.cli import main

        user = UserRepository(db).create(User(email="cancel@example.com"))
        alert = AlertRepository(db).create(
            Alert(
                user_id=user.id,
                symbol="AAPL",
                alert_type=AlertType.AFTER,
                earnings_date=date(2025, 1, 30),
                days_after=0,
            )
        )
        base = ["--config", str(tmp_path / "none.yaml"), "--db", str(db_path)]

        assert main(base + ["alert", "cancel", "--id", alert.id]) == 0
        assert AlertRepository(db).get_by_id(alert.id).status == AlertStatus.CANCELLED


class TestDatabaseMigration:
    """Test schema creation on file databases."""

    def test_fresh_database_creates_schema(self, db_path):
        db = Database(str(db_path))
        db.initialize()

        cursor = db.connection.cursor()
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row[0] for row in cursor.fetchall()}
        db.close()

        assert {"users", "alerts", "tickers"}.issubset(tables)

    def test_reopen_keeps_data(self, db_path):
        db = Database(str(db_path))
        db.initialize()
        UserRepository(db).create(User(email="persist@example.com"))
        db.close()

        db = Database(str(db_path))
        db.initialize()
        assert UserRepository(db).get_by_email("persist@example.com") is not None
        db.close()
