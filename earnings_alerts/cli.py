"""
Admin CLI commands.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from earnings_alerts.alerts.before import BeforeAlertScheduler
from earnings_alerts.alerts.service import AlertNotFound, AlertService
from earnings_alerts.config import AppConfig, load_config
from earnings_alerts.database.connection import Database
from earnings_alerts.database.models import AlertType, User
from earnings_alerts.database.repository import (
    AlertRepository,
    TickerRepository,
    UserRepository,
)
from earnings_alerts.notifiers.email import AlertEmailBuilder
from earnings_alerts.notifiers.resend import ResendEmailScheduler
from earnings_alerts.orchestrator import build_orchestrator
from earnings_alerts.scheduling.dates import parse_date


def add_user(db: Database, email: str, email_enabled: bool = True) -> User:
    """Add a new user."""
    repo = UserRepository(db)
    return repo.create(User(email=email, email_enabled=email_enabled))


def build_alert_service(config: AppConfig, db: Database) -> AlertService:
    """Alert service wired to the configured email provider."""
    providers = config.providers
    email_scheduler = ResendEmailScheduler(
        api_key=providers.resend_api_key,
        from_address=providers.from_address,
        timeout=providers.request_timeout_seconds,
    )
    return AlertService(
        alerts=AlertRepository(db),
        users=UserRepository(db),
        before_scheduler=BeforeAlertScheduler(
            email_scheduler=email_scheduler,
            email_builder=AlertEmailBuilder(app_url=providers.app_url),
        ),
        email_scheduler=email_scheduler,
    )


def _load(config_path: str, db_override: Optional[str]) -> AppConfig:
    if Path(config_path).exists():
        config = load_config(config_path)
    else:
        config = AppConfig()
    if db_override:
        config.database.path = db_override
    return config


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Earnings alerts admin CLI")
    parser.add_argument("--config", default="config.yaml", help="Path to config file")
    parser.add_argument("--db", help="Database path (overrides config)")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # DB commands
    db_parser = subparsers.add_parser("db", help="Database management")
    db_subparsers = db_parser.add_subparsers(dest="action")
    db_subparsers.add_parser("init", help="Create schema")

    # User commands
    user_parser = subparsers.add_parser("user", help="User management")
    user_subparsers = user_parser.add_subparsers(dest="action")

    add_user_parser = user_subparsers.add_parser("add", help="Add user")
    add_user_parser.add_argument("--email", required=True, help="User email")
    add_user_parser.add_argument(
        "--no-email", action="store_true", help="Disable email notifications"
    )
    user_subparsers.add_parser("list", help="List users")

    # Alert commands
    alert_parser = subparsers.add_parser("alert", help="Alert management")
    alert_subparsers = alert_parser.add_subparsers(dest="action")

    add_alert_parser = alert_subparsers.add_parser("add", help="Add alert")
    add_alert_parser.add_argument("--user", required=True, help="User ID")
    add_alert_parser.add_argument("--symbol", required=True, help="Ticker symbol")
    add_alert_parser.add_argument(
        "--type", required=True, choices=[t.value for t in AlertType]
    )
    add_alert_parser.add_argument(
        "--earnings-date", required=True, help="Earnings date (YYYY-MM-DD)"
    )
    add_alert_parser.add_argument(
        "--days", type=int, required=True, help="Days before/after earnings"
    )
    add_alert_parser.add_argument("--recurring", action="store_true")

    list_alert_parser = alert_subparsers.add_parser("list", help="List alerts")
    list_alert_parser.add_argument("--user", required=True, help="User ID")

    cancel_alert_parser = alert_subparsers.add_parser("cancel", help="Cancel alert")
    cancel_alert_parser.add_argument("--id", required=True, help="Alert ID")

    # Ticker commands
    ticker_parser = subparsers.add_parser("tickers", help="Ticker universe")
    ticker_subparsers = ticker_parser.add_subparsers(dest="action")
    ticker_subparsers.add_parser("sync", help="Run ticker sync now")
    list_tickers_parser = ticker_subparsers.add_parser("list", help="List tickers")
    list_tickers_parser.add_argument("--sector", help="Sector filter")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = _load(args.config, args.db)
    db = Database(config.database.path)
    db.initialize()

    try:
        return _dispatch(args, config, db)
    finally:
        db.close()


def _dispatch(args: argparse.Namespace, config: AppConfig, db: Database) -> int:
    if args.command == "db":
        if args.action == "init":
            print(f"Database initialized at {config.database.path}")

    elif args.command == "user":
        if args.action == "add":
            user = add_user(db, email=args.email, email_enabled=not args.no_email)
            print(f"Created user with ID: {user.id}")
        elif args.action == "list":
            for user in UserRepository(db).list_all():
                flag = "" if user.email_enabled else " (email disabled)"
                print(f"ID: {user.id}, Email: {user.email}{flag}")

    elif args.command == "alert":
        service = build_alert_service(config, db)
        if args.action == "add":
            alert_type = AlertType(args.type)
            try:
                alert = service.create_alert(
                    user_id=args.user,
                    symbol=args.symbol,
                    alert_type=alert_type,
                    earnings_date=parse_date(args.earnings_date),
                    days_before=args.days if alert_type == AlertType.BEFORE else None,
                    days_after=args.days if alert_type == AlertType.AFTER else None,
                    recurring=args.recurring,
                )
            except (AlertNotFound, ValueError) as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            scheduled = f", scheduled email {alert.scheduled_email_id}" if alert.scheduled_email_id else ""
            print(f"Created alert with ID: {alert.id}{scheduled}")
        elif args.action == "list":
            for alert in AlertRepository(db).list_by_user(args.user):
                print(
                    f"{alert.id}: {alert.symbol} {alert.alert_type.value} "
                    f"{alert.offset_days}d, earnings {alert.earnings_date.isoformat()}, "
                    f"{alert.status.value}{' (recurring)' if alert.recurring else ''}"
                )
        elif args.action == "cancel":
            try:
                alert = service.cancel_alert(args.id)
            except AlertNotFound as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            print(f"Alert {alert.id} is {alert.status.value}")

    elif args.command == "tickers":
        if args.action == "sync":
            orchestrator = build_orchestrator(config, db)
            if orchestrator.ticker_sync is None:
                print("Ticker sync is disabled")
                return 1
            result = orchestrator.ticker_sync.run()
            print(
                f"Inserted {result.inserted}, delisted {result.delisted_marked}, "
                f"enriched {result.enriched}"
            )
        elif args.action == "list":
            repo = TickerRepository(db)
            tickers = repo.list_all(sector=args.sector)
            for t in tickers[:50]:  # Limit output
                print(f"{t.symbol}: {t.description} ({t.sector or 'unclassified'})")
            if len(tickers) > 50:
                print(f"... and {len(tickers) - 50} more")

    return 0


if __name__ == "__main__":
    sys.exit(main())
