"""
Daily run entry point, invoked once per day by the external cron trigger.
"""

import argparse
import json
import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from earnings_alerts.config import load_config
from earnings_alerts.database.connection import Database
from earnings_alerts.orchestrator import (
    ConfigurationError,
    DailySummary,
    UnauthorizedTrigger,
    authorize_trigger,
    build_orchestrator,
)
from earnings_alerts.scheduling.dates import parse_date

logger = logging.getLogger(__name__)


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Earnings alerts daily run")
    parser.add_argument(
        "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument(
        "--secret",
        default=os.environ.get("CRON_SECRET"),
        help="Trigger secret (defaults to $CRON_SECRET)",
    )
    parser.add_argument("--date", help="Override today's date (YYYY-MM-DD, UTC)")
    parser.add_argument(
        "--dry-run", action="store_true", help="Validate setup without running jobs"
    )

    args = parser.parse_args(argv)

    config = load_config(args.config)

    log_level = logging.DEBUG if args.debug else getattr(
        logging, config.advanced.log_level.upper(), logging.INFO
    )
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # A rejected trigger must not touch the database
    try:
        authorize_trigger(config.cron.secret, args.secret)
    except UnauthorizedTrigger as e:
        logger.error(f"Daily run rejected: {e}")
        if not args.dry_run:
            print(json.dumps(DailySummary(success=False, error=str(e)).to_dict()))
        return 1

    db = Database(config.database.path)
    db.initialize()

    try:
        orchestrator = build_orchestrator(config, db)

        if args.dry_run:
            try:
                orchestrator.check_credentials()
            except ConfigurationError as e:
                logger.error(f"Dry run failed: {e}")
                return 1
            logger.info(
                "Dry run mode - configuration valid, "
                f"ticker sync {'enabled' if orchestrator.ticker_sync else 'disabled'}"
            )
            return 0

        today = parse_date(args.date) if args.date else None
        summary = orchestrator.run(provided_secret=args.secret, today=today)
        print(json.dumps(summary.to_dict()))
        return 0 if summary.success else 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
