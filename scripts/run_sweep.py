#!/usr/bin/env python3
"""
Run a single reminder sweep for cron or GitHub Actions execution.

Sends every due reminder, marks it sent and writes a job summary when
GITHUB_STEP_SUMMARY is set. Exits non-zero when the sweep or any send fails.
"""

import argparse
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.reminder_mailer.config.settings import load_settings
from src.reminder_mailer.database.operations import initialize_database
from src.reminder_mailer.handlers.sweep import run_sweep
from loguru import logger


def setup_logging(log_level: str) -> None:
    """Setup logging for scheduled execution."""

    # Remove default handler
    logger.remove()

    log_file = Path("logs") / f"sweep_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    log_file.parent.mkdir(exist_ok=True)

    logger.add(
        log_file,
        level=log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
        rotation="10 MB",
        retention="30 days"
    )

    # Console handler grouped for GitHub Actions
    logger.add(
        sys.stdout,
        level=log_level,
        format="::group::{level} - {time:HH:mm:ss}\n{message}\n::endgroup::",
        colorize=False
    )


def write_summary(lines: List[str]) -> None:
    summary_file = os.getenv('GITHUB_STEP_SUMMARY')
    if summary_file:
        with open(summary_file, 'a') as f:
            f.write("# Reminder Sweep Summary\n\n")
            f.write("\n".join(lines) + "\n")


def main() -> None:
    """Main execution function."""

    parser = argparse.ArgumentParser(description="Send due reminder emails")
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--database', help='Override DATABASE_URL')

    args = parser.parse_args()

    setup_logging(args.log_level)
    logger.info("Starting reminder sweep")

    try:
        env: Dict[str, str] = dict(os.environ)
        if args.database:
            env['DATABASE_URL'] = args.database
        settings = load_settings(env)

        initialize_database(settings.database_path)
        response = run_sweep(settings.create_email_service(), db_path=settings.database_path)

        if not response.ok:
            raise RuntimeError(response.body.get('error', response.body['message']))

        results: List[Dict[str, Any]] = response.body['results']
        failed: List[Dict[str, Any]] = [r for r in results if not r['success']]

        logger.info(response.body['message'])
        write_summary([
            f"- **Status**: {'Completed with failures' if failed else 'Completed'}",
            f"- **Database**: {settings.database_path}",
            f"- **Processed**: {len(results)}",
            f"- **Sent**: {len(results) - len(failed)}",
            f"- **Failed**: {len(failed)}",
        ])

        if failed:
            for result in failed:
                logger.error(f"Reminder {result['id']} to {result['email']} failed: {result.get('error', 'send failed')}")
            sys.exit(1)

    except Exception as e:
        logger.error(f"Reminder sweep failed: {e}")
        write_summary([
            "- **Status**: Failed",
            f"- **Error**: {str(e)}",
        ])
        sys.exit(1)


if __name__ == "__main__":
    main()
