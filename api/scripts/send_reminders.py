#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Progress reminder trigger.

Claims cases whose reminder is due and publishes a ``case.reminder`` event to
their assigned helpers. Runs forever by default; pass ``--once`` when invoked
from cron.
"""

import argparse
import sys
import os
import time
import logging

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from observability.config import setup_observability
from services.mongodb import get_mongodb_service, close_mongodb_connection
from services.amqp import create_amqp_service
from services.reminders import ReminderService

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Publish due case progress reminders")
    parser.add_argument('--once', action='store_true', help="Run a single pass and exit")
    parser.add_argument(
        '--batch-size',
        type=int,
        default=int(os.getenv('REMINDER_BATCH_SIZE', '100')),
        help="Maximum cases claimed per pass"
    )
    parser.add_argument(
        '--poll-seconds',
        type=float,
        default=float(os.getenv('REMINDER_POLL_SECONDS', '300')),
        help="Pause between passes"
    )
    return parser.parse_args(argv)


def run_pass(reminder_service: ReminderService, batch_size: int) -> int:
    """Run one reminder pass; returns the number of failed publishes."""
    run = reminder_service.dispatch_due_reminders(limit=batch_size)
    logger.info(
        f"Reminder pass: {run.claimed} claimed, {run.published} published",
        extra={"claimed": run.claimed, "published": run.published, "failed": run.failed_case_ids}
    )
    return len(run.failed_case_ids)


def main(argv=None):
    args = parse_args(argv)
    setup_observability()

    reminder_service = ReminderService(get_mongodb_service(), create_amqp_service())

    try:
        while True:
            failures = run_pass(reminder_service, args.batch_size)
            if args.once:
                return 1 if failures else 0
            time.sleep(args.poll_seconds)
    except KeyboardInterrupt:
        logger.info("Reminder trigger stopped")
        return 0
    finally:
        close_mongodb_connection()


if __name__ == "__main__":
    sys.exit(main())
