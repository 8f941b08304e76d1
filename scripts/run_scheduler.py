#!/usr/bin/env python3
"""Run the periodic ledger tasks against a generated portfolio.

Registers the overdue-debtor sweep, the pending-receipt expiry check and the
reminder cleanup, then polls them until interrupted.
"""

import argparse
import sys
from dataclasses import replace
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from installment_ledger.clock import SystemClock
from installment_ledger.config import LedgerConfig
from installment_ledger.logging import get_logger, setup_logging
from installment_ledger.scenarios import PortfolioScenario
from installment_ledger.sinks import KafkaSink
from installment_ledger.sinks.kafka import AUDIT

logger = get_logger(__name__, component="scheduler")


def main() -> None:
    """Main entry point."""
    config = LedgerConfig.from_env()

    parser = argparse.ArgumentParser(description="Run periodic ledger tasks")
    parser.add_argument(
        "--customers",
        type=int,
        default=50,
        help="Number of customers to seed the ledger with (default: 50)",
    )
    parser.add_argument(
        "--poll-seconds",
        type=float,
        default=60.0,
        help="Seconds between scheduler polls (default: 60)",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Stop after this many polls (default: run until interrupted)",
    )
    args = parser.parse_args()

    setup_logging(config.log_level, config.log_format)

    publisher = None
    if config.publish_audit:
        publisher = KafkaSink(
            replace(AUDIT, bootstrap_servers=config.kafka.bootstrap_servers, compression=config.kafka.compression)
        )

    scenario = PortfolioScenario(
        num_customers=args.customers,
        seed=config.seed,
        config=config.engine,
        clock=SystemClock(),
        publisher=publisher,
        audit_topic=config.kafka.audit_topic,
    )
    service = scenario.generate()

    scheduler = service.build_scheduler()
    try:
        scheduler.run_forever(poll_seconds=args.poll_seconds, max_iterations=args.iterations)
    finally:
        if publisher is not None:
            publisher.close()

    for task in scheduler.tasks.values():
        logger.bind(task=task.name).info("%d runs, %d failures", task.runs, task.failures)


if __name__ == "__main__":
    main()
