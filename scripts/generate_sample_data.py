#!/usr/bin/env python3
"""Generate a sample installment ledger and export it.

Builds a portfolio of contracts with replayed payment histories and writes
every record set (customers, contracts, payments, debtors, balances,
expenses, receipts, audit log) to JSON files, PostgreSQL and/or Kafka.
"""

import argparse
import sys
from datetime import date
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from installment_ledger.config import LedgerConfig
from installment_ledger.logging import get_logger, setup_logging
from installment_ledger.scenarios import PortfolioScenario
from installment_ledger.sinks import JsonFileSink, KafkaSink, PostgresSink, export_ledger
from installment_ledger.sinks.kafka import ProducerConfig

logger = get_logger(__name__)


def main() -> None:
    """Main entry point."""
    config = LedgerConfig.from_env()

    parser = argparse.ArgumentParser(description="Generate a sample installment ledger")
    parser.add_argument(
        "--customers",
        type=int,
        default=100,
        help="Number of customers to generate (default: 100)",
    )
    parser.add_argument(
        "--managers",
        type=int,
        default=5,
        help="Number of field managers (default: 5)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=config.seed if config.seed is not None else 42,
        help="Random seed for reproducibility (default: 42)",
    )
    parser.add_argument(
        "--reference-date",
        type=date.fromisoformat,
        default=None,
        help="Portfolio 'today' as YYYY-MM-DD (default: current date)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=config.output.json_output_dir,
        help="Directory for JSON files",
    )
    parser.add_argument(
        "--postgres",
        action="store_true",
        help="Also load the ledger into PostgreSQL",
    )
    parser.add_argument(
        "--kafka",
        action="store_true",
        help="Also publish the ledger to Kafka topics",
    )
    args = parser.parse_args()

    setup_logging(config.log_level, config.log_format)

    scenario = PortfolioScenario(
        num_customers=args.customers,
        num_managers=args.managers,
        seed=args.seed,
        reference_date=args.reference_date,
        config=config.engine,
    )
    scenario.generate()

    summary = scenario.get_portfolio_summary()
    print("\nPortfolio summary:")
    for key, value in summary.items():
        print(f"  {key}: {value}")

    json_sink = JsonFileSink(args.output_dir, pretty=config.output.pretty_json)
    scenario.export([json_sink])
    json_sink.close()

    if args.postgres:
        pg_sink = PostgresSink(config.postgres.connection_string)
        try:
            pg_sink.create_tables()
            export_ledger(scenario.service.store, pg_sink)
        finally:
            pg_sink.close()

    if args.kafka:
        with KafkaSink(ProducerConfig.from_kafka_config(config.kafka, idempotent=True)) as kafka_sink:
            export_ledger(scenario.service.store, kafka_sink, topic_prefix="ledger")

    logger.info("Done")


if __name__ == "__main__":
    main()
