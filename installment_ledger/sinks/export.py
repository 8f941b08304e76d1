"""Export a whole ledger through any sink with ``write_batch``."""

import logging
from typing import Any, Protocol

from installment_ledger.store import LedgerStore

logger = logging.getLogger(__name__)

# Parents before children
RECORD_SETS = (
    "customers",
    "contracts",
    "payments",
    "debtors",
    "balances",
    "expenses",
    "receipts",
    "audit_log",
)


class BatchSink(Protocol):
    def write_batch(self, entity_type: str, records: list[Any]) -> None: ...


def ledger_records(store: LedgerStore) -> dict[str, list[Any]]:
    """Snapshot every record set of the store as lists."""
    records: dict[str, list[Any]] = {}
    for name in RECORD_SETS:
        collection = getattr(store, name)
        records[name] = list(collection.values()) if isinstance(collection, dict) else list(collection)
    return records


def export_ledger(store: LedgerStore, sink: BatchSink, topic_prefix: str | None = None) -> dict[str, int]:
    """Write every record set to ``sink`` in dependency order.

    Parameters
    ----------
    store : LedgerStore
        Source ledger.
    sink : BatchSink
        JSON, Kafka or PostgreSQL sink.
    topic_prefix : str | None
        When set, batches are named ``<prefix>.<record set>`` (Kafka topics).

    Returns
    -------
    dict[str, int]
        Records written per set.
    """
    counts: dict[str, int] = {}
    for name, records in ledger_records(store).items():
        target = f"{topic_prefix}.{name.replace('_', '-')}" if topic_prefix else name
        sink.write_batch(target, records)
        counts[name] = len(records)
    logger.info("Exported ledger: %s", counts)
    return counts
