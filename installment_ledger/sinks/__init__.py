"""Output sinks for exporting and publishing ledger records."""

from installment_ledger.sinks.export import export_ledger, ledger_records
from installment_ledger.sinks.json_file import JsonFileSink
from installment_ledger.sinks.kafka import KafkaSink
from installment_ledger.sinks.postgres import PostgresSink

__all__ = ["JsonFileSink", "KafkaSink", "PostgresSink", "export_ledger", "ledger_records"]
