"""PostgreSQL sink for exporting ledger tables."""

import logging
from typing import Any

from installment_ledger.sinks.serialization import to_row

logger = logging.getLogger(__name__)


class PostgresSink:
    """Upsert ledger record sets into PostgreSQL tables via psycopg."""

    TABLE_COLUMNS: dict[str, list[str]] = {
        "customers": ["customer_id", "full_name", "phone", "manager_id", "created_at"],
        "contracts": [
            "contract_id",
            "customer_id",
            "product_name",
            "total_price",
            "initial_payment",
            "monthly_payment",
            "period",
            "start_date",
            "original_payment_day",
            "next_payment_date",
            "prepaid_balance",
            "status",
            "is_active",
            "is_declare",
            "is_deleted",
            "deleted_at",
            "edit_history",
            "created_by",
            "created_at",
            "updated_at",
        ],
        "payments": [
            "payment_id",
            "contract_id",
            "amount",
            "actual_amount",
            "due_date",
            "is_paid",
            "payment_type",
            "target_month",
            "status",
            "remaining_amount",
            "excess_amount",
            "prepaid_used",
            "confirmed_at",
            "confirmed_by",
            "reminder_date",
        ],
        "debtors": [
            "debtor_id",
            "contract_id",
            "debt_amount",
            "due_date",
            "overdue_days",
            "created_by",
            "created_at",
        ],
        "balances": ["manager_id", "dollar", "sum", "updated_at"],
        "expenses": [
            "expense_id",
            "manager_id",
            "dollar",
            "sum",
            "exchange_rate",
            "notes",
            "created_by",
            "created_at",
            "is_active",
            "returned_at",
        ],
        "receipts": [
            "receipt_id",
            "contract_id",
            "kind",
            "amount",
            "submitted_by",
            "submitted_at",
            "payment_id",
            "status",
            "reviewed_by",
            "reviewed_at",
            "reject_reason",
        ],
        "audit_log": [
            "entry_id",
            "action",
            "entity",
            "entity_id",
            "user_id",
            "timestamp",
            "changes",
            "metadata",
        ],
    }

    # Parents before children
    ENTITY_ORDER = [
        "customers",
        "contracts",
        "payments",
        "debtors",
        "balances",
        "expenses",
        "receipts",
        "audit_log",
    ]

    DDL = {
        "customers": """
            CREATE TABLE IF NOT EXISTS customers (
                customer_id TEXT PRIMARY KEY,
                full_name TEXT NOT NULL,
                phone TEXT,
                manager_id TEXT,
                created_at TIMESTAMP
            )""",
        "contracts": """
            CREATE TABLE IF NOT EXISTS contracts (
                contract_id TEXT PRIMARY KEY,
                customer_id TEXT NOT NULL REFERENCES customers (customer_id),
                product_name TEXT NOT NULL,
                total_price NUMERIC(15, 2) NOT NULL,
                initial_payment NUMERIC(15, 2) NOT NULL,
                monthly_payment NUMERIC(15, 2) NOT NULL,
                period INTEGER NOT NULL,
                start_date DATE NOT NULL,
                original_payment_day INTEGER NOT NULL,
                next_payment_date DATE NOT NULL,
                prepaid_balance NUMERIC(15, 2) NOT NULL DEFAULT 0,
                status TEXT NOT NULL,
                is_active BOOLEAN NOT NULL,
                is_declare BOOLEAN NOT NULL,
                is_deleted BOOLEAN NOT NULL,
                deleted_at TIMESTAMP,
                edit_history JSONB,
                created_by TEXT,
                created_at TIMESTAMP,
                updated_at TIMESTAMP
            )""",
        "payments": """
            CREATE TABLE IF NOT EXISTS payments (
                payment_id TEXT PRIMARY KEY,
                contract_id TEXT NOT NULL REFERENCES contracts (contract_id),
                amount NUMERIC(15, 2) NOT NULL,
                actual_amount NUMERIC(15, 3) NOT NULL,
                due_date DATE NOT NULL,
                is_paid BOOLEAN NOT NULL,
                payment_type TEXT NOT NULL,
                target_month INTEGER,
                status TEXT NOT NULL,
                remaining_amount NUMERIC(15, 3) NOT NULL,
                excess_amount NUMERIC(15, 3) NOT NULL,
                prepaid_used NUMERIC(15, 3) NOT NULL,
                confirmed_at TIMESTAMP,
                confirmed_by TEXT,
                reminder_date DATE,
                UNIQUE (contract_id, target_month)
            )""",
        "debtors": """
            CREATE TABLE IF NOT EXISTS debtors (
                debtor_id TEXT PRIMARY KEY,
                contract_id TEXT NOT NULL REFERENCES contracts (contract_id),
                debt_amount NUMERIC(15, 3) NOT NULL,
                due_date DATE NOT NULL,
                overdue_days INTEGER NOT NULL,
                created_by TEXT,
                created_at TIMESTAMP,
                UNIQUE (contract_id, due_date)
            )""",
        "balances": """
            CREATE TABLE IF NOT EXISTS balances (
                manager_id TEXT PRIMARY KEY,
                dollar NUMERIC(15, 3) NOT NULL,
                sum NUMERIC(18, 2) NOT NULL,
                updated_at TIMESTAMP
            )""",
        "expenses": """
            CREATE TABLE IF NOT EXISTS expenses (
                expense_id TEXT PRIMARY KEY,
                manager_id TEXT NOT NULL REFERENCES balances (manager_id),
                dollar NUMERIC(15, 2) NOT NULL,
                sum NUMERIC(18, 2) NOT NULL,
                exchange_rate NUMERIC(12, 4) NOT NULL,
                notes TEXT,
                created_by TEXT,
                created_at TIMESTAMP,
                is_active BOOLEAN NOT NULL,
                returned_at TIMESTAMP
            )""",
        "receipts": """
            CREATE TABLE IF NOT EXISTS receipts (
                receipt_id TEXT PRIMARY KEY,
                contract_id TEXT NOT NULL REFERENCES contracts (contract_id),
                kind TEXT NOT NULL,
                amount NUMERIC(15, 2) NOT NULL,
                submitted_by TEXT NOT NULL,
                submitted_at TIMESTAMP NOT NULL,
                payment_id TEXT REFERENCES payments (payment_id),
                status TEXT NOT NULL,
                reviewed_by TEXT,
                reviewed_at TIMESTAMP,
                reject_reason TEXT
            )""",
        "audit_log": """
            CREATE TABLE IF NOT EXISTS audit_log (
                entry_id TEXT PRIMARY KEY,
                action TEXT NOT NULL,
                entity TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                timestamp TIMESTAMP NOT NULL,
                changes JSONB,
                metadata JSONB
            )""",
    }

    def __init__(self, conninfo: str) -> None:
        """Open a connection.

        Parameters
        ----------
        conninfo : str
            libpq connection string, e.g. ``PostgresConfig.connection_string``.
        """
        import psycopg

        self.conn = psycopg.connect(conninfo)
        self._counts: dict[str, int] = {}

    def create_tables(self) -> None:
        """Create every ledger table that does not exist yet."""
        with self.conn.cursor() as cur:
            for entity_type in self.ENTITY_ORDER:
                cur.execute(self.DDL[entity_type])
        self.conn.commit()
        logger.info("Ensured %d ledger tables", len(self.ENTITY_ORDER))

    def write_batch(self, entity_type: str, records: list[Any]) -> None:
        """Upsert a batch of records into the table for ``entity_type``."""
        if not records:
            return

        columns = self.TABLE_COLUMNS.get(entity_type)
        if columns is None:
            logger.warning("No table mapping for entity type: %s", entity_type)
            return

        key = columns[0]
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns[1:])
        sql = (
            f"INSERT INTO {entity_type} ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))}) "
            f"ON CONFLICT ({key}) DO UPDATE SET {updates}"
        )
        rows = [to_row(record, columns) for record in records]

        with self.conn.cursor() as cur:
            cur.executemany(sql, rows)
        self.conn.commit()

        self._counts[entity_type] = self._counts.get(entity_type, 0) + len(rows)
        logger.info("Wrote %d rows to %s", len(rows), entity_type)

    def close(self) -> None:
        """Close the connection."""
        self.conn.close()
        logger.info("PostgreSQL sink closed: %s", self._counts)
