"""Configuration management for installment-ledger.

Every setting has a default and an environment variable; ``LedgerConfig.from_env``
reads them all and raises ``ConfigurationError`` naming the variable that
failed to parse.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path

from installment_ledger.exceptions import ConfigurationError

_TRUE = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    return default if raw is None else raw.strip().lower() in _TRUE


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid numeric setting {name}={raw!r}") from e


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default)
    try:
        return Decimal(raw)
    except InvalidOperation as e:
        raise ConfigurationError(f"Invalid numeric setting {name}={raw!r}") from e


@dataclass
class EngineConfig:
    """Reconciliation thresholds and periodic task intervals."""

    tolerance: Decimal = Decimal("0.01")
    max_prepaid_balance: Decimal = Decimal("100000")
    min_payment_amount: Decimal = Decimal("0.01")
    max_single_payment: Decimal = Decimal("100000")
    pending_timeout_hours: int = 24
    sweep_interval_hours: int = 24
    pending_check_interval_minutes: int = 60
    reminder_cleanup_interval_hours: int = 24

    def __post_init__(self) -> None:
        if self.tolerance < 0:
            raise ConfigurationError("tolerance must not be negative")
        if self.max_prepaid_balance < 0:
            raise ConfigurationError("max_prepaid_balance must not be negative")
        if self.min_payment_amount <= 0:
            raise ConfigurationError("min_payment_amount must be positive")
        if self.max_single_payment < self.min_payment_amount:
            raise ConfigurationError("max_single_payment must be >= min_payment_amount")
        if self.pending_timeout_hours <= 0:
            raise ConfigurationError("pending_timeout_hours must be positive")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Read ``LEDGER_*`` variables."""
        return cls(
            tolerance=_env_decimal("LEDGER_TOLERANCE", "0.01"),
            max_prepaid_balance=_env_decimal("LEDGER_MAX_PREPAID_BALANCE", "100000"),
            min_payment_amount=_env_decimal("LEDGER_MIN_PAYMENT_AMOUNT", "0.01"),
            max_single_payment=_env_decimal("LEDGER_MAX_SINGLE_PAYMENT", "100000"),
            pending_timeout_hours=_env_int("LEDGER_PENDING_TIMEOUT_HOURS", 24),
            sweep_interval_hours=_env_int("LEDGER_SWEEP_INTERVAL_HOURS", 24),
            pending_check_interval_minutes=_env_int("LEDGER_PENDING_CHECK_INTERVAL_MINUTES", 60),
            reminder_cleanup_interval_hours=_env_int("LEDGER_REMINDER_CLEANUP_INTERVAL_HOURS", 24),
        )


@dataclass
class KafkaConfig:
    """Where and how audit entries and snapshots are published.

    Producer tuning lives in ``sinks.kafka.ProducerConfig``; this holds the
    deployment-level values it is built from.
    """

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    batch_size: int = 16384
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3
    audit_topic: str = "ledger.audit-log"

    @classmethod
    def from_env(cls) -> "KafkaConfig":
        """Read ``KAFKA_*`` variables."""
        return cls(
            bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
            acks=os.getenv("KAFKA_ACKS", "all"),
            batch_size=_env_int("KAFKA_BATCH_SIZE", 16384),
            linger_ms=_env_int("KAFKA_LINGER_MS", 5),
            compression=os.getenv("KAFKA_COMPRESSION", "snappy"),
            retries=_env_int("KAFKA_RETRIES", 3),
            audit_topic=os.getenv("KAFKA_AUDIT_TOPIC", "ledger.audit-log"),
        )


@dataclass
class PostgresConfig:
    """PostgreSQL connection settings; ``dsn`` wins over the parts when set."""

    host: str = "localhost"
    port: int = 5432
    database: str = "ledger"
    user: str = "postgres"
    password: str = "postgres"
    dsn: str | None = None

    @property
    def connection_string(self) -> str:
        if self.dsn:
            return self.dsn
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"

    @classmethod
    def from_env(cls) -> "PostgresConfig":
        """Read ``POSTGRES_*`` variables."""
        return cls(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=_env_int("POSTGRES_PORT", 5432),
            database=os.getenv("POSTGRES_DB", "ledger"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", "postgres"),
            dsn=os.getenv("POSTGRES_DSN") or None,
        )


@dataclass
class OutputConfig:
    """Where JSON snapshots are written."""

    json_output_dir: Path = field(default_factory=lambda: Path("output"))
    pretty_json: bool = False


@dataclass
class LedgerConfig:
    """Main configuration for installment-ledger."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    publish_audit: bool = False
    seed: int | None = None
    log_level: str = "INFO"
    log_format: str = "standard"

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Create config from environment variables."""
        return cls(
            engine=EngineConfig.from_env(),
            kafka=KafkaConfig.from_env(),
            postgres=PostgresConfig.from_env(),
            output=OutputConfig(
                json_output_dir=Path(os.getenv("OUTPUT_DIR", "output")),
                pretty_json=_env_bool("PRETTY_JSON"),
            ),
            publish_audit=_env_bool("PUBLISH_AUDIT"),
            seed=_env_int("SEED", None),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )
