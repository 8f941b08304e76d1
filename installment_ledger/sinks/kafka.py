"""Kafka sink for publishing audit entries and ledger snapshots."""

import json
import logging
from dataclasses import dataclass, field, is_dataclass
from typing import Any

from confluent_kafka import KafkaException, Producer

from installment_ledger.config import KafkaConfig
from installment_ledger.exceptions import SinkError
from installment_ledger.sinks.serialization import to_dict

logger = logging.getLogger(__name__)


@dataclass
class ProducerConfig:
    """Producer tuning for one ``KafkaSink``."""

    bootstrap_servers: str
    acks: str = "all"
    batch_size: int = 16384
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3
    idempotent: bool = False
    client_id: str = "installment-ledger"

    @classmethod
    def from_kafka_config(cls, config: KafkaConfig, **overrides: Any) -> "ProducerConfig":
        """Build from the environment-level ``KafkaConfig``."""
        values: dict[str, Any] = {
            "bootstrap_servers": config.bootstrap_servers,
            "acks": config.acks,
            "batch_size": config.batch_size,
            "linger_ms": config.linger_ms,
            "compression": config.compression,
            "retries": config.retries,
        }
        values.update(overrides)
        return cls(**values)

    def to_producer_conf(self) -> dict[str, Any]:
        """librdkafka settings for ``confluent_kafka.Producer``."""
        conf: dict[str, Any] = {
            "bootstrap.servers": self.bootstrap_servers,
            "client.id": self.client_id,
            "acks": self.acks,
            "retries": self.retries,
            "linger.ms": self.linger_ms,
            "batch.size": self.batch_size,
            "compression.type": self.compression,
        }
        if self.idempotent:
            # librdkafka requires acks=all for idempotent delivery
            conf["enable.idempotence"] = True
            conf["acks"] = "all"
        return conf


# Audit entries go out one at a time, at most once per entry
AUDIT = ProducerConfig(
    bootstrap_servers="localhost:9092",
    acks="all",
    batch_size=1,
    linger_ms=0,
    idempotent=True,
)

# Bulk snapshot export
BULK = ProducerConfig(
    bootstrap_servers="localhost:9092",
    acks="1",
    batch_size=65536,
    linger_ms=50,
)


@dataclass
class ProducerStats:
    """Delivery counts, overall and per topic."""

    sent: int = 0
    delivered: int = 0
    failed: int = 0
    by_topic: dict[str, int] = field(default_factory=dict)

    @property
    def in_flight(self) -> int:
        """Messages produced but not yet acknowledged either way."""
        return max(0, self.sent - self.delivered - self.failed)

    @property
    def success_rate(self) -> float:
        settled = self.delivered + self.failed
        return self.delivered / settled if settled else 0.0


class KafkaSink:
    """Publish ledger records to Kafka topics as JSON.

    Topics are ``<prefix>.<record set>`` (``ledger.payments``,
    ``ledger.audit-log``); the record set decides which field keys the
    message, so all events of one contract or manager land on one partition.
    """

    KEY_FIELDS = {
        "audit-log": "entity_id",
        "customers": "customer_id",
        "contracts": "contract_id",
        "payments": "contract_id",
        "debtors": "contract_id",
        "balances": "manager_id",
        "expenses": "manager_id",
        "receipts": "contract_id",
    }

    def __init__(self, config: ProducerConfig | str) -> None:
        """Create the underlying producer.

        Parameters
        ----------
        config : ProducerConfig | str
            Full producer settings, or just the bootstrap servers.
        """
        self.config = ProducerConfig(bootstrap_servers=config) if isinstance(config, str) else config
        self.producer = Producer(self.config.to_producer_conf())
        self.stats = ProducerStats()

    def __enter__(self) -> "KafkaSink":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _delivery_callback(self, err: Any, msg: Any) -> None:
        if err:
            self.stats.failed += 1
            logger.error("Delivery to %s failed: %s", msg.topic(), err)
        else:
            self.stats.delivered += 1
            logger.debug("Delivered to %s[%d]@%d", msg.topic(), msg.partition(), msg.offset())

    def _get_key(self, topic: str, record: Any) -> str | None:
        """Key for ``record`` from the field its record set is partitioned by."""
        key_field = self.KEY_FIELDS.get(topic.rsplit(".", 1)[-1])
        if key_field is None:
            return None
        if isinstance(record, dict):
            value = record.get(key_field)
        elif is_dataclass(record):
            value = getattr(record, key_field, None)
        else:
            return None
        return str(value) if value is not None else None

    def send(self, topic: str, record: Any, key: str | None = None) -> None:
        """Produce one record; raises ``SinkError`` if the client refuses it."""
        value = json.dumps(to_dict(record), ensure_ascii=False).encode("utf-8")
        if key is None:
            key = self._get_key(topic, record)

        try:
            self.producer.produce(
                topic=topic,
                key=key.encode("utf-8") if key else None,
                value=value,
                headers=[("record-type", type(record).__name__.encode("utf-8"))],
                on_delivery=self._delivery_callback,
            )
        except (BufferError, KafkaException) as e:
            self.stats.failed += 1
            raise SinkError(f"Failed to produce to {topic}: {e}") from e

        self.stats.sent += 1
        self.stats.by_topic[topic] = self.stats.by_topic.get(topic, 0) + 1
        self.producer.poll(0)

    def write_batch(self, topic: str, records: list[Any]) -> None:
        """Produce every record to ``topic`` and wait for delivery."""
        for record in records:
            self.send(topic, record)
        self.flush()
        logger.info("Published %d record(s) to %s", len(records), topic)

    def flush(self, timeout: float = 30.0) -> int:
        """Wait for outstanding deliveries; returns how many are still queued."""
        remaining = self.producer.flush(timeout)
        if remaining:
            logger.warning("%d message(s) still queued after flush", remaining)
        return remaining

    def close(self) -> None:
        """Flush and report delivery counts."""
        self.flush()
        logger.info(
            "Kafka sink closed: %d sent, %d delivered, %d failed, per topic %s",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
            self.stats.by_topic,
        )
