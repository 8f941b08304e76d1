"""Best-effort audit trail for ledger mutations."""

import logging
from typing import Any

from installment_ledger.clock import Clock
from installment_ledger.models import AuditAction, AuditChange, AuditEntity, AuditLogEntry
from installment_ledger.store import LedgerStore

logger = logging.getLogger(__name__)


def diff_changes(before: dict[str, Any], after: dict[str, Any]) -> list[AuditChange]:
    """Build change triples for the keys whose values differ."""
    return [
        AuditChange(field=key, old_value=before.get(key), new_value=after.get(key))
        for key in after
        if before.get(key) != after.get(key)
    ]


class AuditRecorder:
    """Append audit entries to the store and optionally publish them.

    Write and publish failures are logged and swallowed; they never undo the
    mutation being recorded.

    Parameters
    ----------
    store : LedgerStore
        Store holding the append-only audit log.
    clock : Clock
        Source of entry timestamps.
    publisher : KafkaSink | None
        Optional sink with a ``send(topic, record, key)`` method.
    topic : str
        Topic audit entries are published to.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock,
        publisher: Any | None = None,
        topic: str = "ledger.audit-log",
    ) -> None:
        self.store = store
        self.clock = clock
        self.publisher = publisher
        self.topic = topic

    def record(
        self,
        action: AuditAction,
        entity: AuditEntity,
        entity_id: str,
        user_id: str,
        changes: list[AuditChange] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditLogEntry | None:
        """Write one audit entry; returns ``None`` if the write failed."""
        try:
            entry = AuditLogEntry(
                entry_id=self.store.next_id("audit"),
                action=action,
                entity=entity,
                entity_id=entity_id,
                user_id=user_id,
                timestamp=self.clock.now(),
                changes=list(changes or []),
                metadata=dict(metadata or {}),
            )
            self.store.append_audit(entry)
        except Exception:
            logger.exception("Audit write failed: %s %s %s", action.value, entity.value, entity_id)
            return None

        if self.publisher is not None:
            try:
                self.publisher.send(self.topic, entry, key=entity_id)
            except Exception:
                logger.exception("Audit publish failed for entry %s", entry.entry_id)

        logger.debug("Audit %s %s %s by %s", action.value, entity.value, entity_id, user_id)
        return entry
