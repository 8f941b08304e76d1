"""Audit log models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from installment_ledger.models.enums import AuditAction, AuditEntity


@dataclass(frozen=True)
class AuditChange:
    field: str
    old_value: Any
    new_value: Any


@dataclass
class AuditLogEntry:
    """Append-only record of one mutation."""

    entry_id: str
    action: AuditAction
    entity: AuditEntity
    entity_id: str
    user_id: str
    timestamp: datetime
    changes: list[AuditChange] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
