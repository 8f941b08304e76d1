"""Shared serialization utilities for sinks."""

import json
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


def to_dict(obj: Any) -> dict:
    """Convert a ledger record to a JSON-ready dictionary."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: serialize_value(getattr(obj, f.name)) for f in fields(obj)}
    elif isinstance(obj, dict):
        return {k: serialize_value(v) for k, v in obj.items()}
    else:
        return {"value": str(obj)}


def serialize_value(value: Any) -> Any:
    """Serialize a value for JSON output.

    Money stays exact as a string; nested records and enums are unwrapped.
    """
    if isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, date):
        return value.isoformat()
    elif is_dataclass(value) and not isinstance(value, type):
        return to_dict(value)
    elif isinstance(value, dict):
        return {str(k): serialize_value(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value


def to_row(record: Any, columns: list[str]) -> tuple:
    """Extract ``columns`` from a record as a database row.

    Scalars keep their Python types for the driver; nested values
    (lists, dicts, dataclasses) become JSON text.
    """
    row = []
    for column in columns:
        if isinstance(record, dict):
            value = record.get(column)
        else:
            value = getattr(record, column, None)

        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, (list, tuple, dict)) or (
            is_dataclass(value) and not isinstance(value, type)
        ):
            value = json.dumps(serialize_value(value), ensure_ascii=False)
        row.append(value)
    return tuple(row)
