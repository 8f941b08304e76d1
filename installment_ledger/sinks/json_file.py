"""JSON file sink for exporting ledger snapshots."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from installment_ledger.sinks.serialization import to_dict

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


class JsonFileSink:
    """Write each record set to ``<output_dir>/<entity_type>.json``.

    Files are replaced atomically, so a reader never sees a half-written
    snapshot. ``close`` writes ``manifest.json`` with the record counts.
    """

    def __init__(self, output_dir: str | Path, pretty: bool = False) -> None:
        """Initialize JSON file sink.

        Parameters
        ----------
        output_dir : str | Path
            Directory for the snapshot; created if missing.
        pretty : bool
            Indent the output.
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.indent = 2 if pretty else None
        self.counts: dict[str, int] = {}

    def _dump(self, target: Path, payload: Any) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.output_dir, prefix=f".{target.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=self.indent, ensure_ascii=False)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def write_batch(self, entity_type: str, records: list[Any]) -> Path:
        """Serialize ``records`` to ``<entity_type>.json`` and return its path."""
        target = self.output_dir / f"{entity_type}.json"
        self._dump(target, [to_dict(record) for record in records])
        self.counts[entity_type] = len(records)
        logger.debug("Wrote %d %s to %s", len(records), entity_type, target)
        return target

    def close(self) -> None:
        """Write the manifest and log what was exported."""
        self._dump(self.output_dir / MANIFEST_NAME, {"record_counts": self.counts})
        logger.info(
            "JSON snapshot in %s: %s",
            self.output_dir,
            ", ".join(f"{name}={count}" for name, count in self.counts.items()) or "empty",
        )
