"""
Run ledger: append-only history of apply runs.

Every apply run appends one entry to an NDJSON (newline-delimited
JSON) file, by default ``~/.wellwell/runs.ndjson``. Entries are never
modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_DIR = ".wellwell"
DEFAULT_AUDIT_FILE = "runs.ndjson"


class RunEntry(BaseModel):
    """A single ledger entry describing one apply run."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    operation: str = "apply"
    platform: str = ""

    # Results
    status: str = ""               # ok, partial, failed
    units_total: int = 0
    units_succeeded: int = 0
    units_failed: int = 0
    units_skipped: int = 0
    units_changed: int = 0
    duration_ms: int = 0

    units: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    # Extensible context
    context: dict[str, Any] = Field(default_factory=dict)


class AuditWriter:
    """Append-only run ledger writer."""

    def __init__(self, path: Path | None = None, home_dir: Path | None = None):
        if path is not None:
            self._path = path
        else:
            self._path = (home_dir or Path.home()) / DEFAULT_AUDIT_DIR / DEFAULT_AUDIT_FILE

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: RunEntry) -> None:
        """Append an entry to the ledger.

        Ledger failures are logged, never raised: a run that already
        changed the machine must still report its results.
        """
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Run entry written: %s/%s", entry.operation, entry.run_id)
        except OSError as e:
            logger.error("Failed to write run entry to %s: %s", self._path, e)

    def read_all(self) -> list[RunEntry]:
        """Read all entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(RunEntry.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt run entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read run ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[RunEntry]:
        return self.read_all()[-n:]
