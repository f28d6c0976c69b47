"""
Progress record storage.

The coordinator receives a store handle instead of touching files
directly. JsonProgressStore keeps one JSON document per domain plus an
append-only events log:

  <state_dir>/progress/<domain>.json
  <state_dir>/progress/<domain>.events.jsonl

MemoryProgressStore holds the same data in a dict for tests and dry runs.
Both refuse a save that would shrink or rewrite an append-only list.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Optional

from storyloop.lib.errors import StoryloopError
from storyloop.lib.validate import validate_before_write, validate_file
from storyloop.progress.record import ProgressRecord, now_iso

logger = logging.getLogger(__name__)

APPEND_ONLY_FIELDS = ("blockers", "notes", "signals")


class AppendOnlyViolation(StoryloopError):
    """A save would remove or rewrite existing log entries."""

    def __init__(self, domain: str, field_name: str):
        self.domain = domain
        self.field_name = field_name
        super().__init__(f"Progress record '{domain}': {field_name} is append-only")


def check_append_only(previous: Optional[dict], current: dict) -> None:
    """Raise AppendOnlyViolation unless every log list extends the old one."""
    if previous is None:
        return
    for name in APPEND_ONLY_FIELDS:
        old = previous.get(name, [])
        new = current.get(name, [])
        if new[:len(old)] != old:
            raise AppendOnlyViolation(current["domain"], name)


class ProgressStore:
    """Interface for progress record persistence."""

    def exists(self, domain: str) -> bool:
        raise NotImplementedError

    def load(self, domain: str) -> ProgressRecord:
        """Return the domain's record, or a fresh unsaved one."""
        raise NotImplementedError

    def save(self, record: ProgressRecord) -> None:
        raise NotImplementedError

    def append_event(self, domain: str, event: dict) -> None:
        raise NotImplementedError


class MemoryProgressStore(ProgressStore):
    """In-process store. Records are deep-copied on load and save."""

    def __init__(self):
        self._records: dict[str, dict] = {}
        self.events: dict[str, list[dict]] = {}

    def exists(self, domain: str) -> bool:
        return domain in self._records

    def load(self, domain: str) -> ProgressRecord:
        if domain not in self._records:
            return ProgressRecord(domain=domain)
        return ProgressRecord.from_dict(copy.deepcopy(self._records[domain]))

    def save(self, record: ProgressRecord) -> None:
        data = record.to_dict()
        check_append_only(self._records.get(record.domain), data)
        self._records[record.domain] = copy.deepcopy(data)

    def append_event(self, domain: str, event: dict) -> None:
        self.events.setdefault(domain, []).append({"timestamp": now_iso(), **event})


class JsonProgressStore(ProgressStore):
    """File-backed store, one writer per domain."""

    def __init__(self, progress_dir: Path):
        self.progress_dir = Path(progress_dir)

    def _record_path(self, domain: str) -> Path:
        return self.progress_dir / f"{domain}.json"

    def _events_path(self, domain: str) -> Path:
        return self.progress_dir / f"{domain}.events.jsonl"

    def exists(self, domain: str) -> bool:
        return self._record_path(domain).exists()

    def _read(self, domain: str) -> Optional[dict]:
        path = self._record_path(domain)
        if not path.exists():
            return None
        return validate_file(path, "progress")

    def load(self, domain: str) -> ProgressRecord:
        data = self._read(domain)
        if data is None:
            return ProgressRecord(domain=domain)
        return ProgressRecord.from_dict(data)

    def save(self, record: ProgressRecord) -> None:
        path = self._record_path(record.domain)
        data = record.to_dict()
        validate_before_write(data, "progress", path)
        check_append_only(self._read(record.domain), data)

        self.progress_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(data, indent=2) + "\n")
        os.replace(tmp_path, path)

    def append_event(self, domain: str, event: dict) -> None:
        self.progress_dir.mkdir(parents=True, exist_ok=True)
        line = json.dumps({"timestamp": now_iso(), **event})
        with open(self._events_path(domain), "a") as f:
            f.write(line + "\n")
            f.flush()

    def load_events(self, domain: str) -> list[dict]:
        """Read the events log. Skips corrupted lines."""
        path = self._events_path(domain)
        if not path.exists():
            return []

        events = []
        for line_num, line in enumerate(path.read_text().splitlines(), 1):
            if not line.strip():
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping corrupted event line {line_num} in {path}: {e}")
        return events
