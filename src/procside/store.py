"""Single-process document store and the append-only interaction log.

The single-process layout (``<artifact_dir>/process.json``) predates the
registry and is kept as the migration input and for callers that only ever
track one process. The interaction log (``history.jsonl``) records every
update applied by the pipeline, one JSON object per line.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from procside.core import HISTORY_FILENAME, LEGACY_PROCESS_FILENAME, _not_before, _now_iso, write_json
from procside.models import Process, ProcessUpdate, create_process
from procside.types import HistoryEntryDict

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Legacy single-process document
# ---------------------------------------------------------------------------


def get_process_path(artifact_dir: Path) -> Path:
    return artifact_dir / LEGACY_PROCESS_FILENAME


def process_exists(artifact_dir: Path) -> bool:
    return get_process_path(artifact_dir).exists()


def read_process_file(path: Path) -> Process | None:
    """Read a process document. Returns None if missing or unreadable JSON."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.warning("Corrupt process document %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Process document %s is not a JSON object, ignoring", path)
        return None
    return Process.from_dict(data)


def load_process(artifact_dir: Path) -> Process | None:
    return read_process_file(get_process_path(artifact_dir))


def save_process(proc: Process, artifact_dir: Path) -> None:
    """Write the single-process document, refreshing ``updated_at``."""
    proc.updated_at = _not_before(proc.updated_at)
    write_json(get_process_path(artifact_dir), proc.to_dict())


def init_process(id: str, name: str, goal: str, artifact_dir: Path, template: str | None = None) -> Process:
    proc = create_process(id, name, goal, template)
    save_process(proc, artifact_dir)
    return proc


# ---------------------------------------------------------------------------
# Interaction log
# ---------------------------------------------------------------------------


def get_history_path(artifact_dir: Path) -> Path:
    return artifact_dir / HISTORY_FILENAME


def append_history(
    artifact_dir: Path,
    update: ProcessUpdate,
    *,
    process_id: str | None = None,
    raw: str | None = None,
) -> HistoryEntryDict:
    """Append one applied update to the interaction log and return the entry."""
    entry = HistoryEntryDict(
        timestamp=_now_iso(),  # type: ignore[typeddict-item]
        type=update.action or "process_update",
        data=update.to_dict(),
    )
    if process_id:
        entry["processId"] = process_id
    if raw is not None:
        entry["raw"] = raw
    path = get_history_path(artifact_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(json.dumps(entry, default=str) + "\n")
    return entry


def load_history(artifact_dir: Path, limit: int | None = None) -> list[dict[str, Any]]:
    """Return logged entries oldest-first; *limit* keeps only the most recent N."""
    path = get_history_path(artifact_dir)
    if not path.exists():
        return []
    entries: list[dict[str, Any]] = []
    with path.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, 1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt history line %d in %s", lineno, path)
                continue
            if isinstance(record, dict):
                entries.append(record)
    if limit is not None:
        return entries[-limit:] if limit > 0 else []
    return entries


def clear_history(artifact_dir: Path) -> bool:
    path = get_history_path(artifact_dir)
    if not path.exists():
        return False
    path.unlink()
    return True
