"""Shared constants and file helpers for procside storage.

Convention-based layout: each project has an artifact directory (``.ai/`` by
default) holding the registry index, one JSON document per process, a
directory of numbered version snapshots, and an append-only interaction log.
"""

from __future__ import annotations

import contextlib
import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

ARTIFACT_DIR_NAME = ".ai"
REGISTRY_FILENAME = "registry.json"
REGISTRY_LOCK_FILENAME = "registry.lock"
PROCESSES_DIRNAME = "processes"
VERSIONS_DIRNAME = "versions"
LEGACY_PROCESS_FILENAME = "process.json"
HISTORY_FILENAME = "history.jsonl"
CONFIG_FILENAME = ".procside.json"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _not_before(previous: str | None) -> str:
    """Return the current time, or *previous* if the clock went backwards."""
    now = _now_iso()
    if not previous:
        return now
    try:
        prev_dt = datetime.fromisoformat(previous)
        now_dt = datetime.fromisoformat(now)
        if prev_dt.tzinfo is None:
            prev_dt = prev_dt.replace(tzinfo=UTC)
    except ValueError:
        return now
    return previous if prev_dt > now_dt else now


def find_artifact_dir(start: Path | None = None, dirname: str = ARTIFACT_DIR_NAME) -> Path:
    """Walk up from start (default cwd) looking for an artifact directory.

    Returns the artifact directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / dirname
        if candidate.is_dir():
            return candidate
    msg = f"No {dirname}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def write_atomic(path: Path, content: str) -> None:
    """Write content to path atomically via temp file + os.replace()."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


def write_json(path: Path, data: Any) -> None:
    write_atomic(path, json.dumps(data, indent=2, default=str) + "\n")
