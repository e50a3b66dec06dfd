"""Multi-process registry and version store.

The registry index (``registry.json``) holds a summary (ProcessMeta) of every
process plus the active-process pointer. Each process document lives in
``processes/<id>.json``; immutable snapshots live in ``versions/<id>/v<n>.json``.

Every operation is a self-contained read/modify/write cycle over whole files.
Registry index updates and snapshot numbering are serialized with an advisory
``fcntl`` lock on ``registry.lock``; process documents themselves are
last-writer-wins.

Summaries are a denormalized cache: they are derived when a process is
created and refreshed only by ``update_process_meta``. Listing never loads
full process documents.
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import re
from collections.abc import Iterable, Iterator
from pathlib import Path

from procside.core import (
    PROCESSES_DIRNAME,
    REGISTRY_FILENAME,
    REGISTRY_LOCK_FILENAME,
    VERSIONS_DIRNAME,
    _not_before,
    _now_iso,
    write_json,
)
from procside.models import (
    Process,
    ProcessMeta,
    ProcessRegistry,
    ProcessVersion,
    Risk,
    Step,
    TemplateMeta,
    TemplateSource,
    create_process,
)
from procside.store import read_process_file

logger = logging.getLogger(__name__)

INITIAL_VERSION_REASON = "Initial process creation"

_PROCESS_ID_RE = re.compile(r"^proc-(\d{3,})$")
_VERSION_FILE_RE = re.compile(r"^v(\d+)\.json$")
# Ids become file names; keep them to a safe character set.
_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def generate_process_id(existing_ids: Iterable[str]) -> str:
    """Return ``proc-<max+1>`` zero-padded to at least 3 digits.

    Ids that do not look like ``proc-NNN`` are ignored when finding the max.
    """
    max_num = 0
    for pid in existing_ids:
        match = _PROCESS_ID_RE.match(pid)
        if match:
            max_num = max(max_num, int(match.group(1)))
    return f"proc-{max_num + 1:03d}"


class ProcessRegistryStore:
    """Read/write the registry, process documents and snapshots under one artifact dir."""

    def __init__(self, artifact_dir: Path) -> None:
        self.artifact_dir = artifact_dir
        self._lock_depth = 0

    # -- Paths ---------------------------------------------------------------

    @property
    def registry_path(self) -> Path:
        return self.artifact_dir / REGISTRY_FILENAME

    @property
    def processes_dir(self) -> Path:
        return self.artifact_dir / PROCESSES_DIRNAME

    @property
    def versions_dir(self) -> Path:
        return self.artifact_dir / VERSIONS_DIRNAME

    def process_path(self, process_id: str) -> Path:
        return self.processes_dir / f"{process_id}.json"

    def version_dir(self, process_id: str) -> Path:
        return self.versions_dir / process_id

    def exists(self) -> bool:
        return self.registry_path.exists()

    # -- Locking -------------------------------------------------------------

    @contextlib.contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the advisory registry lock. Re-entrant within one store instance."""
        if self._lock_depth:
            self._lock_depth += 1
            try:
                yield
            finally:
                self._lock_depth -= 1
            return

        self.artifact_dir.mkdir(parents=True, exist_ok=True)
        lock_fd = open(self.artifact_dir / REGISTRY_LOCK_FILENAME, "w")  # noqa: SIM115
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_EX)
            self._lock_depth = 1
            yield
        finally:
            self._lock_depth = 0
            lock_fd.close()

    # -- Registry index ------------------------------------------------------

    def load_registry(self) -> ProcessRegistry:
        """Read registry.json. Returns an empty registry if missing/corrupt."""
        if not self.registry_path.exists():
            return ProcessRegistry()
        try:
            data = json.loads(self.registry_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.warning("Corrupt registry file %s, returning empty: %s", self.registry_path, exc)
            return ProcessRegistry()
        if not isinstance(data, dict):
            logger.warning("Registry file %s contains non-dict JSON, ignoring", self.registry_path)
            return ProcessRegistry()
        return ProcessRegistry.from_dict(data)

    def save_registry(self, registry: ProcessRegistry) -> None:
        write_json(self.registry_path, registry.to_dict())

    # -- Process documents ---------------------------------------------------

    def load_process(self, process_id: str) -> Process | None:
        if not _SAFE_ID_RE.match(process_id):
            return None
        return read_process_file(self.process_path(process_id))

    def save_process(self, proc: Process, *, touch: bool = True) -> None:
        """Write a process document. *touch* refreshes ``updated_at`` (never backwards)."""
        if not _SAFE_ID_RE.match(proc.id):
            msg = f"Invalid process id: {proc.id!r}"
            raise ValueError(msg)
        if touch:
            proc.updated_at = _not_before(proc.updated_at)
        write_json(self.process_path(proc.id), proc.to_dict())

    def create_process(
        self,
        name: str,
        goal: str,
        template: str | None = None,
        *,
        steps: list[Step] | None = None,
        risks: list[Risk] | None = None,
    ) -> Process:
        """Create, register and activate a new process, then snapshot it as version 1."""
        with self.locked():
            registry = self.load_registry()
            process_id = generate_process_id(p.id for p in registry.processes)
            proc = create_process(process_id, name, goal, template)
            if steps:
                proc.steps = list(steps)
            if risks:
                proc.risks = list(risks)
            self.save_process(proc, touch=False)

            registry.processes.append(ProcessMeta.from_process(proc))
            registry.active_process_id = process_id
            self.save_registry(registry)

            self.create_version_snapshot(proc, INITIAL_VERSION_REASON)
        logger.info("Created process %s (%s)", process_id, name)
        return proc

    def persist(self, proc: Process, reason: str | None = None) -> int | None:
        """Save *proc*, re-sync its summary, and snapshot it when *reason* is given.

        Returns the new version number, or None when no snapshot was taken.
        """
        self.save_process(proc)
        self.update_process_meta(proc)
        if reason is None:
            return None
        return self.create_version_snapshot(proc, reason)

    # -- Active pointer ------------------------------------------------------

    def get_active_process(self) -> Process | None:
        registry = self.load_registry()
        if not registry.active_process_id:
            return None
        return self.load_process(registry.active_process_id)

    def set_active_process(self, process_id: str) -> bool:
        with self.locked():
            registry = self.load_registry()
            if registry.find(process_id) is None:
                return False
            registry.active_process_id = process_id
            self.save_registry(registry)
        return True

    # -- Listing -------------------------------------------------------------

    def list_processes(self, *, include_archived: bool = True) -> list[ProcessMeta]:
        processes = self.load_registry().processes
        if include_archived:
            return processes
        return [p for p in processes if not p.archived]

    def list_active_processes(self) -> list[ProcessMeta]:
        return self.list_processes(include_archived=False)

    # -- Archive / restore ---------------------------------------------------

    def archive_process(self, process_id: str) -> bool:
        """Archive a summary. Archiving the active process moves the pointer on."""
        with self.locked():
            registry = self.load_registry()
            meta = registry.find(process_id)
            if meta is None:
                return False
            meta.archived = True
            meta.archived_at = _now_iso()
            if registry.active_process_id == process_id:
                successor = next((p for p in registry.processes if not p.archived), None)
                registry.active_process_id = successor.id if successor else None
            self.save_registry(registry)
        logger.info("Archived process %s", process_id)
        return True

    def restore_process(self, process_id: str) -> bool:
        """Un-archive a summary. Never changes the active pointer."""
        with self.locked():
            registry = self.load_registry()
            meta = registry.find(process_id)
            if meta is None:
                return False
            meta.archived = False
            meta.archived_at = None
            self.save_registry(registry)
        return True

    # -- Summary sync --------------------------------------------------------

    def update_process_meta(self, proc: Process) -> ProcessMeta:
        """Recompute the summary of *proc*, keeping registry-owned fields."""
        with self.locked():
            registry = self.load_registry()
            meta = ProcessMeta.from_process(proc)
            for i, existing in enumerate(registry.processes):
                if existing.id == proc.id:
                    meta.tags = existing.tags
                    meta.archived = existing.archived
                    meta.archived_at = existing.archived_at
                    registry.processes[i] = meta
                    break
            else:
                registry.processes.append(meta)
            self.save_registry(registry)
        return meta

    def set_tags(self, process_id: str, tags: list[str]) -> bool:
        with self.locked():
            registry = self.load_registry()
            meta = registry.find(process_id)
            if meta is None:
                return False
            meta.tags = list(dict.fromkeys(tags))
            self.save_registry(registry)
        return True

    # -- Templates -----------------------------------------------------------

    def record_template_use(
        self,
        template_id: str,
        name: str,
        source: TemplateSource,
        path: str | None = None,
    ) -> TemplateMeta:
        with self.locked():
            registry = self.load_registry()
            entry = next((t for t in registry.templates if t.id == template_id), None)
            if entry is None:
                entry = TemplateMeta(id=template_id, name=name, source=source, path=path)
                registry.templates.append(entry)
            entry.last_used = _now_iso()
            entry.usage_count += 1
            self.save_registry(registry)
        return entry

    # -- Versions ------------------------------------------------------------

    def _version_numbers(self, process_id: str) -> list[int]:
        vdir = self.version_dir(process_id)
        if not _SAFE_ID_RE.match(process_id) or not vdir.is_dir():
            return []
        numbers = []
        for child in vdir.iterdir():
            match = _VERSION_FILE_RE.match(child.name)
            if match:
                numbers.append(int(match.group(1)))
        return sorted(numbers)

    def create_version_snapshot(self, proc: Process, reason: str) -> int:
        """Write the next immutable snapshot of *proc* and return its version number."""
        with self.locked():
            # Equal to count+1 for an intact history; never reuses a number if a file went missing.
            version = max(self._version_numbers(proc.id), default=0) + 1
            snapshot = ProcessVersion(version=version, snapshot_at=_now_iso(), reason=reason, process=proc.copy())
            write_json(self.version_dir(proc.id) / f"v{version}.json", snapshot.to_dict())
        logger.info("Snapshot %s v%d: %s", proc.id, version, reason)
        return version

    def list_versions(self, process_id: str) -> list[ProcessVersion]:
        versions = []
        for n in self._version_numbers(process_id):
            version = self.load_version(process_id, n)
            if version is not None:
                versions.append(version)
        return versions

    def load_version(self, process_id: str, version: int) -> ProcessVersion | None:
        if not _SAFE_ID_RE.match(process_id):
            return None
        path = self.version_dir(process_id) / f"v{version}.json"
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.warning("Corrupt version snapshot %s: %s", path, exc)
            return None
        if not isinstance(data, dict):
            return None
        return ProcessVersion.from_dict(data)
