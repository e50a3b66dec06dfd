"""Drive the pipeline from agent output.

``run_agent`` spawns the agent command and feeds its combined stdout/stderr,
line by line, through an UpdateStream. Updates decoded from each chunk are
reduced into the target process and persisted before the next chunk is read,
so whatever the agent reported stays durable if it dies part way through.
``apply_text`` does the same for text that is already complete.
"""

from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from procside.core import _now_iso
from procside.models import Evidence, Process, ProcessUpdate
from procside.parser import UpdateStream, extract_update_blocks, parse_update_block
from procside.reducer import apply_update
from procside.registry import ProcessRegistryStore
from procside.store import append_history

logger = logging.getLogger(__name__)

DEFAULT_PROCESS_NAME = "Main Process"
DEFAULT_PROCESS_GOAL = "Document the AI agent workflow"


@dataclass
class RunResult:
    exit_code: int
    process_id: str
    updates: list[ProcessUpdate] = field(default_factory=list)
    output: str = ""
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, object]:
        return {
            "exitCode": self.exit_code,
            "processId": self.process_id,
            "updates": [u.to_dict() for u in self.updates],
            "durationMs": self.duration_ms,
        }


def ensure_active_process(store: ProcessRegistryStore) -> Process:
    """Return the active process, creating the default one if there is none."""
    proc = store.get_active_process()
    if proc is not None:
        return proc
    logger.info("No active process, creating %r", DEFAULT_PROCESS_NAME)
    proc = store.create_process(DEFAULT_PROCESS_NAME, DEFAULT_PROCESS_GOAL)
    proc.status = "in_progress"
    store.persist(proc)
    return proc


def record_update(store: ProcessRegistryStore, proc: Process, update: ProcessUpdate) -> Process:
    """Apply one update built by a caller (CLI, MCP), log it, and persist."""
    apply_update(proc, update)
    append_history(store.artifact_dir, update, process_id=proc.id)
    store.persist(proc)
    logger.info("Applied update", extra={"action": update.action, "process_id": proc.id})
    return proc


class _Applier:
    """Route decoded blocks to their process and record each in the interaction log.

    Blocks naming a registered ``process_id`` go to that process; all others
    go to the active one. Touched processes are persisted by ``flush()``.
    """

    def __init__(self, store: ProcessRegistryStore, active: Process) -> None:
        self.store = store
        self.active = active
        self.updates: list[ProcessUpdate] = []
        self._loaded: dict[str, Process] = {active.id: active}
        self._dirty: set[str] = set()
        self._touched: set[str] = set()

    def _target(self, update: ProcessUpdate) -> Process:
        pid = update.process_id
        if not pid or pid == self.active.id:
            return self.active
        if pid not in self._loaded:
            other = self.store.load_process(pid)
            if other is None:
                logger.debug("Unknown process_id %r, applying to %s", pid, self.active.id)
                return self.active
            self._loaded[pid] = other
        return self._loaded[pid]

    def apply_block(self, block: str) -> ProcessUpdate:
        update = parse_update_block(block)
        proc = self._target(update)
        apply_update(proc, update)
        append_history(self.store.artifact_dir, update, process_id=proc.id, raw=block)
        logger.info("Applied update", extra={"action": update.action, "process_id": proc.id})
        self.updates.append(update)
        self._dirty.add(proc.id)
        self._touched.add(proc.id)
        return update

    def flush(self) -> None:
        for pid in sorted(self._dirty):
            self.store.persist(self._loaded[pid])
        self._dirty.clear()

    def snapshot(self, reason: str) -> None:
        for pid in sorted(self._touched):
            self.store.create_version_snapshot(self._loaded[pid], reason)


def apply_text(store: ProcessRegistryStore, text: str) -> tuple[Process, list[ProcessUpdate]]:
    """Apply every complete block in *text*; snapshot once if anything applied."""
    applier = _Applier(store, ensure_active_process(store))
    for block in extract_update_blocks(text):
        applier.apply_block(block)
    applier.flush()
    if applier.updates:
        applier.snapshot(f"Applied {len(applier.updates)} update(s)")
    return applier.active, applier.updates


def run_agent(
    command: str,
    store: ProcessRegistryStore,
    *,
    cwd: Path | None = None,
    auto_evidence: bool = True,
    on_output: Callable[[str], None] | None = None,
    on_update: Callable[[ProcessUpdate], None] | None = None,
) -> RunResult:
    """Run *command* through the shell and capture its process updates.

    stderr is merged into stdout so narration on either stream is seen.
    OSError from spawning propagates.
    """
    start = time.monotonic()
    applier = _Applier(store, ensure_active_process(store))
    stream = UpdateStream()
    output: list[str] = []

    logger.info("Running agent command: %s", command, extra={"process_id": applier.active.id})
    with subprocess.Popen(
        command,
        shell=True,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        encoding="utf-8",
        errors="replace",
    ) as child:
        assert child.stdout is not None
        for chunk in child.stdout:
            output.append(chunk)
            if on_output is not None:
                on_output(chunk)
            blocks = stream.feed_blocks(chunk)
            for block in blocks:
                update = applier.apply_block(block)
                if on_update is not None:
                    on_update(update)
            if blocks:
                applier.flush()
        exit_code = child.wait()

    if stream.pending:
        logger.warning("Agent output ended inside an unterminated update block; discarding it")
    stream.flush()

    if auto_evidence:
        applier.active.evidence.append(
            Evidence(type="command", value=command, timestamp=_now_iso())
        )
        applier.store.persist(applier.active)

    if applier.updates:
        applier.snapshot(f"Agent run completed ({len(applier.updates)} updates)")

    duration_ms = round((time.monotonic() - start) * 1000, 1)
    logger.info(
        "Agent command exited with %d, %d update(s) captured",
        exit_code,
        len(applier.updates),
        extra={"duration_ms": duration_ms, "process_id": applier.active.id},
    )
    return RunResult(
        exit_code=exit_code,
        process_id=applier.active.id,
        updates=applier.updates,
        output="".join(output),
        duration_ms=duration_ms,
    )
