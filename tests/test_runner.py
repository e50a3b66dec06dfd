"""Tests for driving the pipeline from agent output."""

from __future__ import annotations

from pathlib import Path

from procside.models import ProcessUpdate
from procside.registry import ProcessRegistryStore
from procside.runner import (
    DEFAULT_PROCESS_NAME,
    apply_text,
    ensure_active_process,
    record_update,
    run_agent,
)
from procside.store import load_history

NARRATION = """\
Starting work.
[PROCESS_UPDATE]
action: step_add
step:
  id: s1
  name: Implement
[/PROCESS_UPDATE]
Now doing it.
[PROCESS_UPDATE]
action: step_start
step_id: s1
[/PROCESS_UPDATE]
[PROCESS_UPDATE]
action: step_complete
step_id: s1
outputs:
  - app.py
[/PROCESS_UPDATE]
Finished.
"""


def _write_narration(tmp_path: Path, text: str = NARRATION) -> None:
    (tmp_path / "narration.txt").write_text(text)


class TestEnsureActive:
    def test_creates_default_process(self, store: ProcessRegistryStore) -> None:
        proc = ensure_active_process(store)
        assert proc.name == DEFAULT_PROCESS_NAME
        assert proc.status == "in_progress"
        assert store.load_registry().processes[0].status == "in_progress"

    def test_reuses_active(self, store: ProcessRegistryStore) -> None:
        existing = store.create_process("Mine", "G")
        assert ensure_active_process(store).id == existing.id
        assert len(store.list_processes()) == 1


class TestApplyText:
    def test_applies_blocks_and_snapshots(self, store: ProcessRegistryStore) -> None:
        store.create_process("P", "G")
        proc, updates = apply_text(store, NARRATION)
        assert len(updates) == 3
        step = proc.get_step("s1")
        assert step is not None
        assert step.status == "completed"
        assert step.outputs == ["app.py"]

        saved = store.load_process(proc.id)
        assert saved is not None and saved.steps[0].status == "completed"
        assert store.load_registry().processes[0].progress == 100
        assert [v.version for v in store.list_versions(proc.id)] == [1, 2]

    def test_history_has_raw_blocks(self, store: ProcessRegistryStore) -> None:
        store.create_process("P", "G")
        apply_text(store, NARRATION)
        entries = load_history(store.artifact_dir)
        assert [e["type"] for e in entries] == ["step_add", "step_start", "step_complete"]
        assert entries[1]["raw"] == "action: step_start\nstep_id: s1"
        assert all(e["processId"] == "proc-001" for e in entries)

    def test_no_blocks_no_snapshot(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("P", "G")
        _, updates = apply_text(store, "nothing structured here")
        assert updates == []
        assert len(store.list_versions(proc.id)) == 1

    def test_routes_by_process_id(self, store: ProcessRegistryStore) -> None:
        first = store.create_process("First", "G")
        store.create_process("Second", "G")
        text = "[PROCESS_UPDATE]\nprocess_id: proc-001\naction: process_start\nstatus: blocked\n[/PROCESS_UPDATE]"
        active, _ = apply_text(store, text)
        assert active.id == "proc-002"
        assert active.status == "planned"
        routed = store.load_process(first.id)
        assert routed is not None and routed.status == "blocked"

    def test_unknown_process_id_goes_to_active(self, store: ProcessRegistryStore) -> None:
        store.create_process("Only", "G")
        text = "[PROCESS_UPDATE]\nprocess_id: proc-404\naction: process_start\nstatus: blocked\n[/PROCESS_UPDATE]"
        active, _ = apply_text(store, text)
        assert active.status == "blocked"


class TestRecordUpdate:
    def test_persists_and_logs(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("P", "G")
        record_update(store, proc, ProcessUpdate(action="decision", decision={"question": "Q", "choice": "A"}))
        saved = store.load_process(proc.id)
        assert saved is not None and saved.decisions[0].choice == "A"
        assert load_history(store.artifact_dir)[0]["type"] == "decision"


class TestRunAgent:
    def test_captures_updates_from_stdout(self, tmp_path: Path, store: ProcessRegistryStore) -> None:
        _write_narration(tmp_path)
        seen: list[str] = []
        result = run_agent("cat narration.txt", store, cwd=tmp_path, on_update=lambda u: seen.append(u.action or ""))
        assert result.exit_code == 0
        assert len(result.updates) == 3
        assert seen == ["step_add", "step_start", "step_complete"]
        assert "Finished." in result.output

        proc = store.load_process(result.process_id)
        assert proc is not None
        assert proc.name == DEFAULT_PROCESS_NAME
        assert proc.steps[0].outputs == ["app.py"]

    def test_auto_evidence_and_final_snapshot(self, tmp_path: Path, store: ProcessRegistryStore) -> None:
        _write_narration(tmp_path)
        result = run_agent("cat narration.txt", store, cwd=tmp_path)
        proc = store.load_process(result.process_id)
        assert proc is not None
        assert [(e.type, e.value) for e in proc.evidence] == [("command", "cat narration.txt")]
        versions = store.list_versions(result.process_id)
        assert versions[-1].reason == "Agent run completed (3 updates)"

    def test_auto_evidence_off(self, tmp_path: Path, store: ProcessRegistryStore) -> None:
        _write_narration(tmp_path)
        result = run_agent("cat narration.txt", store, cwd=tmp_path, auto_evidence=False)
        proc = store.load_process(result.process_id)
        assert proc is not None and proc.evidence == []

    def test_nonzero_exit_keeps_applied_updates(self, tmp_path: Path, store: ProcessRegistryStore) -> None:
        _write_narration(tmp_path)
        result = run_agent("cat narration.txt; exit 3", store, cwd=tmp_path)
        assert result.exit_code == 3
        proc = store.load_process(result.process_id)
        assert proc is not None and proc.steps[0].status == "completed"

    def test_unterminated_block_discarded(self, tmp_path: Path, store: ProcessRegistryStore) -> None:
        _write_narration(tmp_path, "[PROCESS_UPDATE]\naction: step_add\nstep:\n  name: Never\n")
        result = run_agent("cat narration.txt", store, cwd=tmp_path, auto_evidence=False)
        assert result.updates == []
        assert len(store.list_versions(result.process_id)) == 1

    def test_output_callback(self, tmp_path: Path, store: ProcessRegistryStore) -> None:
        _write_narration(tmp_path, "hello\nworld\n")
        chunks: list[str] = []
        run_agent("cat narration.txt", store, cwd=tmp_path, on_output=chunks.append)
        assert "".join(chunks) == "hello\nworld\n"
