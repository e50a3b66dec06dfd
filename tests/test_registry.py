"""Tests for the multi-process registry and version store."""

from __future__ import annotations

import json

import pytest

from procside.models import ProcessRegistry, ProcessUpdate, Step
from procside.reducer import apply_update
from procside.registry import INITIAL_VERSION_REASON, ProcessRegistryStore, generate_process_id


class TestGenerateProcessId:
    @pytest.mark.parametrize(
        ("existing", "expected"),
        [
            ([], "proc-001"),
            (["proc-001", "proc-002"], "proc-003"),
            (["proc-001", "proc-005"], "proc-006"),
            (["custom-id", "proc-001"], "proc-002"),
            (["proc-999"], "proc-1000"),
            (["proc-1", "proc-abc"], "proc-001"),
        ],
    )
    def test_ids(self, existing: list[str], expected: str) -> None:
        assert generate_process_id(existing) == expected


class TestCreate:
    def test_create_registers_and_activates(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("Login", "Users can log in")
        assert proc.id == "proc-001"
        assert proc.status == "planned"
        assert proc.steps == [] and proc.decisions == [] and proc.risks == [] and proc.evidence == []
        registry = store.load_registry()
        assert registry.active_process_id == "proc-001"
        assert [m.id for m in registry.processes] == ["proc-001"]
        assert store.get_active_process() is not None

    def test_create_records_exactly_one_snapshot(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("Login", "Goal")
        versions = store.list_versions(proc.id)
        assert len(versions) == 1
        assert versions[0].version == 1
        assert versions[0].reason == INITIAL_VERSION_REASON

    def test_template_steps_in_first_snapshot(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("T", "G", "bugfix", steps=[Step(id="s1", name="Reproduce")])
        snapshot = store.load_version(proc.id, 1)
        assert snapshot is not None
        assert [s.name for s in snapshot.process.steps] == ["Reproduce"]
        assert store.load_registry().processes[0].template == "bugfix"

    def test_second_process_becomes_active(self, store: ProcessRegistryStore) -> None:
        store.create_process("A", "G")
        second = store.create_process("B", "G")
        assert second.id == "proc-002"
        assert store.load_registry().active_process_id == "proc-002"


class TestActivePointer:
    def test_switch(self, store: ProcessRegistryStore) -> None:
        store.create_process("A", "G")
        store.create_process("B", "G")
        assert store.set_active_process("proc-001") is True
        active = store.get_active_process()
        assert active is not None and active.id == "proc-001"

    def test_switch_unknown(self, store: ProcessRegistryStore) -> None:
        store.create_process("A", "G")
        assert store.set_active_process("proc-404") is False
        assert store.load_registry().active_process_id == "proc-001"

    def test_dangling_pointer_is_none(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("A", "G")
        store.process_path(proc.id).unlink()
        assert store.get_active_process() is None

    def test_empty_registry(self, store: ProcessRegistryStore) -> None:
        assert store.get_active_process() is None
        assert store.list_processes() == []


class TestArchive:
    def test_archive_active_moves_pointer(self, store: ProcessRegistryStore) -> None:
        store.create_process("A", "G")
        store.create_process("B", "G")
        assert store.archive_process("proc-002") is True
        registry = store.load_registry()
        assert registry.active_process_id == "proc-001"
        meta = registry.find("proc-002")
        assert meta is not None and meta.archived and meta.archived_at

    def test_archive_last_clears_pointer(self, store: ProcessRegistryStore) -> None:
        store.create_process("A", "G")
        store.archive_process("proc-001")
        assert store.load_registry().active_process_id is None
        assert store.get_active_process() is None

    def test_archive_inactive_keeps_pointer(self, store: ProcessRegistryStore) -> None:
        store.create_process("A", "G")
        store.create_process("B", "G")
        store.archive_process("proc-001")
        assert store.load_registry().active_process_id == "proc-002"

    def test_restore_does_not_reactivate(self, store: ProcessRegistryStore) -> None:
        store.create_process("A", "G")
        store.create_process("B", "G")
        store.archive_process("proc-002")
        assert store.restore_process("proc-002") is True
        registry = store.load_registry()
        assert registry.active_process_id == "proc-001"
        meta = registry.find("proc-002")
        assert meta is not None and not meta.archived and meta.archived_at is None

    def test_unknown_ids(self, store: ProcessRegistryStore) -> None:
        assert store.archive_process("proc-404") is False
        assert store.restore_process("proc-404") is False

    def test_listing_filters(self, store: ProcessRegistryStore) -> None:
        store.create_process("A", "G")
        store.create_process("B", "G")
        store.archive_process("proc-001")
        assert [m.id for m in store.list_processes()] == ["proc-001", "proc-002"]
        assert [m.id for m in store.list_active_processes()] == ["proc-002"]


class TestMeta:
    def test_meta_is_a_cache_until_synced(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("A", "G")
        proc.steps = [Step(id="s1", name="One", status="completed"), Step(id="s2", name="Two")]
        store.save_process(proc)
        assert store.load_registry().processes[0].progress == 0
        meta = store.update_process_meta(proc)
        assert meta.progress == 50
        assert store.load_registry().processes[0].progress == 50

    def test_update_meta_keeps_registry_owned_fields(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("A", "G")
        store.set_tags(proc.id, ["auth", "auth", "web"])
        store.archive_process(proc.id)
        proc.name = "Renamed"
        meta = store.update_process_meta(proc)
        assert meta.name == "Renamed"
        assert meta.tags == ["auth", "web"]
        assert meta.archived is True

    def test_update_meta_appends_missing(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("A", "G")
        store.save_registry(ProcessRegistry())
        store.update_process_meta(proc)
        assert [m.id for m in store.load_registry().processes] == [proc.id]

    def test_progress_rounds_half_up(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("A", "G")
        proc.steps = [Step(id=f"s{i}", name=str(i)) for i in range(8)]
        proc.steps[0].status = "completed"
        # 1/8 = 12.5 -> 13
        assert store.update_process_meta(proc).progress == 13

    def test_persist_snapshots_with_reason(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("A", "G")
        apply_update(proc, ProcessUpdate(action="process_start", status="in_progress"))
        assert store.persist(proc) is None
        assert store.persist(proc, "checkpoint") == 2
        assert store.load_registry().processes[0].status == "in_progress"


class TestVersions:
    def test_numbering_is_per_process(self, store: ProcessRegistryStore) -> None:
        a = store.create_process("A", "G")
        b = store.create_process("B", "G")
        assert store.create_version_snapshot(a, "x") == 2
        assert store.create_version_snapshot(a, "y") == 3
        assert store.create_version_snapshot(b, "z") == 2
        assert [v.version for v in store.list_versions(a.id)] == [1, 2, 3]

    def test_snapshot_is_immutable_copy(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("A", "G")
        proc.name = "Changed"
        store.save_process(proc)
        snapshot = store.load_version(proc.id, 1)
        assert snapshot is not None and snapshot.process.name == "A"

    def test_load_missing_version(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("A", "G")
        assert store.load_version(proc.id, 7) is None
        assert store.load_version("../escape", 1) is None
        assert store.list_versions("proc-404") == []

    def test_numbering_never_reuses_after_gap(self, store: ProcessRegistryStore) -> None:
        proc = store.create_process("A", "G")
        store.create_version_snapshot(proc, "two")
        (store.version_dir(proc.id) / "v1.json").unlink()
        assert store.create_version_snapshot(proc, "three") == 3


class TestRobustness:
    def test_corrupt_registry_is_empty(self, store: ProcessRegistryStore) -> None:
        store.artifact_dir.mkdir(parents=True)
        store.registry_path.write_text("{nope")
        assert store.load_registry().processes == []

    def test_non_dict_registry_is_empty(self, store: ProcessRegistryStore) -> None:
        store.artifact_dir.mkdir(parents=True)
        store.registry_path.write_text("[1, 2]")
        assert store.load_registry().active_process_id is None

    def test_unsafe_process_id_rejected(self, store: ProcessRegistryStore) -> None:
        assert store.load_process("../../etc/passwd") is None
        proc = store.create_process("A", "G")
        proc.id = "../evil"
        with pytest.raises(ValueError, match="Invalid process id"):
            store.save_process(proc)

    def test_registry_json_shape(self, store: ProcessRegistryStore) -> None:
        store.create_process("A", "G")
        data = json.loads(store.registry_path.read_text())
        assert data["version"] == 1
        assert data["activeProcessId"] == "proc-001"
        assert data["processes"][0]["progress"] == 0

    def test_lock_is_reentrant(self, store: ProcessRegistryStore) -> None:
        with store.locked(), store.locked():
            store.create_process("A", "G")
        assert store.load_registry().active_process_id == "proc-001"

    def test_record_template_use(self, store: ProcessRegistryStore) -> None:
        store.record_template_use("bugfix", "Bug Fix", "builtin")
        entry = store.record_template_use("bugfix", "Bug Fix", "builtin")
        assert entry.usage_count == 2
        (saved,) = store.load_registry().templates
        assert saved.usage_count == 2 and saved.last_used
