"""Migration tests: legacy process.json -> registry layout."""

from __future__ import annotations

from pathlib import Path

from procside.migrate import (
    MIGRATED_PROCESS_ID,
    MIGRATION_REASON,
    ensure_migrated,
    migrate_from_single_process,
    needs_migration,
)
from procside.models import Step
from procside.registry import ProcessRegistryStore
from procside.store import get_process_path, init_process, save_process


def _legacy_with_half_progress(artifact_dir: Path) -> None:
    proc = init_process("main", "Legacy", "Old goal", artifact_dir)
    proc.steps = [Step(id="s1", name="One", status="completed"), Step(id="s2", name="Two")]
    save_process(proc, artifact_dir)


class TestMigration:
    def test_needs_migration(self, artifact_dir: Path) -> None:
        assert needs_migration(artifact_dir) is False
        _legacy_with_half_progress(artifact_dir)
        assert needs_migration(artifact_dir) is True

    def test_migrates_to_proc_001(self, artifact_dir: Path) -> None:
        _legacy_with_half_progress(artifact_dir)
        assert migrate_from_single_process(artifact_dir) is True

        store = ProcessRegistryStore(artifact_dir)
        registry = store.load_registry()
        assert registry.active_process_id == MIGRATED_PROCESS_ID
        (meta,) = registry.processes
        assert meta.id == MIGRATED_PROCESS_ID
        assert meta.name == "Legacy"
        assert meta.progress == 50

        proc = store.get_active_process()
        assert proc is not None
        assert [s.id for s in proc.steps] == ["s1", "s2"]

    def test_legacy_file_removed(self, artifact_dir: Path) -> None:
        _legacy_with_half_progress(artifact_dir)
        migrate_from_single_process(artifact_dir)
        assert not get_process_path(artifact_dir).exists()
        assert needs_migration(artifact_dir) is False

    def test_snapshot_recorded(self, artifact_dir: Path) -> None:
        _legacy_with_half_progress(artifact_dir)
        migrate_from_single_process(artifact_dir)
        versions = ProcessRegistryStore(artifact_dir).list_versions(MIGRATED_PROCESS_ID)
        assert [(v.version, v.reason) for v in versions] == [(1, MIGRATION_REASON)]

    def test_registry_present_is_noop(self, artifact_dir: Path) -> None:
        store = ProcessRegistryStore(artifact_dir)
        store.create_process("Existing", "G")
        _legacy_with_half_progress(artifact_dir)
        before = store.registry_path.read_text()

        assert migrate_from_single_process(artifact_dir) is False
        assert get_process_path(artifact_dir).exists()
        assert store.registry_path.read_text() == before

    def test_no_legacy_file(self, artifact_dir: Path) -> None:
        assert migrate_from_single_process(artifact_dir) is False
        assert not artifact_dir.exists()

    def test_unreadable_legacy_file(self, artifact_dir: Path) -> None:
        artifact_dir.mkdir()
        get_process_path(artifact_dir).write_text("not json")
        assert migrate_from_single_process(artifact_dir) is False
        assert not ProcessRegistryStore(artifact_dir).exists()
        assert get_process_path(artifact_dir).exists()

    def test_ensure_migrated(self, artifact_dir: Path) -> None:
        assert ensure_migrated(artifact_dir) is False
        _legacy_with_half_progress(artifact_dir)
        assert ensure_migrated(artifact_dir) is True
        assert ensure_migrated(artifact_dir) is False
