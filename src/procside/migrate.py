"""Migrate the single-process layout into the registry layout.

One-time conversion: the legacy ``process.json`` becomes ``proc-001`` in the
registry, gets its summary and an initial snapshot, is made active, and the
legacy file is removed. A registry that already exists always wins; the
legacy file is then left alone.
"""

from __future__ import annotations

import logging
from pathlib import Path

from procside.models import ProcessMeta, ProcessRegistry
from procside.registry import ProcessRegistryStore
from procside.store import get_process_path, read_process_file

logger = logging.getLogger(__name__)

MIGRATED_PROCESS_ID = "proc-001"
MIGRATION_REASON = "Migrated from single-process format"


def needs_migration(artifact_dir: Path) -> bool:
    return get_process_path(artifact_dir).exists() and not ProcessRegistryStore(artifact_dir).exists()


def migrate_from_single_process(artifact_dir: Path) -> bool:
    """Convert the legacy document. Returns False when there is nothing to migrate."""
    legacy_path = get_process_path(artifact_dir)
    store = ProcessRegistryStore(artifact_dir)
    if not legacy_path.exists():
        return False

    with store.locked():
        if not legacy_path.exists() or store.exists():
            return False

        proc = read_process_file(legacy_path)
        if proc is None:
            logger.warning("Legacy process document %s is unreadable, not migrating", legacy_path)
            return False

        proc.id = MIGRATED_PROCESS_ID
        store.save_process(proc, touch=False)
        store.save_registry(
            ProcessRegistry(
                active_process_id=MIGRATED_PROCESS_ID,
                processes=[ProcessMeta.from_process(proc)],
            )
        )
        store.create_version_snapshot(proc, MIGRATION_REASON)
        legacy_path.unlink()

    logger.info("Migrated %s to %s", legacy_path, MIGRATED_PROCESS_ID)
    return True


def ensure_migrated(artifact_dir: Path) -> bool:
    """Migrate if the legacy layout is present. Returns True if a migration ran."""
    if not needs_migration(artifact_dir):
        return False
    logger.info("Migrating %s to multi-process format", artifact_dir)
    return migrate_from_single_process(artifact_dir)
