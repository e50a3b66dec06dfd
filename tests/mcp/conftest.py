"""Fixtures for MCP server tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from procside.core import ARTIFACT_DIR_NAME
from procside.models import Step
from procside.registry import ProcessRegistryStore


@pytest.fixture
def mcp_store(tmp_path: Path) -> Generator[ProcessRegistryStore, None, None]:
    """Set up an empty registry store and patch the MCP module globals."""
    s = ProcessRegistryStore(tmp_path / ARTIFACT_DIR_NAME)

    import procside.mcp_server as mcp_mod

    original_store = mcp_mod.store
    original_root = mcp_mod._project_root
    mcp_mod.store = s
    mcp_mod._project_root = tmp_path

    yield s

    mcp_mod.store = original_store
    mcp_mod._project_root = original_root


@pytest.fixture
def mcp_active(mcp_store: ProcessRegistryStore) -> ProcessRegistryStore:
    """Store with one active process holding a single pending step s1."""
    mcp_store.create_process("Add login", "Users can log in", steps=[Step(id="s1", name="Design")])
    return mcp_store
