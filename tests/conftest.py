"""Shared pytest fixtures for procside tests."""

from __future__ import annotations

import logging
import os
from collections.abc import Generator
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest
from click.testing import CliRunner

from procside.core import ARTIFACT_DIR_NAME
from procside.models import Process, Step
from procside.registry import ProcessRegistryStore


@pytest.fixture(autouse=True)
def _reset_procside_logger() -> Generator[None, None, None]:
    """Drop file handlers that setup_logging attached during a test."""
    yield
    logger = logging.getLogger("procside")
    for h in logger.handlers[:]:
        if isinstance(h, RotatingFileHandler):
            logger.removeHandler(h)
            h.close()


@pytest.fixture
def artifact_dir(tmp_path: Path) -> Path:
    return tmp_path / ARTIFACT_DIR_NAME


@pytest.fixture
def store(artifact_dir: Path) -> ProcessRegistryStore:
    """Registry store over an empty artifact dir."""
    return ProcessRegistryStore(artifact_dir)


@pytest.fixture
def process_with_steps() -> Process:
    """In-memory process with three pending steps s1..s3."""
    return Process(
        id="proc-001",
        name="Add login",
        goal="Users can log in",
        status="in_progress",
        steps=[
            Step(id="s1", name="Design"),
            Step(id="s2", name="Implement"),
            Step(id="s3", name="Test login flow"),
        ],
        created_at="2026-01-01T00:00:00+00:00",
        updated_at="2026-01-01T00:00:00+00:00",
    )


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def project_root(tmp_path: Path) -> Generator[Path, None, None]:
    """tmp_path as cwd, with PROCSIDE_* variables cleared."""
    original_cwd = os.getcwd()
    saved = {k: os.environ.pop(k) for k in list(os.environ) if k.startswith("PROCSIDE_")}
    os.chdir(str(tmp_path))
    yield tmp_path
    os.chdir(original_cwd)
    os.environ.update(saved)
