"""Shared CLI helpers.

Provides ``open_project()`` so that ``cli.py`` commands resolve the project
root, configuration, artifact directory and registry store the same way.
"""

from __future__ import annotations

import functools
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import click

from procside.config import ProcsideConfig, artifact_dir_for, read_config
from procside.core import find_artifact_dir
from procside.logging import setup_logging
from procside.migrate import ensure_migrated
from procside.models import Process
from procside.registry import ProcessRegistryStore

F = TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class Project:
    root: Path
    config: ProcsideConfig
    artifact_dir: Path
    store: ProcessRegistryStore


def resolve_project_root(path: str | None) -> Path:
    """Explicit path, else the nearest ancestor holding ``.ai/``, else cwd."""
    if path:
        return Path(path).resolve()
    try:
        return find_artifact_dir().parent
    except FileNotFoundError:
        return Path.cwd()


def open_project(path: str | None, *, create: bool = False, migrate: bool = True) -> Project:
    """Load config, start logging and migrate a legacy layout if present.

    Without *create*, a project with no artifact directory is left untouched
    (nothing is written), so read-only commands never create ``.ai/``.
    """
    root = resolve_project_root(path)
    config = read_config(root)
    artifact_dir = artifact_dir_for(root, config)
    if create or artifact_dir.is_dir():
        setup_logging(artifact_dir, level=config["logLevel"], environment=config["environment"])
        if migrate:
            ensure_migrated(artifact_dir)
    return Project(root=root, config=config, artifact_dir=artifact_dir, store=ProcessRegistryStore(artifact_dir))


def require_active(project: Project) -> Process:
    """Return the active process or exit with a hint."""
    proc = project.store.get_active_process()
    if proc is None:
        click.echo("No active process. Run 'procside init' first.", err=True)
        sys.exit(1)
    return proc


def handle_io_errors(func: F) -> F:
    """Turn I/O failures into ``Error: ...`` on stderr and exit code 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except OSError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    return wrapper  # type: ignore[return-value]
