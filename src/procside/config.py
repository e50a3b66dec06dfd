"""Project configuration.

Settings come from, in order of precedence: ``PROCSIDE_*`` environment
variables, ``.procside.json`` in the project root, and built-in defaults.
Unreadable files and invalid environment values fall back silently (with a
warning in the log) rather than failing the command.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Literal, NotRequired, TypedDict

from procside.core import CONFIG_FILENAME, write_json

logger = logging.getLogger(__name__)

Environment = Literal["development", "production"]
LogLevel = Literal["debug", "info", "warn", "error"]
OutputFormat = Literal["md", "mermaid", "all"]
Severity = Literal["error", "warning"]


class QualityGateConfig(TypedDict):
    id: str
    enabled: bool
    severity: NotRequired[Severity]


class QualityGatesConfig(TypedDict):
    enabled: bool
    failOnWarning: bool
    gates: list[QualityGateConfig]


class ProcsideConfig(TypedDict):
    """Shape of .procside.json."""

    environment: Environment
    artifactDir: str
    logLevel: LogLevel
    silent: bool
    defaultFormat: OutputFormat
    autoEvidence: bool
    qualityGates: QualityGatesConfig


DEFAULT_CONFIG: ProcsideConfig = {
    "environment": "development",
    "artifactDir": ".ai",
    "logLevel": "info",
    "silent": False,
    "defaultFormat": "all",
    "autoEvidence": True,
    "qualityGates": {
        "enabled": True,
        "failOnWarning": False,
        "gates": [
            {"id": "has_steps", "enabled": True},
            {"id": "all_steps_completed", "enabled": False},
            {"id": "has_evidence", "enabled": True},
            {"id": "has_decisions", "enabled": False},
            {"id": "no_pending_missing", "enabled": True},
            {"id": "has_rollback", "enabled": False},
            {"id": "has_validation", "enabled": False},
        ],
    },
}

ENV_VAR_MAP: dict[str, str] = {
    "PROCSIDE_ENV": "environment",
    "PROCSIDE_ARTIFACT_DIR": "artifactDir",
    "PROCSIDE_LOG_LEVEL": "logLevel",
    "PROCSIDE_SILENT": "silent",
    "PROCSIDE_DEFAULT_FORMAT": "defaultFormat",
    "PROCSIDE_AUTO_EVIDENCE": "autoEvidence",
}

_CHOICES: dict[str, frozenset[str]] = {
    "environment": frozenset({"development", "production"}),
    "logLevel": frozenset({"debug", "info", "warn", "error"}),
    "defaultFormat": frozenset({"md", "mermaid", "all"}),
}
_BOOL_KEYS = frozenset({"silent", "autoEvidence"})


def get_config_path(project_root: Path) -> Path:
    return project_root / CONFIG_FILENAME


def config_exists(project_root: Path) -> bool:
    return get_config_path(project_root).exists()


def _read_config_file(project_root: Path) -> dict[str, Any]:
    config_path = get_config_path(project_root)
    if not config_path.exists():
        return {}
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file %s is not a JSON object, using defaults", config_path)
        return {}
    return data


def _read_env_config(environ: dict[str, str] | None = None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    config: dict[str, Any] = {}
    for var, key in ENV_VAR_MAP.items():
        value = env.get(var)
        if value is None:
            continue
        if key in _BOOL_KEYS:
            config[key] = value.lower() == "true"
        elif key in _CHOICES:
            if value in _CHOICES[key]:
                config[key] = value
            else:
                logger.warning("Ignoring invalid %s=%r", var, value)
        else:
            config[key] = value
    return config


def read_config(project_root: Path, environ: dict[str, str] | None = None) -> ProcsideConfig:
    """Merge defaults, .procside.json and environment overrides."""
    file_config = _read_config_file(project_root)
    env_config = _read_env_config(environ)

    merged: dict[str, Any] = copy.deepcopy(dict(DEFAULT_CONFIG))
    merged.update({k: v for k, v in file_config.items() if k != "qualityGates"})
    merged.update(env_config)

    gates = file_config.get("qualityGates")
    if isinstance(gates, dict):
        merged["qualityGates"] = {**merged["qualityGates"], **gates}
    return merged  # type: ignore[return-value]


def write_config(project_root: Path, config: dict[str, Any] | ProcsideConfig) -> Path:
    """Write .procside.json and return its path."""
    config_path = get_config_path(project_root)
    write_json(config_path, config)
    return config_path


def create_config(project_root: Path, environment: Environment | None = None) -> bool:
    """Write a config file with defaults. Returns False if one already exists."""
    if config_exists(project_root):
        return False
    config: dict[str, Any] = copy.deepcopy(dict(DEFAULT_CONFIG))
    if environment is not None:
        config["environment"] = environment
    write_config(project_root, config)
    return True


def set_config_value(project_root: Path, key: str, raw: str) -> ProcsideConfig:
    """Set one top-level key in .procside.json ("true"/"false" become booleans)."""
    config = _read_config_file(project_root) or copy.deepcopy(dict(DEFAULT_CONFIG))
    value: Any = raw
    if raw in ("true", "false"):
        value = raw == "true"
    config[key] = value
    write_config(project_root, config)
    return read_config(project_root)


def artifact_dir_for(project_root: Path, config: ProcsideConfig | None = None) -> Path:
    cfg = config if config is not None else read_config(project_root)
    artifact = Path(cfg.get("artifactDir") or DEFAULT_CONFIG["artifactDir"])
    return artifact if artifact.is_absolute() else project_root / artifact
