"""Process templates: reusable starting sets of steps and risks.

Built-in templates ship in templates_data.py. A project can add or override
templates with ``<project_root>/templates/<id>.json`` files of the same shape.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from procside.core import _now_iso
from procside.models import RISK_IMPACTS, Risk, Step, TemplateSource
from procside.templates_data import BUILTIN_TEMPLATES

logger = logging.getLogger(__name__)

TEMPLATES_DIRNAME = "templates"

_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{0,63}$")


@dataclass(frozen=True)
class ProcessTemplate:
    id: str
    name: str
    description: str = ""
    steps: tuple[dict[str, Any], ...] = field(default_factory=tuple)
    risks: tuple[dict[str, Any], ...] = field(default_factory=tuple)
    source: TemplateSource = "builtin"
    path: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, source: TemplateSource, path: str | None = None) -> ProcessTemplate:
        steps = data.get("steps") or []
        risks = data.get("risks") or []
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name") or data.get("id", "")),
            description=str(data.get("description", "")),
            steps=tuple(s for s in steps if isinstance(s, dict)),
            risks=tuple(r for r in risks if isinstance(r, dict)),
            source=source,
            path=path,
        )

    def build_steps(self) -> list[Step]:
        steps: list[Step] = []
        for i, spec in enumerate(self.steps, 1):
            step = Step.from_dict({**spec, "status": "pending"})
            if not step.id:
                step.id = f"s{i}"
            if not step.name:
                step.name = "Unnamed step"
            steps.append(step)
        return steps

    def build_risks(self) -> list[Risk]:
        now = _now_iso()
        risks: list[Risk] = []
        for i, spec in enumerate(self.risks, 1):
            impact = spec.get("impact", "medium")
            risks.append(
                Risk(
                    id=str(spec.get("id") or f"r{i}"),
                    risk=str(spec.get("risk", "")),
                    impact=impact if impact in RISK_IMPACTS else "medium",
                    mitigation=str(spec.get("mitigation", "")),
                    status="identified",
                    identified_at=now,
                )
            )
        return risks


def _local_dir(project_root: Path | None) -> Path | None:
    if project_root is None:
        return None
    return project_root / TEMPLATES_DIRNAME


def _read_local(path: Path) -> ProcessTemplate | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Skipping unreadable template %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Skipping template %s: not a JSON object", path)
        return None
    data["id"] = path.stem
    return ProcessTemplate.from_dict(data, source="local", path=str(path))


def load_template(template_id: str, project_root: Path | None = None) -> ProcessTemplate | None:
    """Find a template by id, preferring a local file over the built-in."""
    if not _NAME_PATTERN.match(template_id):
        return None
    local_dir = _local_dir(project_root)
    if local_dir is not None:
        candidate = local_dir / f"{template_id}.json"
        if candidate.is_file():
            template = _read_local(candidate)
            if template is not None:
                return template
    data = BUILTIN_TEMPLATES.get(template_id)
    if data is None:
        return None
    return ProcessTemplate.from_dict(data, source="builtin")


def list_templates(project_root: Path | None = None) -> list[ProcessTemplate]:
    """All available templates sorted by id; local files shadow built-ins."""
    found: dict[str, ProcessTemplate] = {
        tid: ProcessTemplate.from_dict(data, source="builtin") for tid, data in BUILTIN_TEMPLATES.items()
    }
    local_dir = _local_dir(project_root)
    if local_dir is not None and local_dir.is_dir():
        for path in sorted(local_dir.glob("*.json")):
            if not _NAME_PATTERN.match(path.stem):
                continue
            template = _read_local(path)
            if template is not None:
                found[path.stem] = template
    return [found[k] for k in sorted(found)]
