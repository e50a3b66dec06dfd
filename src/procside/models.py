"""Process data model: steps, decisions, risks, evidence, and registry records.

Dataclasses are the in-memory form; ``to_dict()`` produces the camelCase
documents persisted under the artifact directory and ``from_dict()`` reads
them back tolerantly (unknown keys ignored, missing keys defaulted).
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import Any, Literal

from procside.core import _now_iso
from procside.types import (
    DecisionDict,
    EvidenceDict,
    ProcessDict,
    ProcessMetaDict,
    ProcessVersionDict,
    RegistryDict,
    RiskDict,
    StepDict,
    TemplateMetaDict,
)

# ---------------------------------------------------------------------------
# Constrained-string Literal types
# ---------------------------------------------------------------------------

ProcessStatus = Literal["planned", "in_progress", "blocked", "completed", "cancelled"]
StepStatus = Literal["pending", "in_progress", "completed", "skipped", "failed"]
RiskImpact = Literal["low", "medium", "high"]
RiskStatus = Literal["identified", "mitigating", "mitigated", "accepted"]
EvidenceType = Literal["command", "file", "url", "note"]
TemplateSource = Literal["builtin", "local", "remote"]

PROCESS_STATUSES: frozenset[str] = frozenset({"planned", "in_progress", "blocked", "completed", "cancelled"})
STEP_STATUSES: frozenset[str] = frozenset({"pending", "in_progress", "completed", "skipped", "failed"})
RISK_IMPACTS: frozenset[str] = frozenset({"low", "medium", "high"})
RISK_STATUSES: frozenset[str] = frozenset({"identified", "mitigating", "mitigated", "accepted"})
EVIDENCE_TYPES: frozenset[str] = frozenset({"command", "file", "url", "note"})

REGISTRY_FORMAT_VERSION = 1


def _str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def _dict_list(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


# ---------------------------------------------------------------------------
# Process document
# ---------------------------------------------------------------------------


@dataclass
class Step:
    id: str
    name: str
    description: str | None = None
    inputs: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    checks: list[str] = field(default_factory=list)
    status: StepStatus = "pending"
    started_at: str | None = None
    completed_at: str | None = None

    def to_dict(self) -> StepDict:
        data = StepDict(
            id=self.id,
            name=self.name,
            inputs=list(self.inputs),
            outputs=list(self.outputs),
            checks=list(self.checks),
            status=self.status,
        )
        if self.description is not None:
            data["description"] = self.description
        if self.started_at:
            data["startedAt"] = self.started_at  # type: ignore[typeddict-item]
        if self.completed_at:
            data["completedAt"] = self.completed_at  # type: ignore[typeddict-item]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Step:
        status = _str(data.get("status"), "pending")
        return cls(
            id=_str(data.get("id")),
            name=_str(data.get("name")),
            description=data.get("description") if isinstance(data.get("description"), str) else None,
            inputs=_str_list(data.get("inputs")),
            outputs=_str_list(data.get("outputs")),
            checks=_str_list(data.get("checks")),
            status=status if status in STEP_STATUSES else "pending",  # type: ignore[arg-type]
            started_at=_opt_str(data.get("startedAt")),
            completed_at=_opt_str(data.get("completedAt")),
        )


@dataclass
class Decision:
    id: str
    question: str
    choice: str
    rationale: str = ""
    options: list[str] | None = None
    timestamp: str = ""

    def to_dict(self) -> DecisionDict:
        data = DecisionDict(
            id=self.id,
            question=self.question,
            choice=self.choice,
            rationale=self.rationale,
            timestamp=self.timestamp,  # type: ignore[typeddict-item]
        )
        if self.options is not None:
            data["options"] = list(self.options)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Decision:
        options = data.get("options")
        return cls(
            id=_str(data.get("id")),
            question=_str(data.get("question")),
            choice=_str(data.get("choice")),
            rationale=_str(data.get("rationale")),
            options=_str_list(options) if isinstance(options, list) else None,
            timestamp=_str(data.get("timestamp")),
        )


@dataclass
class Risk:
    id: str
    risk: str
    impact: RiskImpact = "medium"
    mitigation: str = ""
    status: RiskStatus = "identified"
    identified_at: str = ""

    def to_dict(self) -> RiskDict:
        return RiskDict(
            id=self.id,
            risk=self.risk,
            impact=self.impact,
            mitigation=self.mitigation,
            status=self.status,
            identifiedAt=self.identified_at,  # type: ignore[typeddict-item]
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Risk:
        impact = _str(data.get("impact"), "medium")
        status = _str(data.get("status"), "identified")
        return cls(
            id=_str(data.get("id")),
            risk=_str(data.get("risk")),
            impact=impact if impact in RISK_IMPACTS else "medium",  # type: ignore[arg-type]
            mitigation=_str(data.get("mitigation")),
            status=status if status in RISK_STATUSES else "identified",  # type: ignore[arg-type]
            identified_at=_str(data.get("identifiedAt")),
        )


@dataclass
class Evidence:
    type: EvidenceType
    value: str = ""
    timestamp: str = ""
    step_id: str | None = None

    def to_dict(self) -> EvidenceDict:
        data = EvidenceDict(type=self.type, value=self.value, timestamp=self.timestamp)  # type: ignore[typeddict-item]
        if self.step_id:
            data["stepId"] = self.step_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Evidence:
        ev_type = _str(data.get("type"), "note")
        return cls(
            type=ev_type if ev_type in EVIDENCE_TYPES else "note",  # type: ignore[arg-type]
            value=_str(data.get("value")),
            timestamp=_str(data.get("timestamp")),
            step_id=_opt_str(data.get("stepId")),
        )


@dataclass
class Process:
    id: str
    name: str
    goal: str
    status: ProcessStatus = "planned"
    template: str | None = None
    steps: list[Step] = field(default_factory=list)
    decisions: list[Decision] = field(default_factory=list)
    risks: list[Risk] = field(default_factory=list)
    evidence: list[Evidence] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def get_step(self, step_id: str | None) -> Step | None:
        if not step_id:
            return None
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def completed_steps(self) -> int:
        return sum(1 for s in self.steps if s.status == "completed")

    def to_dict(self) -> ProcessDict:
        data = ProcessDict(
            id=self.id,
            name=self.name,
            goal=self.goal,
            status=self.status,
            steps=[s.to_dict() for s in self.steps],
            decisions=[d.to_dict() for d in self.decisions],
            risks=[r.to_dict() for r in self.risks],
            evidence=[e.to_dict() for e in self.evidence],
            createdAt=self.created_at,  # type: ignore[typeddict-item]
            updatedAt=self.updated_at,  # type: ignore[typeddict-item]
        )
        if self.template:
            data["template"] = self.template
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Process:
        status = _str(data.get("status"), "planned")
        return cls(
            id=_str(data.get("id")),
            name=_str(data.get("name")),
            goal=_str(data.get("goal")),
            status=status if status in PROCESS_STATUSES else "planned",  # type: ignore[arg-type]
            template=_opt_str(data.get("template")),
            steps=[Step.from_dict(s) for s in _dict_list(data.get("steps"))],
            decisions=[Decision.from_dict(d) for d in _dict_list(data.get("decisions"))],
            risks=[Risk.from_dict(r) for r in _dict_list(data.get("risks"))],
            evidence=[Evidence.from_dict(e) for e in _dict_list(data.get("evidence"))],
            created_at=_str(data.get("createdAt")),
            updated_at=_str(data.get("updatedAt")),
        )

    def copy(self) -> Process:
        return copy.deepcopy(self)


def create_process(id: str, name: str, goal: str, template: str | None = None) -> Process:
    """Build a fresh process in ``planned`` status with empty collections."""
    now = _now_iso()
    return Process(id=id, name=name, goal=goal, template=template, created_at=now, updated_at=now)


# ---------------------------------------------------------------------------
# Decoded update
# ---------------------------------------------------------------------------


@dataclass
class ProcessUpdate:
    """One decoded update block.

    ``action`` is the raw tag from the block (None when absent); the reducer
    classifies it. ``decision``, ``risk`` and ``step`` hold partial records
    keyed by their wire names.
    """

    action: str | None = None
    process_id: str | None = None
    step_id: str | None = None
    status: str | None = None
    outputs: list[str] | None = None
    evidence: list[Evidence] | None = None
    decision: dict[str, Any] | None = None
    risk: dict[str, Any] | None = None
    step: dict[str, Any] | None = None
    missing: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the interaction log, omitting absent fields."""
        data: dict[str, Any] = {"action": self.action or "process_update"}
        if self.process_id:
            data["processId"] = self.process_id
        if self.step_id:
            data["stepId"] = self.step_id
        if self.status:
            data["status"] = self.status
        if self.outputs is not None:
            data["outputs"] = list(self.outputs)
        if self.evidence is not None:
            data["evidence"] = [e.to_dict() for e in self.evidence]
        if self.decision is not None:
            data["decision"] = copy.deepcopy(self.decision)
        if self.risk is not None:
            data["risk"] = dict(self.risk)
        if self.step is not None:
            data["step"] = copy.deepcopy(self.step)
        if self.missing is not None:
            data["missing"] = list(self.missing)
        return data


# ---------------------------------------------------------------------------
# Registry records
# ---------------------------------------------------------------------------


def compute_progress(completed: int, total: int) -> int:
    """Percentage of completed steps, rounded half-up; 0 when there are no steps."""
    if total <= 0:
        return 0
    return math.floor(100 * completed / total + 0.5)


@dataclass
class ProcessMeta:
    id: str
    name: str
    goal: str
    status: str = "planned"
    template: str | None = None
    created_at: str = ""
    updated_at: str = ""
    progress: int = 0
    tags: list[str] = field(default_factory=list)
    archived: bool = False
    archived_at: str | None = None

    @classmethod
    def from_process(cls, proc: Process) -> ProcessMeta:
        """Derive a fresh summary; registry-owned fields start at their defaults."""
        return cls(
            id=proc.id,
            name=proc.name,
            goal=proc.goal,
            status=proc.status,
            template=proc.template,
            created_at=proc.created_at,
            updated_at=proc.updated_at,
            progress=compute_progress(proc.completed_steps, len(proc.steps)),
        )

    def to_dict(self) -> ProcessMetaDict:
        data = ProcessMetaDict(
            id=self.id,
            name=self.name,
            goal=self.goal,
            status=self.status,
            createdAt=self.created_at,  # type: ignore[typeddict-item]
            updatedAt=self.updated_at,  # type: ignore[typeddict-item]
            progress=self.progress,
            tags=list(self.tags),
            archived=self.archived,
        )
        if self.template:
            data["template"] = self.template
        if self.archived_at:
            data["archivedAt"] = self.archived_at  # type: ignore[typeddict-item]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProcessMeta:
        progress = data.get("progress", 0)
        return cls(
            id=_str(data.get("id")),
            name=_str(data.get("name")),
            goal=_str(data.get("goal")),
            status=_str(data.get("status"), "planned"),
            template=_opt_str(data.get("template")),
            created_at=_str(data.get("createdAt")),
            updated_at=_str(data.get("updatedAt")),
            progress=progress if isinstance(progress, int) else 0,
            tags=_str_list(data.get("tags")),
            archived=bool(data.get("archived", False)),
            archived_at=_opt_str(data.get("archivedAt")),
        )


@dataclass
class TemplateMeta:
    id: str
    name: str
    source: TemplateSource = "builtin"
    path: str | None = None
    last_used: str = ""
    usage_count: int = 0

    def to_dict(self) -> TemplateMetaDict:
        data = TemplateMetaDict(
            id=self.id,
            name=self.name,
            source=self.source,
            lastUsed=self.last_used,  # type: ignore[typeddict-item]
            usageCount=self.usage_count,
        )
        if self.path:
            data["path"] = self.path
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TemplateMeta:
        count = data.get("usageCount", 0)
        return cls(
            id=_str(data.get("id")),
            name=_str(data.get("name")),
            source=_str(data.get("source"), "builtin"),  # type: ignore[arg-type]
            path=_opt_str(data.get("path")),
            last_used=_str(data.get("lastUsed")),
            usage_count=count if isinstance(count, int) else 0,
        )


@dataclass
class ProcessRegistry:
    version: int = REGISTRY_FORMAT_VERSION
    active_process_id: str | None = None
    processes: list[ProcessMeta] = field(default_factory=list)
    templates: list[TemplateMeta] = field(default_factory=list)

    def find(self, process_id: str) -> ProcessMeta | None:
        for meta in self.processes:
            if meta.id == process_id:
                return meta
        return None

    def to_dict(self) -> RegistryDict:
        return RegistryDict(
            version=self.version,
            activeProcessId=self.active_process_id,
            processes=[p.to_dict() for p in self.processes],
            templates=[t.to_dict() for t in self.templates],
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProcessRegistry:
        version = data.get("version", REGISTRY_FORMAT_VERSION)
        return cls(
            version=version if isinstance(version, int) else REGISTRY_FORMAT_VERSION,
            active_process_id=_opt_str(data.get("activeProcessId")),
            processes=[ProcessMeta.from_dict(p) for p in _dict_list(data.get("processes"))],
            templates=[TemplateMeta.from_dict(t) for t in _dict_list(data.get("templates"))],
        )


@dataclass(frozen=True)
class ProcessVersion:
    """Immutable snapshot of a process at a point in time."""

    version: int
    snapshot_at: str
    reason: str
    process: Process

    def to_dict(self) -> ProcessVersionDict:
        return ProcessVersionDict(
            version=self.version,
            snapshotAt=self.snapshot_at,  # type: ignore[typeddict-item]
            reason=self.reason,
            process=self.process.to_dict(),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProcessVersion:
        version = data.get("version", 0)
        process = data.get("process")
        return cls(
            version=version if isinstance(version, int) else 0,
            snapshot_at=_str(data.get("snapshotAt")),
            reason=_str(data.get("reason")),
            process=Process.from_dict(process if isinstance(process, dict) else {}),
        )
