"""Foundational TypedDicts for dataclass to_dict() returns.

Keys are camelCase to match the on-disk documents.
"""

from __future__ import annotations

from typing import Any, NewType, NotRequired, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class StepDict(TypedDict):
    id: str
    name: str
    description: NotRequired[str]
    inputs: list[str]
    outputs: list[str]
    checks: list[str]
    status: str
    startedAt: NotRequired[ISOTimestamp]
    completedAt: NotRequired[ISOTimestamp]


class DecisionDict(TypedDict):
    id: str
    question: str
    choice: str
    rationale: str
    options: NotRequired[list[str]]
    timestamp: ISOTimestamp


class RiskDict(TypedDict):
    id: str
    risk: str
    impact: str
    mitigation: str
    status: str
    identifiedAt: ISOTimestamp


class EvidenceDict(TypedDict):
    type: str
    value: str
    timestamp: ISOTimestamp
    stepId: NotRequired[str]


class ProcessDict(TypedDict):
    id: str
    name: str
    goal: str
    status: str
    template: NotRequired[str]
    steps: list[StepDict]
    decisions: list[DecisionDict]
    risks: list[RiskDict]
    evidence: list[EvidenceDict]
    createdAt: ISOTimestamp
    updatedAt: ISOTimestamp


class ProcessMetaDict(TypedDict):
    id: str
    name: str
    goal: str
    status: str
    template: NotRequired[str]
    createdAt: ISOTimestamp
    updatedAt: ISOTimestamp
    progress: int
    tags: list[str]
    archived: bool
    archivedAt: NotRequired[ISOTimestamp]


class TemplateMetaDict(TypedDict):
    id: str
    name: str
    source: str
    path: NotRequired[str]
    lastUsed: ISOTimestamp
    usageCount: int


class RegistryDict(TypedDict):
    version: int
    activeProcessId: str | None
    processes: list[ProcessMetaDict]
    templates: list[TemplateMetaDict]


class ProcessVersionDict(TypedDict):
    version: int
    snapshotAt: ISOTimestamp
    reason: str
    process: ProcessDict


class HistoryEntryDict(TypedDict):
    timestamp: ISOTimestamp
    type: str
    data: dict[str, Any]
    processId: NotRequired[str]
    raw: NotRequired[str]
