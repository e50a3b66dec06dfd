"""Built-in process template definitions.

Logic lives in templates.py; this file is pure data. Each template is a
JSON-compatible dict with the same shape as a local ``templates/<id>.json``.
"""

from __future__ import annotations

from typing import Any

_FEATURE_ADD: dict[str, Any] = {
    "id": "feature-add",
    "name": "Feature Addition",
    "description": "Add a new feature end to end: design, implement, test, document",
    "steps": [
        {
            "id": "s1",
            "name": "Understand requirements",
            "inputs": ["feature request"],
            "checks": ["acceptance criteria written down"],
        },
        {
            "id": "s2",
            "name": "Design the change",
            "inputs": ["requirements"],
            "outputs": ["design notes"],
            "checks": ["affected modules identified"],
        },
        {
            "id": "s3",
            "name": "Implement",
            "checks": ["code compiles", "no unrelated changes"],
        },
        {
            "id": "s4",
            "name": "Test and validate",
            "checks": ["new tests pass", "existing tests pass"],
        },
        {
            "id": "s5",
            "name": "Document",
            "checks": ["user-facing docs updated"],
        },
        {
            "id": "s6",
            "name": "Rollback plan",
            "checks": ["feature can be disabled or reverted"],
        },
    ],
    "risks": [
        {
            "id": "r1",
            "risk": "Scope creep beyond the original request",
            "impact": "medium",
            "mitigation": "Confirm scope before implementing",
        },
        {
            "id": "r2",
            "risk": "Regression in existing behaviour",
            "impact": "high",
            "mitigation": "Run the full test suite before completion",
        },
    ],
}

_BUGFIX: dict[str, Any] = {
    "id": "bugfix",
    "name": "Bug Fix",
    "description": "Reproduce, diagnose, fix and verify a defect",
    "steps": [
        {"id": "s1", "name": "Reproduce the bug", "checks": ["reliable reproduction recorded"]},
        {"id": "s2", "name": "Find the root cause", "outputs": ["root cause notes"]},
        {"id": "s3", "name": "Implement the fix", "checks": ["fix is minimal"]},
        {"id": "s4", "name": "Verify with a regression test", "checks": ["test fails before, passes after"]},
        {"id": "s5", "name": "Rollback plan", "checks": ["revert commit identified"]},
    ],
    "risks": [
        {
            "id": "r1",
            "risk": "Fix treats a symptom rather than the cause",
            "impact": "medium",
            "mitigation": "Document the root cause before fixing",
        },
    ],
}

_REFACTOR: dict[str, Any] = {
    "id": "refactor",
    "name": "Refactor",
    "description": "Restructure code without changing behaviour",
    "steps": [
        {"id": "s1", "name": "Capture current behaviour with tests", "checks": ["coverage of touched code"]},
        {"id": "s2", "name": "Refactor in small steps", "checks": ["tests green after each step"]},
        {"id": "s3", "name": "Validate behaviour unchanged", "checks": ["full test suite passes"]},
        {"id": "s4", "name": "Revert plan", "checks": ["each step is independently revertable"]},
    ],
    "risks": [
        {
            "id": "r1",
            "risk": "Behaviour change hidden by missing tests",
            "impact": "high",
            "mitigation": "Add characterization tests first",
        },
    ],
}

_SPIKE: dict[str, Any] = {
    "id": "spike",
    "name": "Spike",
    "description": "Time-boxed investigation that ends in a decision",
    "steps": [
        {"id": "s1", "name": "Frame the question", "outputs": ["question statement"]},
        {"id": "s2", "name": "Explore options"},
        {"id": "s3", "name": "Record the decision", "checks": ["decision logged with rationale"]},
    ],
    "risks": [
        {
            "id": "r1",
            "risk": "Investigation overruns its time box",
            "impact": "low",
            "mitigation": "Decide with the evidence available at the deadline",
        },
    ],
}

BUILTIN_TEMPLATES: dict[str, dict[str, Any]] = {
    t["id"]: t for t in (_FEATURE_ADD, _BUGFIX, _REFACTOR, _SPIKE)
}
