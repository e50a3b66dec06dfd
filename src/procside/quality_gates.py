"""Missing-item analysis and configurable quality gates.

Gates are pure checks over a Process; configuration decides which run and
whether a failure counts as an error or a warning.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from procside.config import QualityGatesConfig, Severity
from procside.models import Process

_ROLLBACK_WORDS = ("rollback", "revert")
_VALIDATION_WORDS = ("test", "validat", "verify")


def _has_step_named(proc: Process, words: tuple[str, ...]) -> bool:
    return any(any(w in step.name.lower() for w in words) for step in proc.steps)


def get_missing_items(proc: Process) -> list[str]:
    """Return human-readable gaps in the process documentation."""
    missing: list[str] = []

    if proc.steps and not any(step.outputs for step in proc.steps):
        missing.append("No step outputs documented")
    if not proc.evidence:
        missing.append("No evidence recorded")
    if not proc.decisions and proc.status != "planned":
        missing.append("No decisions logged")
    if not proc.risks and proc.status == "in_progress":
        missing.append("Risk assessment not done")
    if proc.status == "in_progress" and not _has_step_named(proc, _ROLLBACK_WORDS):
        missing.append("No rollback procedure defined")
    if len(proc.steps) > 2 and not _has_step_named(proc, _VALIDATION_WORDS):
        missing.append("No validation/testing step")

    return missing


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QualityGate:
    id: str
    name: str
    description: str
    severity: Severity
    check: Callable[[Process], tuple[bool, str]]


@dataclass(frozen=True)
class GateResult:
    gate: QualityGate
    passed: bool
    message: str
    severity: Severity


@dataclass(frozen=True)
class CheckResult:
    passed: bool
    errors: list[GateResult]
    warnings: list[GateResult]

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1

    def to_dict(self) -> dict[str, object]:
        return {
            "passed": self.passed,
            "errors": [{"id": r.gate.id, "message": r.message} for r in self.errors],
            "warnings": [{"id": r.gate.id, "message": r.message} for r in self.warnings],
            "exitCode": self.exit_code,
        }


def _check_has_steps(proc: Process) -> tuple[bool, str]:
    if proc.steps:
        return True, f"Process has {len(proc.steps)} step(s)"
    return False, "Process has no steps defined"


def _check_all_completed(proc: Process) -> tuple[bool, str]:
    incomplete = [s for s in proc.steps if s.status != "completed"]
    if not incomplete:
        return True, "All steps are completed"
    return False, f"{len(incomplete)} step(s) not completed: {', '.join(s.name for s in incomplete)}"


def _check_has_evidence(proc: Process) -> tuple[bool, str]:
    if proc.evidence:
        return True, f"Process has {len(proc.evidence)} evidence item(s)"
    return False, "No evidence recorded"


def _check_has_decisions(proc: Process) -> tuple[bool, str]:
    if proc.decisions:
        return True, f"Process has {len(proc.decisions)} decision(s)"
    return False, "No decisions logged"


def _check_no_missing(proc: Process) -> tuple[bool, str]:
    missing = get_missing_items(proc)
    if not missing:
        return True, "No missing items detected"
    more = "..." if len(missing) > 3 else ""
    return False, f"{len(missing)} missing item(s): {', '.join(missing[:3])}{more}"


def _check_has_rollback(proc: Process) -> tuple[bool, str]:
    if _has_step_named(proc, _ROLLBACK_WORDS):
        return True, "Rollback step found"
    return False, "No rollback step defined"


def _check_has_validation(proc: Process) -> tuple[bool, str]:
    if _has_step_named(proc, _VALIDATION_WORDS):
        return True, "Validation step found"
    return False, "No validation step defined"


ALL_GATES: tuple[QualityGate, ...] = (
    QualityGate("has_steps", "Has Steps", "Process must have at least one step defined", "error", _check_has_steps),
    QualityGate("all_steps_completed", "All Steps Completed", "All steps must be completed", "error", _check_all_completed),
    QualityGate("has_evidence", "Has Evidence", "Process must have at least one evidence item", "warning", _check_has_evidence),
    QualityGate("has_decisions", "Has Decisions", "Process must have at least one decision logged", "warning", _check_has_decisions),
    QualityGate("no_pending_missing", "No Pending Missing Items", "All missing items should be resolved", "warning", _check_no_missing),
    QualityGate("has_rollback", "Has Rollback Plan", "Process should include a rollback step", "warning", _check_has_rollback),
    QualityGate("has_validation", "Has Validation Step", "Process should include testing/validation", "warning", _check_has_validation),
)

_GATES_BY_ID = {g.id: g for g in ALL_GATES}


def get_gate(gate_id: str) -> QualityGate | None:
    return _GATES_BY_ID.get(gate_id)


def run_gate(proc: Process, gate_id: str) -> GateResult | None:
    gate = get_gate(gate_id)
    if gate is None:
        return None
    passed, message = gate.check(proc)
    return GateResult(gate=gate, passed=passed, message=message, severity=gate.severity)


def run_gates(proc: Process, config: QualityGatesConfig) -> CheckResult:
    """Run every enabled gate and classify failures by (configured) severity."""
    if not config.get("enabled", True):
        return CheckResult(passed=True, errors=[], warnings=[])

    errors: list[GateResult] = []
    warnings: list[GateResult] = []
    for gate_config in config.get("gates", []):
        if not gate_config.get("enabled", False):
            continue
        result = run_gate(proc, gate_config.get("id", ""))
        if result is None or result.passed:
            continue
        severity = gate_config.get("severity") or result.severity
        if severity == "error":
            errors.append(GateResult(result.gate, False, result.message, "error"))
        else:
            warnings.append(GateResult(result.gate, False, result.message, "warning"))

    passed = not errors and (not config.get("failOnWarning", False) or not warnings)
    return CheckResult(passed=passed, errors=errors, warnings=warnings)


def format_check_result(result: CheckResult) -> str:
    lines = ["All quality gates passed" if result.passed else "Quality gates failed"]
    if result.errors:
        lines.append("\nErrors:")
        lines.extend(f"  [{r.gate.id}] {r.message}" for r in result.errors)
    if result.warnings:
        lines.append("\nWarnings:")
        lines.extend(f"  [{r.gate.id}] {r.message}" for r in result.warnings)
    return "\n".join(lines)
