"""Apply decoded updates to a process document.

``apply_update`` is an action-keyed state machine. Each update is first
classified into the closed ``Action`` enum; anything unrecognized, or whose
required payload is absent, or which names a step the process does not have,
is classified as ``Action.NOOP``. Nothing here raises on bad input: the
narrating agent cannot be asked to retry, so the best-effort result is to
keep going. Every application refreshes ``updated_at``.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable

from procside.core import _not_before
from procside.models import (
    EVIDENCE_TYPES,
    PROCESS_STATUSES,
    RISK_IMPACTS,
    STEP_STATUSES,
    Decision,
    Evidence,
    Process,
    ProcessUpdate,
    Risk,
    Step,
)

logger = logging.getLogger(__name__)


class Action(enum.Enum):
    PROCESS_START = "process_start"
    PROCESS_UPDATE = "process_update"
    STEP_ADD = "step_add"
    STEP_START = "step_start"
    STEP_COMPLETE = "step_complete"
    STEP_FAIL = "step_fail"
    DECISION = "decision"
    RISK = "risk"
    MISSING = "missing"
    EVIDENCE = "evidence"
    NOOP = "noop"


_STEP_TRANSITIONS = frozenset({Action.STEP_START, Action.STEP_COMPLETE, Action.STEP_FAIL})


def classify(process: Process, update: ProcessUpdate) -> Action:
    """Map an update onto the action it will actually perform against *process*."""
    try:
        action = Action(update.action)
    except ValueError:
        return Action.NOOP

    if action in (Action.PROCESS_START, Action.PROCESS_UPDATE):
        ok = update.status in PROCESS_STATUSES
    elif action is Action.STEP_ADD:
        ok = update.step is not None
    elif action in _STEP_TRANSITIONS:
        ok = process.get_step(update.step_id) is not None
    elif action is Action.DECISION:
        ok = update.decision is not None
    elif action is Action.RISK:
        ok = update.risk is not None
    elif action is Action.EVIDENCE:
        ok = update.evidence is not None
    else:
        # MISSING carries its list to the interaction log only.
        ok = False
    return action if ok else Action.NOOP


def _next_id(prefix: str, existing: Iterable[str]) -> str:
    taken = set(existing)
    n = len(taken) + 1
    while f"{prefix}{n}" in taken:
        n += 1
    return f"{prefix}{n}"


def _unique_id(requested: object, prefix: str, existing: list[str]) -> str:
    if isinstance(requested, str) and requested and requested not in existing:
        return requested
    if isinstance(requested, str) and requested:
        logger.debug("Duplicate %s id %r, assigning a fresh one", prefix, requested)
    return _next_id(prefix, existing)


def _str_field(record: dict[str, object], key: str, default: str = "") -> str:
    value = record.get(key)
    return value if isinstance(value, str) else default


def _list_field(record: dict[str, object], key: str) -> list[str]:
    value = record.get(key)
    return [str(v) for v in value] if isinstance(value, list) else []


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _set_status(process: Process, update: ProcessUpdate, now: str) -> None:
    process.status = update.status  # type: ignore[assignment]


def _add_step(process: Process, update: ProcessUpdate, now: str) -> None:
    spec = update.step or {}
    status = _str_field(spec, "status", "pending")
    description = spec.get("description")
    process.steps.append(
        Step(
            id=_unique_id(spec.get("id"), "s", [s.id for s in process.steps]),
            name=_str_field(spec, "name") or "Unnamed step",
            description=description if isinstance(description, str) else None,
            inputs=_list_field(spec, "inputs"),
            outputs=_list_field(spec, "outputs"),
            checks=_list_field(spec, "checks"),
            status=status if status in STEP_STATUSES else "pending",  # type: ignore[arg-type]
        )
    )


def _start_step(process: Process, update: ProcessUpdate, now: str) -> None:
    step = process.get_step(update.step_id)
    if step is None:
        return
    step.status = "in_progress"
    step.started_at = now


def _complete_step(process: Process, update: ProcessUpdate, now: str) -> None:
    step = process.get_step(update.step_id)
    if step is None:
        return
    step.status = "completed"
    step.completed_at = now
    if update.outputs:
        step.outputs = [*step.outputs, *update.outputs]


def _fail_step(process: Process, update: ProcessUpdate, now: str) -> None:
    step = process.get_step(update.step_id)
    if step is None:
        return
    step.status = "failed"
    step.completed_at = now


def _add_decision(process: Process, update: ProcessUpdate, now: str) -> None:
    spec = update.decision or {}
    options = spec.get("options")
    process.decisions.append(
        Decision(
            id=_unique_id(spec.get("id"), "d", [d.id for d in process.decisions]),
            question=_str_field(spec, "question"),
            choice=_str_field(spec, "choice"),
            rationale=_str_field(spec, "rationale"),
            options=[str(o) for o in options] if isinstance(options, list) else None,
            timestamp=now,
        )
    )


def _add_risk(process: Process, update: ProcessUpdate, now: str) -> None:
    spec = update.risk or {}
    impact = _str_field(spec, "impact", "medium")
    process.risks.append(
        Risk(
            id=_unique_id(spec.get("id"), "r", [r.id for r in process.risks]),
            risk=_str_field(spec, "risk"),
            impact=impact if impact in RISK_IMPACTS else "medium",  # type: ignore[arg-type]
            mitigation=_str_field(spec, "mitigation"),
            status="identified",
            identified_at=now,
        )
    )


def _add_evidence(process: Process, update: ProcessUpdate, now: str) -> None:
    for ev in update.evidence or []:
        process.evidence.append(
            Evidence(
                type=ev.type if ev.type in EVIDENCE_TYPES else "note",  # type: ignore[arg-type]
                value=ev.value,
                timestamp=ev.timestamp or now,
                step_id=ev.step_id or update.step_id,
            )
        )


def _noop(process: Process, update: ProcessUpdate, now: str) -> None:
    logger.debug("No-op update: action=%s step_id=%s", update.action, update.step_id)


_HANDLERS: dict[Action, Callable[[Process, ProcessUpdate, str], None]] = {
    Action.PROCESS_START: _set_status,
    Action.PROCESS_UPDATE: _set_status,
    Action.STEP_ADD: _add_step,
    Action.STEP_START: _start_step,
    Action.STEP_COMPLETE: _complete_step,
    Action.STEP_FAIL: _fail_step,
    Action.DECISION: _add_decision,
    Action.RISK: _add_risk,
    Action.EVIDENCE: _add_evidence,
    Action.MISSING: _noop,
    Action.NOOP: _noop,
}


def apply_update(process: Process, update: ProcessUpdate) -> Process:
    """Apply *update* to *process* in place and return it."""
    now = _not_before(process.updated_at)
    _HANDLERS[classify(process, update)](process, update, now)
    process.updated_at = now
    return process


def apply_updates(process: Process, updates: Iterable[ProcessUpdate]) -> Process:
    for update in updates:
        apply_update(process, update)
    return process
