"""Human-readable views of a process: markdown report, mermaid flowchart, checklist.

Renderers are pure string builders; ``write_docs`` puts the chosen views under
``<project_root>/docs/``.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from pathlib import Path

from procside.core import write_atomic
from procside.models import Process, Step

logger = logging.getLogger(__name__)

DOCS_DIRNAME = "docs"
MARKDOWN_FILENAME = "process.md"
MERMAID_FILENAME = "process.mmd"
CHECKLIST_FILENAME = "checklist.md"

RENDER_FORMATS = ("md", "mermaid", "checklist", "all")

_STATUS_ICONS = {
    "planned": "📋",
    "in_progress": "🔄",
    "blocked": "🚫",
    "completed": "✅",
    "cancelled": "❌",
    "pending": "⏳",
    "skipped": "⏭️",
    "failed": "❗",
    "identified": "⚠️",
    "mitigating": "🔄",
    "mitigated": "✅",
    "accepted": "👍",
}

_MERMAID_CLASSES = {
    "completed": "completed",
    "in_progress": "inProgress",
    "failed": "failed",
}

# Matches C0/C1 control characters except tab/newline (which we handle separately)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_MERMAID_ID_RE = re.compile(r"[^A-Za-z0-9]")


def _sanitize(text: str, limit: int = 200) -> str:
    """Make agent-supplied text safe for a single markdown table cell or line."""
    text = _CONTROL_CHARS_RE.sub("", text)
    text = text.replace("\r\n", " ").replace("\r", " ").replace("\n", " ")
    text = " ".join(text.split()).replace("|", "\\|")
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return text


def _badge(status: str) -> str:
    icon = _STATUS_ICONS.get(status, "❓")
    return f"{icon} {status.replace('_', ' ').title()}"


def render_markdown(proc: Process, missing: list[str] | None = None) -> str:
    lines: list[str] = [
        f"# Process: {_sanitize(proc.name)}",
        "",
        f"> **Goal:** {_sanitize(proc.goal)}",
        f"> **Status:** {_badge(proc.status)}",
        f"> **ID:** `{proc.id}`",
    ]
    if proc.template:
        lines.append(f"> **Template:** {proc.template}")
    lines.append("")

    if proc.steps:
        lines.append(f"**Progress:** {proc.completed_steps}/{len(proc.steps)} steps completed")
        lines.append("")
        lines.append("## Steps")
        lines.append("")
        lines.append("| # | Step | Status | Inputs | Outputs |")
        lines.append("|---|------|--------|--------|---------|")
        for i, step in enumerate(proc.steps, 1):
            inputs = _sanitize(", ".join(step.inputs)) or "-"
            outputs = _sanitize(", ".join(step.outputs)) or "-"
            icon = _STATUS_ICONS.get(step.status, "❓")
            lines.append(f"| {i} | {_sanitize(step.name)} | {icon} | {inputs} | {outputs} |")
        lines.append("")

    if proc.decisions:
        lines.append("## Decisions")
        lines.append("")
        lines.append("| Decision | Choice | Rationale |")
        lines.append("|----------|--------|-----------|")
        for d in proc.decisions:
            lines.append(f"| {_sanitize(d.question)} | {_sanitize(d.choice)} | {_sanitize(d.rationale, 50)} |")
        lines.append("")

    if proc.risks:
        lines.append("## Risks")
        lines.append("")
        lines.append("| Risk | Impact | Mitigation | Status |")
        lines.append("|------|--------|------------|--------|")
        for r in proc.risks:
            icon = _STATUS_ICONS.get(r.status, "❓")
            lines.append(f"| {_sanitize(r.risk)} | {r.impact} | {_sanitize(r.mitigation, 40)} | {icon} |")
        lines.append("")

    if proc.evidence:
        lines.append("## Evidence")
        lines.append("")
        for e in proc.evidence:
            step_note = f" (step {e.step_id})" if e.step_id else ""
            lines.append(f"- **[{e.type}]** {_sanitize(e.value)}{step_note} _({e.timestamp})_")
        lines.append("")

    if missing:
        lines.append("## What's Missing")
        lines.append("")
        lines.extend(f"- [ ] {m}" for m in missing)
        lines.append("")

    lines.append("---")
    lines.append(f"_Last updated: {datetime.now(UTC).isoformat(timespec='seconds')}_")
    lines.append("")
    return "\n".join(lines)


def _mermaid_id(step: Step) -> str:
    return _MERMAID_ID_RE.sub("_", step.id) or "step"


def _mermaid_label(text: str) -> str:
    return _sanitize(text).replace('"', "'")


def render_mermaid(proc: Process) -> str:
    """Top-down flowchart; solid edges leave completed steps, dotted edges the rest."""
    lines = [
        "flowchart TD",
        "",
        f'  subgraph Process["{_mermaid_label(proc.name)}"]',
        "    direction TB",
        "",
    ]
    if not proc.steps:
        lines.append('    empty["No steps defined"]')
    else:
        for step in proc.steps:
            icon = _STATUS_ICONS.get(step.status, "📋")
            lines.append(f'    {_mermaid_id(step)}["{_mermaid_label(f"{icon} {step.name}")}"]')
        lines.append("")
        for current, nxt in zip(proc.steps, proc.steps[1:], strict=False):
            edge = "-->" if current.status == "completed" else "-.->"
            lines.append(f"    {_mermaid_id(current)} {edge} {_mermaid_id(nxt)}")
    lines.append("  end")
    lines.append("")
    lines.append("  %% Styles")
    lines.append("  classDef completed fill:#d4edda,stroke:#28a745,color:#155724")
    lines.append("  classDef inProgress fill:#fff3cd,stroke:#ffc107,color:#856404")
    lines.append("  classDef pending fill:#f8f9fa,stroke:#6c757d,color:#495057")
    lines.append("  classDef failed fill:#f8d7da,stroke:#dc3545,color:#721c24")
    lines.append("")
    for step in proc.steps:
        lines.append(f"  class {_mermaid_id(step)} {_MERMAID_CLASSES.get(step.status, 'pending')}")
    return "\n".join(lines) + "\n"


def render_checklist(proc: Process) -> str:
    lines = ["# Process Checklist", "", f"Process: **{_sanitize(proc.name)}**", ""]
    if proc.steps:
        lines.append("## Steps")
        lines.append("")
        for step in proc.steps:
            box = "[x]" if step.status == "completed" else "[ ]"
            lines.append(f"- {box} {_sanitize(step.name)}")
            lines.extend(f"  - [ ] {_sanitize(check)}" for check in step.checks)
        lines.append("")
    if proc.decisions:
        lines.append("## Decisions Made")
        lines.append("")
        lines.extend(f"- [x] {_sanitize(d.question)} → **{_sanitize(d.choice)}**" for d in proc.decisions)
        lines.append("")
    return "\n".join(lines)


def write_docs(
    proc: Process,
    project_root: Path,
    fmt: str = "all",
    missing: list[str] | None = None,
    output: Path | None = None,
) -> list[Path]:
    """Render *proc* in the requested format(s) and return the files written.

    *output* replaces the default file name and is only honoured for a single
    format.
    """
    if fmt not in RENDER_FORMATS:
        msg = f"Unknown render format {fmt!r}; expected one of {', '.join(RENDER_FORMATS)}"
        raise ValueError(msg)

    docs_dir = project_root / DOCS_DIRNAME
    targets: list[tuple[str, str]] = []
    if fmt in ("md", "all"):
        targets.append((MARKDOWN_FILENAME, render_markdown(proc, missing)))
    if fmt in ("mermaid", "all"):
        targets.append((MERMAID_FILENAME, render_mermaid(proc)))
    if fmt in ("checklist", "all"):
        targets.append((CHECKLIST_FILENAME, render_checklist(proc)))

    written: list[Path] = []
    for filename, content in targets:
        path = output if output is not None and fmt != "all" else docs_dir / filename
        write_atomic(path, content)
        logger.info("Rendered %s", path)
        written.append(path)
    return written
