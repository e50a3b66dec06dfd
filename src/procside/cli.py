"""CLI for procside.

Convention-based: discovers .ai/ by walking up from cwd (or use --path).

Usage:
    procside init --name "Add login" --goal "..."   # Create and activate a process
    procside status                                 # Show the active process
    procside list --all                             # List processes
    procside switch proc-002                        # Change the active process
    procside step s1 --status completed             # Move a step
    procside apply notes.txt                        # Apply update blocks from text
    procside run "claude -p 'fix the bug'"          # Run an agent and capture updates
    procside render --format all                    # Write docs/process.md etc.
    procside check                                  # Run quality gates
"""

from __future__ import annotations

import json as json_mod
import sys
from pathlib import Path
from typing import IO, Any

import click

from procside import __version__
from procside.cli_common import Project, handle_io_errors, open_project, require_active
from procside.config import create_config, read_config, set_config_value
from procside.migrate import MIGRATED_PROCESS_ID, migrate_from_single_process
from procside.models import EVIDENCE_TYPES, RISK_IMPACTS, STEP_STATUSES, Evidence, Process, ProcessUpdate
from procside.quality_gates import ALL_GATES, format_check_result, get_missing_items, run_gates
from procside.render import RENDER_FORMATS, write_docs
from procside.runner import apply_text, record_update, run_agent
from procside.store import clear_history, load_history
from procside.templates import load_template, list_templates

_STEP_ICONS = {
    "pending": "[ ]",
    "in_progress": "[~]",
    "completed": "[x]",
    "skipped": "[-]",
    "failed": "[!]",
}

_STEP_ACTIONS = {
    "in_progress": "step_start",
    "completed": "step_complete",
    "failed": "step_fail",
}


def _project(ctx: click.Context, *, create: bool = False, migrate: bool = True) -> Project:
    return open_project(ctx.obj.get("path"), create=create, migrate=migrate)


def _echo_json(data: Any) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _not_found(what: str, ident: str, as_json: bool = False) -> None:
    if as_json:
        _echo_json({"error": f"{what} not found: {ident}", "code": "not_found"})
    else:
        click.echo(f"{what} not found: {ident}", err=True)
    sys.exit(1)


def _print_process(proc: Process, missing: list[str] | None = None) -> None:
    completed = proc.completed_steps
    click.echo(f"Process: {proc.name} ({proc.id})")
    click.echo(f"Goal:    {proc.goal}")
    click.echo(f"Status:  {proc.status}")
    if proc.template:
        click.echo(f"Template: {proc.template}")
    click.echo(f"Steps:   {completed}/{len(proc.steps)} completed")
    for step in proc.steps:
        click.echo(f"  {_STEP_ICONS.get(step.status, '[?]')} {step.id}: {step.name}")
    if proc.decisions:
        click.echo(f"Decisions: {len(proc.decisions)}")
    if proc.risks:
        click.echo(f"Risks:     {len(proc.risks)}")
    if proc.evidence:
        click.echo(f"Evidence:  {len(proc.evidence)}")
    if missing:
        click.echo("\nMissing:")
        for item in missing:
            click.echo(f"  - {item}")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="procside")
@click.option("--path", "-p", "project_path", default=None, help="Project root (default: nearest dir with .ai/)")
@click.pass_context
def cli(ctx: click.Context, project_path: str | None) -> None:
    """procside: turn agent narration into a versioned process record."""
    ctx.ensure_object(dict)
    ctx.obj["path"] = project_path


@cli.command()
@click.option("--name", default="New Process", help="Process name")
@click.option("--goal", default="Define the goal", help="What the process should achieve")
@click.option("--template", "template_id", default=None, help="Seed steps and risks from a template")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_io_errors
def init(ctx: click.Context, name: str, goal: str, template_id: str | None, as_json: bool) -> None:
    """Create a new process and make it active."""
    project = _project(ctx, create=True)
    template = None
    if template_id:
        template = load_template(template_id, project.root)
        if template is None:
            click.echo(f"Unknown template: {template_id}", err=True)
            sys.exit(1)

    proc = project.store.create_process(
        name,
        goal,
        template.id if template else None,
        steps=template.build_steps() if template else None,
        risks=template.build_risks() if template else None,
    )
    if template is not None:
        project.store.record_template_use(template.id, template.name, template.source, template.path)

    if as_json:
        _echo_json(proc.to_dict())
        return
    click.echo(f"Created {proc.id}: {proc.name}")
    if template is not None:
        click.echo(f"  Template: {template.id} ({len(proc.steps)} steps, {len(proc.risks)} risks)")
    click.echo(f"  Artifacts: {project.artifact_dir}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_io_errors
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the active process."""
    project = _project(ctx)
    proc = require_active(project)
    missing = get_missing_items(proc)
    if as_json:
        _echo_json({**proc.to_dict(), "missing": missing})
        return
    _print_process(proc, missing)


@cli.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include archived processes")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_io_errors
def list_processes(ctx: click.Context, show_all: bool, as_json: bool) -> None:
    """List processes in the registry."""
    project = _project(ctx)
    registry = project.store.load_registry()
    metas = [m for m in registry.processes if show_all or not m.archived]
    if as_json:
        _echo_json({"activeProcessId": registry.active_process_id, "processes": [m.to_dict() for m in metas]})
        return
    if not metas:
        click.echo("No processes.")
        return
    for meta in metas:
        marker = "*" if meta.id == registry.active_process_id else " "
        archived = " (archived)" if meta.archived else ""
        tags = f" [{', '.join(meta.tags)}]" if meta.tags else ""
        click.echo(f"{marker} {meta.id}  {meta.status:<12} {meta.progress:>3}%  {meta.name}{tags}{archived}")


@cli.command()
@click.argument("process_id")
@click.pass_context
@handle_io_errors
def switch(ctx: click.Context, process_id: str) -> None:
    """Make PROCESS_ID the active process."""
    project = _project(ctx)
    if not project.store.set_active_process(process_id):
        _not_found("Process", process_id)
    click.echo(f"Active process: {process_id}")


@cli.command()
@click.argument("process_id")
@click.pass_context
@handle_io_errors
def archive(ctx: click.Context, process_id: str) -> None:
    """Archive a process (the active pointer moves on)."""
    project = _project(ctx)
    if not project.store.archive_process(process_id):
        _not_found("Process", process_id)
    active = project.store.load_registry().active_process_id
    click.echo(f"Archived {process_id}")
    click.echo(f"Active process: {active or '(none)'}")


@cli.command()
@click.argument("process_id")
@click.pass_context
@handle_io_errors
def restore(ctx: click.Context, process_id: str) -> None:
    """Un-archive a process."""
    project = _project(ctx)
    if not project.store.restore_process(process_id):
        _not_found("Process", process_id)
    click.echo(f"Restored {process_id}")


@cli.command()
@click.argument("process_id")
@click.argument("tags", nargs=-1)
@click.pass_context
@handle_io_errors
def tag(ctx: click.Context, process_id: str, tags: tuple[str, ...]) -> None:
    """Replace the tags of a process (no TAGS clears them)."""
    project = _project(ctx)
    if not project.store.set_tags(process_id, list(tags)):
        _not_found("Process", process_id)
    click.echo(f"Tags for {process_id}: {', '.join(tags) or '(none)'}")


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("note", required=False)
@click.option("--process", "process_id", default=None, help="Process ID (default: active)")
@click.pass_context
@handle_io_errors
def version(ctx: click.Context, note: str | None, process_id: str | None) -> None:
    """Snapshot a process as a new version."""
    project = _project(ctx)
    if process_id:
        proc = project.store.load_process(process_id)
        if proc is None:
            _not_found("Process", process_id)
            return
    else:
        proc = require_active(project)
    number = project.store.create_version_snapshot(proc, note or "Manual snapshot")
    click.echo(f"Created version {number} of {proc.id}")


@cli.command()
@click.argument("process_id", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_io_errors
def history(ctx: click.Context, process_id: str | None, as_json: bool) -> None:
    """List the version snapshots of a process."""
    project = _project(ctx)
    pid = process_id or require_active(project).id
    versions = project.store.list_versions(pid)
    if as_json:
        _echo_json([{"version": v.version, "snapshotAt": v.snapshot_at, "reason": v.reason} for v in versions])
        return
    if not versions:
        click.echo(f"No versions for {pid}.")
        return
    for v in versions:
        click.echo(f"v{v.version:<4} {v.snapshot_at}  {v.reason}")


@cli.command("show-version")
@click.argument("process_id")
@click.argument("number", type=int)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_io_errors
def show_version(ctx: click.Context, process_id: str, number: int, as_json: bool) -> None:
    """Show one snapshot of a process."""
    project = _project(ctx)
    snapshot = project.store.load_version(process_id, number)
    if snapshot is None:
        _not_found("Version", f"{process_id} v{number}", as_json)
        return
    if as_json:
        _echo_json(snapshot.to_dict())
        return
    click.echo(f"Version {snapshot.version} ({snapshot.snapshot_at}): {snapshot.reason}\n")
    _print_process(snapshot.process)


# ---------------------------------------------------------------------------
# Manual updates
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("step_id")
@click.option("--status", type=click.Choice(sorted(STEP_STATUSES)), default=None, help="New step status")
@click.option("--add-output", "outputs", multiple=True, help="Append an output (repeatable)")
@click.pass_context
@handle_io_errors
def step(ctx: click.Context, step_id: str, status: str | None, outputs: tuple[str, ...]) -> None:
    """Update a step's status or outputs."""
    project = _project(ctx)
    proc = require_active(project)
    target = proc.get_step(step_id)
    if target is None:
        _not_found("Step", step_id)
        return

    action = _STEP_ACTIONS.get(status or "")
    if outputs and action != "step_complete":
        target.outputs.extend(outputs)
    if action is not None:
        update = ProcessUpdate(action=action, step_id=step_id, outputs=list(outputs) or None)
        record_update(project.store, proc, update)
    else:
        if status:
            target.status = status  # type: ignore[assignment]
        project.store.persist(proc)
    click.echo(f"{step_id}: {target.status}")


@cli.command("add-step")
@click.argument("name")
@click.option("--id", "step_id", default=None, help="Step ID (default: next s<n>)")
@click.option("--description", default=None, help="Step description")
@click.option("--inputs", default=None, help="Comma-separated inputs")
@click.option("--checks", default=None, help="Comma-separated checks")
@click.pass_context
@handle_io_errors
def add_step(
    ctx: click.Context,
    name: str,
    step_id: str | None,
    description: str | None,
    inputs: str | None,
    checks: str | None,
) -> None:
    """Append a step to the active process."""
    project = _project(ctx)
    proc = require_active(project)
    spec: dict[str, Any] = {"name": name, "inputs": _split_csv(inputs), "checks": _split_csv(checks)}
    if step_id:
        spec["id"] = step_id
    if description:
        spec["description"] = description
    record_update(project.store, proc, ProcessUpdate(action="step_add", step=spec))
    added = proc.steps[-1]
    click.echo(f"Added step {added.id}: {added.name}")


@cli.command()
@click.argument("question")
@click.argument("choice")
@click.option("--rationale", default="", help="Why this choice")
@click.option("--options", default=None, help="Comma-separated alternatives considered")
@click.pass_context
@handle_io_errors
def decide(ctx: click.Context, question: str, choice: str, rationale: str, options: str | None) -> None:
    """Log a decision."""
    project = _project(ctx)
    proc = require_active(project)
    spec: dict[str, Any] = {"question": question, "choice": choice, "rationale": rationale}
    if options:
        spec["options"] = _split_csv(options)
    record_update(project.store, proc, ProcessUpdate(action="decision", decision=spec))
    click.echo(f"Logged decision {proc.decisions[-1].id}: {question} -> {choice}")


@cli.command()
@click.argument("description")
@click.option("--impact", type=click.Choice(sorted(RISK_IMPACTS)), default="medium", help="Risk impact")
@click.option("--mitigation", default="", help="How the risk is handled")
@click.pass_context
@handle_io_errors
def risk(ctx: click.Context, description: str, impact: str, mitigation: str) -> None:
    """Record a risk."""
    project = _project(ctx)
    proc = require_active(project)
    spec = {"risk": description, "impact": impact, "mitigation": mitigation}
    record_update(project.store, proc, ProcessUpdate(action="risk", risk=spec))
    click.echo(f"Recorded risk {proc.risks[-1].id} ({impact}): {description}")


@cli.command()
@click.argument("evidence_type", type=click.Choice(sorted(EVIDENCE_TYPES)))
@click.argument("value")
@click.option("--step", "step_id", default=None, help="Attach to a step")
@click.pass_context
@handle_io_errors
def evidence(ctx: click.Context, evidence_type: str, value: str, step_id: str | None) -> None:
    """Attach evidence (command, file, url or note)."""
    project = _project(ctx)
    proc = require_active(project)
    item = Evidence(type=evidence_type, value=value, step_id=step_id)  # type: ignore[arg-type]
    record_update(project.store, proc, ProcessUpdate(action="evidence", step_id=step_id, evidence=[item]))
    click.echo(f"Added {evidence_type} evidence to {proc.id}")


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_io_errors
def apply(ctx: click.Context, source: IO[str], as_json: bool) -> None:
    """Apply the update blocks in SOURCE (a file, or - for stdin)."""
    project = _project(ctx, create=True)
    proc, updates = apply_text(project.store, source.read())
    if as_json:
        _echo_json({"processId": proc.id, "applied": len(updates), "updates": [u.to_dict() for u in updates]})
        return
    click.echo(f"Applied {len(updates)} update(s) to {proc.id}")


@cli.command()
@click.argument("command")
@click.option("--json", "as_json", is_flag=True, help="Output a JSON summary instead of the agent output")
@click.pass_context
@handle_io_errors
def run(ctx: click.Context, command: str, as_json: bool) -> None:
    """Run an agent COMMAND and capture its process updates."""
    project = _project(ctx, create=True)
    quiet = as_json or project.config["silent"]
    result = run_agent(
        command,
        project.store,
        cwd=project.root,
        auto_evidence=project.config["autoEvidence"],
        on_output=None if quiet else lambda chunk: click.echo(chunk, nl=False),
    )
    if as_json:
        _echo_json(result.to_dict())
    else:
        click.echo(f"\nCaptured {len(result.updates)} update(s) into {result.process_id}", err=True)
    if result.exit_code:
        sys.exit(result.exit_code)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--format", "fmt", type=click.Choice(RENDER_FORMATS), default=None, help="Output format")
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False), help="Output file (single format)")
@click.pass_context
@handle_io_errors
def render(ctx: click.Context, fmt: str | None, output: str | None) -> None:
    """Render the active process under docs/."""
    project = _project(ctx)
    proc = require_active(project)
    chosen = fmt or project.config["defaultFormat"]
    try:
        written = write_docs(
            proc,
            project.root,
            chosen,
            missing=get_missing_items(proc),
            output=Path(output) if output else None,
        )
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    for path in written:
        click.echo(f"Rendered {path}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_io_errors
def missing(ctx: click.Context, as_json: bool) -> None:
    """List what the active process is missing."""
    project = _project(ctx)
    items = get_missing_items(require_active(project))
    if as_json:
        _echo_json(items)
        return
    if not items:
        click.echo("Nothing missing.")
        return
    for item in items:
        click.echo(f"- {item}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--fail-on-warning", is_flag=True, help="Treat warnings as failures")
@click.pass_context
@handle_io_errors
def check(ctx: click.Context, as_json: bool, fail_on_warning: bool) -> None:
    """Run the configured quality gates; exit 1 on failure."""
    project = _project(ctx)
    proc = require_active(project)
    gates_config = dict(project.config["qualityGates"])
    if fail_on_warning:
        gates_config["failOnWarning"] = True
    result = run_gates(proc, gates_config)  # type: ignore[arg-type]
    if as_json:
        _echo_json(result.to_dict())
    else:
        click.echo(format_check_result(result))
    sys.exit(result.exit_code)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def gates(ctx: click.Context, as_json: bool) -> None:
    """List the available quality gates and their configuration."""
    project = _project(ctx)
    configured = {g.get("id"): g for g in project.config["qualityGates"].get("gates", [])}
    rows = []
    for gate in ALL_GATES:
        cfg = configured.get(gate.id, {})
        rows.append(
            {
                "id": gate.id,
                "name": gate.name,
                "description": gate.description,
                "enabled": bool(cfg.get("enabled", False)),
                "severity": cfg.get("severity") or gate.severity,
            }
        )
    if as_json:
        _echo_json(rows)
        return
    for row in rows:
        state = "on " if row["enabled"] else "off"
        click.echo(f"[{state}] {row['id']:<22} {row['severity']:<8} {row['description']}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def templates(ctx: click.Context, as_json: bool) -> None:
    """List built-in and local process templates."""
    project = _project(ctx)
    found = list_templates(project.root)
    if as_json:
        _echo_json(
            [
                {"id": t.id, "name": t.name, "description": t.description, "source": t.source, "steps": len(t.steps)}
                for t in found
            ]
        )
        return
    for t in found:
        click.echo(f"{t.id:<14} [{t.source}] {t.name}: {t.description} ({len(t.steps)} steps)")


@cli.command("config")
@click.option("--init", "do_init", is_flag=True, help="Write .procside.json with defaults")
@click.option("--env", type=click.Choice(["development", "production"]), default=None, help="Environment for --init")
@click.option("--set", "assignments", multiple=True, help="Set key=value (repeatable)")
@click.pass_context
@handle_io_errors
def config_cmd(ctx: click.Context, do_init: bool, env: str | None, assignments: tuple[str, ...]) -> None:
    """Show or change project configuration."""
    project = _project(ctx)
    if do_init:
        if create_config(project.root, env):  # type: ignore[arg-type]
            click.echo(f"Created {project.root / '.procside.json'}")
        else:
            click.echo("Config already exists.", err=True)
            sys.exit(1)
    for assignment in assignments:
        if "=" not in assignment:
            click.echo(f"Invalid setting: {assignment} (expected key=value)", err=True)
            sys.exit(1)
        key, raw = assignment.split("=", 1)
        set_config_value(project.root, key.strip(), raw.strip())
        click.echo(f"Set {key.strip()} = {raw.strip()}")
    if not do_init and not assignments:
        _echo_json(read_config(project.root))


@cli.command()
@click.pass_context
@handle_io_errors
def migrate(ctx: click.Context) -> None:
    """Convert a legacy .ai/process.json into the registry layout."""
    project = _project(ctx, migrate=False)
    if migrate_from_single_process(project.artifact_dir):
        click.echo(f"Migrated legacy process to {MIGRATED_PROCESS_ID}")
    else:
        click.echo("Nothing to migrate.")


@cli.command()
@click.option("--limit", default=20, type=int, help="Show the most recent N entries")
@click.option("--clear", is_flag=True, help="Delete the interaction log")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_io_errors
def log(ctx: click.Context, limit: int, clear: bool, as_json: bool) -> None:
    """Show the interaction log of applied updates."""
    project = _project(ctx)
    if clear:
        click.echo("Cleared interaction log." if clear_history(project.artifact_dir) else "No interaction log.")
        return
    entries = load_history(project.artifact_dir, limit=limit)
    if as_json:
        _echo_json(entries)
        return
    for entry in entries:
        data = entry.get("data", {})
        step_note = f" {data['stepId']}" if isinstance(data, dict) and data.get("stepId") else ""
        pid = entry.get("processId", "-")
        click.echo(f"{entry.get('timestamp', '')}  {pid}  {entry.get('type', '')}{step_note}")


if __name__ == "__main__":
    cli()
