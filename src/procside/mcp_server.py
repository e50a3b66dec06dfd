"""MCP server for procside.

Lets an agent report its process directly as tool calls instead of (or as
well as) narrating update blocks. File-based, no daemon.

Usage:
    procside-mcp                              # Auto-discover .ai/ from cwd
    procside-mcp --project /path/to/project   # Explicit project root
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from procside.config import artifact_dir_for, read_config
from procside.core import find_artifact_dir
from procside.migrate import ensure_migrated
from procside.models import EVIDENCE_TYPES, RISK_IMPACTS, Evidence, Process, ProcessUpdate
from procside.quality_gates import get_missing_items
from procside.registry import ProcessRegistryStore
from procside.render import render_checklist, render_markdown, render_mermaid
from procside.runner import apply_text, record_update
from procside.templates import load_template

server = Server("procside")
store: ProcessRegistryStore | None = None
_project_root: Path | None = None
_logger: logging.Logger | None = None


def _get_store() -> ProcessRegistryStore:
    if store is None:
        msg = "Registry store not initialized"
        raise RuntimeError(msg)
    return store


def _text(content: Any) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


def _not_found(what: str, ident: str) -> list[TextContent]:
    return _text({"error": f"{what} not found: {ident}", "code": "not_found"})


def _no_active() -> list[TextContent]:
    return _text({"error": "No active process. Call process_init first.", "code": "not_found"})


def _summary(proc: Process) -> dict[str, Any]:
    return {**proc.to_dict(), "missing": get_missing_items(proc)}


_PROCESS_ID_PROP = {"type": "string", "description": "Process ID (default: the active process)"}


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="process_status",
            description="Get the full process document plus what it is missing.",
            inputSchema={"type": "object", "properties": {"process_id": _PROCESS_ID_PROP}},
        ),
        Tool(
            name="process_list",
            description="List process summaries from the registry and the active process ID.",
            inputSchema={
                "type": "object",
                "properties": {
                    "include_archived": {"type": "boolean", "default": False, "description": "Include archived"},
                },
            },
        ),
        Tool(
            name="process_init",
            description="Create a new process (optionally from a template) and make it active.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Process name"},
                    "goal": {"type": "string", "description": "What the process should achieve"},
                    "template": {"type": "string", "description": "Template ID, e.g. feature-add, bugfix"},
                },
                "required": ["name", "goal"],
            },
        ),
        Tool(
            name="process_apply",
            description="Apply every [PROCESS_UPDATE] block found in raw narration text.",
            inputSchema={
                "type": "object",
                "properties": {"text": {"type": "string", "description": "Narration containing update blocks"}},
                "required": ["text"],
            },
        ),
        Tool(
            name="process_add_step",
            description="Append a step to a process.",
            inputSchema={
                "type": "object",
                "properties": {
                    "process_id": _PROCESS_ID_PROP,
                    "name": {"type": "string", "description": "Step name"},
                    "id": {"type": "string", "description": "Step ID (default: next s<n>)"},
                    "description": {"type": "string"},
                    "inputs": {"type": "array", "items": {"type": "string"}},
                    "checks": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["name"],
            },
        ),
        Tool(
            name="process_step_start",
            description="Mark a step in_progress.",
            inputSchema={
                "type": "object",
                "properties": {"process_id": _PROCESS_ID_PROP, "step_id": {"type": "string"}},
                "required": ["step_id"],
            },
        ),
        Tool(
            name="process_step_complete",
            description="Mark a step completed and append its outputs.",
            inputSchema={
                "type": "object",
                "properties": {
                    "process_id": _PROCESS_ID_PROP,
                    "step_id": {"type": "string"},
                    "outputs": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["step_id"],
            },
        ),
        Tool(
            name="process_step_fail",
            description="Mark a step failed.",
            inputSchema={
                "type": "object",
                "properties": {"process_id": _PROCESS_ID_PROP, "step_id": {"type": "string"}},
                "required": ["step_id"],
            },
        ),
        Tool(
            name="process_decide",
            description="Log a decision with its rationale.",
            inputSchema={
                "type": "object",
                "properties": {
                    "process_id": _PROCESS_ID_PROP,
                    "question": {"type": "string"},
                    "choice": {"type": "string"},
                    "rationale": {"type": "string"},
                    "options": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["question", "choice"],
            },
        ),
        Tool(
            name="process_risk",
            description="Record a risk.",
            inputSchema={
                "type": "object",
                "properties": {
                    "process_id": _PROCESS_ID_PROP,
                    "risk": {"type": "string"},
                    "impact": {"type": "string", "enum": sorted(RISK_IMPACTS)},
                    "mitigation": {"type": "string"},
                },
                "required": ["risk"],
            },
        ),
        Tool(
            name="process_evidence",
            description="Attach evidence (command run, file touched, url, note).",
            inputSchema={
                "type": "object",
                "properties": {
                    "process_id": _PROCESS_ID_PROP,
                    "type": {"type": "string", "enum": sorted(EVIDENCE_TYPES)},
                    "value": {"type": "string"},
                    "step_id": {"type": "string", "description": "Step the evidence supports"},
                },
                "required": ["type", "value"],
            },
        ),
        Tool(
            name="process_missing",
            description="List what the process documentation is missing.",
            inputSchema={"type": "object", "properties": {"process_id": _PROCESS_ID_PROP}},
        ),
        Tool(
            name="process_render",
            description="Render a process as markdown, mermaid or a checklist.",
            inputSchema={
                "type": "object",
                "properties": {
                    "process_id": _PROCESS_ID_PROP,
                    "format": {"type": "string", "enum": ["md", "mermaid", "checklist"], "default": "md"},
                },
            },
        ),
        Tool(
            name="process_snapshot",
            description="Record an immutable version snapshot of a process.",
            inputSchema={
                "type": "object",
                "properties": {
                    "process_id": _PROCESS_ID_PROP,
                    "reason": {"type": "string", "description": "Why the snapshot was taken"},
                },
            },
        ),
        Tool(
            name="process_versions",
            description="List version snapshots of a process, or fetch one with version=N.",
            inputSchema={
                "type": "object",
                "properties": {
                    "process_id": _PROCESS_ID_PROP,
                    "version": {"type": "integer", "minimum": 1},
                },
            },
        ),
    ]


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    registry_store = _get_store()
    t0 = time.monotonic()

    try:
        result = await _dispatch(name, arguments or {}, registry_store)
    except Exception:
        if _logger:
            _logger.error("tool_error", extra={"tool": name, "args_data": arguments}, exc_info=True)
        raise
    duration_ms = round((time.monotonic() - t0) * 1000, 1)
    if _logger:
        _logger.info("tool_call", extra={"tool": name, "args_data": arguments, "duration_ms": duration_ms})
    return result


def _resolve(registry_store: ProcessRegistryStore, arguments: dict[str, Any]) -> Process | None:
    process_id = arguments.get("process_id")
    if process_id:
        return registry_store.load_process(process_id)
    return registry_store.get_active_process()


def _missing_target(arguments: dict[str, Any]) -> list[TextContent]:
    if arguments.get("process_id"):
        return _not_found("Process", arguments["process_id"])
    return _no_active()


async def _dispatch(name: str, arguments: dict[str, Any], registry_store: ProcessRegistryStore) -> list[TextContent]:
    match name:
        case "process_list":
            registry = registry_store.load_registry()
            include_archived = bool(arguments.get("include_archived", False))
            return _text(
                {
                    "activeProcessId": registry.active_process_id,
                    "processes": [m.to_dict() for m in registry.processes if include_archived or not m.archived],
                }
            )

        case "process_init":
            template = None
            if arguments.get("template"):
                template = load_template(arguments["template"], _project_root)
                if template is None:
                    return _not_found("Template", arguments["template"])
            proc = registry_store.create_process(
                arguments["name"],
                arguments["goal"],
                template.id if template else None,
                steps=template.build_steps() if template else None,
                risks=template.build_risks() if template else None,
            )
            if template is not None:
                registry_store.record_template_use(template.id, template.name, template.source, template.path)
            return _text(proc.to_dict())

        case "process_apply":
            proc, updates = apply_text(registry_store, arguments.get("text", ""))
            return _text({"processId": proc.id, "applied": len(updates), "process": proc.to_dict()})

    proc = _resolve(registry_store, arguments)
    if proc is None:
        return _missing_target(arguments)

    match name:
        case "process_status":
            return _text(_summary(proc))

        case "process_add_step":
            spec: dict[str, Any] = {
                "name": arguments["name"],
                "inputs": list(arguments.get("inputs", [])),
                "checks": list(arguments.get("checks", [])),
            }
            for key in ("id", "description"):
                if arguments.get(key):
                    spec[key] = arguments[key]
            record_update(registry_store, proc, ProcessUpdate(action="step_add", step=spec))
            return _text(proc.steps[-1].to_dict())

        case "process_step_start" | "process_step_complete" | "process_step_fail":
            step_id = arguments["step_id"]
            if proc.get_step(step_id) is None:
                return _not_found("Step", step_id)
            action = name.removeprefix("process_")
            outputs = arguments.get("outputs") if action == "step_complete" else None
            update = ProcessUpdate(action=action, step_id=step_id, outputs=list(outputs) if outputs else None)
            record_update(registry_store, proc, update)
            step = proc.get_step(step_id)
            assert step is not None
            return _text(step.to_dict())

        case "process_decide":
            decision: dict[str, Any] = {
                "question": arguments["question"],
                "choice": arguments["choice"],
                "rationale": arguments.get("rationale", ""),
            }
            if arguments.get("options"):
                decision["options"] = list(arguments["options"])
            record_update(registry_store, proc, ProcessUpdate(action="decision", decision=decision))
            return _text(proc.decisions[-1].to_dict())

        case "process_risk":
            risk = {
                "risk": arguments["risk"],
                "impact": arguments.get("impact", "medium"),
                "mitigation": arguments.get("mitigation", ""),
            }
            record_update(registry_store, proc, ProcessUpdate(action="risk", risk=risk))
            return _text(proc.risks[-1].to_dict())

        case "process_evidence":
            ev_type = arguments["type"]
            if ev_type not in EVIDENCE_TYPES:
                return _text({"error": f"Invalid evidence type: {ev_type}", "code": "invalid_argument"})
            item = Evidence(type=ev_type, value=arguments["value"], step_id=arguments.get("step_id"))
            update = ProcessUpdate(action="evidence", step_id=arguments.get("step_id"), evidence=[item])
            record_update(registry_store, proc, update)
            return _text(proc.evidence[-1].to_dict())

        case "process_missing":
            return _text({"processId": proc.id, "missing": get_missing_items(proc)})

        case "process_render":
            fmt = arguments.get("format", "md")
            if fmt == "mermaid":
                return _text(render_mermaid(proc))
            if fmt == "checklist":
                return _text(render_checklist(proc))
            return _text(render_markdown(proc, get_missing_items(proc)))

        case "process_snapshot":
            number = registry_store.create_version_snapshot(proc, arguments.get("reason") or "Manual snapshot")
            return _text({"processId": proc.id, "version": number})

        case "process_versions":
            if "version" in arguments:
                snapshot = registry_store.load_version(proc.id, int(arguments["version"]))
                if snapshot is None:
                    return _not_found("Version", f"{proc.id} v{arguments['version']}")
                return _text(snapshot.to_dict())
            return _text(
                {
                    "processId": proc.id,
                    "versions": [
                        {"version": v.version, "snapshotAt": v.snapshot_at, "reason": v.reason}
                        for v in registry_store.list_versions(proc.id)
                    ],
                }
            )

        case _:
            return _text({"error": f"Unknown tool: {name}", "code": "unknown_tool"})


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run(project_path: Path | None) -> None:
    global store, _project_root, _logger

    if project_path is None:
        try:
            project_path = find_artifact_dir().parent
        except FileNotFoundError:
            print("Error: No .ai/ found. Run 'procside init' first.", file=sys.stderr)
            sys.exit(1)

    config = read_config(project_path)
    artifact_dir = artifact_dir_for(project_path, config)
    _project_root = project_path
    store = ProcessRegistryStore(artifact_dir)

    from procside.logging import setup_logging

    _logger = setup_logging(artifact_dir, level=config["logLevel"], environment=config["environment"])
    ensure_migrated(artifact_dir)
    _logger.info("mcp_server_start", extra={"tool": "server", "args_data": {"project": str(project_path)}})

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    import asyncio

    parser = argparse.ArgumentParser(description="procside MCP server")
    parser.add_argument("--project", type=Path, default=None, help="Project root (auto-discovers .ai/ if omitted)")
    args = parser.parse_args()

    asyncio.run(_run(args.project))


if __name__ == "__main__":
    main()
