"""Update block parser.

Agents narrate their work as free text with embedded blocks::

    [PROCESS_UPDATE]
    action: step_complete
    step_id: s1
    outputs:
      - file1.ts
    [/PROCESS_UPDATE]

Each block is a small indentation-sensitive key/value grammar: flat keys,
``- item`` lists, nested records (``step``, ``decision``, ``risk``) and an
``evidence`` list of ``- type:`` / ``value:`` pairs. Decoding never fails:
unknown keys and stray lines are ignored so newer agents can emit fields
older readers do not understand.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from procside.core import _now_iso
from procside.models import Evidence, ProcessUpdate

START_MARKER = "[PROCESS_UPDATE]"
END_MARKER = "[/PROCESS_UPDATE]"

# Nested record keys -> (scalar fields, list fields)
_RECORD_FIELDS: dict[str, tuple[frozenset[str], frozenset[str]]] = {
    "step": (frozenset({"id", "name", "description", "status"}), frozenset({"inputs", "outputs", "checks"})),
    "decision": (frozenset({"id", "question", "choice", "rationale"}), frozenset({"options"})),
    "risk": (frozenset({"id", "risk", "impact", "mitigation"}), frozenset()),
}

_TOP_LIST_KEYS = frozenset({"outputs", "missing"})


# ---------------------------------------------------------------------------
# Block extraction
# ---------------------------------------------------------------------------


def extract_update_blocks(text: str) -> list[str]:
    """Return the trimmed body of every complete block in *text*, in order.

    An unterminated start marker ends extraction; partial blocks are never
    returned.
    """
    blocks: list[str] = []
    pos = 0
    while True:
        start = text.find(START_MARKER, pos)
        if start == -1:
            break
        end = text.find(END_MARKER, start)
        if end == -1:
            break
        blocks.append(text[start + len(START_MARKER) : end].strip())
        pos = end + len(END_MARKER)
    return blocks


# ---------------------------------------------------------------------------
# Block decoding
# ---------------------------------------------------------------------------


class _Region(enum.Enum):
    TOP = "top"
    NESTED_RECORD = "nested_record"
    EVIDENCE_LIST = "evidence_list"


@dataclass
class _DecodeState:
    region: _Region = _Region.TOP
    region_indent: int = 0
    record: dict[str, Any] | None = None
    record_key: str | None = None
    # Target of ``- item`` continuation lines, and the indent of its key.
    list_target: list[str] | None = None
    list_indent: int = 0
    evidence: list[Evidence] = field(default_factory=list)

    def enter(self, region: _Region, indent: int) -> None:
        self.region = region
        self.region_indent = indent
        self.list_target = None

    def leave(self) -> None:
        self.region = _Region.TOP
        self.record = None
        self.record_key = None
        self.list_target = None

    def start_list(self, target: list[str], indent: int) -> None:
        self.list_target = target
        self.list_indent = indent


def _split_key(line: str) -> tuple[str, str] | None:
    idx = line.find(":")
    if idx == -1:
        return None
    return line[:idx].strip(), line[idx + 1 :].strip()


def _inline_list(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _is_item(trimmed: str) -> bool:
    return trimmed == "-" or trimmed.startswith("- ")


def _item_text(trimmed: str) -> str:
    return trimmed[1:].strip()


def parse_update_block(block: str) -> ProcessUpdate:
    """Decode one block body into a ProcessUpdate."""
    update = ProcessUpdate()
    state = _DecodeState()

    for line in block.split("\n"):
        trimmed = line.strip()
        if not trimmed:
            continue
        indent = len(line) - len(line.lstrip())
        item = _is_item(trimmed)

        # Region boundaries are decided by dedent before anything else.
        if state.region is _Region.EVIDENCE_LIST and (
            indent < state.region_indent or (indent == state.region_indent and not item)
        ):
            state.leave()
        elif state.region is _Region.NESTED_RECORD and indent <= state.region_indent and not item:
            state.leave()

        if item and state.list_target is not None:
            # Record lists take items at any indent; top-level lists need them under the key.
            if indent >= state.list_indent or state.region is _Region.NESTED_RECORD:
                state.list_target.append(_item_text(trimmed))
                continue
            state.list_target = None
        elif not item:
            state.list_target = None

        if state.region is _Region.EVIDENCE_LIST:
            _decode_evidence_line(state, _item_text(trimmed) if item else trimmed)
            continue

        pair = _split_key(trimmed)
        if pair is None:
            continue
        key, value = pair

        if state.region is _Region.NESTED_RECORD:
            _decode_record_line(state, key, value, indent)
            continue

        _decode_top_line(update, state, key, value, indent)

    if state.evidence or update.evidence is not None:
        now = _now_iso()
        for ev in state.evidence:
            if not ev.timestamp:
                ev.timestamp = now
        update.evidence = state.evidence
    return update


def _decode_top_line(update: ProcessUpdate, state: _DecodeState, key: str, value: str, indent: int) -> None:
    match key:
        case "action":
            update.action = value or None
        case "process_id":
            update.process_id = value or None
        case "step_id":
            update.step_id = value or None
        case "status":
            update.status = value or None
        case "outputs" | "missing":
            items = _inline_list(value)
            setattr(update, key, items)
            if not value:
                state.start_list(items, indent)
        case "evidence":
            update.evidence = state.evidence
            state.enter(_Region.EVIDENCE_LIST, indent)
        case "step" | "decision" | "risk":
            record: dict[str, Any] = {}
            setattr(update, key, record)
            state.enter(_Region.NESTED_RECORD, indent)
            state.record = record
            state.record_key = key
        case _:
            pass


def _decode_record_line(state: _DecodeState, key: str, value: str, indent: int) -> None:
    if state.record is None or state.record_key is None:
        return
    scalars, lists = _RECORD_FIELDS[state.record_key]
    if key in scalars:
        state.record[key] = value
    elif key in lists:
        items = _inline_list(value)
        state.record[key] = items
        if not value:
            state.start_list(items, indent)


def _decode_evidence_line(state: _DecodeState, text: str) -> None:
    pair = _split_key(text)
    if pair is None:
        return
    key, value = pair
    if key == "type":
        state.evidence.append(Evidence(type=value))  # type: ignore[arg-type]
    elif not state.evidence:
        return
    elif key == "value":
        state.evidence[-1].value = value
    elif key == "step_id":
        state.evidence[-1].step_id = value or None


def parse_all_updates(text: str) -> list[ProcessUpdate]:
    """Decode every complete block in *text*, one update per block, in order."""
    return [parse_update_block(block) for block in extract_update_blocks(text)]


# ---------------------------------------------------------------------------
# Incremental streams
# ---------------------------------------------------------------------------


class UpdateStream:
    """Incrementally decode blocks from output that arrives in chunks.

    Narrative text is discarded as soon as it can no longer be part of a
    block; an open block is carried over until its end marker arrives.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[ProcessUpdate]:
        return [parse_update_block(block) for block in self.feed_blocks(chunk)]

    def feed_blocks(self, chunk: str) -> list[str]:
        """Like feed() but return the trimmed block bodies undecoded."""
        self._buffer += chunk
        blocks: list[str] = []
        while True:
            start = self._buffer.find(START_MARKER)
            if start == -1:
                # Keep a tail that could be the beginning of a split start marker.
                self._buffer = self._buffer[-(len(START_MARKER) - 1) :]
                break
            end = self._buffer.find(END_MARKER, start)
            if end == -1:
                self._buffer = self._buffer[start:]
                break
            blocks.append(self._buffer[start + len(START_MARKER) : end].strip())
            self._buffer = self._buffer[end + len(END_MARKER) :]
        return blocks

    @property
    def pending(self) -> bool:
        """True while an unterminated block is buffered."""
        return START_MARKER in self._buffer

    def flush(self) -> None:
        """Discard any unterminated block."""
        self._buffer = ""


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def _format_list(lines: list[str], key: str, items: list[str], indent: str = "") -> None:
    lines.append(f"{indent}{key}:")
    lines.extend(f"{indent}  - {item}" for item in items)


def format_update_block(update: ProcessUpdate) -> str:
    """Render *update* as a block that parse_update_block() decodes back."""
    lines = [START_MARKER]

    if update.process_id:
        lines.append(f"process_id: {update.process_id}")
    lines.append(f"action: {update.action or 'process_update'}")
    if update.step_id:
        lines.append(f"step_id: {update.step_id}")
    if update.status:
        lines.append(f"status: {update.status}")

    if update.outputs is not None:
        _format_list(lines, "outputs", update.outputs)

    if update.evidence is not None:
        lines.append("evidence:")
        for ev in update.evidence:
            lines.append(f"  - type: {ev.type}")
            lines.append(f"    value: {ev.value}")
            if ev.step_id:
                lines.append(f"    step_id: {ev.step_id}")

    for record_key in ("step", "decision", "risk"):
        record = getattr(update, record_key)
        if record is None:
            continue
        lines.append(f"{record_key}:")
        scalars, lists = _RECORD_FIELDS[record_key]
        for name, value in record.items():
            if name in scalars and value is not None:
                lines.append(f"  {name}: {value}")
            elif name in lists and value is not None:
                _format_list(lines, name, list(value), indent="  ")

    if update.missing is not None:
        _format_list(lines, "missing", update.missing)

    lines.append(END_MARKER)
    return "\n".join(lines)
