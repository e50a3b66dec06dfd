"""Tests for markdown, mermaid and checklist rendering."""

from __future__ import annotations

from pathlib import Path

import pytest

from procside.models import Decision, Evidence, Process, Risk, Step, create_process
from procside.render import (
    CHECKLIST_FILENAME,
    DOCS_DIRNAME,
    MARKDOWN_FILENAME,
    MERMAID_FILENAME,
    render_checklist,
    render_markdown,
    render_mermaid,
    write_docs,
)


@pytest.fixture
def rich_process() -> Process:
    proc = create_process("proc-001", "Test Process", "Test goal")
    proc.status = "in_progress"
    proc.steps = [
        Step(id="s1", name="Step 1", inputs=["input1"], outputs=["output1"], status="completed", checks=["lint"]),
        Step(id="s2", name="Step 2 (with parens)", status="in_progress"),
        Step(id="s3", name="Step 3"),
    ]
    proc.decisions = [Decision(id="d1", question="Use X or Y?", choice="X", rationale="Faster")]
    proc.risks = [Risk(id="r1", risk="Performance issue", impact="high", mitigation="Benchmark")]
    proc.evidence = [
        Evidence(type="command", value="npm test", timestamp="2026-01-01T00:00:00+00:00"),
        Evidence(type="file", value="src/index.ts", timestamp="2026-01-01T00:00:00+00:00", step_id="s1"),
    ]
    return proc


class TestMarkdown:
    def test_header_and_progress(self, rich_process: Process) -> None:
        md = render_markdown(rich_process)
        assert "# Process: Test Process" in md
        assert "Test goal" in md
        assert "In Progress" in md
        assert "1/3 steps completed" in md

    def test_sections(self, rich_process: Process) -> None:
        md = render_markdown(rich_process)
        for heading in ("## Steps", "## Decisions", "## Risks", "## Evidence"):
            assert heading in md
        assert "input1" in md and "output1" in md
        assert "Use X or Y?" in md
        assert "Performance issue" in md and "high" in md
        assert "**[command]** npm test" in md
        assert "(step s1)" in md

    def test_missing_section(self, rich_process: Process) -> None:
        md = render_markdown(rich_process, ["No rollback plan", "Missing tests"])
        assert "## What's Missing" in md
        assert "- [ ] No rollback plan" in md
        assert "## What's Missing" not in render_markdown(rich_process)

    def test_table_cells_escaped(self) -> None:
        proc = create_process("proc-001", "P", "G")
        proc.steps = [Step(id="s1", name="a | b\nc")]
        md = render_markdown(proc)
        assert "a \\| b c" in md


class TestMermaid:
    def test_structure_and_edges(self, rich_process: Process) -> None:
        mmd = render_mermaid(rich_process)
        assert mmd.startswith("flowchart TD")
        assert 'subgraph Process["Test Process"]' in mmd
        assert "s1 --> s2" in mmd
        assert "s2 -.-> s3" in mmd
        assert "Step 2 (with parens)" in mmd

    def test_classes(self, rich_process: Process) -> None:
        mmd = render_mermaid(rich_process)
        assert "classDef completed" in mmd
        assert "class s1 completed" in mmd
        assert "class s2 inProgress" in mmd
        assert "class s3 pending" in mmd

    def test_empty_process(self) -> None:
        assert "No steps defined" in render_mermaid(create_process("proc-001", "P", "G"))

    def test_quotes_and_ids_sanitized(self) -> None:
        proc = create_process("proc-001", 'Say "hi"', "G")
        proc.steps = [Step(id="step-1.a", name="x")]
        mmd = render_mermaid(proc)
        assert "Say 'hi'" in mmd
        assert "step_1_a[" in mmd


class TestChecklist:
    def test_checklist(self, rich_process: Process) -> None:
        text = render_checklist(rich_process)
        assert "- [x] Step 1" in text
        assert "  - [ ] lint" in text
        assert "- [ ] Step 3" in text
        assert "## Decisions Made" in text
        assert "**X**" in text


class TestWriteDocs:
    def test_all_formats(self, tmp_path: Path, rich_process: Process) -> None:
        written = write_docs(rich_process, tmp_path, "all", missing=["x"])
        docs = tmp_path / DOCS_DIRNAME
        assert written == [docs / MARKDOWN_FILENAME, docs / MERMAID_FILENAME, docs / CHECKLIST_FILENAME]
        assert all(p.exists() for p in written)

    def test_single_format_custom_output(self, tmp_path: Path, rich_process: Process) -> None:
        out = tmp_path / "out" / "flow.mmd"
        assert write_docs(rich_process, tmp_path, "mermaid", output=out) == [out]
        assert out.read_text().startswith("flowchart TD")

    def test_unknown_format(self, tmp_path: Path, rich_process: Process) -> None:
        with pytest.raises(ValueError, match="Unknown render format"):
            write_docs(rich_process, tmp_path, "pdf")
