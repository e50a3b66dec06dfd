"""Tests for built-in and local process templates."""

from __future__ import annotations

import json
from pathlib import Path

from procside.templates import TEMPLATES_DIRNAME, list_templates, load_template
from procside.templates_data import BUILTIN_TEMPLATES


class TestBuiltins:
    def test_all_builtins_listed(self) -> None:
        ids = [t.id for t in list_templates()]
        assert ids == sorted(BUILTIN_TEMPLATES)
        assert {"feature-add", "bugfix", "refactor", "spike"} <= set(ids)

    def test_build_steps_pending_with_ids(self) -> None:
        template = load_template("feature-add")
        assert template is not None
        steps = template.build_steps()
        assert [s.id for s in steps] == [f"s{i}" for i in range(1, len(steps) + 1)]
        assert all(s.status == "pending" for s in steps)
        assert any("rollback" in s.name.lower() for s in steps)

    def test_build_risks_identified(self) -> None:
        template = load_template("bugfix")
        assert template is not None
        risks = template.build_risks()
        assert risks
        assert all(r.status == "identified" and r.identified_at for r in risks)

    def test_unknown_and_invalid_names(self) -> None:
        assert load_template("nope") is None
        assert load_template("../etc") is None


class TestLocalTemplates:
    def _write(self, root: Path, name: str, data: object) -> Path:
        tdir = root / TEMPLATES_DIRNAME
        tdir.mkdir(exist_ok=True)
        path = tdir / f"{name}.json"
        path.write_text(json.dumps(data))
        return path

    def test_local_overrides_builtin(self, tmp_path: Path) -> None:
        self._write(tmp_path, "bugfix", {"name": "Our Bugfix", "steps": [{"name": "Triage"}]})
        template = load_template("bugfix", tmp_path)
        assert template is not None
        assert template.source == "local"
        assert template.name == "Our Bugfix"
        assert [s.name for s in template.build_steps()] == ["Triage"]

    def test_local_id_comes_from_file_name(self, tmp_path: Path) -> None:
        self._write(tmp_path, "release", {"id": "something-else", "name": "Release"})
        template = load_template("release", tmp_path)
        assert template is not None
        assert template.id == "release"

    def test_listing_includes_local(self, tmp_path: Path) -> None:
        self._write(tmp_path, "release", {"name": "Release"})
        listed = {t.id: t.source for t in list_templates(tmp_path)}
        assert listed["release"] == "local"
        assert listed["spike"] == "builtin"

    def test_corrupt_local_falls_back_to_builtin(self, tmp_path: Path) -> None:
        tdir = tmp_path / TEMPLATES_DIRNAME
        tdir.mkdir()
        (tdir / "spike.json").write_text("{broken")
        template = load_template("spike", tmp_path)
        assert template is not None
        assert template.source == "builtin"

    def test_invalid_local_risk_impact_coerced(self, tmp_path: Path) -> None:
        self._write(tmp_path, "ops", {"risks": [{"risk": "Pager fatigue", "impact": "extreme"}]})
        template = load_template("ops", tmp_path)
        assert template is not None
        (risk,) = template.build_risks()
        assert risk.impact == "medium"
        assert risk.id == "r1"
