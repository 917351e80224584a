"""Unit tests for CLI error reporting."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from wbsmatch.cli import app


@pytest.fixture
def runner():
    return CliRunner()


class TestImportWbs:
    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(
            app, ["import-wbs", str(tmp_path / "missing.csv"), "--project", "proj-1"]
        )

        assert result.exit_code == 1
        assert "✗" in result.output
        assert "not found" in result.output

    def test_unsupported_format(self, runner, tmp_path):
        schedule = tmp_path / "schedule.txt"
        schedule.write_text("code,title\n1,Site\n")

        result = runner.invoke(app, ["import-wbs", str(schedule), "--project", "proj-1"])

        assert result.exit_code == 1
        assert "Unsupported file format" in result.output

    def test_blank_project(self, runner, tmp_path):
        schedule = tmp_path / "schedule.csv"
        schedule.write_text("code,title\n1,Site\n")

        result = runner.invoke(app, ["import-wbs", str(schedule), "--project", " "])

        assert result.exit_code == 1
        assert "project_id is required" in result.output

    def test_invalid_rows(self, runner, tmp_path):
        schedule = tmp_path / "schedule.csv"
        schedule.write_text("code,title\n1,Site\n1,Site again\n")

        result = runner.invoke(app, ["import-wbs", str(schedule), "--project", "proj-1"])

        assert result.exit_code == 1
        assert "Duplicate WBS code" in result.output
