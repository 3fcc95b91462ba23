"""Tests for CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
import yaml
from conftest import REMOTE_FILES, FakeRemote, catalog_data
from typer.testing import CliRunner

from minekit.cli import app, main
from minekit.fetcher import HttpTransport
from minekit.merger import MARKER


class TestCLI:
    """Test CLI commands against a fake remote."""

    @pytest.fixture
    def runner(self) -> CliRunner:
        """Create CLI test runner."""
        return CliRunner()

    @pytest.fixture
    def remote(self, monkeypatch: pytest.MonkeyPatch) -> FakeRemote:
        """Route every CLI download through an in-memory remote."""
        remote = FakeRemote(REMOTE_FILES)
        monkeypatch.setattr(
            "minekit.cli.HttpTransport",
            lambda: HttpTransport(httpx.Client(transport=httpx.MockTransport(remote.handler))),
        )
        monkeypatch.delenv("MINE_HOME", raising=False)
        monkeypatch.delenv("MINE_CONFIG", raising=False)
        return remote

    @pytest.fixture
    def home(self, tmp_path: Path) -> Path:
        """Base root inside a temporary home."""
        return tmp_path / ".gemini" / "antigravity"

    @pytest.fixture
    def catalog_file(self, tmp_path: Path) -> Path:
        """Small catalog written to disk."""
        path = tmp_path / "catalog.yaml"
        with open(path, "w") as f:
            yaml.dump(catalog_data(), f)
        return path

    def _args(self, home: Path, catalog_file: Path) -> list[str]:
        return ["--home", str(home), "--catalog", str(catalog_file)]

    def test_install(
        self,
        runner: CliRunner,
        remote: FakeRemote,
        home: Path,
        catalog_file: Path,
    ) -> None:
        """Test a fresh install places files and reports success."""
        result = runner.invoke(app, ["install", *self._args(home, catalog_file)])

        assert result.exit_code == 0, result.output
        assert "install complete" in result.output
        assert (home / "global_workflows" / "plan.md").read_bytes() == b"# Plan workflow\n"
        assert (home / "mine_version").read_text() == "3.5.0\n"
        assert MARKER in (home.parent / "GEMINI.md").read_text()
        assert json.loads((home / "preferences.json").read_text())["language"] == "vi"

    def test_install_twice_is_noop(
        self,
        runner: CliRunner,
        remote: FakeRemote,
        home: Path,
        catalog_file: Path,
    ) -> None:
        """Test re-running an up-to-date install fetches nothing."""
        runner.invoke(app, ["install", *self._args(home, catalog_file)])
        fetched = len(remote.requests)

        result = runner.invoke(app, ["install", *self._args(home, catalog_file)])

        assert result.exit_code == 0, result.output
        assert "already installed" in result.output
        assert len(remote.requests) == fetched

    def test_install_lists_failed_files(
        self,
        runner: CliRunner,
        remote: FakeRemote,
        home: Path,
        catalog_file: Path,
    ) -> None:
        """Test a missing required file is listed without failing the run."""
        del remote.files["workflows/code.md"]

        result = runner.invoke(app, ["install", *self._args(home, catalog_file)])

        assert result.exit_code == 0, result.output
        assert "could not be installed" in result.output
        assert "workflows/code.md" in result.output
        assert (home / "mine_version").exists()

    def test_install_reports_skipped_optional(
        self,
        runner: CliRunner,
        remote: FakeRemote,
        home: Path,
        catalog_file: Path,
    ) -> None:
        """Test a missing optional companion is listed but not fatal."""
        del remote.files["skills/demo-skill/AGENTS.md"]

        result = runner.invoke(app, ["install", *self._args(home, catalog_file)])

        assert result.exit_code == 0, result.output
        assert "demo-skill/AGENTS.md" in result.output
        assert "optional" in result.output

    def test_install_fatal_merge_exits_nonzero(
        self,
        runner: CliRunner,
        remote: FakeRemote,
        home: Path,
        catalog_file: Path,
    ) -> None:
        """Test an unreadable GEMINI.md aborts before the version is recorded."""
        (home.parent / "GEMINI.md").mkdir(parents=True)

        result = runner.invoke(app, ["install", *self._args(home, catalog_file)])

        assert result.exit_code == 1
        assert "did not complete" in result.output
        assert not (home / "mine_version").exists()

    def test_update_requires_install(
        self,
        runner: CliRunner,
        remote: FakeRemote,
        home: Path,
        catalog_file: Path,
    ) -> None:
        """Test update refuses to run on an empty base root."""
        result = runner.invoke(app, ["update", *self._args(home, catalog_file)])

        assert result.exit_code == 1
        assert "Nothing installed" in result.output

    def test_update_uses_remote_version(
        self,
        runner: CliRunner,
        remote: FakeRemote,
        home: Path,
        catalog_file: Path,
    ) -> None:
        """Test update targets the published VERSION file."""
        runner.invoke(app, ["install", *self._args(home, catalog_file)])
        remote.files["VERSION"] = b"3.6.0\n"

        result = runner.invoke(app, ["update", *self._args(home, catalog_file)])

        assert result.exit_code == 0, result.output
        assert (home / "mine_version").read_text() == "3.6.0\n"
        assert "3.6.0" in (home.parent / "GEMINI.md").read_text()

    def test_uninstall(
        self,
        runner: CliRunner,
        remote: FakeRemote,
        home: Path,
        catalog_file: Path,
    ) -> None:
        """Test uninstall removes files and keeps user content."""
        document = home.parent / "GEMINI.md"
        document.parent.mkdir(parents=True)
        document.write_text("# My notes\n")
        runner.invoke(app, ["install", *self._args(home, catalog_file)])
        requests = len(remote.requests)

        result = runner.invoke(app, ["uninstall", "--yes", *self._args(home, catalog_file)])

        assert result.exit_code == 0, result.output
        assert "removed" in result.output
        assert document.read_text() == "# My notes\n"
        assert not (home / "mine_version").exists()
        assert not (home / "global_workflows" / "plan.md").exists()
        assert len(remote.requests) == requests

    def test_uninstall_cancelled(
        self,
        runner: CliRunner,
        remote: FakeRemote,
        home: Path,
        catalog_file: Path,
    ) -> None:
        """Test declining the prompt leaves the install alone."""
        runner.invoke(app, ["install", *self._args(home, catalog_file)])

        result = runner.invoke(app, ["uninstall", *self._args(home, catalog_file)], input="n\n")

        assert result.exit_code == 0
        assert "cancelled" in result.output
        assert (home / "mine_version").exists()

    def test_status(
        self,
        runner: CliRunner,
        remote: FakeRemote,
        home: Path,
        catalog_file: Path,
    ) -> None:
        """Test status shows the installed version and file counts."""
        before = runner.invoke(app, ["status", *self._args(home, catalog_file)])
        assert before.exit_code == 0
        assert "not installed" in before.output

        runner.invoke(app, ["install", *self._args(home, catalog_file)])
        after = runner.invoke(app, ["status", *self._args(home, catalog_file)])

        assert after.exit_code == 0
        assert "3.5.0" in after.output
        assert "2/2" in after.output
        assert "block present" in after.output

    def test_bad_catalog(self, runner: CliRunner, remote: FakeRemote, home: Path, tmp_path: Path) -> None:
        """Test an invalid catalog is reported as an error."""
        bad = tmp_path / "bad.yaml"
        bad.write_text("version: 1.0.0\n")

        result = runner.invoke(app, ["install", "--home", str(home), "--catalog", str(bad)])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_version(self, runner: CliRunner) -> None:
        """Test the version command."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "MineKit version" in result.output


class TestRepairCommand:
    """Test the state file repair command."""

    @pytest.fixture
    def runner(self) -> CliRunner:
        """Create CLI test runner."""
        return CliRunner()

    @pytest.fixture
    def home(self, tmp_path: Path) -> Path:
        """Base root with an installed brain template."""
        home = tmp_path / ".gemini" / "antigravity"
        (home / "templates").mkdir(parents=True)
        (home / "templates" / "brain.example.json").write_text('{"project": {}}\n')
        return home

    def test_repairs_malformed(self, runner: CliRunner, home: Path, tmp_path: Path) -> None:
        """Test a malformed file is backed up and recreated."""
        state = tmp_path / ".brain" / "brain.json"
        state.parent.mkdir()
        state.write_text("{not json")

        result = runner.invoke(app, ["repair", str(state), "--home", str(home)])

        assert result.exit_code == 0, result.output
        assert json.loads(state.read_text()) == {"project": {}}
        backups = list(state.parent.glob("brain.json.*.bak"))
        assert len(backups) == 1
        assert backups[0].read_text() == "{not json"

    def test_healthy_untouched(self, runner: CliRunner, home: Path, tmp_path: Path) -> None:
        """Test a healthy file is left alone."""
        state = tmp_path / "brain.json"
        state.write_text('{"mine": true}')

        result = runner.invoke(app, ["repair", str(state), "--home", str(home)])

        assert result.exit_code == 0
        assert "healthy" in result.output
        assert state.read_text() == '{"mine": true}'

    def test_missing_template(self, runner: CliRunner, tmp_path: Path) -> None:
        """Test a missing template is an error."""
        state = tmp_path / "session.json"
        state.write_text("oops")

        result = runner.invoke(app, ["repair", str(state), "--home", str(tmp_path / "empty")])

        assert result.exit_code == 1
        assert state.read_text() == "oops"


class TestMain:
    """Test the console entry point."""

    def test_interrupt_exits_130(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test Ctrl-C maps to exit code 130."""

        def _interrupted() -> None:
            raise KeyboardInterrupt

        monkeypatch.setattr("minekit.cli.app", _interrupted)

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 130
