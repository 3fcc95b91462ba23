"""Tests for state file recovery."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from minekit.exceptions import StateFileError
from minekit.recovery import (
    StateFileStatus,
    backup_path_for,
    check_state_file,
    recover_state_file,
)

NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)


class TestRecovery:
    """Test checking and repairing state files."""

    @pytest.fixture
    def template(self, tmp_path: Path) -> Path:
        """Session template."""
        path = tmp_path / "session.example.json"
        path.write_text('{"working_on": null}\n')
        return path

    @pytest.fixture
    def schema(self, tmp_path: Path) -> Path:
        """Schema requiring a working_on key."""
        path = tmp_path / "session.schema.json"
        path.write_text(json.dumps({"type": "object", "required": ["working_on"]}))
        return path

    def test_check_statuses(self, tmp_path: Path, schema: Path) -> None:
        """Test missing, malformed, and healthy files are told apart."""
        path = tmp_path / "session.json"
        assert check_state_file(path).status == StateFileStatus.MISSING

        path.write_text("{")
        assert check_state_file(path).status == StateFileStatus.MALFORMED

        path.write_text('{"other": 1}')
        check = check_state_file(path, schema)
        assert check.status == StateFileStatus.MALFORMED
        assert "Schema validation failed" in check.reason

        path.write_text('{"working_on": "login"}')
        assert check_state_file(path, schema).status == StateFileStatus.OK

    def test_backup_path(self, tmp_path: Path) -> None:
        """Test backups are timestamped and never collide."""
        path = tmp_path / "brain.json"
        first = backup_path_for(path, NOW)
        assert first.name == "brain.json.20260102T030405Z.bak"

        first.write_text("taken")
        assert backup_path_for(path, NOW).name == "brain.json.20260102T030405Z-1.bak"

    def test_recover_malformed(self, tmp_path: Path, template: Path) -> None:
        """Test the malformed file is moved aside and recreated."""
        path = tmp_path / "session.json"
        path.write_text("garbage")

        result = recover_state_file(path, template, now=NOW)

        assert result.recreated
        assert result.backup_path == tmp_path / "session.json.20260102T030405Z.bak"
        assert result.backup_path.read_text() == "garbage"
        assert path.read_text() == '{"working_on": null}\n'

    def test_recover_missing(self, tmp_path: Path, template: Path) -> None:
        """Test a missing file is created without a backup."""
        path = tmp_path / "session.json"
        result = recover_state_file(path, template)
        assert result.recreated
        assert result.backup_path is None
        assert path.exists()

    def test_healthy_untouched(self, tmp_path: Path, template: Path, schema: Path) -> None:
        """Test a valid file is not modified."""
        path = tmp_path / "session.json"
        path.write_text('{"working_on": "api"}')

        result = recover_state_file(path, template, schema)

        assert not result.recreated
        assert path.read_text() == '{"working_on": "api"}'
        assert list(tmp_path.glob("*.bak")) == []

    def test_bad_template(self, tmp_path: Path) -> None:
        """Test an unusable template aborts before any backup."""
        path = tmp_path / "session.json"
        path.write_text("garbage")
        template = tmp_path / "broken.json"
        template.write_text("{")

        with pytest.raises(StateFileError, match="not usable"):
            recover_state_file(path, template)
        assert path.read_text() == "garbage"
